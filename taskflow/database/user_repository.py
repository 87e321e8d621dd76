"""Repository for User database operations."""

import logging
from typing import Optional
from sqlalchemy.orm import Session

from taskflow.models.user import User
from taskflow.database.models import UserDB

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[User]:
        """Get user by ID, or None for an unknown account."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        if not user_db:
            logger.debug(f"No user {user_id}")
            return None
        return user_db.to_pydantic()
