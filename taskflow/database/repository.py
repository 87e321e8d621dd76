"""Repository layer for database operations."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import asc, desc

from taskflow.models.task import Task, TaskStatus, TaskFilter, TaskSort
from taskflow.models.constants import PRIORITY_ORDER
from taskflow.database.models import TaskDB, enum_to_value

logger = logging.getLogger(__name__)

# Columns a partial update may touch. Owner, id and timestamps are store-managed.
UPDATABLE_FIELDS = ("title", "description", "priority", "status", "is_completed", "due_date")


class TaskRepository:
    """Repository for Task database operations.

    Every read and write is scoped to an owner id; a task belonging to another
    user behaves exactly like a missing one.
    """

    def __init__(self, db: Session):
        self.db = db

    def _owned(self, user_id: str, task_id: str) -> Optional[TaskDB]:
        return self.db.query(TaskDB).filter(
            TaskDB.id == task_id,
            TaskDB.user_id == user_id,
        ).first()

    def create(self, task: Task) -> Task:
        """Create a new task."""
        try:
            task_db = TaskDB.from_pydantic(task)
            self.db.add(task_db)
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Created task {task.id}: {task.title[:50]}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, user_id: str, task_id: str) -> Optional[Task]:
        """Get task by ID for a specific user."""
        task_db = self._owned(user_id, task_id)
        return task_db.to_pydantic() if task_db else None

    def list_tasks(self, user_id: str, task_filter: TaskFilter = TaskFilter.ALL, sort: TaskSort = TaskSort.NEWEST) -> List[Task]:
        """List a user's tasks for one view (filter + sort)."""
        task_filter = TaskFilter(enum_to_value(task_filter))
        sort = TaskSort(enum_to_value(sort))

        query = self.db.query(TaskDB).filter(TaskDB.user_id == user_id)
        if task_filter == TaskFilter.ACTIVE:
            query = query.filter(TaskDB.is_completed.is_(False))
        elif task_filter == TaskFilter.COMPLETED:
            query = query.filter(TaskDB.is_completed.is_(True))

        if sort == TaskSort.OLDEST:
            query = query.order_by(asc(TaskDB.created_at))
        elif sort == TaskSort.DUE_DATE:
            # Undated tasks go last on every backend
            query = query.order_by(TaskDB.due_date.is_(None), asc(TaskDB.due_date), desc(TaskDB.created_at))
        else:
            query = query.order_by(desc(TaskDB.created_at))

        tasks = [task_db.to_pydantic() for task_db in query.all()]
        if sort == TaskSort.PRIORITY:
            # Stable: newest-first order is kept within each priority
            tasks.sort(key=lambda t: PRIORITY_ORDER.get(enum_to_value(t.priority), len(PRIORITY_ORDER)))
        return tasks

    def update(self, user_id: str, task_id: str, changes: Dict[str, Any]) -> Task:
        """Apply a partial update and return the stored task.

        Raises:
            ValueError: If the task does not exist for this user
        """
        task_db = self._owned(user_id, task_id)
        if not task_db:
            raise ValueError(f"Task {task_id} not found")

        for field in UPDATABLE_FIELDS:
            if field not in changes:
                continue
            value = changes[field]
            if field in ("priority", "status") and value is not None:
                value = enum_to_value(value)
            setattr(task_db, field, value)

        # Keep the completion flag mirrored on status whichever one was sent
        if "status" in changes:
            task_db.is_completed = task_db.status == TaskStatus.COMPLETED.value
        elif "is_completed" in changes:
            task_db.status = TaskStatus.COMPLETED.value if task_db.is_completed else TaskStatus.TODO.value
        task_db.updated_at = datetime.utcnow()

        try:
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Updated task {task_id}: {sorted(changes)}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update task {task_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, user_id: str, task_id: str) -> bool:
        """Permanently delete a task by ID for a specific user."""
        task_db = self._owned(user_id, task_id)
        if not task_db:
            return False

        try:
            self.db.delete(task_db)
            self.db.commit()
            logger.debug(f"Deleted task {task_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete task {task_id}: {type(e).__name__}: {str(e)}")
            raise
