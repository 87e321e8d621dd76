"""Client-side session state.

The data layer never looks the current user up implicitly: a SessionState is
passed to every component that needs it. Listeners are told whenever the user
changes (sign-in, sign-out, account switch).
"""

import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[str]], None]


class NotAuthenticatedError(Exception):
    """Raised when an operation needs a user and nobody is signed in."""


class SessionState:
    """Current user identifier (or None) with change notifications."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id
        self._listeners: List[SessionListener] = []

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_authenticated(self) -> bool:
        return self._user_id is not None

    def require_user(self) -> str:
        """Return the current user id or raise NotAuthenticatedError."""
        if self._user_id is None:
            raise NotAuthenticatedError("Not authenticated")
        return self._user_id

    def sign_in(self, user_id: str) -> None:
        self._set(user_id)

    def sign_out(self) -> None:
        self._set(None)

    def on_change(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, user_id: Optional[str]) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        logger.debug(f"Session user changed: {'signed out' if user_id is None else user_id}")
        # Copy: listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            listener(user_id)
