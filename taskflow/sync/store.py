"""Remote task store consumed by the mutation engine.

`TaskStore` is the contract the cache layer talks to. `RepositoryTaskStore`
implements it on top of the SQLAlchemy repository and publishes every change to
a `ChangeFeed`, the in-process stand-in for a realtime channel.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from taskflow.database.database import SessionLocal
from taskflow.database.repository import TaskRepository
from taskflow.models.task import Task, TaskCreate, TaskFilter, TaskSort, TaskUpdate
from taskflow.models.task_factory import create_task_base

logger = logging.getLogger(__name__)


class TaskNotFoundError(Exception):
    """Raised when a task does not exist for the given owner."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


class ChangeType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """A row-level change on the tasks table."""

    event_type: ChangeType = Field(..., description="Kind of change")
    user_id: str = Field(..., description="Owner of the changed task")
    task_id: str = Field(..., description="Changed task id")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


ChangeListener = Callable[[ChangeEvent], None]


class Subscription:
    """Handle returned by `subscribe`; `unsubscribe()` may be called repeatedly."""

    def __init__(self, release: Callable[[], None]):
        self._release = release
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._release()


class ChangeFeed:
    """Owner-filtered publish/subscribe channel for task changes.

    Listeners are invoked on the publishing thread.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: Dict[int, tuple] = {}
        self._next_id = 0

    def subscribe(self, user_id: str, listener: ChangeListener) -> Subscription:
        with self._lock:
            listener_id = self._next_id
            self._next_id += 1
            self._listeners[listener_id] = (user_id, listener)
        logger.debug(f"Change feed subscription {listener_id} for user {user_id}")

        def release() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)
            logger.debug(f"Change feed subscription {listener_id} released")

        return Subscription(release)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            targets = [listener for owner, listener in self._listeners.values() if owner == event.user_id]
        for listener in targets:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Change listener failed for task {event.task_id}: {type(e).__name__}: {str(e)}")


# Process-wide change feed, created on first use
_change_feed: Optional[ChangeFeed] = None


def get_change_feed() -> ChangeFeed:
    """Get or create the change feed shared by the API and in-process stores."""
    global _change_feed
    if _change_feed is None:
        _change_feed = ChangeFeed()
    return _change_feed


class TaskStore(ABC):
    """Asynchronous remote store of tasks, scoped by owner."""

    @abstractmethod
    async def insert(self, user_id: str, data: TaskCreate) -> Task:
        """Persist a new task; the store assigns id and timestamps."""

    @abstractmethod
    async def update(self, user_id: str, task_id: str, changes: TaskUpdate) -> Task:
        """Apply a partial update and return the stored task."""

    @abstractmethod
    async def delete(self, user_id: str, task_id: str) -> None:
        """Delete a task. Raises TaskNotFoundError when it does not exist."""

    @abstractmethod
    async def query(self, user_id: str, task_filter: TaskFilter = TaskFilter.ALL, sort: TaskSort = TaskSort.NEWEST) -> List[Task]:
        """List tasks for one view."""

    @abstractmethod
    def subscribe(self, user_id: str, on_change: ChangeListener) -> Subscription:
        """Receive change events for one owner until unsubscribed."""


class RepositoryTaskStore(TaskStore):
    """TaskStore backed by `TaskRepository`.

    Repository work runs in a worker thread with its own SQLAlchemy session,
    opened and closed there. Events are published once the write has committed.
    """

    def __init__(self, session_factory: Callable = SessionLocal, feed: Optional[ChangeFeed] = None):
        self.session_factory = session_factory
        self.feed = feed or get_change_feed()

    def _publish(self, event_type: ChangeType, user_id: str, task_id: str) -> None:
        self.feed.publish(ChangeEvent(event_type=event_type, user_id=user_id, task_id=task_id))

    def _with_repository(self, work: Callable[[TaskRepository], Any]) -> Any:
        db = self.session_factory()
        try:
            return work(TaskRepository(db))
        finally:
            db.close()

    async def _run(self, work: Callable[[TaskRepository], Any]) -> Any:
        return await asyncio.to_thread(self._with_repository, work)

    async def insert(self, user_id: str, data: TaskCreate) -> Task:
        task = await self._run(lambda repo: repo.create(create_task_base(user_id, data)))
        self._publish(ChangeType.INSERT, user_id, task.id)
        return task

    async def update(self, user_id: str, task_id: str, changes: TaskUpdate) -> Task:
        try:
            task = await self._run(lambda repo: repo.update(user_id, task_id, changes.changes()))
        except ValueError as e:
            raise TaskNotFoundError(task_id) from e
        self._publish(ChangeType.UPDATE, user_id, task_id)
        return task

    async def delete(self, user_id: str, task_id: str) -> None:
        deleted = await self._run(lambda repo: repo.delete(user_id, task_id))
        if not deleted:
            raise TaskNotFoundError(task_id)
        self._publish(ChangeType.DELETE, user_id, task_id)

    async def query(self, user_id: str, task_filter: TaskFilter = TaskFilter.ALL, sort: TaskSort = TaskSort.NEWEST) -> List[Task]:
        return await self._run(lambda repo: repo.list_tasks(user_id, task_filter, sort))

    def subscribe(self, user_id: str, on_change: ChangeListener) -> Subscription:
        return self.feed.subscribe(user_id, on_change)
