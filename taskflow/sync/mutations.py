"""Optimistic task mutations.

Each mutation follows the same sequence:

1. supersede in-flight task fetches so they cannot overwrite the optimistic write
2. snapshot every cached task view
3. apply the change locally to every view it affects
4. await the remote store
5. on failure restore the snapshot and raise `TaskMutationError`
6. always finish by invalidating all task views, which re-fetches them

There is no automatic retry.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from taskflow.auth.session import SessionState
from taskflow.models.task import Task, TaskCreate, TaskUpdate
from taskflow.models.task_factory import apply_changes, create_optimistic_task, is_temp_id
from taskflow.sync.cache import QueryCache
from taskflow.sync.keys import TASKS_ALL, TASK_LISTS, CacheKey, matches_view
from taskflow.sync.store import TaskStore

logger = logging.getLogger(__name__)


class TaskMutationError(Exception):
    """A remote write failed; the optimistic change has been rolled back."""

    def __init__(self, operation: str, task_id: Optional[str], message: str):
        self.operation = operation
        self.task_id = task_id
        self.message = message
        super().__init__(f"Failed to {operation} task {task_id}: {message}")


def _owned_view(key: CacheKey, user_id: str) -> bool:
    # List view keys end with the owner id
    return len(key) > len(TASK_LISTS) and key[-1] == user_id


def _replace(task_id: str, build: Callable[[Task], Task]) -> Callable[[CacheKey, Any], Any]:
    def updater(key: CacheKey, tasks: List[Task]) -> List[Task]:
        if not any(task.id == task_id for task in tasks):
            return tasks
        return [build(task) if task.id == task_id else task for task in tasks]
    return updater


class TaskMutations:
    """Create, update and delete with optimistic cache writes and rollback."""

    def __init__(self, session: SessionState, cache: QueryCache, store: TaskStore):
        self.session = session
        self.cache = cache
        self.store = store
        self._pending_deletes: Set[str] = set()

    def _check_target(self, operation: str, task_id: str) -> None:
        if is_temp_id(task_id):
            raise TaskMutationError(operation, task_id, "task has not been saved yet")
        if task_id in self._pending_deletes:
            raise TaskMutationError(operation, task_id, "task is being deleted")

    def _begin(self) -> Dict[CacheKey, Any]:
        self.cache.cancel(TASKS_ALL)
        return self.cache.snapshot(TASKS_ALL)

    def _rollback(self, snapshot: Dict[CacheKey, Any], operation: str, task_id: Optional[str], error: Exception) -> TaskMutationError:
        self.cache.restore(snapshot)
        logger.error(f"Failed to {operation} task {task_id}, rolled back: {type(error).__name__}: {str(error)}")
        return TaskMutationError(operation, task_id, str(error))

    async def create(self, data: TaskCreate) -> Task:
        """Create a task, showing a temporary entry until the store confirms it."""
        user_id = self.session.require_user()
        snapshot = self._begin()

        placeholder = create_optimistic_task(user_id, data)

        def prepend(key: CacheKey, tasks: List[Task]) -> List[Task]:
            if _owned_view(key, user_id) and matches_view(key, placeholder):
                return [placeholder] + tasks
            return tasks

        self.cache.update_matching(TASK_LISTS, prepend)

        try:
            task = await self.store.insert(user_id, data)
        except Exception as e:
            raise self._rollback(snapshot, "create", placeholder.id, e) from e
        finally:
            await self.cache.invalidate(TASKS_ALL)

        logger.debug(f"Created task {task.id} (placeholder {placeholder.id})")
        return task

    async def update(self, task_id: str, changes: TaskUpdate) -> Task:
        """Apply a partial update to a task."""
        user_id = self.session.require_user()
        self._check_target("update", task_id)
        snapshot = self._begin()

        fields = changes.changes()
        now = datetime.utcnow()
        self.cache.update_matching(TASK_LISTS, _replace(task_id, lambda task: apply_changes(task, fields, now)))

        try:
            task = await self.store.update(user_id, task_id, changes)
        except Exception as e:
            raise self._rollback(snapshot, "update", task_id, e) from e
        else:
            self.cache.update_matching(TASK_LISTS, _replace(task_id, lambda _: task))
        finally:
            await self.cache.invalidate(TASKS_ALL)

        logger.debug(f"Updated task {task_id}: {sorted(fields)}")
        return task

    async def delete(self, task_id: str) -> None:
        """Delete a task."""
        user_id = self.session.require_user()
        self._check_target("delete", task_id)
        snapshot = self._begin()
        self._pending_deletes.add(task_id)

        def drop(key: CacheKey, tasks: List[Task]) -> List[Task]:
            if not any(task.id == task_id for task in tasks):
                return tasks
            return [task for task in tasks if task.id != task_id]

        self.cache.update_matching(TASK_LISTS, drop)

        try:
            await self.store.delete(user_id, task_id)
        except Exception as e:
            raise self._rollback(snapshot, "delete", task_id, e) from e
        finally:
            self._pending_deletes.discard(task_id)
            await self.cache.invalidate(TASKS_ALL)

        logger.debug(f"Deleted task {task_id}")
