"""Client-side data layer for one TaskFlow session.

Wires the session, cache, store, queries, mutations, live updates and the AI
gateway together. Signing out (or switching user) drops every cached view so
nothing of the previous user is shown.
"""

import logging
from typing import List, Optional

from taskflow.auth.session import SessionState
from taskflow.engine.gateway import AIGateway
from taskflow.models.ai import Suggestion
from taskflow.models.task import Task, TaskCreate, TaskFilter, TaskSort, TaskUpdate
from taskflow.sync.cache import QueryCache
from taskflow.sync.mutations import TaskMutations
from taskflow.sync.queries import TaskQueries
from taskflow.sync.realtime import LiveUpdates
from taskflow.sync.store import RepositoryTaskStore, TaskStore

logger = logging.getLogger(__name__)


class TaskflowClient:
    """Facade over the data layer.

    Use as an async context manager so the live-update subscription is always
    released:

        async with TaskflowClient(session) as client:
            tasks = await client.list_tasks()
    """

    def __init__(
        self,
        session: Optional[SessionState] = None,
        store: Optional[TaskStore] = None,
        cache: Optional[QueryCache] = None,
        ai: Optional[AIGateway] = None,
    ):
        self.session = session or SessionState()
        self.store = store or RepositoryTaskStore()
        self.cache = cache or QueryCache()
        self.ai = ai or AIGateway.from_env()
        self.queries = TaskQueries(self.session, self.cache, self.store)
        self.mutations = TaskMutations(self.session, self.cache, self.store)
        self.live_updates = LiveUpdates(self.session, self.cache, self.store)
        self._unlisten = self.session.on_change(self._on_session_change)

    async def __aenter__(self) -> "TaskflowClient":
        self.live_updates.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.live_updates.stop()
        if self._unlisten is not None:
            self._unlisten()
            self._unlisten = None

    def _on_session_change(self, user_id: Optional[str]) -> None:
        self.cache.clear()
        logger.debug("Cleared cached views after session change")

    async def list_tasks(self, task_filter: TaskFilter = TaskFilter.ALL, sort: TaskSort = TaskSort.NEWEST) -> List[Task]:
        return await self.queries.list_tasks(task_filter, sort)

    async def create_task(self, data: TaskCreate) -> Task:
        return await self.mutations.create(data)

    async def update_task(self, task_id: str, changes: TaskUpdate) -> Task:
        return await self.mutations.update(task_id, changes)

    async def delete_task(self, task_id: str) -> None:
        await self.mutations.delete(task_id)

    async def suggestions(self) -> List[Suggestion]:
        """AI suggestions for all of the current user's tasks."""
        tasks = await self.list_tasks()
        return await self.ai.cached_suggestions(tasks, self.cache)

    async def smart_add(self, text: str) -> List[Task]:
        return await self.ai.smart_add(text, self.mutations)
