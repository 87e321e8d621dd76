"""Read side of the data layer: task list views through the cache."""

import logging
from typing import List

from taskflow.auth.session import SessionState
from taskflow.models.task import Task, TaskFilter, TaskSort
from taskflow.sync.cache import QueryCache
from taskflow.sync.keys import task_list_key
from taskflow.sync.store import TaskStore

logger = logging.getLogger(__name__)


class TaskQueries:
    """Cached list views for the signed-in user."""

    def __init__(self, session: SessionState, cache: QueryCache, store: TaskStore):
        self.session = session
        self.cache = cache
        self.store = store

    async def list_tasks(self, task_filter: TaskFilter = TaskFilter.ALL, sort: TaskSort = TaskSort.NEWEST) -> List[Task]:
        """Tasks of the current user for one view.

        Without a signed-in user the query is disabled: an empty list is
        returned and the store is not contacted.
        """
        user_id = self.session.user_id
        if user_id is None:
            return []

        task_filter = TaskFilter(task_filter)
        sort = TaskSort(sort)

        async def fetcher() -> List[Task]:
            return await self.store.query(user_id, task_filter, sort)

        return await self.cache.fetch(task_list_key(task_filter, sort, user_id), fetcher)
