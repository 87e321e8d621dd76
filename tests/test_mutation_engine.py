"""Tests for optimistic task mutations."""

import asyncio
import pytest
import threading
from typing import Dict, List

from taskflow.auth.session import NotAuthenticatedError, SessionState
from taskflow.models.task import Task, TaskCreate, TaskFilter, TaskPriority, TaskSort, TaskStatus, TaskUpdate
from taskflow.models.task_factory import apply_changes, create_task_base, is_temp_id
from taskflow.sync.cache import QueryCache
from taskflow.sync.keys import task_list_key
from taskflow.sync.mutations import TaskMutationError, TaskMutations
from taskflow.sync.queries import TaskQueries
from taskflow.sync.store import ChangeFeed, RepositoryTaskStore, TaskNotFoundError, TaskStore

USER = "test-user-123"


class FakeStore(TaskStore):
    """In-memory store whose calls can be held open or made to fail."""

    def __init__(self):
        self.tasks: Dict[str, Task] = {}
        self.failing = set()
        self.gate = None
        self.query_gate = None
        self.feed = ChangeFeed()
        self.queries = 0

    async def _enter(self, operation: str) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if operation in self.failing:
            raise RuntimeError(f"{operation} failed")

    async def insert(self, user_id, data):
        await self._enter("insert")
        task = create_task_base(user_id, data)
        self.tasks[task.id] = task
        return task

    async def update(self, user_id, task_id, changes):
        await self._enter("update")
        if task_id not in self.tasks:
            raise TaskNotFoundError(task_id)
        self.tasks[task_id] = apply_changes(self.tasks[task_id], changes.changes())
        return self.tasks[task_id]

    async def delete(self, user_id, task_id):
        await self._enter("delete")
        if self.tasks.pop(task_id, None) is None:
            raise TaskNotFoundError(task_id)

    async def query(self, user_id, task_filter=TaskFilter.ALL, sort=TaskSort.NEWEST):
        self.queries += 1
        if self.query_gate is not None:
            await self.query_gate.wait()
        tasks = [task for task in self.tasks.values() if task.user_id == user_id]
        if task_filter == TaskFilter.ACTIVE:
            tasks = [task for task in tasks if task.status != TaskStatus.COMPLETED.value]
        elif task_filter == TaskFilter.COMPLETED:
            tasks = [task for task in tasks if task.status == TaskStatus.COMPLETED.value]
        return sorted(tasks, key=lambda task: task.created_at, reverse=True)

    def subscribe(self, user_id, on_change):
        return self.feed.subscribe(user_id, on_change)


def _seed(store: FakeStore, title: str, **fields) -> Task:
    task = create_task_base(USER, TaskCreate(title=title))
    if fields:
        task = task.model_copy(update=fields)
    store.tasks[task.id] = task
    return task


def _titles(tasks: List[Task]) -> List[str]:
    return [task.title for task in tasks]


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def session():
    return SessionState(USER)


@pytest.fixture
def engine(store, session):
    cache = QueryCache()
    return TaskQueries(session, cache, store), TaskMutations(session, cache, store), cache


async def _load_views(queries: TaskQueries) -> None:
    for task_filter in TaskFilter:
        await queries.list_tasks(task_filter)


ALL_VIEW = task_list_key(TaskFilter.ALL, TaskSort.NEWEST, USER)
ACTIVE_VIEW = task_list_key(TaskFilter.ACTIVE, TaskSort.NEWEST, USER)
COMPLETED_VIEW = task_list_key(TaskFilter.COMPLETED, TaskSort.NEWEST, USER)


class TestCreate:
    """Test optimistic creation."""

    def test_temporary_entry_shown_until_confirmed(self, store, engine):
        queries, mutations, cache = engine

        async def run():
            await _load_views(queries)
            store.gate = asyncio.Event()
            pending = asyncio.ensure_future(mutations.create(TaskCreate(title="Write report")))
            await asyncio.sleep(0)

            during_all = cache.read(ALL_VIEW)
            during_active = cache.read(ACTIVE_VIEW)
            during_completed = cache.read(COMPLETED_VIEW)

            store.gate.set()
            created = await pending
            return during_all, during_active, during_completed, created

        during_all, during_active, during_completed, created = asyncio.run(run())

        assert _titles(during_all) == ["Write report"]
        assert is_temp_id(during_all[0].id)
        assert during_all[0].user_id == USER
        assert during_all[0].status == TaskStatus.TODO.value
        assert _titles(during_active) == ["Write report"]
        assert during_completed == []

        assert not is_temp_id(created.id)
        assert [task.id for task in cache.read(ALL_VIEW)] == [created.id]

    def test_failure_restores_views_and_raises(self, store, engine):
        queries, mutations, cache = engine
        _seed(store, "Existing")
        store.failing.add("insert")

        async def run():
            await _load_views(queries)
            before = cache.snapshot()
            with pytest.raises(TaskMutationError) as exc_info:
                await mutations.create(TaskCreate(title="Doomed"))
            return before, exc_info.value

        before, error = asyncio.run(run())

        assert cache.snapshot() == before
        assert error.operation == "create"
        assert isinstance(error.__cause__, RuntimeError)

    def test_requires_signed_in_user(self, store):
        cache = QueryCache()
        mutations = TaskMutations(SessionState(), cache, store)

        with pytest.raises(NotAuthenticatedError):
            asyncio.run(mutations.create(TaskCreate(title="Nope")))
        assert store.tasks == {}

    def test_create_ends_with_refetch(self, store, engine):
        queries, mutations, cache = engine

        async def run():
            await _load_views(queries)
            before = store.queries
            await mutations.create(TaskCreate(title="New"))
            return store.queries - before

        # Every loaded view is re-fetched once
        assert asyncio.run(run()) == 3

    def test_create_during_first_load_still_returns_list(self, store, engine):
        """A view loading for the first time when a create starts still answers with tasks."""
        queries, mutations, cache = engine
        _seed(store, "Existing")

        async def run():
            store.query_gate = asyncio.Event()
            store.gate = asyncio.Event()
            loading = asyncio.ensure_future(queries.list_tasks())
            await asyncio.sleep(0)
            creating = asyncio.ensure_future(mutations.create(TaskCreate(title="A")))
            await asyncio.sleep(0)
            store.query_gate.set()
            first = await loading
            store.gate.set()
            await creating
            return first, await queries.list_tasks()

        first, after = asyncio.run(run())

        assert isinstance(first, list)
        assert _titles(first) == ["Existing"]
        assert sorted(_titles(after)) == ["A", "Existing"]


class TestUpdate:
    """Test optimistic partial updates."""

    def test_changes_visible_before_server_confirms(self, store, engine):
        queries, mutations, cache = engine
        task = _seed(store, "Draft")

        async def run():
            await _load_views(queries)
            store.gate = asyncio.Event()
            pending = asyncio.ensure_future(
                mutations.update(task.id, TaskUpdate(title="Final", priority=TaskPriority.HIGH))
            )
            await asyncio.sleep(0)
            during = cache.read(ALL_VIEW)[0]
            store.gate.set()
            return during, await pending

        during, updated = asyncio.run(run())

        assert during.title == "Final"
        assert during.priority == TaskPriority.HIGH.value
        assert during.updated_at >= task.updated_at
        assert updated.title == "Final"
        assert cache.read(ALL_VIEW)[0] == updated

    def test_completing_moves_task_between_views(self, store, engine):
        queries, mutations, cache = engine
        task = _seed(store, "Finish me")

        async def run():
            await _load_views(queries)
            await mutations.update(task.id, TaskUpdate(status=TaskStatus.COMPLETED))

        asyncio.run(run())

        assert cache.read(ACTIVE_VIEW) == []
        assert _titles(cache.read(COMPLETED_VIEW)) == ["Finish me"]
        assert cache.read(COMPLETED_VIEW)[0].is_completed is True

    def test_failure_restores_views(self, store, engine):
        queries, mutations, cache = engine
        task = _seed(store, "Keep me")
        store.failing.add("update")

        async def run():
            await _load_views(queries)
            before = cache.snapshot()
            with pytest.raises(TaskMutationError):
                await mutations.update(task.id, TaskUpdate(title="Changed"))
            return before

        before = asyncio.run(run())
        assert cache.snapshot() == before

    def test_missing_task_raises_mutation_error(self, store, engine):
        _, mutations, _ = engine

        with pytest.raises(TaskMutationError) as exc_info:
            asyncio.run(mutations.update("missing-id", TaskUpdate(title="x")))
        assert isinstance(exc_info.value.__cause__, TaskNotFoundError)

    def test_rejects_temporary_id(self, engine):
        _, mutations, _ = engine

        with pytest.raises(TaskMutationError, match="not been saved"):
            asyncio.run(mutations.update("temp-abc", TaskUpdate(title="x")))


class TestDelete:
    """Test optimistic deletion."""

    def test_entry_removed_immediately(self, store, engine):
        queries, mutations, cache = engine
        keep = _seed(store, "Keep")
        drop = _seed(store, "Drop")

        async def run():
            await _load_views(queries)
            store.gate = asyncio.Event()
            pending = asyncio.ensure_future(mutations.delete(drop.id))
            await asyncio.sleep(0)
            during = _titles(cache.read(ALL_VIEW))
            store.gate.set()
            await pending
            return during

        assert asyncio.run(run()) == ["Keep"]
        assert [task.id for task in cache.read(ALL_VIEW)] == [keep.id]

    def test_failure_restores_entry(self, store, engine):
        queries, mutations, cache = engine
        _seed(store, "Survivor")
        store.failing.add("delete")

        async def run():
            await _load_views(queries)
            before = cache.snapshot()
            task_id = cache.read(ALL_VIEW)[0].id
            with pytest.raises(TaskMutationError):
                await mutations.delete(task_id)
            return before

        before = asyncio.run(run())
        assert cache.snapshot() == before

    def test_pending_delete_blocks_other_mutations(self, store, engine):
        queries, mutations, cache = engine
        task = _seed(store, "Going")

        async def run():
            await _load_views(queries)
            store.gate = asyncio.Event()
            pending = asyncio.ensure_future(mutations.delete(task.id))
            await asyncio.sleep(0)
            with pytest.raises(TaskMutationError, match="being deleted"):
                await mutations.delete(task.id)
            with pytest.raises(TaskMutationError, match="being deleted"):
                await mutations.update(task.id, TaskUpdate(title="Too late"))
            store.gate.set()
            await pending

        asyncio.run(run())
        assert store.tasks == {}


class TestRepositoryTaskStore:
    """Test the SQLAlchemy-backed store."""

    def test_repository_work_runs_off_the_event_loop(self, session_factory, test_user_id):
        opened = []

        class RecordingSession:
            def __init__(self):
                self.db = session_factory()
                self.thread = threading.get_ident()
                self.closed = False
                opened.append(self)

            def __getattr__(self, name):
                return getattr(self.db, name)

            def close(self):
                self.closed = True
                self.db.close()

        store = RepositoryTaskStore(session_factory=RecordingSession, feed=ChangeFeed())

        async def run():
            loop_thread = threading.get_ident()
            created = await store.insert(test_user_id, TaskCreate(title="Threaded"))
            await store.update(test_user_id, created.id, TaskUpdate(title="Still threaded"))
            tasks = await store.query(test_user_id)
            await store.delete(test_user_id, created.id)
            return loop_thread, tasks

        loop_thread, tasks = asyncio.run(run())

        assert _titles(tasks) == ["Still threaded"]
        assert len(opened) == 4
        assert all(db.thread != loop_thread for db in opened)
        assert all(db.closed for db in opened)

    def test_missing_task_raises_not_found(self, session_factory, test_user_id):
        store = RepositoryTaskStore(session_factory=session_factory, feed=ChangeFeed())

        with pytest.raises(TaskNotFoundError):
            asyncio.run(store.update(test_user_id, "missing", TaskUpdate(title="x")))
        with pytest.raises(TaskNotFoundError):
            asyncio.run(store.delete(test_user_id, "missing"))


class TestConvergence:
    """Cache and store agree once all remote calls have completed."""

    def test_sequence_converges_with_repository_store(self, session_factory, test_user_id):
        store = RepositoryTaskStore(session_factory=session_factory)
        session = SessionState(test_user_id)
        cache = QueryCache()
        queries = TaskQueries(session, cache, store)
        mutations = TaskMutations(session, cache, store)

        async def run():
            await _load_views(queries)
            first = await mutations.create(TaskCreate(title="One"))
            second = await mutations.create(TaskCreate(title="Two", priority=TaskPriority.HIGH))
            await mutations.create(TaskCreate(title="Three"))
            await mutations.update(first.id, TaskUpdate(is_completed=True))
            await mutations.delete(second.id)

            views = {}
            for task_filter in TaskFilter:
                views[task_filter] = await store.query(test_user_id, task_filter, TaskSort.NEWEST)
            return views

        views = asyncio.run(run())

        for task_filter, expected in views.items():
            key = task_list_key(task_filter, TaskSort.NEWEST, test_user_id)
            assert cache.read(key) == expected
        assert sorted(_titles(views[TaskFilter.ALL])) == ["One", "Three"]
        assert _titles(views[TaskFilter.COMPLETED]) == ["One"]

    def test_concurrent_mutations_converge(self, store, engine):
        queries, mutations, cache = engine
        existing = _seed(store, "Existing")

        async def run():
            await _load_views(queries)
            await asyncio.gather(
                mutations.create(TaskCreate(title="A")),
                mutations.create(TaskCreate(title="B")),
                mutations.update(existing.id, TaskUpdate(title="Existing v2")),
            )

        asyncio.run(run())

        expected = asyncio.run(store.query(USER))
        assert cache.read(ALL_VIEW) == expected
        assert sorted(_titles(expected)) == ["A", "B", "Existing v2"]
        assert not any(is_temp_id(task.id) for task in cache.read(ALL_VIEW))
