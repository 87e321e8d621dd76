"""Tests for live updates and the change feed."""

import asyncio
import threading
from unittest.mock import MagicMock

from taskflow.auth.session import SessionState
from taskflow.models.task import TaskCreate, TaskFilter, TaskSort
from taskflow.sync.cache import QueryCache
from taskflow.sync.keys import task_list_key
from taskflow.sync.queries import TaskQueries
from taskflow.sync.realtime import LiveUpdates
from taskflow.sync.store import ChangeEvent, ChangeFeed, RepositoryTaskStore


class TestChangeFeed:
    """Test owner-filtered publish/subscribe."""

    def test_events_delivered_only_to_owner(self):
        feed = ChangeFeed()
        mine, theirs = MagicMock(), MagicMock()
        feed.subscribe("u1", mine)
        feed.subscribe("u2", theirs)

        feed.publish(ChangeEvent(event_type="insert", user_id="u1", task_id="t1"))

        mine.assert_called_once()
        theirs.assert_not_called()

    def test_unsubscribe_is_idempotent(self):
        feed = ChangeFeed()
        subscription = feed.subscribe("u1", MagicMock())

        subscription.unsubscribe()
        subscription.unsubscribe()

        assert feed.subscriber_count == 0
        assert subscription.active is False

    def test_failing_listener_does_not_block_others(self):
        feed = ChangeFeed()
        healthy = MagicMock()
        feed.subscribe("u1", MagicMock(side_effect=RuntimeError("boom")))
        feed.subscribe("u1", healthy)

        feed.publish(ChangeEvent(event_type="delete", user_id="u1", task_id="t1"))

        healthy.assert_called_once()


class TestLiveUpdates:
    """Test session-scoped invalidation on change events."""

    def test_subscription_follows_session(self):
        feed = ChangeFeed()
        store = RepositoryTaskStore(session_factory=MagicMock(), feed=feed)
        session = SessionState("u1")

        async def run():
            live = LiveUpdates(session, QueryCache(), store)
            live.start()
            counts = [feed.subscriber_count]
            session.sign_in("u2")
            counts.append(feed.subscriber_count)
            session.sign_out()
            counts.append(feed.subscriber_count)
            session.sign_in("u3")
            counts.append(feed.subscriber_count)
            live.stop()
            counts.append(feed.subscriber_count)
            return counts

        assert asyncio.run(run()) == [1, 1, 0, 1, 0]

    def test_context_manager_releases_on_error(self):
        feed = ChangeFeed()
        store = RepositoryTaskStore(session_factory=MagicMock(), feed=feed)

        async def run():
            try:
                async with LiveUpdates(SessionState("u1"), QueryCache(), store):
                    assert feed.subscriber_count == 1
                    raise RuntimeError("view torn down")
            except RuntimeError:
                pass

        asyncio.run(run())
        assert feed.subscriber_count == 0

    def test_remote_change_refreshes_views(self, session_factory, test_user_id):
        """A write made elsewhere shows up after the live update runs."""
        store = RepositoryTaskStore(session_factory=session_factory)
        session = SessionState(test_user_id)
        cache = QueryCache()
        queries = TaskQueries(session, cache, store)
        key = task_list_key(TaskFilter.ALL, TaskSort.NEWEST, test_user_id)

        async def run():
            async with LiveUpdates(session, cache, store) as live:
                assert await queries.list_tasks() == []
                # Another client writes to the same store
                await store.insert(test_user_id, TaskCreate(title="From elsewhere"))
                await live.flush()
                return cache.read(key)

        tasks = asyncio.run(run())
        assert [task.title for task in tasks] == ["From elsewhere"]

    def test_burst_from_other_thread_coalesces(self):
        feed = ChangeFeed()
        store = RepositoryTaskStore(session_factory=MagicMock(), feed=feed)
        session = SessionState("u1")
        cache = QueryCache()
        fetches = []

        async def fetcher():
            fetches.append(1)
            return []

        async def run():
            await cache.fetch(task_list_key("all", "newest", "u1"), fetcher)
            async with LiveUpdates(session, cache, store) as live:
                def burst():
                    for index in range(20):
                        feed.publish(ChangeEvent(event_type="update", user_id="u1", task_id=f"t{index}"))

                thread = threading.Thread(target=burst)
                thread.start()
                thread.join()
                await live.flush()

        asyncio.run(run())
        # One initial fetch plus at most two invalidation passes
        assert 2 <= len(fetches) <= 3

    def test_events_after_stop_are_ignored(self):
        feed = ChangeFeed()
        store = RepositoryTaskStore(session_factory=MagicMock(), feed=feed)
        cache = MagicMock()

        async def run():
            live = LiveUpdates(SessionState("u1"), cache, store)
            live.start()
            live.stop()
            feed.publish(ChangeEvent(event_type="insert", user_id="u1", task_id="t1"))
            await asyncio.sleep(0)

        asyncio.run(run())
        cache.invalidate.assert_not_called()
