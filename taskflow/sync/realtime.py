"""Live updates: invalidate task views whenever the store reports a change.

Change events are treated as a level trigger. The pushed diff is never merged
into the cache; every event simply makes all task views re-fetch. Events may be
published from any thread and are marshalled onto the event loop. A burst of
events collapses into at most one running and one pending invalidation.
"""

import asyncio
import logging
from typing import Callable, Optional

from taskflow.auth.session import SessionState
from taskflow.sync.cache import QueryCache
from taskflow.sync.keys import TASKS_ALL
from taskflow.sync.store import ChangeEvent, Subscription, TaskStore

logger = logging.getLogger(__name__)


class LiveUpdates:
    """Session-scoped subscription to the store's change feed.

    Usable directly (`start()` / `stop()`) or as an async context manager.
    """

    def __init__(self, session: SessionState, cache: QueryCache, store: TaskStore):
        self.session = session
        self.cache = cache
        self.store = store
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscription: Optional[Subscription] = None
        self._unlisten: Optional[Callable[[], None]] = None
        self._pending: Optional[asyncio.Task] = None
        self._again = False

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start(self) -> None:
        """Subscribe for the current user and follow session changes."""
        if self._unlisten is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._unlisten = self.session.on_change(self._on_session_change)
        self._acquire(self.session.user_id)

    def stop(self) -> None:
        """Release the subscription and drop any pending invalidation."""
        if self._unlisten is not None:
            self._unlisten()
            self._unlisten = None
        self._release()
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
        self._again = False

    async def flush(self) -> None:
        """Wait until queued invalidations have run."""
        # Let callbacks scheduled from other threads land first
        await asyncio.sleep(0)
        while self._pending is not None and not self._pending.done():
            await asyncio.wait({self._pending})

    async def __aenter__(self) -> "LiveUpdates":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _acquire(self, user_id: Optional[str]) -> None:
        self._release()
        if user_id is None:
            return
        self._subscription = self.store.subscribe(user_id, self._on_event)
        logger.debug(f"Live updates subscribed for user {user_id}")

    def _release(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
            logger.debug("Live updates released")

    def _on_session_change(self, user_id: Optional[str]) -> None:
        self._acquire(user_id)

    def _on_event(self, event: ChangeEvent) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._schedule)
        except RuntimeError:
            # Loop shut down between the check and the call
            logger.debug(f"Dropped change event for task {event.task_id}: event loop closed")

    def _schedule(self) -> None:
        if self._unlisten is None:
            return
        if self._pending is not None and not self._pending.done():
            self._again = True
            return
        self._pending = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            self._again = False
            await self.cache.invalidate(TASKS_ALL)
            if not self._again:
                break
