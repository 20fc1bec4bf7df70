"""Central change-notification manager.

Writers publish ``(table, wo_id)``; subscribers register per table (or
``"*"`` for every table). Changes to a table are collected for
``debounce_seconds`` from the first change and delivered once as a set of
work order ids. ``None`` inside the set means "anything may have changed".
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

ALL_TABLES = "*"

Subscriber = Callable[[str, frozenset], Union[None, Awaitable[None]]]


class ChangeFeed:
    """Coalesce bursts of record changes into one refresh signal per table.

    Usage:
        feed = ChangeFeed(debounce_seconds=3.0)
        feed.subscribe("work_orders", lambda table, ids: handler.invalidate(ids))
        feed.publish("work_orders", "WO-1")
    """

    def __init__(self, debounce_seconds: float = 3.0):
        self.debounce_seconds = debounce_seconds
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self._pending: dict[str, set[Optional[str]]] = defaultdict(set)
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._deliveries = 0

    def subscribe(self, table: str, callback: Subscriber) -> Callable[[], None]:
        """Register a callback. Returns a function that removes it again."""
        self._subscribers[table].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers.get(table, []):
                self._subscribers[table].remove(callback)

        return unsubscribe

    def publish(self, table: str, wo_id: Optional[str] = None) -> None:
        """Record a change. Must be called from the event loop thread."""
        self._pending[table].add(wo_id)
        if table in self._timers:
            return
        loop = asyncio.get_running_loop()
        self._timers[table] = loop.call_later(self.debounce_seconds, self._fire, table)

    def pending_tables(self) -> list[str]:
        return sorted(t for t, ids in self._pending.items() if ids)

    @property
    def delivery_count(self) -> int:
        return self._deliveries

    def _fire(self, table: str) -> None:
        self._timers.pop(table, None)
        wo_ids = frozenset(self._pending.pop(table, set()))
        if not wo_ids:
            return
        task = asyncio.get_running_loop().create_task(self._deliver(table, wo_ids))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def flush(self, table: Optional[str] = None) -> None:
        """Deliver pending changes now instead of waiting for the window."""
        tables = [table] if table is not None else list(self._pending)
        for name in tables:
            timer = self._timers.pop(name, None)
            if timer is not None:
                timer.cancel()
            wo_ids = frozenset(self._pending.pop(name, set()))
            if wo_ids:
                await self._deliver(name, wo_ids)
        if self._tasks:
            await asyncio.gather(*self._tasks)

    async def _deliver(self, table: str, wo_ids: frozenset) -> None:
        self._deliveries += 1
        callbacks = [*self._subscribers.get(table, []), *self._subscribers.get(ALL_TABLES, [])]
        logger.debug(
            "Delivering %d change(s) on %s to %d subscriber(s)", len(wo_ids), table, len(callbacks)
        )
        for callback in callbacks:
            try:
                result = callback(table, wo_ids)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Change subscriber %r failed for table %s", callback, table)

    def close(self) -> None:
        """Cancel pending timers; undelivered changes are dropped."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._pending.clear()
