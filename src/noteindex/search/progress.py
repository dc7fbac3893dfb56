"""Batch progress counters and the notifications derived from them."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from noteindex.events import IndexEvent, IndexEventType
from noteindex.search.types import ProgressState

if TYPE_CHECKING:
    from collections.abc import Callable

    from noteindex.events import EventBus
    from noteindex.search.types import IndexStats

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Owns the :class:`ProgressState` of one index and publishes changes.

    Every notifying update emits ``stats_updated``.  An update that starts
    a run also emits ``generation_started``; one that stops a run with a
    non-zero total emits ``generation_completed``.
    """

    def __init__(
        self,
        events: EventBus[IndexEventType] | None,
        stats: Callable[[], IndexStats],
    ) -> None:
        self._events = events
        self._stats = stats
        self._state = ProgressState()

    @property
    def state(self) -> ProgressState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    async def update(self, *, notify: bool = True, **changes: Any) -> ProgressState:
        """Apply *changes* to the counters; emit notifications when *notify*."""
        self._state = replace(self._state, **changes)
        if not notify:
            return self._state

        await self.publish()
        running = changes.get("is_running")
        if running is True:
            await self.emit(IndexEventType.GENERATION_STARTED, progress=self._state.to_dict())
        elif running is False and self._state.total > 0:
            await self.emit(
                IndexEventType.GENERATION_COMPLETED,
                progress=self._state.to_dict(),
                stats=self._stats().to_dict(),
            )
        return self._state

    async def reset(self) -> None:
        """Zero all counters and publish the result."""
        self._state = ProgressState()
        await self.publish()

    async def publish(self) -> None:
        """Emit ``stats_updated`` with the current progress and stats."""
        await self.emit(
            IndexEventType.STATS_UPDATED,
            progress=self._state.to_dict(),
            stats=self._stats().to_dict(),
        )

    async def emit(self, event_type: IndexEventType, **data: Any) -> None:
        if self._events is None:
            return
        await self._events.emit(IndexEvent(event_type=event_type, data=data))
