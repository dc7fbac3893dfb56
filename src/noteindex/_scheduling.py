"""Debounced task scheduling on the running asyncio loop."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class TrailingDebouncer:
    """Runs *callback* once, *delay* seconds after the most recent :meth:`schedule`.

    Each call to :meth:`schedule` cancels the pending timer and starts a new
    one, so a burst of calls produces a single run.  :meth:`flush` runs a
    pending callback immediately.  Callback failures are logged.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[Any]],
        delay: float,
        *,
        name: str = "debounced",
    ) -> None:
        self._callback = callback
        self._delay = delay
        self._name = name
        self._timer: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def schedule(self) -> None:
        """(Re)start the timer.  Must be called from a running event loop."""
        self.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._fire_later())

    def cancel(self) -> bool:
        """Drop the pending run, if any.  Returns True if one was pending."""
        timer, self._timer = self._timer, None
        if timer is None:
            return False
        timer.cancel()
        return True

    async def flush(self) -> bool:
        """Run the pending callback now.  Returns False if nothing was pending."""
        if not self.cancel():
            return False
        await self._run()
        return True

    async def _fire_later(self) -> None:
        await asyncio.sleep(self._delay)
        self._timer = None
        await self._run()

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.warning("%s callback failed", self._name, exc_info=True)


@dataclass(slots=True)
class _Window:
    opened_at: float
    trailing_args: tuple[Any, ...] | None = None
    trailing_task: asyncio.Task[None] | None = None


class KeyedDebouncer:
    """Leading-edge debounce, one window per key.

    The first :meth:`trigger` for a key runs *callback* immediately (as a
    task) and opens a window of *window* seconds; further triggers for that
    key inside the window are suppressed.  With ``trailing=True`` the last
    suppressed trigger runs once when the window closes.

    Time is read from *clock* so windows can be tested without real timers.
    Failures are passed to *on_error* (or logged when it is None).
    """

    def __init__(
        self,
        callback: Callable[..., Awaitable[Any]],
        window: float,
        *,
        trailing: bool = False,
        clock: Callable[[], float] = time.monotonic,
        on_error: Callable[[str, Exception], Awaitable[None]] | None = None,
    ) -> None:
        self._callback = callback
        self._window = window
        self._trailing = trailing
        self._clock = clock
        self._on_error = on_error
        self._windows: dict[str, _Window] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def window(self) -> float:
        return self._window

    @property
    def pending_keys(self) -> list[str]:
        """Keys whose window is still open."""
        now = self._clock()
        return [k for k, w in self._windows.items() if now - w.opened_at < self._window]

    def is_suppressed(self, key: str) -> bool:
        window = self._windows.get(key)
        return window is not None and self._clock() - window.opened_at < self._window

    def trigger(self, key: str, *args: Any) -> bool:
        """Fire for *key* unless its window is open.  Returns True if it fired."""
        now = self._clock()
        self._prune(now)

        window = self._windows.get(key)
        if window is not None and now - window.opened_at < self._window:
            if self._trailing:
                window.trailing_args = args
                if window.trailing_task is None:
                    delay = window.opened_at + self._window - now
                    window.trailing_task = self._spawn(self._fire_trailing(key, window, delay))
            return False

        self._windows[key] = _Window(opened_at=now)
        self._spawn(self._run(key, args))
        return True

    def cancel(self, key: str) -> bool:
        """Forget *key*'s window and drop its trailing run."""
        window = self._windows.pop(key, None)
        if window is None:
            return False
        if window.trailing_task is not None:
            window.trailing_task.cancel()
        return True

    def cancel_all(self) -> None:
        """Cancel every scheduled or running task and forget all windows."""
        self._windows.clear()
        for task in list(self._tasks):
            task.cancel()

    async def wait_idle(self) -> None:
        """Wait until no task spawned by this debouncer is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task[None]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _fire_trailing(self, key: str, window: _Window, delay: float) -> None:
        await asyncio.sleep(max(delay, 0.0))
        args, window.trailing_args = window.trailing_args, None
        window.trailing_task = None
        if args is not None and self._windows.get(key) is window:
            await self._run(key, args)

    async def _run(self, key: str, args: tuple[Any, ...]) -> None:
        try:
            await self._callback(*args)
        except Exception as e:
            if self._on_error is None:
                logger.warning("Debounced task for %s failed", key, exc_info=True)
            else:
                await self._on_error(key, e)

    def _prune(self, now: float) -> None:
        expired = [
            k
            for k, w in self._windows.items()
            if now - w.opened_at >= self._window and w.trailing_task is None
        ]
        for key in expired:
            del self._windows[key]
