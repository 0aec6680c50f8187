from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Single-slot trailing debounce.

    Each ``trigger`` cancels the scheduled call and schedules a new one, so
    the callback runs once ``delay`` seconds after the last trigger. At most
    one callback runs at a time: a timer that expires mid-run is folded into
    one follow-up run scheduled after the current one finishes.
    """

    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        self._delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._rerun = False
        self._closed = False

    @property
    def pending(self) -> bool:
        return self._handle is not None or self._rerun

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self) -> None:
        if self._closed:
            return
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._rerun = False

    def _fire(self) -> None:
        self._handle = None
        if self._closed:
            return
        if self.running:
            self._rerun = True
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.exception("Debounced callback failed")
        if self._rerun and not self._closed:
            self._rerun = False
            self.trigger()

    async def close(self) -> None:
        self._closed = True
        self.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
