"""
Timers and rendering frames with cancellable handles.

The participant runtime never sleeps; it asks a Scheduler to run a callback after a
delay (typing indicator, welcome replay) or on the next rendering frame (scroll
restore). ManualScheduler runs on a virtual clock so tests and the simulation CLI are
deterministic; LoopScheduler rides on the running asyncio event loop.
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

Callback = Callable[[], None]

FRAME_INTERVAL_MS = 1000 / 60


class ScheduledTask:
    """Handle for a pending callback. Cancelling after it ran is a no-op."""

    def __init__(self, callback: Callback) -> None:
        self._callback = callback
        self.cancelled = False
        self.done = False
        self._on_cancel: Optional[Callback] = None

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.done)

    def cancel(self) -> None:
        if not self.pending:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()

    def run(self) -> None:
        if not self.pending:
            return
        self.done = True
        self._callback()


class Scheduler(ABC):
    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callback) -> ScheduledTask:
        ...

    @abstractmethod
    def request_frame(self, callback: Callback) -> ScheduledTask:
        ...


class ManualScheduler(Scheduler):
    def __init__(self) -> None:
        self.now_ms: float = 0.0
        self._timers: List[Tuple[float, int, ScheduledTask]] = []
        self._frames: List[ScheduledTask] = []
        self._seq = itertools.count()

    def call_later(self, delay_ms: float, callback: Callback) -> ScheduledTask:
        task = ScheduledTask(callback)
        heapq.heappush(self._timers, (self.now_ms + max(delay_ms, 0), next(self._seq), task))
        return task

    def request_frame(self, callback: Callback) -> ScheduledTask:
        task = ScheduledTask(callback)
        self._frames.append(task)
        return task

    def advance(self, ms: float) -> None:
        """Move the clock forward, firing every timer that falls due on the way."""
        target = self.now_ms + ms
        while self._timers and self._timers[0][0] <= target:
            due, _, task = heapq.heappop(self._timers)
            self.now_ms = due
            task.run()
        self.now_ms = target

    def run_frame(self) -> int:
        """Run one rendering frame. Frames requested while it runs wait for the next one."""
        batch, self._frames = self._frames, []
        ran = 0
        for task in batch:
            if task.pending:
                task.run()
                ran += 1
        return ran

    def run_frames(self, limit: int = 10) -> None:
        for _ in range(limit):
            if not any(t.pending for t in self._frames):
                self._frames = []
                return
            self.run_frame()

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, t in self._timers if t.pending)


class LoopScheduler(Scheduler):
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def call_later(self, delay_ms: float, callback: Callback) -> ScheduledTask:
        task = ScheduledTask(callback)
        handle = self.loop.call_later(max(delay_ms, 0) / 1000.0, task.run)
        task._on_cancel = handle.cancel
        return task

    def request_frame(self, callback: Callback) -> ScheduledTask:
        return self.call_later(FRAME_INTERVAL_MS, callback)
