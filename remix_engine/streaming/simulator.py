"""Simulated progress stream that hands off to the real generation call.

The simulator has no I/O of its own. It narrates a fixed list of steps on a
timer and, once the list is exhausted (or the elapsed-time ceiling is hit),
awaits the caller's completion hook, which is where the real request runs.
"""

from __future__ import annotations

import asyncio
import inspect
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Sequence

GENERATION_STEPS: tuple[str, ...] = (
    "Analyzing prompt...",
    "Setting up model parameters...",
    "Starting image generation...",
    "Creating base composition...",
    "Adding foreground elements...",
    "Rendering background...",
    "Adding lighting effects...",
    "Incorporating visual details...",
    "Applying color grading...",
    "Finalizing image...",
)

DEFAULT_INTERVAL_S = 0.3
DEFAULT_SETTLE_S = 0.5


class StreamState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class StreamCallbacks:
    on_status: Callable[[str], Any] | None = None
    on_progress: Callable[[int], Any] | None = None
    on_complete: Callable[..., Any] | None = None


class CancellationHandle:
    """Callable that stops a stream. Calling it again does nothing."""

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel = cancel
        self._cancelled = False

    def __call__(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ProgressSimulator:
    def __init__(
        self,
        steps: Sequence[str] = GENERATION_STEPS,
        *,
        interval_s: float = DEFAULT_INTERVAL_S,
        settle_s: float = DEFAULT_SETTLE_S,
        jitter_s: float = 0.0,
        ceiling_s: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.steps = tuple(steps)
        self.interval_s = max(0.0, interval_s)
        self.settle_s = max(0.0, settle_s)
        self.jitter_s = max(0.0, jitter_s)
        self.ceiling_s = ceiling_s
        self._rng = rng or random.Random()
        self._state = StreamState.IDLE
        self._callbacks = StreamCallbacks()
        self._task: asyncio.Task | None = None
        self._progress = 0
        self._cancel_requested = False

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def progress(self) -> int:
        return self._progress

    def start(self, callbacks: StreamCallbacks | None = None) -> CancellationHandle:
        if self._state is not StreamState.IDLE:
            raise RuntimeError(f"Stream already started (state={self._state.value}).")
        loop = asyncio.get_running_loop()
        self._callbacks = callbacks or StreamCallbacks()
        self._state = StreamState.RUNNING
        self._task = loop.create_task(self._run())
        return CancellationHandle(self._cancel)

    async def wait(self) -> None:
        """Wait for the stream; re-raises a completion hook failure."""
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled() and self._cancel_requested:
                return
            raise

    async def _run(self) -> None:
        started = time.monotonic()
        total = len(self.steps)
        for index, step in enumerate(self.steps):
            if self._ceiling_reached(started):
                break
            await self._emit(self._callbacks.on_status, step)
            await self._set_progress(round(index / total * 100))
            await asyncio.sleep(self._next_delay())
        if self._state is not StreamState.RUNNING:
            return
        await self._set_progress(100)
        await asyncio.sleep(self.settle_s)
        if self._state is not StreamState.RUNNING:
            return
        self._state = StreamState.COMPLETED
        await self._complete()

    async def _complete(self) -> None:
        await _maybe_await(self._callbacks.on_complete)

    def _cancel(self) -> None:
        self._cancel_requested = True
        if self._state is StreamState.RUNNING:
            self._state = StreamState.CANCELLED
        # a completed stream may still be running its hook; stop observing it
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _set_progress(self, value: int) -> None:
        value = max(self._progress, min(100, int(value)))
        self._progress = value
        await self._emit(self._callbacks.on_progress, value)

    async def _emit(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if self._state is not StreamState.RUNNING:
            return
        await _maybe_await(callback, *args)

    def _ceiling_reached(self, started: float) -> bool:
        return self.ceiling_s is not None and time.monotonic() - started >= self.ceiling_s

    def _next_delay(self) -> float:
        if not self.jitter_s:
            return self.interval_s
        return max(0.0, self.interval_s + self._rng.uniform(-self.jitter_s, self.jitter_s))


async def _maybe_await(callback: Callable[..., Any] | None, *args: Any) -> Any:
    if callback is None:
        return None
    result = callback(*args)
    if inspect.isawaitable(result):
        return await result
    return result
