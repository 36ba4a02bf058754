"""
Cosmetic progress ramps for a fitting run.

The displayed percentage is interpolated over a fixed duration and does not
track real upstream progress. Each ramp is owned through a RampHandle; the
simulator cancels the handle it owns before starting another, so at most one
ramp is ever updating the percentage.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

from bogofit.core.config import settings
from bogofit.schemas.virtual_fitting import ProgressPhase, ProgressState

logger = logging.getLogger(__name__)


def interpolate(start: int, target: int, elapsed_ms: float, duration_ms: float) -> int:
    """Linear percentage between start and target after elapsed_ms."""
    if duration_ms <= 0:
        ratio = 1.0
    else:
        ratio = min(max(elapsed_ms / duration_ms, 0.0), 1.0)
    return round(start + (target - start) * ratio)


class RampHandle:
    """One running ramp. Cancelling is idempotent."""

    def __init__(self, start: int, target: int, duration_ms: float, started_at: float):
        self.start = start
        self.target = target
        self.duration_ms = duration_ms
        self.started_at = started_at
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

    def ratio(self, now: float) -> float:
        if self.duration_ms <= 0:
            return 1.0
        return min(max((now - self.started_at) * 1000 / self.duration_ms, 0.0), 1.0)

    def sample(self, now: float) -> int:
        return interpolate(self.start, self.target, (now - self.started_at) * 1000, self.duration_ms)

    @property
    def active(self) -> bool:
        return not self._cancelled and self._task is not None and not self._task.done()

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


class ProgressSimulator:
    def __init__(
        self,
        tick_ms: int = settings.PROGRESS_TICK_MS,
        clock: Callable[[], float] = time.monotonic,
        on_change: Optional[Callable[[ProgressState], None]] = None,
    ):
        self.state = ProgressState()
        self.tick_ms = tick_ms
        self._clock = clock
        self._on_change = on_change
        self._handle: Optional[RampHandle] = None

    @property
    def percent(self) -> int:
        return self.state.percent

    @property
    def active_ramps(self) -> int:
        return 1 if self._handle is not None and self._handle.active else 0

    def ramp(
        self,
        start: int,
        target: int,
        duration_ms: float,
        phase: Optional[ProgressPhase] = None,
    ) -> RampHandle:
        """
        Start a ramp from start to target over duration_ms, replacing any
        ramp in progress. Must be called from a running event loop.
        """
        self.cancel()
        if phase is not None:
            self.state.phase = phase
        self.set_percent(start)

        handle = RampHandle(start, target, duration_ms, self._clock())
        handle._task = asyncio.get_running_loop().create_task(self._drive(handle))
        self._handle = handle
        return handle

    async def _drive(self, handle: RampHandle) -> None:
        while True:
            await asyncio.sleep(self.tick_ms / 1000)
            if handle._cancelled:
                return
            now = self._clock()
            self.set_percent(handle.sample(now))
            if handle.ratio(now) >= 1.0:
                return

    def cancel(self, handle: Optional[RampHandle] = None) -> None:
        """Stop the owned ramp, or only the given handle if it is no longer the owned one."""
        if handle is not None and handle is not self._handle:
            handle.cancel()
            return
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def set_percent(self, percent: int) -> None:
        self.state.percent = min(max(int(percent), 0), 100)
        self._notify()

    def set_status(self, message: str) -> None:
        self.state.status_message = message
        self._notify()

    def reset(self) -> None:
        self.cancel()
        self.state = ProgressState()
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.state)
