import asyncio
import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

CAP = 99


class ProgressPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


def step(i: float) -> float:
    """
    One tick of the synthetic curve: fast below 60, slower below 90,
    crawling below 99, flat after that.
    """
    if i < 60:
        return i + 2
    if i < 90:
        return i + 1
    if i < CAP:
        return i + 0.5
    return i


def reported(i: float) -> int:
    return min(round(i), CAP)


class ProgressEstimator:
    """
    Cosmetic progress shown while the remote analysis is in flight.

    The value never reaches 100 on its own; only complete() does that.
    Every exit path (complete, abort, stop) cancels the ticking task.
    """

    def __init__(self, interval: float = 1.2):
        self.interval = interval
        self.phase = ProgressPhase.IDLE
        self.value = 0
        self._raw = 0.0
        self._task: Optional[asyncio.Task] = None
        self._run = 0

    @property
    def running(self) -> bool:
        return self.phase == ProgressPhase.RUNNING

    def start(self) -> None:
        self._cancel()
        self._raw = 0.0
        self.value = 0
        self.phase = ProgressPhase.RUNNING
        self._task = asyncio.get_running_loop().create_task(self._tick(self._run))

    def tick(self) -> int:
        """Advance one step; no-op unless running."""
        if self.running:
            self._raw = step(self._raw)
            self.value = max(self.value, reported(self._raw))
        return self.value

    def complete(self) -> None:
        self._cancel()
        self.phase = ProgressPhase.COMPLETED
        self.value = 100

    def abort(self) -> None:
        self._cancel()
        self.phase = ProgressPhase.ABORTED
        self._raw = 0.0
        self.value = 0

    def reset(self) -> None:
        self._cancel()
        self.phase = ProgressPhase.IDLE
        self._raw = 0.0
        self.value = 0

    def stop(self) -> None:
        """Cancel the timer, leaving the value where it is."""
        self._cancel()

    def _cancel(self) -> None:
        # Bumping the run counter makes any tick already in flight a no-op.
        self._run += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _tick(self, run: int) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if run != self._run or not self.running:
                return
            self.tick()
            if self._raw >= CAP:
                logger.debug("Progress estimator reached its cap")
                return
