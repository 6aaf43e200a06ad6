"""
Deferred actions

Simulated asynchronous operations (login, billing runs) that complete
after a delay. Each action is single-flight: while one run is pending a
second trigger is refused. There is no cancel; once triggered, the effect
is always applied when the callback fires.

Callbacks run on the thread that pumps the scheduler, so the store is
only ever touched from one thread.
"""

import logging
import time
from typing import Any, Callable, List, Optional, Tuple

from crm.utils.exceptions import OperationInProgressError

logger = logging.getLogger(__name__)

# (delay_seconds, callback) -> None
Scheduler = Callable[[float, Callable[[], None]], None]


class QueuedScheduler:
    """
    Run-loop scheduler: callbacks wait in a queue until the owning thread
    calls ``run_pending`` (due callbacks only) or ``run_all``.

    Args:
        time_source: Monotonic seconds (defaults to time.monotonic)
    """

    def __init__(self, time_source: Optional[Callable[[], float]] = None):
        self._time = time_source or time.monotonic
        self._queue: List[Tuple[float, int, Callable[[], None]]] = []
        self._sequence = 0

    def __call__(self, delay: float, callback: Callable[[], None]):
        self._sequence += 1
        self._queue.append((self._time() + delay, self._sequence, callback))

    def __len__(self) -> int:
        return len(self._queue)

    def run_pending(self) -> int:
        """Run every callback whose delay has elapsed, earliest first"""
        now = self._time()
        due = sorted(entry for entry in self._queue if entry[0] <= now)
        self._queue = [entry for entry in self._queue if entry[0] > now]
        for _, _, callback in due:
            callback()
        return len(due)

    def run_all(self) -> int:
        """Run every queued callback regardless of its delay"""
        ran = 0
        while self._queue:
            self._queue.sort()
            _, _, callback = self._queue.pop(0)
            callback()
            ran += 1
        return ran


class DeferredAction:
    """
    A named operation that runs once per trigger, after a delay.

    Args:
        name: Label used in logs and errors
        effect: Work to perform when the delay elapses
        delay: Seconds to wait
        scheduler: Callable that arranges for a callback to run later
            (defaults to a private QueuedScheduler)
        on_complete: Receives the effect's result
        on_error: Receives the exception if the effect raises
    """

    def __init__(
        self,
        name: str,
        effect: Callable[..., Any],
        delay: float = 0.0,
        scheduler: Optional[Scheduler] = None,
        on_complete: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.name = name
        self.effect = effect
        self.delay = delay
        self.scheduler = scheduler if scheduler is not None else QueuedScheduler()
        self.on_complete = on_complete
        self.on_error = on_error
        self._in_progress = False
        self.last_result: Any = None
        self.last_error: Optional[Exception] = None

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def trigger(self, *args, **kwargs):
        """
        Start the action.

        Raises:
            OperationInProgressError: If a previous trigger has not completed
        """
        if self._in_progress:
            raise OperationInProgressError(self.name)
        self._in_progress = True

        logger.debug(f"{self.name} scheduled in {self.delay}s")
        try:
            self.scheduler(self.delay, lambda: self._fire(args, kwargs))
        except Exception:
            self._in_progress = False
            raise

    def _fire(self, args, kwargs):
        try:
            result = self.effect(*args, **kwargs)
        except Exception as e:
            logger.error(f"{self.name} failed: {e}")
            self.last_error = e
            self.last_result = None
            self._in_progress = False
            if self.on_error is None:
                raise
            self.on_error(e)
            return

        self.last_result = result
        self.last_error = None
        self._in_progress = False
        logger.debug(f"{self.name} completed")
        if self.on_complete is not None:
            self.on_complete(result)
