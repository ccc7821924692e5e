import heapq
import itertools
import logging
import time
from typing import Any, Callable, List, Protocol, Tuple


log = logging.getLogger(__name__)


class TimerHandle:
    """A scheduled callback. Cancelling is idempotent and always wins over firing."""

    def __init__(self, due_at: float, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self.due_at = due_at
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        self.callback(*self.args)


class Scheduler(Protocol):
    def now(self) -> float:
        ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...


class BackgroundScheduler:
    """Runs each timer as a Socket.IO background task that sleeps until its deadline.

    Works under whichever async mode the SocketIO server was created with
    (threading, eventlet or gevent). The worker sleeps in slices of at most
    ``poll_interval`` so a cancelled timer frees its task soon after cancel.
    """

    def __init__(self, socketio, poll_interval: float = 1.0, clock: Callable[[], float] = time.time):
        self.socketio = socketio
        self.poll_interval = poll_interval
        self.clock = clock

    def now(self) -> float:
        return self.clock()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle(self.now() + delay, callback, args)
        self.socketio.start_background_task(self._worker, handle)
        return handle

    def _worker(self, handle: TimerHandle) -> None:
        while not handle.cancelled:
            remaining = handle.due_at - self.now()
            if remaining <= 0:
                break
            self.socketio.sleep(min(remaining, self.poll_interval))
        if handle.cancelled:
            log.debug(f"[timer-cancelled] callback={getattr(handle.callback, '__name__', handle.callback)}")
            return
        try:
            handle.fire()
        except Exception:
            log.exception(f"[timer-error] callback={getattr(handle.callback, '__name__', handle.callback)}")


class ManualScheduler:
    """Fake clock: callbacks only run when ``advance`` moves time past their deadline."""

    def __init__(self, start: float = 1000.0):
        self._now = start
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle(self._now + delay, callback, args)
        heapq.heappush(self._queue, (handle.due_at, next(self._seq), handle))
        return handle

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            due_at, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, due_at)
            handle.fire()
        self._now = target

    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)
