"""Background timers: the elapsed-time ticker and the reconnect scheduler."""

from __future__ import annotations

from collections.abc import Callable
import logging
import threading
import time

logger = logging.getLogger(__name__)

RECONNECT_DELAY = 2.0  # seconds


def format_elapsed(seconds: float) -> str:
    """``"Xm Ys"`` once a minute has passed, else ``"Ys"``."""
    elapsed = max(int(seconds), 0)
    minutes, secs = divmod(elapsed, 60)
    return f"{minutes}m {secs}s" if minutes > 0 else f"{secs}s"


class ElapsedTimer:
    """Ticks once a second while a generation is running.

    ``start()`` on a running timer is a no-op; ``stop()`` on a stopped one
    too. The timer knows nothing about the transcript.
    """

    def __init__(
        self,
        on_tick: Callable[[str], None] | None = None,
        *,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._on_tick = on_tick
        self._interval = interval
        self._clock = clock
        self._lock = threading.Lock()
        self._thread: threading.Timer | None = None
        self._started_at: float | None = None

    @property
    def running(self) -> bool:
        return self._started_at is not None

    def start(self) -> bool:
        """Start ticking. Returns False when already running."""
        with self._lock:
            if self._started_at is not None:
                return False
            self._started_at = self._clock()
            self._schedule()
        self._tick_once()
        return True

    def stop(self) -> None:
        with self._lock:
            self._started_at = None
            if self._thread is not None:
                self._thread.cancel()
                self._thread = None

    def elapsed(self) -> float:
        started = self._started_at
        return 0.0 if started is None else self._clock() - started

    def display(self) -> str:
        return format_elapsed(self.elapsed())

    def _schedule(self) -> None:
        if self._on_tick is None:
            return
        self._thread = threading.Timer(self._interval, self._run)
        self._thread.daemon = True
        self._thread.start()

    def _run(self) -> None:
        with self._lock:
            if self._started_at is None:
                return
            self._schedule()
        self._tick_once()

    def _tick_once(self) -> None:
        if self._on_tick is not None and self.running:
            self._on_tick(self.display())


class ReconnectScheduler:
    """A single cancellable delayed reconnect with a fixed backoff.

    Scheduling while a reconnect is already pending is a no-op. ``cancel()``
    drops the pending reconnect and wakes any ``wait()`` caller.
    """

    def __init__(self, callback: Callable[[], None] | None = None, *, delay: float = RECONNECT_DELAY):
        self._callback = callback
        self._delay = delay
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._fired = threading.Event()
        self._cancelled = False

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def schedule(self) -> bool:
        """Arm the reconnect. Returns False when one is already pending or cancelled."""
        with self._lock:
            if self._timer is not None or self._cancelled:
                return False
            self._fired.clear()
            self._timer = threading.Timer(self._delay, self._fire)
            self._timer.daemon = True
            self._timer.start()
        logger.debug("Reconnect scheduled in %.1fs", self._delay)
        return True

    def wait(self) -> bool:
        """Block until the pending reconnect fires. False when it was cancelled."""
        self._fired.wait()
        return not self._cancelled

    def cancel(self) -> None:
        """Cancel for good; later ``schedule()`` calls do nothing."""
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self._fired.set()

    def _fire(self) -> None:
        with self._lock:
            if self._timer is None:
                return
            self._timer = None
        try:
            if self._callback is not None:
                self._callback()
        finally:
            self._fired.set()
