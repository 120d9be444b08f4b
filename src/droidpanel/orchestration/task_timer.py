"""
Elapsed time of the running task.
"""

import logging
import threading
import time
from typing import Optional

from .coordination import CoordinationLoop, Observable
from .shared_state import TimeoutConstants

logger = logging.getLogger(__name__)


class TaskTimer:
    """
    Publishes the seconds since ``start`` into ``elapsed`` every ``interval``.

    ``stop`` resets the value to 0; ticks that race with a stop or restart
    are discarded by generation.
    """

    def __init__(self, loop: CoordinationLoop, elapsed: Observable, interval: float = 0.1):
        self.loop = loop
        self.elapsed_value = elapsed
        self.interval = interval
        self._lock = threading.Lock()
        self._generation = 0
        self._started: Optional[float] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None

    def elapsed(self) -> float:
        with self._lock:
            if self._started is None:
                return 0.0
            return time.monotonic() - self._started

    def start(self, started_monotonic: Optional[float] = None) -> None:
        self._join(self._halt())
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._started = started_monotonic if started_monotonic is not None else time.monotonic()
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(generation, self._started, stop_event),
                name=f"TaskTimer-{generation}",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
        thread.start()

    def stop(self) -> None:
        self._join(self._halt())
        self.loop.run_or_post(self.elapsed_value.set, 0.0)

    def _halt(self) -> Optional[threading.Thread]:
        with self._lock:
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
            self._started = None
            self._generation += 1
        if stop_event is not None:
            stop_event.set()
        return thread

    @staticmethod
    def _join(thread: Optional[threading.Thread]) -> None:
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=TimeoutConstants.TIMER_JOIN_TIMEOUT)

    def _run(self, generation: int, started: float, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            self.loop.post(self._publish, generation, time.monotonic() - started)

    def _publish(self, generation: int, value: float) -> None:
        with self._lock:
            current = generation == self._generation
        if current:
            self.elapsed_value.set(value)
