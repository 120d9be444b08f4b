"""
Periodic device status polling.

A timer thread ticks at a fixed interval and submits the status query to the
dedicated polling pool, so a slow ``adb`` never delays foreground work. The
result is published on the coordination thread.
"""

import logging
import threading
from typing import Callable, Optional

from ..executor.thread_pool import POLLING_POOL, ThreadPoolManager
from ..validation import ErrorSeverity, handle_error
from .coordination import CoordinationLoop, Observable
from .shared_state import TimeoutConstants

logger = logging.getLogger(__name__)


class DevicePoller:
    """
    Republishes ``query()`` into ``status`` every ``interval`` seconds.

    A tick is skipped while the previous query is still in flight. Starting a
    running poller replaces its timer; results of a replaced or stopped timer
    are discarded.
    """

    def __init__(
        self,
        query: Callable[[], bool],
        pools: ThreadPoolManager,
        loop: CoordinationLoop,
        status: Observable,
        interval: float = 1.0,
    ):
        self.query = query
        self.pools = pools
        self.loop = loop
        self.status = status
        self.interval = interval
        self._lock = threading.Lock()
        self._generation = 0
        self._in_flight = False
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self.ticks = 0
        self.skipped_ticks = 0

    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None

    def start(self) -> None:
        previous = self._halt()
        self._join(previous)
        with self._lock:
            self._generation += 1
            generation = self._generation
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(generation, stop_event),
                name=f"DevicePoller-{generation}",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
        thread.start()
        logger.debug(f"Device polling started every {self.interval}s")

    def stop(self) -> None:
        thread = self._halt()
        self._join(thread)
        if thread is not None:
            logger.debug("Device polling stopped")

    def _halt(self) -> Optional[threading.Thread]:
        with self._lock:
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
            self._generation += 1
        if stop_event is not None:
            stop_event.set()
        return thread

    @staticmethod
    def _join(thread: Optional[threading.Thread]) -> None:
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=TimeoutConstants.TIMER_JOIN_TIMEOUT)

    def _run(self, generation: int, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self._tick(generation)
            if stop_event.wait(self.interval):
                break

    def _tick(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if self._in_flight:
                self.skipped_ticks += 1
                logger.debug("Previous status query still running, skipping tick")
                return
            self._in_flight = True
            self.ticks += 1
        try:
            self.pools.submit(POLLING_POOL, self._query_and_publish, generation)
        except (RuntimeError, ValueError) as e:
            logger.warning(f"Could not submit status query: {e}")
            with self._lock:
                self._in_flight = False

    def _query_and_publish(self, generation: int) -> None:
        try:
            value = bool(self.query())
        except Exception as e:
            handle_error(e, "device status query", ErrorSeverity.WARNING, reraise=False, logger=logger)
            return
        finally:
            with self._lock:
                self._in_flight = False
        self.loop.post(self._publish, generation, value)

    def _publish(self, generation: int, value: bool) -> None:
        with self._lock:
            current = generation == self._generation
        if current:
            self.status.set(value)
