"""
The single coordination context.

All shared mutable state (log contents, task flags, device status, elapsed
time) is mutated only from the coordination thread. Background threads never
touch that state; they post callables here, which run one at a time in FIFO
order.
"""

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Generic, List, Optional, TypeVar

from ..validation import ErrorSeverity, handle_error
from .shared_state import TimeoutConstants

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CoordinationLoop:
    """
    A dedicated thread draining a FIFO queue of callables.
    """

    def __init__(self, name: str = "Coordination"):
        self.name = name
        self._queue: "queue.Queue[tuple]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._shutdown_requested = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            raise RuntimeError("Coordination loop already started")
        self._shutdown_requested.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.debug(f"Coordination loop '{self.name}' started")

    def is_loop_thread(self) -> bool:
        return threading.current_thread() is self._thread

    def post(self, fn: Callable[..., Any], *args, **kwargs) -> None:
        """Queue ``fn(*args, **kwargs)`` to run on the coordination thread."""
        if self._shutdown_requested.is_set():
            logger.debug(f"Dropping event {getattr(fn, '__name__', fn)!r}: loop is stopping")
            return
        self._queue.put((fn, args, kwargs))

    def run_or_post(self, fn: Callable[..., Any], *args, **kwargs) -> None:
        """Run immediately when already on the coordination thread, else post."""
        if self.is_loop_thread():
            fn(*args, **kwargs)
        else:
            self.post(fn, *args, **kwargs)

    def call(self, fn: Callable[..., T], *args, timeout: Optional[float] = None, **kwargs) -> T:
        """Run ``fn`` on the coordination thread and wait for its result."""
        if self.is_loop_thread():
            return fn(*args, **kwargs)
        future: "Future[T]" = Future()

        def invoke() -> None:
            try:
                future.set_result(fn(*args, **kwargs))
            except BaseException as e:
                future.set_exception(e)

        self.post(invoke)
        return future.result(timeout=timeout)

    def flush(self, timeout: float = TimeoutConstants.FLUSH_TIMEOUT) -> None:
        """Wait until every event posted before this call has been processed."""
        self.call(lambda: None, timeout=timeout)

    def stop(self, timeout: float = TimeoutConstants.LOOP_STOP_TIMEOUT) -> None:
        """Process what is already queued, then stop the thread."""
        if self._thread is None:
            return
        self._shutdown_requested.set()
        if not self.is_loop_thread():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning(f"Coordination loop '{self.name}' did not stop within {timeout}s")
        self._thread = None

    def _run(self) -> None:
        while True:
            try:
                fn, args, kwargs = self._queue.get(timeout=TimeoutConstants.QUEUE_GET_TIMEOUT)
            except queue.Empty:
                if self._shutdown_requested.is_set():
                    break
                continue

            try:
                fn(*args, **kwargs)
            except Exception as e:
                handle_error(
                    error=e,
                    context=f"coordination event {getattr(fn, '__name__', repr(fn))}",
                    severity=ErrorSeverity.ERROR,
                    reraise=False,
                    logger=logger,
                )
        logger.debug(f"Coordination loop '{self.name}' stopped")


class Observable(Generic[T]):
    """
    A value owned by the coordination context that others can subscribe to.

    ``set`` must be called on the owning loop's thread; ``value`` may be read
    from anywhere. Subscribers are called on the coordination thread with the
    new value, only when it changes.
    """

    def __init__(self, initial: T, loop: Optional[CoordinationLoop] = None):
        self._value = initial
        self._loop = loop
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> bool:
        if self._loop is not None and self._loop.is_running and not self._loop.is_loop_thread():
            raise RuntimeError("Observable values may only change on the coordination thread")
        with self._lock:
            if value == self._value:
                return False
            self._value = value
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(value)
            except Exception as e:
                handle_error(e, "observable subscriber", ErrorSeverity.WARNING, reraise=False, logger=logger)
        return True

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe
