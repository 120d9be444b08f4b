"""
Signal handling for the orchestration module.

SIGINT and SIGTERM do not terminate the program while a task runs; they set
an interrupt flag that the waiting caller turns into a task cancellation.
Signal handlers cannot be bound to instances, so active handlers are kept in
a module-level registry.
"""

import logging
import signal
import threading
from typing import Any, Dict, Optional

from ..models.runtime import Task
from .orchestrator import TaskOrchestrator

logger = logging.getLogger(__name__)

_active_handlers: Dict[int, "SignalHandler"] = {}
_active_handlers_lock = threading.Lock()


class SignalHandler:
    """
    Routes interrupt signals to one orchestrator while installed.

    Use as a context manager around code that waits for tasks.
    """

    POLL_INTERVAL = 0.1

    def __init__(self, orchestrator: TaskOrchestrator):
        self.orchestrator = orchestrator
        self.interrupt_requested = threading.Event()
        self._original_sigint_handler = None
        self._original_sigterm_handler = None
        self._signal_handlers_set = False

    def setup_signal_handlers(self) -> None:
        try:
            self._original_sigint_handler = signal.signal(signal.SIGINT, self._global_signal_handler)
            self._original_sigterm_handler = signal.signal(signal.SIGTERM, self._global_signal_handler)
            self._signal_handlers_set = True
        except ValueError as e:
            # Only the main thread may install handlers.
            logger.warning(f"Failed to set up signal handlers: {e}")
            return
        with _active_handlers_lock:
            _active_handlers[id(self)] = self
        logger.debug("Signal handlers installed")

    def cleanup_signal_handlers(self) -> None:
        with _active_handlers_lock:
            _active_handlers.pop(id(self), None)
        if not self._signal_handlers_set:
            return
        try:
            if self._original_sigint_handler is not None:
                signal.signal(signal.SIGINT, self._original_sigint_handler)
            if self._original_sigterm_handler is not None:
                signal.signal(signal.SIGTERM, self._original_sigterm_handler)
            logger.debug("Signal handlers restored")
        except ValueError as e:
            logger.warning(f"Failed to restore signal handlers: {e}")
        finally:
            self._signal_handlers_set = False

    def wait_for_task(self, task: Task, timeout: Optional[float] = None) -> bool:
        """
        Block until ``task`` finishes, cancelling it once on interrupt.

        Returns:
            False if ``timeout`` elapsed first
        """
        waited = 0.0
        cancelled = False
        while not task.wait(self.POLL_INTERVAL):
            if self.interrupt_requested.is_set() and not cancelled:
                cancelled = True
                self.orchestrator.cancel_current_task()
            waited += self.POLL_INTERVAL
            if timeout is not None and waited >= timeout:
                return False
        return True

    def __enter__(self):
        self.setup_signal_handlers()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup_signal_handlers()

    @staticmethod
    def _global_signal_handler(signum: int, frame: Any) -> None:
        logger.warning(f"Signal {signum} received, cancelling the running task")
        with _active_handlers_lock:
            handlers = list(_active_handlers.values())
        for handler in handlers:
            handler.interrupt_requested.set()
