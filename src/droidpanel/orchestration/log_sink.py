"""
The user-facing log.

An ordered, append-only sequence of immutable ``LogLine`` records with a
two-watermark trim: once the length exceeds ``trim_threshold`` the oldest
lines are dropped down to ``max_lines``.
"""

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional, Tuple

from ..models.runtime import LogLine, LogType
from ..validation import ErrorSeverity, handle_error
from .coordination import CoordinationLoop

logger = logging.getLogger(__name__)


class LogSink:
    """
    Sole owner of the log sequence. Mutations happen on the coordination
    thread; readers get tuple snapshots.
    """

    def __init__(
        self,
        max_lines: int = 1000,
        trim_threshold: int = 1200,
        timestamp_messages: bool = True,
        loop: Optional[CoordinationLoop] = None,
        initial_message: Optional[str] = "Ready",
    ):
        if trim_threshold <= max_lines:
            raise ValueError(
                f"trim_threshold ({trim_threshold}) must be greater than max_lines ({max_lines})"
            )
        self.max_lines = max_lines
        self.trim_threshold = trim_threshold
        self.timestamp_messages = timestamp_messages
        self._loop = loop
        self._lines: List[LogLine] = []
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[List[LogLine]], None]] = []
        if initial_message:
            self._lines.append(LogLine(initial_message))

    def append_lines(self, lines: Iterable[str], type: LogType = LogType.NORMAL) -> List[LogLine]:
        """Append raw output lines. Empty strings are skipped."""
        self._check_owner()
        new_lines = [LogLine(text, type) for text in lines if text]
        if not new_lines:
            return []

        with self._lock:
            self._lines.extend(new_lines)
            self._trim_if_needed()
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(new_lines)
            except Exception as e:
                handle_error(e, "log subscriber", ErrorSeverity.WARNING, reraise=False, logger=logger)
        return new_lines

    def log(self, message: str, type: LogType = LogType.NORMAL) -> Optional[LogLine]:
        """Append a status message, prefixed with the time of day."""
        if self.timestamp_messages:
            message = f"[{time.strftime('%H:%M:%S')}] {message}"
        appended = self.append_lines([message], type)
        return appended[0] if appended else None

    def clear(self) -> None:
        self._check_owner()
        with self._lock:
            self._lines.clear()

    def snapshot(self) -> Tuple[LogLine, ...]:
        with self._lock:
            return tuple(self._lines)

    def subscribe(self, callback: Callable[[List[LogLine]], None]) -> Callable[[], None]:
        """Receive every batch of appended lines; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    def _trim_if_needed(self) -> None:
        if len(self._lines) > self.trim_threshold:
            remove_count = len(self._lines) - self.max_lines
            del self._lines[:remove_count]
            logger.debug(f"Trimmed {remove_count} log lines")

    def _check_owner(self) -> None:
        if self._loop is not None and self._loop.is_running and not self._loop.is_loop_thread():
            raise RuntimeError("The log may only be changed on the coordination thread")
