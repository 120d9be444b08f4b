"""
Process registry for the orchestration module.

Tracks the single foreground process that user-initiated cancellation should
kill, and terminates whole process trees with escalating force.
"""

import logging
import os
import signal
import threading
import time
from typing import List, Optional, Set

import psutil

from ..models.runtime import ProcessHandle
from .shared_state import TimeoutConstants

logger = logging.getLogger(__name__)


class ProcessRegistry:
    """
    Holds at most one foreground ``ProcessHandle``.

    ``unregister`` is a compare-and-swap: it only clears the slot if it still
    holds the given handle, so a late unregister never removes a newer
    process.
    """

    def __init__(self, grace_period: float = 0.5):
        self.grace_period = grace_period
        self._lock = threading.Lock()
        self._foreground: Optional[ProcessHandle] = None
        self._active_pids: Set[int] = set()

    def register(self, handle: ProcessHandle) -> None:
        with self._lock:
            current = self._foreground
            if current is not None and current is not handle and current.running:
                raise RuntimeError(
                    f"Cannot register PID {handle.pid}: PID {current.pid} is still the foreground process"
                )
            self._foreground = handle
            self._active_pids.add(handle.pid)
        logger.debug(f"Registered foreground process {handle!r}")

    def current_foreground(self) -> Optional[ProcessHandle]:
        with self._lock:
            return self._foreground

    def is_busy(self) -> bool:
        with self._lock:
            return self._foreground is not None

    def unregister(self, handle: ProcessHandle) -> bool:
        with self._lock:
            if self._foreground is not handle:
                return False
            self._foreground = None
        logger.debug(f"Unregistered foreground process PID {handle.pid}")
        return True

    def active_pids(self) -> Set[int]:
        """Every PID that was ever registered here."""
        with self._lock:
            return set(self._active_pids)

    def kill_foreground(self) -> bool:
        """Kill whatever is currently in the foreground slot."""
        handle = self.current_foreground()
        if handle is None:
            return False
        return self.kill(handle)

    def kill(self, handle: ProcessHandle) -> bool:
        """
        Kill ``handle`` and its descendants, then unregister it.

        Returns False when the process had already exited; its natural exit
        status stands in that case.
        """
        if not handle.request_cancel():
            logger.debug(f"PID {handle.pid} already exited, nothing to kill")
            self.unregister(handle)
            return False
        self.terminate_process_tree(handle.pid, handle.label or "process")
        self.unregister(handle)
        return True

    def terminate_process_tree(self, pid: int, name: str) -> None:
        """
        Terminate a process, its children and its process group.

        SIGTERM first, then SIGINT, each followed by the grace period; whatever
        survives gets SIGKILL.
        """
        if pid <= 0:
            logger.warning(f"Invalid PID {pid} for {name}, skipping termination")
            return

        logger.info(f"Terminating {name} (PID: {pid}) and its process tree")

        try:
            parent = psutil.Process(pid)
        except psutil.NoSuchProcess:
            logger.info(f"Process {name} (PID: {pid}) already terminated")
            self._signal_group(pid, signal.SIGKILL)
            return
        except psutil.AccessDenied:
            logger.warning(f"Access denied to process {name} (PID: {pid}), killing its group")
            self._signal_group(pid, signal.SIGKILL)
            return

        # Children are collected before signalling, they get reparented once the parent dies.
        tracked = [parent] + self._get_process_children(parent)

        phases = [
            {"name": "graceful", "signal": signal.SIGTERM, "timeout": self.grace_period},
            {"name": "interrupt", "signal": signal.SIGINT, "timeout": self.grace_period},
            {"name": "force_kill", "signal": signal.SIGKILL, "timeout": TimeoutConstants.TERMINATION_FORCE_TIMEOUT},
        ]

        for phase in phases:
            alive = [p for p in tracked if self._is_process_alive(p)]
            if not alive:
                break
            logger.debug(f"Phase {phase['name']}: signalling {len(alive)} processes")
            self._signal_group(pid, phase["signal"])
            for process in alive:
                try:
                    process.send_signal(phase["signal"])
                except (psutil.NoSuchProcess, psutil.ZombieProcess):
                    continue
                except psutil.AccessDenied:
                    logger.warning(f"Access denied sending {phase['signal'].name} to PID {process.pid}")

            remaining = self._wait_until_dead(alive, phase["timeout"])
            if not remaining:
                logger.info(f"{name} terminated in phase {phase['name']}")
                break
            logger.warning(f"Phase {phase['name']}: {len(remaining)} processes still alive")
        else:
            for process in tracked:
                if self._is_process_alive(process):
                    logger.error(f"Stubborn process survived SIGKILL: PID {process.pid}")

    def _wait_until_dead(self, processes: List[psutil.Process], timeout: float) -> List[psutil.Process]:
        # Polling rather than psutil.wait_procs: waiting would reap our own
        # child out from under the runner's Popen.wait.
        deadline = time.monotonic() + timeout
        remaining = processes
        while True:
            remaining = [p for p in remaining if self._is_process_alive(p)]
            if not remaining or time.monotonic() >= deadline:
                return remaining
            time.sleep(TimeoutConstants.TERMINATION_POLL_INTERVAL)

    def _is_process_alive(self, process: psutil.Process) -> bool:
        """Safely check if a process is still alive and not a zombie."""
        try:
            if not process.is_running():
                return False
            return process.status() not in (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return False

    def _get_process_children(self, parent: psutil.Process) -> List[psutil.Process]:
        try:
            return [child for child in parent.children(recursive=True) if self._is_process_alive(child)]
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return []

    @staticmethod
    def _signal_group(pgid: int, sig: signal.Signals) -> None:
        try:
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group {pgid}")
        except ProcessLookupError:
            pass
        except PermissionError:
            logger.debug(f"No permission to signal process group {pgid}")
