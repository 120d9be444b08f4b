"""
Named worker pools for background execution contexts.

Foreground work (spawning processes, running pipelines, killing process
trees) and device polling run in separate pools so that neither can starve
the other.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

from ..validation import ErrorSeverity, handle_error

logger = logging.getLogger(__name__)

TASKS_POOL = "tasks"
POLLING_POOL = "polling"


@dataclass
class ThreadPoolConfig:
    """Configuration for one managed worker pool."""

    max_workers: int = 4
    thread_name_prefix: str = "TaskWorker"
    shutdown_timeout: float = 10.0


class ManagedThreadPoolExecutor:
    """
    ThreadPoolExecutor wrapper with lifecycle checks and usage statistics.
    """

    def __init__(self, config: ThreadPoolConfig):
        self.config = config
        self.executor: Optional[ThreadPoolExecutor] = None
        self.active_futures: Set[Future] = set()
        self.is_shutdown = False
        self._lock = threading.Lock()

        self.stats = {
            "tasks_submitted": 0,
            "tasks_completed": 0,
            "tasks_failed": 0,
        }

    def start(self) -> None:
        """
        Start the thread pool executor.

        Raises:
            RuntimeError: If already started
        """
        if self.executor is not None:
            raise RuntimeError("Thread pool already started")

        self.executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix=self.config.thread_name_prefix,
        )
        self.is_shutdown = False
        logger.debug(
            f"Started thread pool '{self.config.thread_name_prefix}' with {self.config.max_workers} workers"
        )

    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        """
        Submit a task to the thread pool.

        Raises:
            RuntimeError: If executor is not started or is shutdown
        """
        if self.executor is None:
            raise RuntimeError("Thread pool not started")
        if self.is_shutdown:
            raise RuntimeError("Thread pool is shutdown")

        try:
            future = self.executor.submit(fn, *args, **kwargs)
            with self._lock:
                self.stats["tasks_submitted"] += 1
                self.active_futures.add(future)
            future.add_done_callback(self._task_completed)
            return future

        except Exception as e:
            with self._lock:
                self.stats["tasks_failed"] += 1
            handle_error(
                error=e,
                context="submitting task to thread pool",
                severity=ErrorSeverity.ERROR,
                reraise=True,
                logger=logger,
            )

    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        """
        Shutdown the thread pool executor.

        Args:
            wait: Whether to wait for running work to complete
            cancel_futures: Whether to cancel work that has not started yet
        """
        if self.executor is None or self.is_shutdown:
            return

        try:
            self.is_shutdown = True
            self.executor.shutdown(wait=wait, cancel_futures=cancel_futures)
            logger.debug(f"Thread pool '{self.config.thread_name_prefix}' shut down")

        except Exception as e:
            handle_error(
                error=e,
                context="shutting down thread pool",
                severity=ErrorSeverity.WARNING,
                reraise=False,
                logger=logger,
            )
        finally:
            self.executor = None
            with self._lock:
                self.active_futures.clear()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = self.stats.copy()
            stats["active_futures"] = len(self.active_futures)
        stats["is_shutdown"] = self.is_shutdown
        return stats

    def _task_completed(self, future: Future) -> None:
        with self._lock:
            self.active_futures.discard(future)
            if future.cancelled():
                return
            if future.exception() is not None:
                self.stats["tasks_failed"] += 1
                logger.error(f"Unhandled error in pooled task: {future.exception()!r}")
            else:
                self.stats["tasks_completed"] += 1

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)


class ThreadPoolManager:
    """
    Owns the named pools used by the orchestration layer.
    """

    def __init__(self):
        self.pools: Dict[str, ManagedThreadPoolExecutor] = {}
        self.is_initialized = False

    def initialize(self, configs: Optional[Dict[str, ThreadPoolConfig]] = None) -> None:
        """
        Create and start the pools.

        Args:
            configs: Pool name -> configuration; defaults to a tasks pool and
                a single-worker polling pool
        """
        if self.is_initialized:
            logger.warning("Thread pool manager already initialized")
            return

        if configs is None:
            configs = {
                TASKS_POOL: ThreadPoolConfig(max_workers=4, thread_name_prefix="TaskWorker"),
                POLLING_POOL: ThreadPoolConfig(max_workers=1, thread_name_prefix="PollWorker"),
            }

        try:
            for pool_name, config in configs.items():
                pool = ManagedThreadPoolExecutor(config)
                pool.start()
                self.pools[pool_name] = pool
            self.is_initialized = True
            logger.debug(f"Initialized thread pools: {sorted(self.pools)}")

        except Exception as e:
            self.shutdown_all(wait=False)
            handle_error(
                error=e,
                context="initializing thread pool manager",
                severity=ErrorSeverity.ERROR,
                reraise=True,
                logger=logger,
            )

    def get_pool(self, pool_name: str) -> ManagedThreadPoolExecutor:
        """
        Raises:
            ValueError: If the pool doesn't exist
        """
        pool = self.pools.get(pool_name)
        if pool is None:
            raise ValueError(f"Thread pool '{pool_name}' not initialized")
        return pool

    def submit(self, pool_name: str, fn: Callable, *args, **kwargs) -> Future:
        return self.get_pool(pool_name).submit(fn, *args, **kwargs)

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: pool.get_stats() for name, pool in self.pools.items()}

    def shutdown_all(self, wait: bool = True) -> None:
        for name, pool in list(self.pools.items()):
            try:
                pool.shutdown(wait=wait, cancel_futures=True)
            except Exception as e:
                logger.warning(f"Error shutting down pool '{name}': {e}")
        self.pools.clear()
        self.is_initialized = False

    def __enter__(self):
        if not self.is_initialized:
            self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown_all(wait=True)
