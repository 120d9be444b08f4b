"""
Background execution for the droidpanel package.

This module provides the process runner that launches external tools and
streams their output, and the named worker pools the orchestration layer
uses for everything that must stay off the coordination context.
"""

from .process_runner import STDERR, STDOUT, LineSplitter, OutputCallback, ProcessRunner
from .thread_pool import (
    POLLING_POOL,
    TASKS_POOL,
    ManagedThreadPoolExecutor,
    ThreadPoolConfig,
    ThreadPoolManager,
)

__all__ = [
    "STDERR",
    "STDOUT",
    "LineSplitter",
    "OutputCallback",
    "ProcessRunner",
    "POLLING_POOL",
    "TASKS_POOL",
    "ManagedThreadPoolExecutor",
    "ThreadPoolConfig",
    "ThreadPoolManager",
]
