"""
Shared thread pool for blocking filesystem calls.

Every stream pushes its read/stat/seek/poll syscalls through this one pool,
so the number of OS threads stays bounded no matter how many sources are
tailed.
"""

from __future__ import annotations

import concurrent.futures

from config.settings import get_settings

# Module-level singleton pool (lazy-init)
_pool: concurrent.futures.ThreadPoolExecutor | None = None


def get_io_pool() -> concurrent.futures.ThreadPoolExecutor:
    global _pool
    if _pool is None:
        _pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=get_settings().IO_THREADS,
            thread_name_prefix="logstream-io",
        )
    return _pool


def shutdown_io_pool() -> None:
    """Shut down the shared thread pool (call at application exit)."""
    global _pool
    if _pool is not None:
        _pool.shutdown(wait=False)
        _pool = None
