"""Incremental build cache.

One :class:`CacheManager` is shared by every command and the watch loop in
a process. It is created on first use; tests call
:func:`reset_cache_manager` to start from a clean slate.
"""

from __future__ import annotations

import threading
from typing import Optional

from .manager import CacheManager

_manager: Optional[CacheManager] = None
_manager_lock = threading.Lock()


def get_cache_manager() -> CacheManager:
    global _manager
    with _manager_lock:
        if _manager is None:
            _manager = CacheManager()
        return _manager


def set_cache_manager(manager: CacheManager) -> None:
    """Install *manager* as the process-wide instance."""
    global _manager
    with _manager_lock:
        _manager = manager


def reset_cache_manager() -> None:
    """Drop the process-wide instance; the next access builds a fresh one."""
    global _manager
    with _manager_lock:
        _manager = None


__all__ = [
    "CacheManager",
    "get_cache_manager",
    "reset_cache_manager",
    "set_cache_manager",
]
