"""Layer 1: content identity tracking (hash, mtime, size)."""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from datetime import datetime
from typing import Dict, Optional, Tuple

from ..errors import ContentError
from ..models import CacheStats, ContentEntry, hit_rate
from .base import ContentStore

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def hash_file(path: str) -> str:
    digest = hashlib.md5()
    with open(path, "rb") as handle:
        while True:
            chunk = handle.read(_CHUNK_SIZE)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


class ContentTracker(ContentStore):
    """In-memory content cache.

    The hash is only recomputed when size or mtime differ from the last
    observation; a touch that leaves the bytes alone reports
    ``changed=False`` but still refreshes the stored mtime and size.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, ContentEntry] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def update_content(self, path: str) -> Tuple[Optional[ContentEntry], bool]:
        with self._lock:
            try:
                stat = os.stat(path)
            except FileNotFoundError:
                existing = self._entries.pop(path, None)
                if existing is not None:
                    logger.debug("ContentTracker: file deleted: %s", path)
                    existing.exists = False
                    return existing, True
                return None, False
            except OSError as exc:
                raise ContentError(path, exc) from exc

            existing = self._entries.get(path)
            if existing is None:
                self._misses += 1
                entry = ContentEntry(
                    path=path,
                    content_hash=self._hash(path),
                    mtime_ns=stat.st_mtime_ns,
                    size=stat.st_size,
                )
                self._entries[path] = entry
                logger.debug("ContentTracker: new file: %s", path)
                return entry, True

            if stat.st_size == existing.size and stat.st_mtime_ns == existing.mtime_ns:
                self._hits += 1
                return existing, False

            new_hash = self._hash(path)
            if new_hash != existing.content_hash:
                logger.debug(
                    "ContentTracker: content changed for %s (%s -> %s)",
                    path, existing.content_hash[:8], new_hash[:8],
                )
                entry = ContentEntry(
                    path=path,
                    content_hash=new_hash,
                    mtime_ns=stat.st_mtime_ns,
                    size=stat.st_size,
                )
                self._entries[path] = entry
                return entry, True

            logger.debug("ContentTracker: metadata changed but content same for %s", path)
            existing.mtime_ns = stat.st_mtime_ns
            existing.size = stat.st_size
            self._hits += 1
            return existing, False

    def get_content(self, path: str) -> Optional[ContentEntry]:
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                self._misses += 1
            else:
                self._hits += 1
            return entry

    def has_content(self, path: str) -> bool:
        with self._lock:
            return path in self._entries

    def set_content(self, path: str, entry: ContentEntry) -> None:
        with self._lock:
            self._entries[path] = entry

    def remove_content(self, path: str) -> None:
        with self._lock:
            if self._entries.pop(path, None) is not None:
                logger.debug("ContentTracker: removed entry for %s", path)

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                total_files=len(self._entries),
                cache_hits=self._hits,
                cache_misses=self._misses,
                hit_rate=hit_rate(self._hits, self._misses),
                last_update=datetime.now(),
            )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    @staticmethod
    def _hash(path: str) -> str:
        try:
            return hash_file(path)
        except OSError as exc:
            raise ContentError(path, exc) from exc
