"""Layer 2: parsed route data."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from ..models import CacheStats, ParsedFile, hit_rate
from .base import ParseStore

logger = logging.getLogger(__name__)


class ParseCache(ParseStore):
    """Path -> :class:`ParsedFile`. A miss means the caller must parse."""

    def __init__(self) -> None:
        self._entries: Dict[str, ParsedFile] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def set_parsed_file(self, path: str, parsed: ParsedFile) -> None:
        if parsed is None:
            raise ValueError("parsed file cannot be None")
        with self._lock:
            self._entries[path] = parsed
        logger.debug("ParseCache: stored %s (methods: %s)", path, parsed.methods)

    def get_parsed_file(self, path: str) -> Optional[ParsedFile]:
        with self._lock:
            parsed = self._entries.get(path)
            if parsed is None:
                self._misses += 1
            else:
                self._hits += 1
            return parsed

    def invalidate_parse(self, path: str) -> None:
        with self._lock:
            if self._entries.pop(path, None) is not None:
                logger.debug("ParseCache: invalidated %s", path)

    def get_dependencies(self, path: str) -> List[str]:
        with self._lock:
            parsed = self._entries.get(path)
        if parsed is None:
            return []

        dependencies: List[str] = []
        for local in parsed.dependencies.local_imports:
            if local.import_path not in dependencies:
                dependencies.append(local.import_path)
        for external in parsed.dependencies.external_imports:
            if external not in dependencies:
                dependencies.append(external)
        return dependencies

    def all_parsed_files(self) -> Dict[str, ParsedFile]:
        with self._lock:
            return dict(self._entries)

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
