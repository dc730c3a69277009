"""Layer 4: generation provenance."""

from __future__ import annotations

import hashlib
import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from ..models import CacheStats, GenerationInfo
from .base import GenerationStore

logger = logging.getLogger(__name__)


def dependency_hash(dependencies: List[str]) -> str:
    """Order-independent md5 of a dependency list; ``""`` when empty."""
    if not dependencies:
        return ""
    joined = "|".join(sorted(dependencies))
    return hashlib.md5(joined.encode("utf-8")).hexdigest()


class GenerationLedger(GenerationStore):
    """Remembers what each output was generated from.

    ``needs_regeneration`` is the staleness oracle: it compares hashes only
    and never looks at file-system timestamps.
    """

    def __init__(self) -> None:
        self._records: Dict[str, GenerationInfo] = {}
        self._lock = threading.RLock()

    def mark_generated(
        self,
        source_path: str,
        output_path: str,
        source_hash: str,
        template_hash: str,
        config_hash: str,
        dependencies: List[str],
    ) -> None:
        if not source_path or not output_path:
            raise ValueError("source and output paths are required")

        info = GenerationInfo(
            source_path=source_path,
            output_path=output_path,
            source_hash=source_hash,
            template_hash=template_hash,
            dependency_hash=dependency_hash(dependencies),
            config_hash=config_hash,
            generated_at=datetime.now(),
        )
        with self._lock:
            self._records[source_path] = info
        logger.debug("GenerationLedger: marked %s -> %s", source_path, output_path)

    def needs_regeneration(
        self,
        source_path: str,
        current_hash: str,
        dependencies: List[str],
        template_hash: Optional[str] = None,
        config_hash: Optional[str] = None,
    ) -> Tuple[bool, str]:
        with self._lock:
            info = self._records.get(source_path)

        if info is None:
            return True, "no generation record found"

        if info.source_hash != current_hash:
            return True, (
                f"source content changed (hash: {info.source_hash[:8]} -> {current_hash[:8]})"
            )

        if info.dependency_hash != dependency_hash(dependencies):
            return True, "dependencies changed"

        if template_hash is not None and info.template_hash != template_hash:
            return True, "template changed"

        if config_hash is not None and info.config_hash != config_hash:
            return True, "config changed"

        return False, ""

    def get_generation_info(self, source_path: str) -> Optional[GenerationInfo]:
        with self._lock:
            return self._records.get(source_path)

    def invalidate_generation(self, source_path: str) -> None:
        with self._lock:
            if self._records.pop(source_path, None) is not None:
                logger.debug("GenerationLedger: invalidated %s", source_path)

    def generated_files(self) -> List[str]:
        with self._lock:
            return sorted(self._records)

    def outdated_files(self, older_than: timedelta = timedelta(hours=24)) -> List[str]:
        cutoff = datetime.now() - older_than
        with self._lock:
            return sorted(
                path for path, info in self._records.items() if info.generated_at < cutoff
            )

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                total_files=len(self._records),
                generation_entries=len(self._records),
                last_update=datetime.now(),
            )

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
