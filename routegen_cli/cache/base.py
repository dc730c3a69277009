"""Abstract interfaces for the four cache layers.

The :class:`~routegen_cli.cache.manager.CacheManager` only talks to these
interfaces, so a persistent or test-double layer can be swapped in
without touching the manager.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from ..models import (
    CacheStats,
    ContentEntry,
    DependencyNode,
    GenerationInfo,
    NodeKind,
    ParsedFile,
)


class ContentStore(ABC):
    """Layer 1: per-file content identity."""

    @abstractmethod
    def update_content(self, path: str) -> Tuple[Optional[ContentEntry], bool]:
        """Refresh the entry for *path*; return ``(entry, changed)``."""
        ...

    @abstractmethod
    def get_content(self, path: str) -> Optional[ContentEntry]:
        ...

    @abstractmethod
    def has_content(self, path: str) -> bool:
        """Whether *path* is tracked, without counting as a hit or miss."""
        ...

    @abstractmethod
    def set_content(self, path: str, entry: ContentEntry) -> None:
        ...

    @abstractmethod
    def remove_content(self, path: str) -> None:
        ...

    @abstractmethod
    def get_stats(self) -> CacheStats:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class ParseStore(ABC):
    """Layer 2: parsed semantic data per source file."""

    @abstractmethod
    def set_parsed_file(self, path: str, parsed: ParsedFile) -> None:
        ...

    @abstractmethod
    def get_parsed_file(self, path: str) -> Optional[ParsedFile]:
        ...

    @abstractmethod
    def invalidate_parse(self, path: str) -> None:
        ...

    @abstractmethod
    def get_dependencies(self, path: str) -> List[str]:
        """Local import targets plus external import identifiers for *path*."""
        ...

    @abstractmethod
    def all_parsed_files(self) -> Dict[str, ParsedFile]:
        ...

    @abstractmethod
    def get_stats(self) -> CacheStats:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class DependencyStore(ABC):
    """Layer 3: directed "depends on" graph over file paths."""

    @abstractmethod
    def build_graph(self, parsed_files: Dict[str, ParsedFile]) -> None:
        ...

    @abstractmethod
    def update_node(
        self, path: str, dependencies: List[str], kind: NodeKind = NodeKind.SOURCE
    ) -> None:
        ...

    @abstractmethod
    def set_content_hash(self, path: str, content_hash: str) -> None:
        ...

    @abstractmethod
    def get_affected_files(self, path: str) -> List[str]:
        ...

    @abstractmethod
    def get_dependencies(self, path: str) -> List[str]:
        ...

    @abstractmethod
    def get_dependents(self, path: str) -> List[str]:
        ...

    @abstractmethod
    def get_node(self, path: str) -> Optional[DependencyNode]:
        ...

    @abstractmethod
    def has_node(self, path: str) -> bool:
        ...

    @abstractmethod
    def remove_node(self, path: str) -> None:
        ...

    @abstractmethod
    def detect_cycles(self) -> List[List[str]]:
        ...

    @abstractmethod
    def get_topological_order(self) -> List[str]:
        ...

    @abstractmethod
    def get_stats(self) -> CacheStats:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class GenerationStore(ABC):
    """Layer 4: provenance of every generated artifact."""

    @abstractmethod
    def mark_generated(
        self,
        source_path: str,
        output_path: str,
        source_hash: str,
        template_hash: str,
        config_hash: str,
        dependencies: List[str],
    ) -> None:
        ...

    @abstractmethod
    def needs_regeneration(
        self,
        source_path: str,
        current_hash: str,
        dependencies: List[str],
        template_hash: Optional[str] = None,
        config_hash: Optional[str] = None,
    ) -> Tuple[bool, str]:
        """Return ``(stale, reason)``."""
        ...

    @abstractmethod
    def get_generation_info(self, source_path: str) -> Optional[GenerationInfo]:
        ...

    @abstractmethod
    def invalidate_generation(self, source_path: str) -> None:
        ...

    @abstractmethod
    def outdated_files(self, older_than: timedelta = timedelta(hours=24)) -> List[str]:
        ...

    @abstractmethod
    def get_stats(self) -> CacheStats:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...
