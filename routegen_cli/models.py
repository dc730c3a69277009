"""Core data models shared by the cache layers, the route tree and the generator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Dict, List, Optional


# ---------------------------------------------------------------------------
# Source analysis
# ---------------------------------------------------------------------------

@dataclass
class ExtractedFunction:
    name: str
    method: str  # upper-cased verb, "" for helpers
    signature: str
    body: str
    source: str = ""


@dataclass
class LocalImport:
    """An import that resolves to a module inside the project tree."""

    import_path: str  # absolute path of the resolved module file
    module: str  # module as written, e.g. ".user_repo" or "users.user_repo"
    relative_path: str  # posix path of the module file relative to the project root
    statement: str = ""
    names: List[str] = field(default_factory=list)
    alias: str = ""

    @property
    def dotted_path(self) -> str:
        """Relative path as a dotted module name (``users/repo.py`` -> ``users.repo``)."""
        rel = self.relative_path
        if rel.endswith("/__init__.py"):
            rel = rel[: -len("/__init__.py")]
        elif rel.endswith(".py"):
            rel = rel[: -len(".py")]
        return rel.replace("/", ".")


@dataclass
class DependencyAnalysis:
    stdlib_imports: List[str] = field(default_factory=list)
    external_imports: List[str] = field(default_factory=list)
    local_imports: List[LocalImport] = field(default_factory=list)
    # where unresolved imports would live, as absolute paths without a suffix
    unresolved_modules: List[str] = field(default_factory=list)


@dataclass
class ParsedFile:
    path: str
    rel_path: str  # folder of the route, relative to the project root
    package_name: str = ""
    methods: List[str] = field(default_factory=list)
    functions: List[ExtractedFunction] = field(default_factory=list)
    imports: List[str] = field(default_factory=list)  # verbatim non-local import statements
    support_code: List[str] = field(default_factory=list)
    body: List[str] = field(default_factory=list)  # every non-import top-level block, in source order
    dependencies: DependencyAnalysis = field(default_factory=DependencyAnalysis)
    content_hash: str = ""  # md5 of the bytes this parse was built from

    @property
    def handlers(self) -> List[ExtractedFunction]:
        return [fn for fn in self.functions if fn.method]


@dataclass
class CopiedDependency:
    original_path: str
    generated_path: str
    import_path: str
    files: List[str] = field(default_factory=list)
    dependencies: List[LocalImport] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Cache layers
# ---------------------------------------------------------------------------

class NodeKind(Enum):
    SOURCE = "source"
    GENERATED = "generated"
    TEMPLATE = "template"
    CONFIG = "config"


class ChangeKind(Enum):
    WRITE = "write"
    CREATE = "create"
    DELETE = "delete"


class Priority(IntEnum):
    NORMAL = 1
    ELEVATED = 2
    HIGHEST = 3


@dataclass
class ContentEntry:
    path: str
    content_hash: str
    mtime_ns: int
    size: int
    exists: bool = True


@dataclass
class DependencyNode:
    path: str
    kind: NodeKind = NodeKind.SOURCE
    dependencies: List[str] = field(default_factory=list)
    dependents: List[str] = field(default_factory=list)
    content_hash: str = ""


@dataclass
class GenerationInfo:
    source_path: str
    output_path: str
    source_hash: str
    template_hash: str
    dependency_hash: str
    config_hash: str
    generated_at: datetime


@dataclass
class RegenerationPlan:
    changed_files: List[str] = field(default_factory=list)
    affected_files: List[str] = field(default_factory=list)
    regeneration_map: Dict[str, List[str]] = field(default_factory=dict)
    reasons: Dict[str, str] = field(default_factory=dict)
    priority: Dict[str, int] = field(default_factory=dict)

    def mark(self, path: str, reason: str, priority: Priority, *, overwrite: bool = True) -> None:
        """Add *path* to the affected set; existing reason/priority kept unless *overwrite*."""
        if path not in self.reasons:
            self.affected_files.append(path)
        elif not overwrite:
            return
        self.reasons[path] = reason
        self.priority[path] = int(priority)

    def is_empty(self) -> bool:
        return not self.affected_files

    def ordered(self) -> List[str]:
        """Affected files, highest priority first, then discovery order."""
        index = {path: i for i, path in enumerate(self.affected_files)}
        return sorted(self.affected_files, key=lambda p: (-self.priority.get(p, 0), index[p]))


@dataclass
class CacheStats:
    total_files: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    hit_rate: float = 0.0
    dependency_nodes: int = 0
    generation_entries: int = 0
    last_update: Optional[datetime] = None


@dataclass
class ChangeEvent:
    path: str
    kind: ChangeKind
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class RegistrySignature:
    route_count: int
    route_keys: List[str]
    signature: str
    updated_at: datetime


@dataclass
class IntegrityReport:
    orphaned_parses: List[str] = field(default_factory=list)
    cycles: List[List[str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.orphaned_parses and not self.cycles


def hit_rate(hits: int, misses: int) -> float:
    total = hits + misses
    return (hits / total) * 100 if total else 0.0
