"""Coordinator for the four cache layers.

The manager is the only writer of the layers. It owns the change-handling
state machine (:meth:`CacheManager.handle_file_change`) and the batch
regeneration planner (:meth:`CacheManager.get_regeneration_plan`).
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
import time
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from ..config import ROUTE_FILE_NAME, is_excluded
from ..errors import CacheError, ContentError
from ..models import (
    CacheStats,
    ChangeEvent,
    ChangeKind,
    ContentEntry,
    IntegrityReport,
    ParsedFile,
    Priority,
    RegenerationPlan,
    RegistrySignature,
)
from .base import ContentStore, DependencyStore, GenerationStore, ParseStore
from .content import ContentTracker
from .generation import GenerationLedger
from .graph import DependencyGraph
from .parse import ParseCache

logger = logging.getLogger(__name__)


def registry_signature(route_keys: Sequence[str], config_hash: str = "") -> str:
    """md5 over the sorted route keys and the config the registry was written with."""
    joined = "|".join(sorted(route_keys))
    if config_hash:
        joined += "#" + config_hash
    return hashlib.md5(joined.encode("utf-8")).hexdigest()


class CacheManager:
    """Single entry point over content, parse, dependency and generation layers."""

    def __init__(
        self,
        content: Optional[ContentStore] = None,
        parse: Optional[ParseStore] = None,
        deps: Optional[DependencyStore] = None,
        generation: Optional[GenerationStore] = None,
    ) -> None:
        self.content = content if content is not None else ContentTracker()
        self.parse = parse if parse is not None else ParseCache()
        self.deps = deps if deps is not None else DependencyGraph()
        self.generation = generation if generation is not None else GenerationLedger()

        self.template_hash = ""
        self.config_hash = ""
        self._registry: Optional[RegistrySignature] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Change handling
    # ------------------------------------------------------------------

    def handle_file_change(self, event: ChangeEvent) -> RegenerationPlan:
        """Invalidate the layers touched by *event* and report what became stale."""
        logger.debug("CacheManager: handling %s (%s)", event.path, event.kind.value)
        plan = RegenerationPlan(changed_files=[event.path])

        if event.kind is ChangeKind.DELETE:
            self._handle_delete(event.path, plan)
        elif event.kind in (ChangeKind.WRITE, ChangeKind.CREATE):
            if event.kind is ChangeKind.CREATE:
                self._relink_importers(event.path, plan)
            self._handle_write(event.path, plan)
        else:
            raise CacheError(f"unknown change kind: {event.kind!r}")

        return plan

    def _handle_delete(self, path: str, plan: RegenerationPlan) -> None:
        # Dependents must be captured before the node disappears
        dependents = self.deps.get_affected_files(path)

        self.content.remove_content(path)
        self.parse.invalidate_parse(path)
        self.deps.remove_node(path)
        self.generation.invalidate_generation(path)

        plan.regeneration_map[path] = list(dependents)
        for dependent in dependents:
            # Re-parsing drops the import and leaves it unresolved until the module returns
            self.parse.invalidate_parse(dependent)
            plan.mark(dependent, f"dependency deleted: {path}", Priority.HIGHEST)

    def _relink_importers(self, path: str, plan: RegenerationPlan) -> None:
        """Drop cached parses whose unresolved imports name the module created at *path*."""
        if not path.endswith(".py"):
            return
        module = os.path.normpath(path[: -len(".py")])
        if os.path.basename(module) == "__init__":
            module = os.path.dirname(module)

        for importer, parsed in self.parse.all_parsed_files().items():
            if importer == path:
                continue
            unresolved = {os.path.normpath(m) for m in parsed.dependencies.unresolved_modules}
            if module in unresolved:
                logger.debug("CacheManager: %s now resolves an import of %s", path, importer)
                self.parse.invalidate_parse(importer)
                plan.mark(importer, f"dependency created: {path}", Priority.NORMAL)

    def _handle_write(self, path: str, plan: RegenerationPlan) -> None:
        try:
            _, changed = self.content.update_content(path)
        except ContentError as exc:
            logger.warning("CacheManager: %s; assuming it changed", exc)
            changed = True

        if not changed:
            logger.debug("CacheManager: %s unchanged, nothing to regenerate", path)
            return

        self.parse.invalidate_parse(path)

        affected = self.deps.get_affected_files(path)
        plan.regeneration_map[path] = list(affected)
        for dependent in affected:
            plan.mark(dependent, f"dependency changed: {path}", Priority.NORMAL)

        plan.mark(path, "file content changed", Priority.ELEVATED)

    # ------------------------------------------------------------------
    # Parse data
    # ------------------------------------------------------------------

    def get_parsed_file(self, path: str) -> Optional[ParsedFile]:
        """Cached parse for *path*, or ``None`` when the caller must (re)parse."""
        try:
            entry, changed = self.content.update_content(path)
        except ContentError as exc:
            logger.warning("CacheManager: %s; discarding cached parse", exc)
            self.parse.invalidate_parse(path)
            return None

        if entry is None or not entry.exists:
            self.parse.invalidate_parse(path)
            return None

        if changed:
            logger.debug("CacheManager: content changed for %s, invalidating parse", path)
            self.parse.invalidate_parse(path)

        return self.parse.get_parsed_file(path)

    def set_parsed_file(self, path: str, parsed: ParsedFile) -> None:
        """Store *parsed* and push its dependencies into the graph."""
        self.parse.set_parsed_file(path, parsed)
        dependencies = self.parse.get_dependencies(path)
        self.deps.update_node(path, dependencies)

        if not parsed.content_hash:
            entry = self.content.get_content(path)
            if entry is not None:
                parsed.content_hash = entry.content_hash
        if parsed.content_hash:
            self.deps.set_content_hash(path, parsed.content_hash)

        logger.debug("CacheManager: stored parse and %d dependencies for %s", len(dependencies), path)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def set_generation_context(self, template_hash: str, config_hash: str) -> None:
        """Record the template and config hashes the next generation pass uses."""
        with self._lock:
            self.template_hash = template_hash
            self.config_hash = config_hash

    def mark_generated(
        self,
        source_path: str,
        output_path: str,
        source_hash: Optional[str] = None,
        dependencies: Optional[Sequence[str]] = None,
    ) -> None:
        """Record that *output_path* was rendered from *source_path*.

        *source_hash* and *dependencies* are the values captured when the
        inputs were read. When omitted, the tracker's current values are used.
        """
        if source_hash is None:
            entry = self.content.get_content(source_path)
            if entry is None:
                raise CacheError(f"no content entry found for source file: {source_path}")
            source_hash = entry.content_hash
        if dependencies is None:
            dependencies = self.dependency_identities(source_path)

        self.generation.mark_generated(
            source_path,
            output_path,
            source_hash,
            self.template_hash,
            self.config_hash,
            list(dependencies),
        )

    def get_regeneration_plan(self, changed_files: Sequence[str]) -> RegenerationPlan:
        """Impact analysis for a batch of changed files.

        Propagated entries are recorded first (first writer wins). The
        ledger pass runs second and its reason and priority always replace
        a propagated entry for the same file.
        """
        plan = RegenerationPlan(changed_files=list(changed_files))

        for changed in changed_files:
            affected = self.deps.get_affected_files(changed)
            plan.regeneration_map[changed] = list(affected)
            for path in affected:
                plan.mark(
                    path, f"depends on changed file: {changed}", Priority.NORMAL,
                    overwrite=False,
                )

        for changed in changed_files:
            entry = self.content.get_content(changed)
            if entry is None:
                continue
            stale, reason = self.generation.needs_regeneration(
                changed,
                entry.content_hash,
                self.dependency_identities(changed),
                template_hash=self.template_hash,
                config_hash=self.config_hash,
            )
            if stale:
                plan.mark(changed, reason, Priority.ELEVATED)

        logger.debug(
            "CacheManager: %d changed file(s) affect %d file(s)",
            len(plan.changed_files), len(plan.affected_files),
        )
        return plan

    def get_affected_files(self, path: str) -> List[str]:
        return self.deps.get_affected_files(path)

    def dependency_identities(self, path: str) -> List[str]:
        """Graph dependencies of *path*, qualified with content hashes for local files."""
        identities: List[str] = []
        for dep in self.deps.get_dependencies(path):
            entry = self._refresh_dependency(dep)
            identities.append(f"{dep}@{entry.content_hash}" if entry else dep)
        return identities

    def _refresh_dependency(self, dep: str) -> Optional[ContentEntry]:
        # Local imports are absolute paths; external module names are not files
        if not os.path.isabs(dep) or not os.path.isfile(dep):
            return None
        try:
            entry, _ = self.content.update_content(dep)
        except ContentError as exc:
            logger.warning("CacheManager: %s", exc)
            return None
        if entry is not None and entry.exists:
            self.deps.set_content_hash(dep, entry.content_hash)
            return entry
        return None

    # ------------------------------------------------------------------
    # Registry signature
    # ------------------------------------------------------------------

    def get_registry_signature(self) -> Optional[RegistrySignature]:
        with self._lock:
            return self._registry

    def set_registry_signature(self, route_keys: Sequence[str]) -> RegistrySignature:
        keys = sorted(route_keys)
        signature = RegistrySignature(
            route_count=len(keys),
            route_keys=keys,
            signature=registry_signature(keys, self.config_hash),
            updated_at=datetime.now(),
        )
        with self._lock:
            self._registry = signature
        return signature

    def needs_registry_regeneration(self, route_keys: Sequence[str]) -> bool:
        with self._lock:
            current = self._registry
        if current is None:
            return True
        return current.signature != registry_signature(route_keys, self.config_hash)

    # ------------------------------------------------------------------
    # Diagnostics and maintenance
    # ------------------------------------------------------------------

    def validate_integrity(self) -> IntegrityReport:
        """Cross-layer consistency sweep. Problems are logged, never raised."""
        report = IntegrityReport()

        for path in sorted(self.parse.all_parsed_files()):
            if not self.content.has_content(path):
                logger.debug("CacheManager: parsed file %s has no content entry", path)
                report.orphaned_parses.append(path)

        report.cycles = self.deps.detect_cycles()
        if report.cycles:
            logger.warning("Detected %d dependency cycle(s)", len(report.cycles))
            for index, cycle in enumerate(report.cycles, start=1):
                logger.warning("  cycle %d: %s", index, " -> ".join(cycle))

        logger.debug("CacheManager: integrity validation completed")
        return report

    def detect_cycles(self) -> List[List[str]]:
        return self.deps.detect_cycles()

    def get_topological_order(self) -> List[str]:
        return self.deps.get_topological_order()

    def tracks(self, path: str) -> bool:
        """True when *path* has a content entry or a graph node."""
        return self.content.has_content(path) or self.deps.has_node(path)

    def get_stats(self) -> Dict[str, CacheStats]:
        return {
            "content": self.content.get_stats(),
            "parse": self.parse.get_stats(),
            "dependency": self.deps.get_stats(),
            "generation": self.generation.get_stats(),
        }

    def warm_cache(self, root: str, exclude: Sequence[str] = ()) -> int:
        """Seed the content layer with every route file under *root*."""
        logger.debug("CacheManager: warming cache from %s", root)
        started = time.perf_counter()
        count = 0

        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = os.path.relpath(dirpath, root).replace(os.sep, "/")
            dirnames[:] = sorted(
                name for name in dirnames
                if not is_excluded(_join_rel(rel_dir, name), exclude)
            )
            if ROUTE_FILE_NAME not in filenames:
                continue
            try:
                self.content.update_content(os.path.join(dirpath, ROUTE_FILE_NAME))
            except ContentError as exc:
                logger.debug("CacheManager: failed to cache content: %s", exc)
                continue
            count += 1

        logger.debug(
            "CacheManager: cache warming finished in %.3fs, %d file(s)",
            time.perf_counter() - started, count,
        )
        return count

    def clear(self) -> None:
        self.content.clear()
        self.parse.clear()
        self.deps.clear()
        self.generation.clear()
        with self._lock:
            self._registry = None
        logger.debug("CacheManager: cleared all cache layers")


def _join_rel(rel_dir: str, name: str) -> str:
    return name if rel_dir in ("", ".") else f"{rel_dir}/{name}"
