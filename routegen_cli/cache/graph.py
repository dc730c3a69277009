"""Layer 3: dependency graph.

Nodes are file paths (or external module identifiers). Every node keeps
both directions of its edges: ``dependencies`` (what it imports) and
``dependents`` (who imports it). All edge mutations go through
:meth:`DependencyGraph._link` / :meth:`DependencyGraph._unlink` so the two
lists always mirror each other.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Set, Tuple

from ..errors import CycleError
from ..models import CacheStats, DependencyNode, NodeKind, ParsedFile
from .base import DependencyStore

logger = logging.getLogger(__name__)


class DependencyGraph(DependencyStore):
    """Adjacency-map graph keyed by path."""

    def __init__(self) -> None:
        self._nodes: Dict[str, DependencyNode] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def build_graph(self, parsed_files: Dict[str, ParsedFile]) -> None:
        """Rebuild the whole graph from a snapshot of parsed files."""
        with self._lock:
            self._nodes = {}

            for path in parsed_files:
                self._nodes[path] = DependencyNode(path=path)

            for path, parsed in parsed_files.items():
                for local in parsed.dependencies.local_imports:
                    self._link(path, local.import_path)

        logger.debug("DependencyGraph: built graph with %d nodes", len(self._nodes))

    def update_node(
        self, path: str, dependencies: List[str], kind: NodeKind = NodeKind.SOURCE
    ) -> None:
        """Replace the outgoing edges of *path* with *dependencies*."""
        with self._lock:
            node = self._ensure(path)
            node.kind = kind

            for old in list(node.dependencies):
                self._unlink(path, old)

            for dep in dependencies:
                if dep == path:
                    continue
                self._link(path, dep)

        logger.debug(
            "DependencyGraph: updated %s with %d dependencies", path, len(dependencies)
        )

    def set_content_hash(self, path: str, content_hash: str) -> None:
        with self._lock:
            node = self._nodes.get(path)
            if node is not None:
                node.content_hash = content_hash

    def remove_node(self, path: str) -> None:
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                return

            for dep in list(node.dependencies):
                self._unlink(path, dep)

            for dependent in list(node.dependents):
                self._unlink(dependent, path)

            del self._nodes[path]

        logger.debug("DependencyGraph: removed %s", path)

    def clear(self) -> None:
        with self._lock:
            self._nodes = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_affected_files(self, path: str) -> List[str]:
        """Every file that transitively depends on *path* (excluding *path*)."""
        with self._lock:
            affected: List[str] = []
            visited: Set[str] = {path}
            stack: List[str] = [path]

            while stack:
                current = stack.pop()
                node = self._nodes.get(current)
                if node is None:
                    continue
                # Reversed so the traversal visits dependents in insertion order
                for dependent in reversed(node.dependents):
                    if dependent in visited:
                        continue
                    visited.add(dependent)
                    affected.append(dependent)
                    stack.append(dependent)

        logger.debug("DependencyGraph: %s affects %d file(s)", path, len(affected))
        return affected

    def get_dependencies(self, path: str) -> List[str]:
        with self._lock:
            node = self._nodes.get(path)
            return list(node.dependencies) if node else []

    def get_dependents(self, path: str) -> List[str]:
        with self._lock:
            node = self._nodes.get(path)
            return list(node.dependents) if node else []

    def get_node(self, path: str) -> Optional[DependencyNode]:
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                return None
            return replace(
                node,
                dependencies=list(node.dependencies),
                dependents=list(node.dependents),
            )

    def has_node(self, path: str) -> bool:
        with self._lock:
            return path in self._nodes

    def paths(self) -> List[str]:
        with self._lock:
            return sorted(self._nodes)

    def detect_cycles(self) -> List[List[str]]:
        """Find cycles along dependency edges with a white/gray/black DFS.

        Each back-edge into a node still on the DFS path yields the path
        slice from that node to the current one. The walk keeps an
        explicit stack of edge iterators instead of recursing.
        """
        with self._lock:
            cycles: List[List[str]] = []
            visited: Set[str] = set()
            on_stack: Set[str] = set()
            path: List[str] = []
            stack: List[Tuple[str, Iterator[str]]] = []

            def enter(current: str) -> None:
                visited.add(current)
                on_stack.add(current)
                path.append(current)
                node = self._nodes.get(current)
                stack.append((current, iter(list(node.dependencies) if node else [])))

            for start in sorted(self._nodes):
                if start in visited:
                    continue
                enter(start)
                while stack:
                    current, deps = stack[-1]
                    for dep in deps:
                        if dep not in visited:
                            enter(dep)
                            break
                        if dep in on_stack:
                            cycles.append(list(path[path.index(dep):]))
                    else:
                        stack.pop()
                        path.pop()
                        on_stack.discard(current)

        if cycles:
            logger.debug("DependencyGraph: detected %d cycle(s)", len(cycles))
        return cycles

    def get_topological_order(self) -> List[str]:
        """Kahn's algorithm: every node appears after all of its dependencies."""
        with self._lock:
            in_degree = {path: len(node.dependencies) for path, node in self._nodes.items()}
            queue = deque(sorted(path for path, degree in in_degree.items() if degree == 0))
            order: List[str] = []

            while queue:
                current = queue.popleft()
                order.append(current)
                for dependent in self._nodes[current].dependents:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        queue.append(dependent)

            if len(order) < len(self._nodes):
                remaining = sorted(set(self._nodes) - set(order))
                raise CycleError(remaining)

            return order

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                total_files=len(self._nodes),
                dependency_nodes=len(self._nodes),
                last_update=datetime.now(),
            )

    # ------------------------------------------------------------------
    # Edge helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _ensure(self, path: str) -> DependencyNode:
        node = self._nodes.get(path)
        if node is None:
            node = DependencyNode(path=path)
            self._nodes[path] = node
        return node

    def _link(self, dependent: str, dependency: str) -> None:
        source = self._ensure(dependent)
        target = self._ensure(dependency)
        if dependency not in source.dependencies:
            source.dependencies.append(dependency)
        if dependent not in target.dependents:
            target.dependents.append(dependent)

    def _unlink(self, dependent: str, dependency: str) -> None:
        source = self._nodes.get(dependent)
        if source is not None and dependency in source.dependencies:
            source.dependencies.remove(dependency)
        target = self._nodes.get(dependency)
        if target is not None and dependent in target.dependents:
            target.dependents.remove(dependent)
