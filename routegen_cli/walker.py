"""Directory walk that turns ``route.py`` files into a :class:`RouteTree`."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import List, Optional, Sequence

from .cache import CacheManager, get_cache_manager
from .config import ROUTE_FILE_NAME, is_excluded
from .parser import ASTRouteAnalyzer, RouteAnalyzer
from .route_tree import RouteTree

logger = logging.getLogger(__name__)


class RouteTreeBuilder:
    """Walks *project_root* and rebuilds the route tree, reusing cached parses."""

    def __init__(
        self,
        project_root: Path,
        exclude: Sequence[str] = (),
        manager: Optional[CacheManager] = None,
        analyzer: Optional[RouteAnalyzer] = None,
        route_file_name: str = ROUTE_FILE_NAME,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.exclude = list(exclude)
        self.manager = manager if manager is not None else get_cache_manager()
        self.analyzer = analyzer if analyzer is not None else ASTRouteAnalyzer(self.project_root)
        self.route_file_name = route_file_name
        self.tree = RouteTree()
        self.cache_hits = 0
        self.cache_misses = 0

    def walk(self) -> RouteTree:
        started = time.perf_counter()
        self.tree.reset()
        self.cache_hits = 0
        self.cache_misses = 0

        for dirpath, dirnames, filenames in os.walk(self.project_root, onerror=self._on_walk_error):
            rel_dir = os.path.relpath(dirpath, self.project_root).replace(os.sep, "/")
            dirnames[:] = sorted(
                name for name in dirnames
                if not is_excluded(name if rel_dir == "." else f"{rel_dir}/{name}", self.exclude)
            )
            # The project root itself is never a route
            if rel_dir == "." or self.route_file_name not in filenames:
                continue
            self._visit(os.path.join(dirpath, self.route_file_name), rel_dir)

        total = self.cache_hits + self.cache_misses
        elapsed = time.perf_counter() - started
        if total:
            logger.debug(
                "Walk completed in %.3fs: %d routes (%.1f%% cached, %d parsed)",
                elapsed, total, self.cache_hits / total * 100, self.cache_misses,
            )
        else:
            logger.debug("Walk completed in %.3fs: no routes found", elapsed)
        return self.tree

    def route_files(self) -> List[str]:
        return [route.source_path for route in self.tree.routes]

    def _visit(self, route_file: str, rel_dir: str) -> None:
        cached = self.manager.get_parsed_file(route_file)
        if cached is not None:
            self.cache_hits += 1
            self.tree.add_route(cached)
            logger.debug("Using cached route: %s (methods: %s)", rel_dir, cached.methods)
            return

        try:
            parsed = self.analyzer.analyze(route_file, rel_dir)
        except OSError as exc:
            logger.warning("Failed to read route %s: %s, skipping", route_file, exc)
            return

        self.cache_misses += 1
        # Unparsable results are cached too so broken files are not re-parsed every pass
        self.manager.set_parsed_file(route_file, parsed)
        self.tree.add_route(parsed)
        if parsed.methods:
            logger.debug("Parsed and registered route: %s (methods: %s)", rel_dir, parsed.methods)
        else:
            logger.debug("Parsed route: %s (no methods found)", rel_dir)

    @staticmethod
    def _on_walk_error(exc: OSError) -> None:
        logger.warning("Cannot walk %s: %s", exc.filename, exc)


def build_route_tree(project_root: Path, exclude: Sequence[str] = ()) -> RouteTree:
    return RouteTreeBuilder(project_root, exclude).walk()


__all__ = ["RouteTreeBuilder", "build_route_tree"]
