"""One regeneration pass: walk, plan, emit, record."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .cache import CacheManager, get_cache_manager
from .config import REGISTRY_TEMPLATE, ROUTE_TEMPLATE
from .config_manager import ProjectConfig, load_project_config
from .copier import DependencyCopier, rewrite_local_import
from .models import IntegrityReport
from .route_tree import Route, RouteTree, import_prefix
from .templates import TemplateRenderer
from .walker import RouteTreeBuilder

logger = logging.getLogger(__name__)

REGISTRY_FILE = "routes_registry.py"


@dataclass
class GenerationReport:
    routes: int = 0
    generated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    reasons: Dict[str, str] = field(default_factory=dict)
    copied_dependencies: int = 0
    registry_written: bool = False
    integrity: Optional[IntegrityReport] = None
    duration: float = 0.0


class RouteGenerator:
    """Regenerates only the routes the cache reports as stale."""

    def __init__(
        self,
        project_root: Path,
        config: Optional[ProjectConfig] = None,
        manager: Optional[CacheManager] = None,
        renderer: Optional[TemplateRenderer] = None,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.config = config if config is not None else load_project_config(self.project_root)
        self.manager = manager if manager is not None else get_cache_manager()
        self.renderer = renderer if renderer is not None else TemplateRenderer()
        self.builder = RouteTreeBuilder(
            self.project_root, exclude=self.config.exclude_paths, manager=self.manager
        )
        self.tree: RouteTree = self.builder.tree

    @property
    def registry_path(self) -> Path:
        return self.config.output_path / REGISTRY_FILE

    def generate(self) -> GenerationReport:
        started = time.perf_counter()
        report = GenerationReport()

        self.manager.set_generation_context(
            self.renderer.template_hash(ROUTE_TEMPLATE, REGISTRY_TEMPLATE), self.config.fingerprint()
        )

        self.tree = self.builder.walk()
        self.tree.log_tree()
        self.tree.calculate_output_paths(self.project_root, self.config.output, self.config.module)
        report.routes = len(self.tree.routes)

        copier = DependencyCopier(self.project_root, self.config.module, self.config.output)
        for route in self.tree.routes:
            reason = self._regeneration_reason(route)
            if reason is None:
                logger.debug("Skipping unchanged route: %s", route.folder_path)
                report.skipped.append(route.folder_path)
                continue

            self._generate_route(route, copier)
            report.generated.append(route.folder_path)
            report.reasons[route.folder_path] = reason
        report.copied_dependencies = len(copier.copied)

        route_keys = self.tree.route_keys()
        if self.manager.needs_registry_regeneration(route_keys) or not self.registry_path.exists():
            self._generate_registry()
            self.manager.set_registry_signature(route_keys)
            report.registry_written = True
        else:
            logger.debug("Routes registry is up to date, skipping generation")

        report.integrity = self.manager.validate_integrity()
        for layer, stats in self.manager.get_stats().items():
            logger.debug(
                "%s cache stats: %d files, %.1f%% hit rate", layer, stats.total_files, stats.hit_rate
            )

        report.duration = time.perf_counter() - started
        logger.info(
            "Generated %d of %d route(s) in %.2fs",
            len(report.generated), report.routes, report.duration,
        )
        return report

    def _regeneration_reason(self, route: Route) -> Optional[str]:
        """Why *route* must be regenerated, or ``None`` when its output is current."""
        if not Path(route.output_path).exists():
            logger.debug("Output missing for %s -> %s", route.folder_path, route.output_path)
            return "output missing"

        plan = self.manager.get_regeneration_plan([route.source_path])
        if route.source_path in plan.reasons:
            reason = plan.reasons[route.source_path]
            logger.debug("Regeneration needed for %s: %s", route.folder_path, reason)
            return reason
        return None

    def _generate_route(self, route: Route, copier: DependencyCopier) -> None:
        parsed = route.parsed_file
        # Inputs are recorded as read, so edits landing during the render stay visible
        dependencies = self.manager.dependency_identities(route.source_path)
        if parsed.dependencies.local_imports:
            try:
                copied = copier.copy_dependencies(parsed.dependencies)
            except OSError as exc:
                logger.warning("Failed to copy dependencies for %s: %s", route.folder_path, exc)
            else:
                logger.debug("Copied %d dependencies for %s", len(copied), route.folder_path)

        self.renderer.render(ROUTE_TEMPLATE, Path(route.output_path), self._route_data(route))
        self.manager.mark_generated(
            route.source_path,
            route.output_path,
            source_hash=parsed.content_hash or None,
            dependencies=dependencies,
        )
        logger.debug("Generated %s for route %s", route.relative_output, route.folder_path)

    def _route_data(self, route: Route) -> Dict[str, Any]:
        parsed = route.parsed_file
        prefix = import_prefix(self.config.output, self.config.module)

        imports = list(parsed.imports)
        for local in parsed.dependencies.local_imports:
            statement = rewrite_local_import(local.statement, route.folder_path, prefix)
            if statement not in imports:
                imports.append(statement)

        handlers = []
        seen = set()
        for fn in parsed.handlers:
            if fn.method not in seen:
                seen.add(fn.method)
                handlers.append((fn.method, fn.name))

        return {
            "source": Path(route.source_path).relative_to(self.project_root).as_posix(),
            "api_path": route.api_path,
            "folder_path": route.folder_path,
            "methods": list(route.methods),
            "parameters": list(route.parameters),
            "is_leaf": route.is_leaf,
            "imports": imports,
            "body": list(parsed.body),
            "handlers": handlers,
        }

    def _generate_registry(self) -> None:
        self.renderer.render(
            REGISTRY_TEMPLATE,
            self.registry_path,
            {"routes": self.tree.routes, "project_name": self.config.name},
        )
        logger.debug("Generated routes registry with %d routes", len(self.tree.routes))
