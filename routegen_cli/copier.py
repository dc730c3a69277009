"""Copies the local modules a route imports into the generated tree."""

from __future__ import annotations

import ast
import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from .models import CopiedDependency, DependencyAnalysis, LocalImport
from .parser import classify_imports
from .route_tree import import_prefix

logger = logging.getLogger(__name__)

DEPENDENCIES_DIR = "dependencies"


class DependencyCopier:
    """Mirror local dependencies under ``<output>/dependencies/<relative path>``.

    Each dependency is copied once per copier (memoised by resolved path),
    then its own local imports are followed recursively.
    """

    def __init__(self, project_root: Path, module_name: str, output_dir: str) -> None:
        self.project_root = Path(project_root).resolve()
        self.module_name = module_name
        self.output_dir = output_dir
        self.target_root = self.project_root / output_dir / DEPENDENCIES_DIR
        self._copied: Dict[str, CopiedDependency] = {}

    @property
    def copied(self) -> List[CopiedDependency]:
        return list(self._copied.values())

    def copy_dependencies(self, analysis: DependencyAnalysis) -> List[CopiedDependency]:
        """Copy every local import of *analysis*.

        Raises:
            OSError: a direct dependency is missing or cannot be copied.
        """
        result: List[CopiedDependency] = []
        for local in analysis.local_imports:
            copied = self._copy(local)
            if copied is not None and copied not in result:
                result.append(copied)
        return result

    def _copy(self, dep: LocalImport) -> Optional[CopiedDependency]:
        existing = self._copied.get(dep.import_path)
        if existing is not None:
            logger.debug("Dependency %s already copied", dep.relative_path)
            return existing

        source = self.project_root / dep.relative_path
        if not source.exists():
            raise FileNotFoundError(f"dependency path does not exist: {source}")

        target = self.target_root / dep.relative_path
        files = self._copy_files(source, target)

        copied = CopiedDependency(
            original_path=str(source),
            generated_path=str(target),
            import_path=f"{import_prefix(self.output_dir, self.module_name)}.{DEPENDENCIES_DIR}.{dep.dotted_path}",
            files=files,
            dependencies=self._transitive(source),
        )
        # Registered before recursing so import cycles terminate
        self._copied[dep.import_path] = copied

        for transitive in copied.dependencies:
            try:
                self._copy(transitive)
            except OSError as exc:
                logger.debug("Failed to copy transitive dependency %s: %s", transitive.relative_path, exc)

        logger.debug("Copied dependency %s to %s", dep.relative_path, target)
        return copied

    def _copy_files(self, source: Path, target: Path) -> List[str]:
        if source.is_dir():
            target.mkdir(parents=True, exist_ok=True)
            files: List[str] = []
            for entry in sorted(source.iterdir()):
                if entry.is_file() and entry.suffix == ".py":
                    shutil.copyfile(entry, target / entry.name)
                    files.append(str(target / entry.name))
            return files

        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        return [str(target)]

    def _transitive(self, source: Path) -> List[LocalImport]:
        modules = sorted(source.glob("*.py")) if source.is_dir() else [source]
        found: List[LocalImport] = []
        for module in modules:
            try:
                text = module.read_text(encoding="utf-8", errors="ignore")
            except OSError as exc:
                logger.debug("Cannot read %s for transitive imports: %s", module, exc)
                continue
            for local in classify_imports(text, module, self.project_root).local_imports:
                if local.import_path not in {item.import_path for item in found}:
                    found.append(local)
        return found


def rewrite_local_import(statement: str, route_dir: str, prefix: str) -> str:
    """Point a route's local import at its copy under ``<prefix>.dependencies``.

    *route_dir* is the route folder relative to the project root; it anchors
    relative imports.
    """
    try:
        tree = ast.parse(statement)
    except SyntaxError:
        logger.debug("Cannot rewrite import %r, keeping it verbatim", statement)
        return statement

    base = f"{prefix}.{DEPENDENCIES_DIR}"
    lines: List[str] = []
    for node in tree.body:
        if isinstance(node, ast.ImportFrom):
            module = _absolute_module(node, route_dir)
            target = f"{base}.{module}" if module else base
            lines.append(ast.unparse(ast.ImportFrom(module=target, names=node.names, level=0)))
        elif isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    lines.append(f"import {base}.{alias.name} as {alias.asname}")
                else:
                    head = alias.name.split(".")[0]
                    lines.append(f"import {base}.{alias.name}")
                    lines.append(f"from {base} import {head}")
        else:
            lines.append(ast.unparse(node))
    return "\n".join(lines)


def _absolute_module(node: ast.ImportFrom, route_dir: str) -> str:
    if not node.level:
        return node.module or ""
    parts = [part for part in route_dir.split("/") if part]
    if node.level > 1:
        parts = parts[: len(parts) - (node.level - 1)]
    if node.module:
        parts.extend(node.module.split("."))
    return ".".join(parts)
