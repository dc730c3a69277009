"""Route source analyzer built on the stdlib ``ast`` module.

Given a ``route.py`` file it extracts the HTTP handlers (top-level
functions named after a verb), every other top-level function and
statement verbatim, and classifies imports into stdlib, external and
local (resolved to a file inside the project tree).

Malformed or empty input never raises: it yields a ParsedFile with no
methods so one broken route cannot block generation of the others.
"""

from __future__ import annotations

import ast
import hashlib
import logging
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .config import HTTP_METHODS
from .models import DependencyAnalysis, ExtractedFunction, LocalImport, ParsedFile

logger = logging.getLogger(__name__)

_STDLIB_MODULES = frozenset(sys.stdlib_module_names)

_FunctionNode = Union[ast.FunctionDef, ast.AsyncFunctionDef]


# ===================================================================
# Abstract Analyzer Interface
# ===================================================================

class RouteAnalyzer(ABC):
    """Turns one route file into a :class:`ParsedFile`."""

    @abstractmethod
    def analyze(self, path: str, rel_path: str) -> ParsedFile:
        """Analyze *path*; *rel_path* is the route folder relative to the project root."""
        ...


# ===================================================================
# AST Analyzer
# ===================================================================

class ASTRouteAnalyzer(RouteAnalyzer):
    """Default analyzer. Only I/O errors propagate; syntax errors degrade."""

    def __init__(self, project_root: Path) -> None:
        self.project_root = Path(project_root).resolve()
        self._resolver = ImportResolver(self.project_root)

    def analyze(self, path: str, rel_path: str) -> ParsedFile:
        data = Path(path).read_bytes()
        source = data.decode("utf-8", errors="ignore")
        parsed = ParsedFile(
            path=path,
            rel_path=rel_path,
            package_name=rel_path.replace("/", "."),
            content_hash=hashlib.md5(data).hexdigest(),
        )

        if not source.strip():
            logger.debug("Empty route file %s, skipping parsing", rel_path)
            return parsed

        try:
            tree = ast.parse(source, filename=path)
        except (SyntaxError, ValueError) as exc:
            logger.debug("Failed to parse route file %s: %s - treating as empty", rel_path, exc)
            return parsed

        lines = source.splitlines()
        file_path = Path(path)

        for index, stmt in enumerate(tree.body):
            if isinstance(stmt, (ast.Import, ast.ImportFrom)):
                self._record_import(parsed, stmt, source, file_path)
            elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                fn = _extract_function(stmt, lines)
                parsed.functions.append(fn)
                parsed.body.append(fn.source)
                if fn.method and fn.method not in parsed.methods:
                    parsed.methods.append(fn.method)
                    logger.debug("Found method %s in %s", fn.method, rel_path)
            elif index == 0 and _is_docstring(stmt):
                continue
            else:
                block = _segment(stmt, lines)
                parsed.support_code.append(block)
                parsed.body.append(block)

        return parsed

    def _record_import(
        self,
        parsed: ParsedFile,
        stmt: Union[ast.Import, ast.ImportFrom],
        source: str,
        file_path: Path,
    ) -> None:
        statement = ast.get_source_segment(source, stmt) or ast.unparse(stmt)
        local = self._resolver.resolve(stmt, file_path, statement)
        if local:
            parsed.dependencies.local_imports.extend(local)
            return

        for candidate in self._resolver.unresolved_targets(stmt, file_path):
            if candidate not in parsed.dependencies.unresolved_modules:
                parsed.dependencies.unresolved_modules.append(candidate)

        parsed.imports.append(statement)
        for name in _top_level_names(stmt):
            bucket = (
                parsed.dependencies.stdlib_imports
                if name in _STDLIB_MODULES
                else parsed.dependencies.external_imports
            )
            if name not in bucket:
                bucket.append(name)


def analyze_route(path: str, rel_path: str, project_root: Path) -> ParsedFile:
    return ASTRouteAnalyzer(project_root).analyze(path, rel_path)


def classify_imports(source: str, file_path: Path, project_root: Path) -> DependencyAnalysis:
    """Import classification for an arbitrary module (used for copied dependencies)."""
    analysis = DependencyAnalysis()
    try:
        tree = ast.parse(source, filename=str(file_path))
    except (SyntaxError, ValueError) as exc:
        logger.debug("Failed to parse %s: %s", file_path, exc)
        return analysis

    resolver = ImportResolver(Path(project_root).resolve())
    for stmt in tree.body:
        if not isinstance(stmt, (ast.Import, ast.ImportFrom)):
            continue
        statement = ast.get_source_segment(source, stmt) or ast.unparse(stmt)
        local = resolver.resolve(stmt, Path(file_path), statement)
        if local:
            analysis.local_imports.extend(local)
            continue
        for name in _top_level_names(stmt):
            bucket = (
                analysis.stdlib_imports if name in _STDLIB_MODULES else analysis.external_imports
            )
            if name not in bucket:
                bucket.append(name)
    return analysis


# ===================================================================
# Import resolution
# ===================================================================

class ImportResolver:
    """Maps import statements to module files under the project root."""

    def __init__(self, project_root: Path) -> None:
        self.project_root = project_root

    def resolve(
        self,
        stmt: Union[ast.Import, ast.ImportFrom],
        file_path: Path,
        statement: str = "",
    ) -> List[LocalImport]:
        if isinstance(stmt, ast.Import):
            return self._resolve_import(stmt, statement)
        return self._resolve_from(stmt, file_path, statement)

    def _resolve_import(self, stmt: ast.Import, statement: str) -> List[LocalImport]:
        found: List[LocalImport] = []
        for alias in stmt.names:
            target = self._locate(self.project_root, alias.name)
            if target is None:
                continue
            found.append(self._local(
                target, alias.name, statement, names=[], alias=alias.asname or "",
            ))
        return found

    def _resolve_from(
        self, stmt: ast.ImportFrom, file_path: Path, statement: str
    ) -> List[LocalImport]:
        base = self._from_base(stmt, file_path)
        if base is None:
            return []

        written = "." * stmt.level + (stmt.module or "")
        names = [alias.name for alias in stmt.names]

        if stmt.module:
            target = self._locate(base, stmt.module)
        else:
            target = base

        if target is None:
            return []

        # ``from pkg import sub`` where ``sub`` is itself a module
        if target.is_dir() or target.name == "__init__.py":
            package_dir = target if target.is_dir() else target.parent
            submodules: List[LocalImport] = []
            for name in names:
                sub = self._locate(package_dir, name)
                if sub is not None:
                    written_sub = written + name if written.endswith(".") else f"{written}.{name}"
                    submodules.append(self._local(sub, written_sub, statement, [name]))
            if submodules:
                return submodules
            if not stmt.module:
                init_file = package_dir / "__init__.py"
                if not init_file.is_file():
                    return []
                target = init_file

        return [self._local(target, written, statement, names)]

    def unresolved_targets(
        self, stmt: Union[ast.Import, ast.ImportFrom], file_path: Path
    ) -> List[str]:
        """Paths (without suffix) where the modules named by an unresolved import would live."""
        if isinstance(stmt, ast.Import):
            targets = [(self.project_root, alias.name) for alias in stmt.names]
        else:
            base = self._from_base(stmt, file_path)
            if base is None:
                return []
            names = [alias.name for alias in stmt.names if alias.name != "*"]
            if stmt.module:
                targets = [(base, stmt.module)] + [(base, f"{stmt.module}.{name}") for name in names]
            else:
                targets = [(base, name) for name in names]
        return [str(root.joinpath(*dotted.split("."))) for root, dotted in targets]

    def _from_base(self, stmt: ast.ImportFrom, file_path: Path) -> Optional[Path]:
        if not stmt.level:
            return self.project_root
        base = file_path.resolve().parent
        for _ in range(stmt.level - 1):
            base = base.parent
        return base if _is_within(base, self.project_root) else None

    def _locate(self, base: Path, dotted: str) -> Optional[Path]:
        candidate = base.joinpath(*dotted.split("."))
        module_file = candidate.with_name(candidate.name + ".py")
        if module_file.is_file():
            return module_file
        init_file = candidate / "__init__.py"
        if init_file.is_file():
            return init_file
        if candidate.is_dir():
            return candidate
        return None

    def _local(
        self,
        target: Path,
        module: str,
        statement: str,
        names: List[str],
        alias: str = "",
    ) -> LocalImport:
        relative = target.relative_to(self.project_root).as_posix()
        return LocalImport(
            import_path=str(target),
            module=module,
            relative_path=relative,
            statement=statement,
            names=list(names),
            alias=alias,
        )


# ===================================================================
# Shared Helpers
# ===================================================================

def _extract_function(node: _FunctionNode, lines: List[str]) -> ExtractedFunction:
    prefix = "async def" if isinstance(node, ast.AsyncFunctionDef) else "def"
    signature = f"{prefix} {node.name}({ast.unparse(node.args)})"
    if node.returns is not None:
        signature += f" -> {ast.unparse(node.returns)}"

    body_start = node.body[0].lineno
    body = "\n".join(lines[body_start - 1 : node.end_lineno])

    upper = node.name.upper()
    return ExtractedFunction(
        name=node.name,
        method=upper if upper in HTTP_METHODS else "",
        signature=signature,
        body=body,
        source=_segment(node, lines),
    )


def _segment(node: ast.stmt, lines: List[str]) -> str:
    """Source lines of a top-level statement, decorators included."""
    start, end = _line_span(node)
    return "\n".join(lines[start - 1 : end])


def _line_span(node: ast.stmt) -> Tuple[int, int]:
    start = node.lineno
    for decorator in getattr(node, "decorator_list", []):
        start = min(start, decorator.lineno)
    return start, node.end_lineno or node.lineno


def _is_docstring(stmt: ast.stmt) -> bool:
    return (
        isinstance(stmt, ast.Expr)
        and isinstance(stmt.value, ast.Constant)
        and isinstance(stmt.value.value, str)
    )


def _top_level_names(stmt: Union[ast.Import, ast.ImportFrom]) -> List[str]:
    if isinstance(stmt, ast.Import):
        return [alias.name.split(".")[0] for alias in stmt.names]
    if stmt.level or not stmt.module:
        return []
    return [stmt.module.split(".")[0]]


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True
