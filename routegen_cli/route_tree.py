"""Prefix tree of route segments built from the project directory layout."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from rich.tree import Tree

from .config import PARAM_SUFFIX
from .models import ParsedFile

logger = logging.getLogger(__name__)

GENERATED_ROUTE_FILE = "gen_route.py"


@dataclass
class RouteSegment:
    name: str
    api_name: str
    is_param: bool = False
    param_name: str = ""


def parse_segment(folder_name: str) -> RouteSegment:
    """``id_`` becomes the parameter ``:id``; anything else is a literal segment."""
    if folder_name.endswith(PARAM_SUFFIX) and len(folder_name) > len(PARAM_SUFFIX):
        param = folder_name[: -len(PARAM_SUFFIX)]
        return RouteSegment(name=folder_name, api_name=f":{param}", is_param=True, param_name=param)
    return RouteSegment(name=folder_name, api_name=folder_name)


@dataclass
class RouteNode:
    segment: RouteSegment
    parent: Optional["RouteNode"] = field(default=None, repr=False)
    children: Dict[str, "RouteNode"] = field(default_factory=dict)
    full_path: str = ""
    folder_path: str = ""
    depth: int = 0
    methods: List[str] = field(default_factory=list)
    parsed_file: Optional[ParsedFile] = None

    @property
    def is_leaf(self) -> bool:
        """Live leaf status, unlike :attr:`Route.is_leaf`."""
        return not self.children


@dataclass
class Route:
    api_path: str
    folder_path: str
    segments: List[RouteSegment]
    parameters: List[str]
    is_leaf: bool  # snapshot taken when the route was added
    methods: List[str]
    parsed_file: ParsedFile

    # Filled in by RouteTree.calculate_output_paths
    output_path: str = ""
    relative_output: str = ""
    import_path: str = ""
    package_alias: str = ""

    @property
    def source_path(self) -> str:
        return self.parsed_file.path

    @property
    def key(self) -> str:
        """Registry identity: folder plus sorted methods."""
        return f"{self.folder_path}:{','.join(sorted(self.methods))}"


class RouteTree:
    """Rebuilt from scratch on every walk; only the cached parses are reused."""

    def __init__(self) -> None:
        self.root = RouteNode(segment=RouteSegment(name="", api_name=""))
        self.routes: List[Route] = []

    def reset(self) -> None:
        self.root = RouteNode(segment=RouteSegment(name="", api_name=""))
        self.routes = []

    def add_route(self, parsed: ParsedFile) -> Optional[Route]:
        parts = [
            part for part in parsed.rel_path.replace(os.sep, "/").split("/")
            if part not in ("", ".")
        ]
        if not parts:
            return None

        current = self.root
        segments: List[RouteSegment] = []
        parameters: List[str] = []

        for depth, part in enumerate(parts, start=1):
            segment = parse_segment(part)
            segments.append(segment)
            if segment.is_param:
                parameters.append(segment.param_name)

            child = current.children.get(part)
            if child is None:
                child = RouteNode(
                    segment=segment,
                    parent=current,
                    full_path="/".join(s.api_name for s in segments),
                    folder_path="/".join(parts[:depth]),
                    depth=depth,
                )
                current.children[part] = child
            current = child

        current.parsed_file = parsed
        for method in parsed.methods:
            if method not in current.methods:
                current.methods.append(method)

        route = Route(
            api_path="/" + current.full_path,
            folder_path="/".join(parts),
            segments=segments,
            parameters=parameters,
            is_leaf=not current.children,
            methods=list(parsed.methods),
            parsed_file=parsed,
        )
        self.routes.append(route)
        return route

    def calculate_output_paths(self, project_root: Path, output_dir: str, module_name: str = "") -> None:
        for route in self.routes:
            derived = derive_output(route.folder_path, project_root, output_dir, module_name)
            route.relative_output = derived["relative_output"]
            route.output_path = derived["output_path"]
            route.import_path = derived["import_path"]
            route.package_alias = derived["package_alias"]

    def route_keys(self) -> List[str]:
        return sorted(route.key for route in self.routes)

    def find(self, folder_path: str) -> Optional[RouteNode]:
        current = self.root
        for part in folder_path.split("/"):
            if not part:
                continue
            current = current.children.get(part)
            if current is None:
                return None
        return current

    def to_rich_tree(self, label: str = "routes") -> Tree:
        tree = Tree(f"[bold]{label}[/bold]")
        self._render(self.root, tree)
        return tree

    def _render(self, node: RouteNode, branch: Tree) -> None:
        for name in sorted(node.children):
            child = node.children[name]
            text = f"[cyan]{child.segment.name}[/cyan] -> /{child.full_path}"
            if child.segment.is_param:
                text += f" [dim](param: {child.segment.param_name})[/dim]"
            if child.methods:
                text += f" [green]\\[{', '.join(sorted(child.methods))}][/green]"
            self._render(child, branch.add(text))

    def log_tree(self, level: int = logging.DEBUG) -> None:
        self._log_node(self.root, "", level)

    def _log_node(self, node: RouteNode, prefix: str, level: int) -> None:
        if node is not self.root:
            param = f" (param: {node.segment.param_name})" if node.segment.is_param else ""
            methods = f" [{', '.join(sorted(node.methods))}]" if node.methods else ""
            logger.log(level, "%s%s -> /%s%s%s", prefix, node.segment.name, node.full_path, param, methods)
        for name in sorted(node.children):
            self._log_node(node.children[name], prefix + "  ", level)


def import_prefix(output_dir: str, module_name: str = "") -> str:
    """Dotted package that holds the generated code, e.g. ``myapp._routegen``."""
    output = output_dir.strip("/").replace("/", ".")
    return ".".join(part for part in (module_name, output) if part)


def package_alias(folder_path: str) -> str:
    alias = folder_path.replace("/", "_").replace("-", "_").replace(" ", "_")
    return alias + "_route"


def derive_output(
    folder_path: str, project_root: Path, output_dir: str, module_name: str = ""
) -> Dict[str, str]:
    """Pure mapping from a route folder to where its generated module lives."""
    relative_output = "/".join(["routes", folder_path, GENERATED_ROUTE_FILE])
    output_path = Path(project_root) / output_dir / "routes" / folder_path / GENERATED_ROUTE_FILE
    dotted_folder = folder_path.replace("/", ".")
    return {
        "relative_output": relative_output,
        "output_path": str(output_path),
        "import_path": f"{import_prefix(output_dir, module_name)}.routes.{dotted_folder}.gen_route",
        "package_alias": package_alias(folder_path),
    }
