"""Static configuration for route discovery and code generation."""

from __future__ import annotations

import os
from pathlib import Path
from typing import FrozenSet, Iterable, Set

# File that marks a directory as a route
ROUTE_FILE_NAME = os.environ.get("ROUTEGEN_ROUTE_FILE", "route.py")

# Folder names ending with this marker are path parameters (``id_`` -> ``:id``)
PARAM_SUFFIX = "_"

HTTP_METHODS: FrozenSet[str] = frozenset(
    {"GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"}
)

CONFIG_FILE_NAME = "routegen.toml"
DEFAULT_OUTPUT_DIR = "_routegen"
DEFAULT_MODULE_NAME = ""
DEFAULT_DEBOUNCE_SECONDS = 0.5

# Directory names never walked or watched, wherever they appear
SKIP_DIRS: Set[str] = {
    ".git", ".hg", ".svn", "node_modules", "vendor",
    ".venv", "venv", "__pycache__", ".tox", ".pytest_cache",
    ".mypy_cache", ".ruff_cache", "build", "dist", ".eggs",
    ".idea", ".vscode", ".DS_Store", DEFAULT_OUTPUT_DIR,
}

TEMPLATES_DIR = Path(__file__).parent / "templates"
ROUTE_TEMPLATE = "route.py.j2"
REGISTRY_TEMPLATE = "registry.py.j2"
INIT_TEMPLATE_DIR = "init"


def is_excluded(rel_path: str, exclude: Iterable[str] = ()) -> bool:
    """True when *rel_path* (posix, relative to the project root) must be skipped.

    A path is skipped if any of its components is a built-in skip dir, or if
    it equals or lies under one of the *exclude* prefixes.
    """
    if rel_path in ("", "."):
        return False
    parts = rel_path.split("/")
    if any(part in SKIP_DIRS for part in parts):
        return True
    for prefix in exclude:
        prefix = prefix.strip("/")
        if not prefix:
            continue
        if rel_path == prefix or rel_path.startswith(prefix + "/"):
            return True
    return False
