"""Exception hierarchy for routegen."""

from __future__ import annotations

from typing import List, Optional


class RoutegenError(Exception):
    """Base class for every error raised on purpose by routegen."""


class ConfigError(RoutegenError):
    """``routegen.toml`` could not be read or parsed."""


class ContentError(RoutegenError):
    """A file could not be stat'ed, read or hashed."""

    def __init__(self, path: str, cause: Optional[BaseException] = None) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"cannot read {path}: {cause}" if cause else f"cannot read {path}")


class CacheError(RoutegenError):
    """A cache operation was called in a state it does not support."""


class CycleError(RoutegenError):
    """The dependency graph has a cycle, so no topological order exists."""

    def __init__(self, nodes: List[str]) -> None:
        self.nodes = list(nodes)
        super().__init__(
            f"dependency graph contains cycles ({len(self.nodes)} node(s) unsorted)"
        )


class TemplateRenderError(RoutegenError):
    """A template could not be loaded, rendered or written."""


class WatchError(RoutegenError):
    """The file watcher could not start or its event source stopped."""
