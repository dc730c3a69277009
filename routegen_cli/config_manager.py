"""Per-project configuration loaded from ``routegen.toml``."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

from .config import (
    CONFIG_FILE_NAME,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_MODULE_NAME,
    DEFAULT_OUTPUT_DIR,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class ProjectConfig:
    """Resolved settings for one project root."""

    root: Path
    name: str = ""
    module: str = DEFAULT_MODULE_NAME
    output: str = DEFAULT_OUTPUT_DIR
    exclude: List[str] = field(default_factory=list)
    debounce: float = DEFAULT_DEBOUNCE_SECONDS

    @property
    def output_path(self) -> Path:
        return self.root / self.output

    @property
    def exclude_paths(self) -> List[str]:
        """Output dir plus user excludes, as posix relative prefixes."""
        paths = [self.output.strip("/")]
        for entry in self.exclude:
            entry = entry.strip("/")
            if entry and entry not in paths:
                paths.append(entry)
        return paths

    def fingerprint(self) -> str:
        """Stable hash of the settings that change emitted code."""
        payload = json.dumps(
            {"module": self.module, "output": self.output}, sort_keys=True
        )
        return hashlib.md5(payload.encode("utf-8")).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["root"] = str(self.root)
        return data


def load_project_config(root: Path) -> ProjectConfig:
    """Read ``routegen.toml`` under *root*; a missing file yields defaults.

    Raises:
        ConfigError: the file exists but is unreadable or not valid TOML,
            or a key has the wrong type.
    """
    root = Path(root).resolve()
    config = ProjectConfig(root=root)
    data = _read_toml(root / CONFIG_FILE_NAME)

    project = _section(data, "project")
    codegen = _section(data, "codegen")
    watch = _section(data, "watch")

    config.name = str(project.get("name") or _pyproject_name(root) or root.name)
    config.module = str(project.get("module", DEFAULT_MODULE_NAME))
    if config.module and not all(part.isidentifier() for part in config.module.split(".")):
        raise ConfigError(f"[project].module is not a valid import path: {config.module!r}")

    config.output = str(codegen.get("output", DEFAULT_OUTPUT_DIR)).strip("/") or DEFAULT_OUTPUT_DIR

    exclude = codegen.get("exclude", [])
    if not isinstance(exclude, list):
        raise ConfigError("[codegen].exclude must be a list of paths")
    config.exclude = [str(entry) for entry in exclude]

    try:
        config.debounce = float(watch.get("debounce", DEFAULT_DEBOUNCE_SECONDS))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"[watch].debounce must be a number: {exc}") from exc

    logger.debug("Loaded project config: %s", config.to_dict())
    return config


def save_project_config(config: ProjectConfig) -> Path:
    """Write *config* back to ``routegen.toml``."""
    path = config.root / CONFIG_FILE_NAME
    data = {
        "project": {"name": config.name, "module": config.module},
        "codegen": {"output": config.output, "exclude": list(config.exclude)},
        "watch": {"debounce": config.debounce},
    }
    with open(path, "w", encoding="utf-8") as handle:
        toml.dump(data, handle)
    return path


def normalize_module_name(name: str) -> str:
    """``my-app`` -> ``my_app``."""
    normalized = re.sub(r"[^0-9a-zA-Z_]", "_", name.strip()).lower()
    if normalized and normalized[0].isdigit():
        normalized = f"_{normalized}"
    return normalized


def _read_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return toml.load(handle)
    except (OSError, toml.TomlDecodeError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _pyproject_name(root: Path) -> Optional[str]:
    path = root / "pyproject.toml"
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = toml.load(handle)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.debug("Ignoring unreadable %s: %s", path, exc)
        return None
    name = data.get("project", {}).get("name")
    return str(name) if name else None
