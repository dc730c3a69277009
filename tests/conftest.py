"""Pytest configuration and fixtures for routegen tests."""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from routegen_cli.cache import CacheManager, reset_cache_manager, set_cache_manager


@pytest.fixture(autouse=True)
def _fresh_cache_manager() -> Generator[None, None, None]:
    """Every test starts with an empty process-wide cache manager."""
    reset_cache_manager()
    yield
    reset_cache_manager()


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None, None, None]:
    """Undo handlers and propagation changes made by configure_logging."""
    logger = logging.getLogger("routegen_cli")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp()).resolve()
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_app_path() -> Path:
    """Path to the checked-in sample project (read-only)."""
    return Path(__file__).parent / "fixtures" / "sample_app"


@pytest.fixture
def sample_app(temp_dir: Path, sample_app_path: Path) -> Path:
    """A writable copy of the sample project."""
    target = temp_dir / "sample_app"
    shutil.copytree(sample_app_path, target)
    return target


@pytest.fixture
def manager() -> CacheManager:
    """A fresh manager installed as the process-wide instance."""
    instance = CacheManager()
    set_cache_manager(instance)
    return instance


def write_file(path: Path, text: str) -> str:
    """Write *text* to *path* (creating parents) and return the path as str."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return str(path)


def bump_mtime(path: Path, seconds: int = 5) -> None:
    """Move *path*'s mtime forward without touching its bytes."""
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + seconds * 1_000_000_000))
