"""Jinja2 template rendering for generated route code and project scaffolds."""

from __future__ import annotations

import hashlib
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, TemplateNotFound

from .config import TEMPLATES_DIR
from .errors import TemplateRenderError

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".j2"


class TemplateRenderer:
    """Renders a template reference plus data to a file on disk.

    Rendering is deterministic: identical template and data always produce
    identical bytes, so re-rendering an unchanged route is a no-op for
    anything downstream that compares content.
    """

    def __init__(self, templates_dir: Optional[Path] = None) -> None:
        self.templates_dir = Path(templates_dir or TEMPLATES_DIR)
        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self._env.filters["pyrepr"] = repr

    def render_string(self, ref: str, data: Dict[str, Any]) -> str:
        try:
            template = self._env.get_template(ref)
        except TemplateNotFound as exc:
            raise TemplateRenderError(f"template not found: {ref}") from exc
        except TemplateError as exc:
            raise TemplateRenderError(f"invalid template {ref}: {exc}") from exc

        try:
            return template.render(**data)
        except TemplateError as exc:
            raise TemplateRenderError(f"failed to render {ref}: {exc}") from exc

    def render(self, ref: str, output_path: Path, data: Dict[str, Any]) -> Path:
        """Render template *ref* into *output_path*, creating parent directories."""
        text = self.render_string(ref, data)
        output_path = Path(output_path)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise TemplateRenderError(f"cannot write {output_path}: {exc}") from exc
        logger.debug("Rendered %s -> %s", ref, output_path)
        return output_path

    def render_folder(self, ref: str, out_dir: Path, data: Dict[str, Any]) -> List[Path]:
        """Render every ``.j2`` file under template folder *ref*; copy the rest."""
        source_dir = self.templates_dir / ref
        if not source_dir.is_dir():
            raise TemplateRenderError(f"template folder not found: {ref}")

        written: List[Path] = []
        for source in sorted(p for p in source_dir.rglob("*") if p.is_file()):
            relative = source.relative_to(source_dir)
            if source.suffix == TEMPLATE_SUFFIX:
                target = Path(out_dir) / relative.with_suffix("")
                template_ref = (Path(ref) / relative).as_posix()
                written.append(self.render(template_ref, target, data))
                continue

            target = Path(out_dir) / relative
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, target)
            except OSError as exc:
                raise TemplateRenderError(f"cannot copy {source} -> {target}: {exc}") from exc
            written.append(target)
        return written

    def template_hash(self, *refs: str) -> str:
        """md5 over the bytes of the given template files or folders."""
        digest = hashlib.md5()
        for ref in refs:
            path = self.templates_dir / ref
            files = sorted(p for p in path.rglob("*") if p.is_file()) if path.is_dir() else [path]
            for file in files:
                try:
                    digest.update(file.relative_to(self.templates_dir).as_posix().encode("utf-8"))
                    digest.update(file.read_bytes())
                except OSError as exc:
                    raise TemplateRenderError(f"cannot read template {file}: {exc}") from exc
        return digest.hexdigest()
