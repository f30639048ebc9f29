"""Jinja2 template rendering for siteprov-managed files.

Every template ships inside this package; there is no operator override
directory.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import (
    Environment,
    PackageLoader,
    StrictUndefined,
    TemplateError,
)


class TemplateRenderError(RuntimeError):
    """Raised when a template cannot be rendered."""


@dataclass(slots=True)
class TemplateEngine:
    """Render packaged templates to strings and files."""

    environment: Environment

    @classmethod
    def packaged(cls) -> TemplateEngine:
        """Return an engine backed by the templates bundled with siteprov."""
        environment = Environment(
            loader=PackageLoader("siteprov", "templates"),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )
        return cls(environment=environment)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context* and return the text."""
        try:
            template = self.environment.get_template(template_name)
            return template.render(**dict(context))
        except TemplateError as exc:
            raise TemplateRenderError(f"Failed to render {template_name}: {exc}") from exc

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
    ) -> bool:
        """Render *template_name* into *destination*.

        Returns ``True`` when the file content changed. The requested *mode* is
        enforced on every call, even when the content is already current.
        """
        content = self.render_to_string(template_name, context)
        return write_text_atomic(destination, content, mode=mode)


def write_text_atomic(destination: Path, content: str, *, mode: int) -> bool:
    """Write *content* via a temporary sibling file, returning ``True`` on change."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    if destination.exists() and destination.read_text(encoding="utf-8") == content:
        destination.chmod(mode)
        return False
    temp = destination.with_name(f".{destination.name}.tmp")
    temp.write_text(content, encoding="utf-8")
    temp.chmod(mode)
    temp.replace(destination)
    return True


__all__ = ["TemplateEngine", "TemplateRenderError", "write_text_atomic"]
