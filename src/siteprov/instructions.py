"""Operator instruction document rendering."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .config import AppConfig
from .templates import TemplateEngine

TEMPLATE_NAME = "instructions/operator.txt.j2"


class InstructionsError(RuntimeError):
    """Raised when the instruction document cannot be written."""


def build_context(config: AppConfig) -> dict[str, object]:
    """Return the template context describing how to run the Node app."""
    site = config.site
    return {
        "domain": site.domain,
        "web_root": str(site.web_root),
        "app_dir": str(site.app_dir),
        "owner": site.owner,
        "group": site.group,
        "upstream_host": config.upstream.host,
        "upstream_port": config.upstream.port,
        "dev_service": config.instructions.dev_service,
    }


@dataclass(slots=True)
class InstructionsWriter:
    """Render the instruction file and restrict it to its owner."""

    templates: TemplateEngine
    path: Path
    mode: int = 0o600

    def write(self, context: Mapping[str, object]) -> Path:
        """Render the document to :attr:`path`, replacing any previous copy."""
        try:
            self.templates.render_to_path(TEMPLATE_NAME, self.path, context, mode=self.mode)
        except OSError as exc:
            raise InstructionsError(f"Cannot write instructions to {self.path}: {exc}") from exc
        return self.path


__all__ = ["InstructionsError", "InstructionsWriter", "build_context"]
