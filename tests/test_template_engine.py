"""Tests for the template rendering engine."""
from __future__ import annotations

from pathlib import Path

import pytest

from siteprov.templates import TemplateEngine, TemplateRenderError


def _index_context(domain: str) -> dict[str, object]:
    return {"domain": domain, "lang": "en"}


def test_render_to_string_uses_builtin_templates() -> None:
    """Built-in templates render with the provided context."""
    engine = TemplateEngine.packaged()

    output = engine.render_to_string("web/index.html.j2", _index_context("alpha.test"))

    assert "<title>alpha.test</title>" in output
    assert '<html lang="en">' in output


def test_missing_variable_is_an_error() -> None:
    """Strict undefined variables surface as TemplateRenderError."""
    engine = TemplateEngine.packaged()

    with pytest.raises(TemplateRenderError, match="web/index.html.j2"):
        engine.render_to_string("web/index.html.j2", {"domain": "alpha.test"})


def test_render_to_path_writes_with_mode(tmp_path: Path) -> None:
    """Rendering to a file writes content and respects the requested mode."""
    engine = TemplateEngine.packaged()
    destination = tmp_path / "nested" / "index.html"

    changed = engine.render_to_path(
        "web/index.html.j2",
        destination,
        _index_context("beta.test"),
        mode=0o600,
    )

    assert changed is True
    assert destination.exists()
    assert oct(destination.stat().st_mode & 0o777) == "0o600"
    assert not list(destination.parent.glob(".*.tmp"))

    # Second render with same content should be a no-op.
    changed_again = engine.render_to_path(
        "web/index.html.j2",
        destination,
        _index_context("beta.test"),
        mode=0o600,
    )
    assert changed_again is False


def test_render_to_path_reapplies_mode_when_unchanged(tmp_path: Path) -> None:
    """Permissions are enforced even when the content is already current."""
    engine = TemplateEngine.packaged()
    destination = tmp_path / "index.html"
    engine.render_to_path("web/index.html.j2", destination, _index_context("c.test"), mode=0o600)
    destination.chmod(0o644)

    changed = engine.render_to_path(
        "web/index.html.j2", destination, _index_context("c.test"), mode=0o600
    )

    assert changed is False
    assert destination.stat().st_mode & 0o777 == 0o600


def test_unknown_template_is_an_error() -> None:
    """Only packaged templates can be rendered."""
    engine = TemplateEngine.packaged()

    with pytest.raises(TemplateRenderError, match="nginx/missing.conf.j2"):
        engine.render_to_string("nginx/missing.conf.j2", {})
