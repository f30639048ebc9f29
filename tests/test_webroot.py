"""Tests for document root provisioning."""
from __future__ import annotations

import os
from pathlib import Path

import pytest

from siteprov.config import AppConfig
from siteprov.templates import TemplateEngine
from siteprov.webroot import (
    WebRootError,
    WebRootProvisioner,
    apply_tree_permissions,
    resolve_owner,
)


def _provisioner(config: AppConfig) -> WebRootProvisioner:
    return WebRootProvisioner(site=config.site, templates=TemplateEngine.packaged())


def test_ensure_creates_tree_and_placeholder(config: AppConfig) -> None:
    """A fresh host gets the directory tree and a placeholder page."""
    provisioner = _provisioner(config)

    result = provisioner.ensure()

    assert result.created_root is True
    assert result.placeholder_written is True
    assert result.web_root == config.site.web_root
    assert result.web_root.is_dir()
    page = result.index_path.read_text(encoding="utf-8")
    assert "obscpsl.ru" in page
    assert result.index_path.stat().st_mode & 0o777 == 0o644
    assert config.site.site_dir.stat().st_mode & 0o777 == 0o755
    assert result.web_root.stat().st_mode & 0o777 == 0o755


def test_existing_page_is_preserved(config: AppConfig) -> None:
    """Operator content survives later runs."""
    provisioner = _provisioner(config)
    provisioner.ensure()
    provisioner.index_path.write_text("<h1>real site</h1>\n", encoding="utf-8")

    result = provisioner.ensure()

    assert result.created_root is False
    assert result.placeholder_written is False
    assert provisioner.index_path.read_text(encoding="utf-8") == "<h1>real site</h1>\n"


def test_permissions_are_reapplied(config: AppConfig) -> None:
    """Files added by hand get the configured mode on the next run."""
    provisioner = _provisioner(config)
    provisioner.ensure()
    extra = config.site.web_root / "assets" / "app.js"
    extra.parent.mkdir()
    extra.write_text("console.log(1)\n", encoding="utf-8")
    extra.chmod(0o600)
    extra.parent.chmod(0o700)

    provisioner.ensure()

    assert extra.stat().st_mode & 0o777 == 0o755
    assert extra.parent.stat().st_mode & 0o777 == 0o755
    assert extra.stat().st_uid == os.getuid()


def test_apply_tree_permissions_skips_symlink_targets(tmp_path: Path) -> None:
    """Symlinks are re-owned without touching what they point at."""
    outside = tmp_path / "outside.txt"
    outside.write_text("x", encoding="utf-8")
    outside.chmod(0o600)
    root = tmp_path / "root"
    root.mkdir()
    (root / "link").symlink_to(outside)

    apply_tree_permissions(root, uid=os.getuid(), gid=os.getgid(), mode=0o755)

    assert outside.stat().st_mode & 0o777 == 0o600
    assert root.stat().st_mode & 0o777 == 0o755


def test_apply_tree_permissions_unreadable_root(tmp_path: Path) -> None:
    """A tree that cannot be listed is an error, not a silent no-op."""
    with pytest.raises(WebRootError, match="Cannot walk"):
        apply_tree_permissions(
            tmp_path / "missing", uid=os.getuid(), gid=os.getgid(), mode=0o755
        )


def test_resolve_owner(owner: tuple[str, str]) -> None:
    """Known names map to the current ids."""
    user, group = owner

    assert resolve_owner(user, group) == (os.getuid(), os.getgid())


def test_unknown_owner_is_an_error(owner: tuple[str, str]) -> None:
    """Missing accounts raise WebRootError before anything is created."""
    with pytest.raises(WebRootError, match="does not exist"):
        resolve_owner("siteprov-no-such-user", owner[1])
    with pytest.raises(WebRootError, match="Group"):
        resolve_owner(owner[0], "siteprov-no-such-group")
