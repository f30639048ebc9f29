"""Document root provisioning: directory tree, ownership, placeholder page."""
from __future__ import annotations

import grp
import os
import pwd
from dataclasses import dataclass
from pathlib import Path

from .config import SiteConfig
from .templates import TemplateEngine


class WebRootError(RuntimeError):
    """Raised when the document root cannot be prepared."""


@dataclass(slots=True)
class WebRootResult:
    """Outcome of :meth:`WebRootProvisioner.ensure`."""

    web_root: Path
    index_path: Path
    created_root: bool
    placeholder_written: bool


@dataclass(slots=True)
class WebRootProvisioner:
    """Create the site's document root and seed a placeholder page once."""

    site: SiteConfig
    templates: TemplateEngine
    template_name: str = "web/index.html.j2"
    placeholder_mode: int = 0o644

    @property
    def index_path(self) -> Path:
        """Return the placeholder page location."""
        return self.site.web_root / self.site.index_file

    def ensure(self) -> WebRootResult:
        """Create the tree, apply ownership and permissions, seed the page.

        Existing page content is never touched; only a missing page is written.
        """
        uid, gid = resolve_owner(self.site.owner, self.site.group)
        web_root = self.site.web_root
        created_root = not web_root.exists()
        web_root.mkdir(parents=True, exist_ok=True)
        apply_tree_permissions(self.site.site_dir, uid=uid, gid=gid, mode=self.site.mode)

        index_path = self.index_path
        placeholder_written = False
        if not index_path.is_file():
            content = self.templates.render_to_string(
                self.template_name,
                {"domain": self.site.domain, "lang": self.site.lang},
            )
            index_path.write_text(content, encoding="utf-8")
            index_path.chmod(self.placeholder_mode)
            os.chown(index_path, uid, gid)
            placeholder_written = True

        return WebRootResult(
            web_root=web_root,
            index_path=index_path,
            created_root=created_root,
            placeholder_written=placeholder_written,
        )


def resolve_owner(user: str, group: str) -> tuple[int, int]:
    """Return ``(uid, gid)`` for *user* and *group*."""
    try:
        uid = pwd.getpwnam(user).pw_uid
    except KeyError as exc:
        raise WebRootError(f"User '{user}' does not exist.") from exc
    try:
        gid = grp.getgrnam(group).gr_gid
    except KeyError as exc:
        raise WebRootError(f"Group '{group}' does not exist.") from exc
    return uid, gid


def _raise_walk_error(exc: OSError) -> None:
    raise WebRootError(f"Cannot walk {exc.filename}: {exc.strerror or exc}") from exc


def apply_tree_permissions(root: Path, *, uid: int, gid: int, mode: int) -> None:
    """Recursively ``chown uid:gid`` and ``chmod mode`` everything under *root*."""
    for current, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        current_path = Path(current)
        os.chown(current_path, uid, gid)
        current_path.chmod(mode)
        for name in (*dirnames, *filenames):
            path = current_path / name
            if path.is_symlink():
                os.chown(path, uid, gid, follow_symlinks=False)
                continue
            os.chown(path, uid, gid)
            if path.is_file():
                path.chmod(mode)


__all__ = [
    "WebRootError",
    "WebRootProvisioner",
    "WebRootResult",
    "apply_tree_permissions",
    "resolve_owner",
]
