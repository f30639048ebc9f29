"""Nginx provider for the reverse-proxy virtual host."""
from __future__ import annotations

import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..templates import TemplateEngine
from .systemd import SystemdProvider


class NginxError(RuntimeError):
    """Raised when nginx operations fail."""


@dataclass(slots=True)
class NginxRenderResult:
    """Outcome of writing and applying the site configuration."""

    path: Path
    changed: bool
    enabled_path: Path | None = None
    default_removed: bool = False
    validation: subprocess.CompletedProcess[str] | None = None
    reload: subprocess.CompletedProcess[str] | None = None


@dataclass(slots=True)
class NginxProvider:
    """Render, enable, validate and reload the site's nginx configuration."""

    templates: TemplateEngine
    systemd: SystemdProvider
    site_name: str
    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    nginx_bin: str = "nginx"
    service: str = "nginx"
    template_name: str = "nginx/site.conf.j2"

    @property
    def site_path(self) -> Path:
        """Return the path to the nginx site configuration file."""
        return self.sites_available / self.site_name

    @property
    def enabled_path(self) -> Path:
        """Return the path of the activation symlink in sites-enabled."""
        return self.sites_enabled / self.site_name

    @property
    def default_site_path(self) -> Path:
        """Return the distribution's stock ``default`` site link."""
        return self.sites_enabled / "default"

    def write_site(self, context: Mapping[str, object]) -> bool:
        """Render the site configuration, overwriting any previous file."""
        return self.templates.render_to_path(
            self.template_name,
            self.site_path,
            context,
            mode=0o644,
        )

    def apply(
        self,
        context: Mapping[str, object],
        *,
        remove_default: bool = True,
    ) -> NginxRenderResult:
        """Write, enable, validate and reload the site configuration.

        ``nginx -t`` always runs before the reload. A validation failure raises
        :class:`NginxError` and nginx is left running its previous
        configuration. The written file and symlink are not rolled back.
        """
        changed = self.write_site(context)
        self.enable()
        default_removed = self.disable_default() if remove_default else False
        validation = self.test_config()
        reload_result = self.reload()
        return NginxRenderResult(
            path=self.site_path,
            changed=changed,
            enabled_path=self.enabled_path,
            default_removed=default_removed,
            validation=validation,
            reload=reload_result,
        )

    def enable(self) -> None:
        """Enable the site by pointing the sites-enabled symlink at it."""
        source = self.site_path
        target = self.enabled_path
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists() or target.is_symlink():
            try:
                if target.is_symlink() and target.resolve() == source.resolve():
                    return
            except FileNotFoundError:
                # Broken symlink; replace it with a fresh one.
                pass
            target.unlink()
        target.symlink_to(source)

    def disable_default(self) -> bool:
        """Remove the stock ``default`` site; return ``True`` if it existed."""
        target = self.default_site_path
        if not target.exists() and not target.is_symlink():
            return False
        target.unlink()
        return True

    def test_config(self) -> subprocess.CompletedProcess[str]:
        """Run ``nginx -t`` to validate the configuration."""
        return self._run_nginx(["-t"])

    def reload(self) -> subprocess.CompletedProcess[str]:
        """Reload nginx through the service manager."""
        return self.systemd.reload(self.service)

    # ------------------------------------------------------------------
    def _run_nginx(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        command = [self.nginx_bin, *args]
        try:
            result = subprocess.run(  # noqa: S603, S607
                command,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise NginxError(f"{self.nginx_bin} not found: {exc}") from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "no output").strip()
            raise NginxError(
                f"{self.nginx_bin} {' '.join(args)} failed (exit {result.returncode}): {message}"
            )
        return result


__all__ = ["NginxError", "NginxProvider", "NginxRenderResult"]
