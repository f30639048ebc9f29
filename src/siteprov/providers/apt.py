"""APT provider for refreshing the package index and installing packages."""
from __future__ import annotations

import os
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass


class AptError(RuntimeError):
    """Raised when apt-get operations fail."""


@dataclass(slots=True)
class AptProvider:
    """Thin wrapper around ``apt-get`` for non-interactive installs."""

    apt_get_bin: str = "apt-get"

    def update(self) -> subprocess.CompletedProcess[str]:
        """Refresh the package index."""
        return self._run_apt(["update"])

    def install(self, packages: Sequence[str]) -> subprocess.CompletedProcess[str]:
        """Install (or upgrade) *packages*, answering yes to prompts."""
        if not packages:
            raise AptError("No packages requested for installation.")
        return self._run_apt(["install", "-y", *packages])

    # ------------------------------------------------------------------
    def _run_apt(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        command = [self.apt_get_bin, *args]
        env = os.environ.copy()
        env.setdefault("DEBIAN_FRONTEND", "noninteractive")
        try:
            result = subprocess.run(  # noqa: S603, S607
                command,
                capture_output=True,
                text=True,
                check=False,
                env=env,
            )
        except FileNotFoundError as exc:
            raise AptError(f"{self.apt_get_bin} not found: {exc}") from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "no output").strip()
            raise AptError(
                f"{self.apt_get_bin} {' '.join(args)} failed (exit {result.returncode}): {message}"
            )
        return result


__all__ = ["AptError", "AptProvider"]
