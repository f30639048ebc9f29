"""Systemd provider for enabling, restarting and reloading services."""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)


class SystemdError(RuntimeError):
    """Raised when systemd operations fail."""


@dataclass(slots=True)
class SystemdProvider:
    """Drive ``systemctl`` for host services such as nginx."""

    systemctl_bin: str = "systemctl"

    def enable(self, unit: str, *, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Enable *unit* at boot.

        With ``check=False`` a failure is logged and returned instead of raised.
        """
        result = self._systemctl("enable", unit, check=check)
        if result.returncode != 0:
            LOGGER.warning(
                "systemctl enable %s exited %s; continuing.", unit, result.returncode
            )
        return result

    def restart(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Restart *unit*."""
        return self._systemctl("restart", unit)

    def reload(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Ask *unit* to reload its configuration."""
        return self._systemctl("reload", unit)

    # ------------------------------------------------------------------
    def _systemctl(
        self,
        command: str,
        unit: str | None = None,
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        args: list[str] = [self.systemctl_bin, command]
        if unit is not None:
            args.append(unit)
        return self._run_command(
            args,
            check=check,
            error_prefix=f"{self.systemctl_bin} {command} {unit or ''}".rstrip(),
        )

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            if not check:
                return subprocess.CompletedProcess(
                    list(args), returncode=127, stdout="", stderr=str(exc)
                )
            raise SystemdError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise SystemdError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["SystemdError", "SystemdProvider"]
