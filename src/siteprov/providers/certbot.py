"""Certbot provider for requesting Let's Encrypt certificates via the nginx plugin."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field


@dataclass(slots=True)
class CertbotResult:
    """Outcome of a certificate request."""

    success: bool
    command: list[str]
    returncode: int | None = None
    message: str = ""
    domains: tuple[str, ...] = field(default_factory=tuple)


@dataclass(slots=True)
class CertbotProvider:
    """Run ``certbot --nginx`` non-interactively.

    Certificate issuance is best-effort: :meth:`obtain` reports failures in the
    returned :class:`CertbotResult` and never raises for command failures.
    """

    certbot_bin: str = "certbot"
    redirect: bool = False

    def build_command(self, email: str, domains: Sequence[str]) -> list[str]:
        """Return the certbot command line for *domains*."""
        if not domains:
            raise ValueError("At least one domain is required.")
        command = [
            self.certbot_bin,
            "--nginx",
            "--agree-tos",
            "--email",
            email,
            "--redirect" if self.redirect else "--no-redirect",
            "--non-interactive",
        ]
        for domain in domains:
            command.extend(["-d", domain])
        return command

    def manual_command(self, domains: Sequence[str]) -> str:
        """Return the command an operator can run to retry by hand."""
        flags = " ".join(f"-d {domain}" for domain in domains)
        return f"{self.certbot_bin} --nginx {flags}"

    def obtain(self, email: str, domains: Sequence[str]) -> CertbotResult:
        """Request and install a certificate covering *domains*."""
        command = self.build_command(email, domains)
        try:
            result = self._run_certbot(command)
        except FileNotFoundError as exc:
            return CertbotResult(
                success=False,
                command=command,
                message=f"{self.certbot_bin} not found: {exc}",
                domains=tuple(domains),
            )
        except OSError as exc:
            return CertbotResult(
                success=False,
                command=command,
                message=f"{self.certbot_bin} could not be run: {exc}",
                domains=tuple(domains),
            )
        output = (result.stderr or result.stdout or "").strip()
        if result.returncode != 0:
            return CertbotResult(
                success=False,
                command=command,
                returncode=result.returncode,
                message=(
                    f"{self.certbot_bin} failed (exit {result.returncode}): "
                    f"{output or 'no output'}"
                ),
                domains=tuple(domains),
            )
        return CertbotResult(
            success=True,
            command=command,
            returncode=result.returncode,
            message=output,
            domains=tuple(domains),
        )

    # ------------------------------------------------------------------
    def _run_certbot(self, command: Sequence[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(  # noqa: S603, S607
            list(command),
            capture_output=True,
            text=True,
            check=False,
        )


__all__ = ["CertbotProvider", "CertbotResult"]
