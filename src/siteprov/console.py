"""Human-facing console output for provisioning runs."""
from __future__ import annotations

from dataclasses import dataclass, field

from rich.console import Console
from rich.markup import escape

_INFO = f"[green]{escape('[INFO]')}[/green]"
_WARN = f"[yellow]{escape('[WARN]')}[/yellow]"
_ERROR = f"[red]{escape('[ERROR]')}[/red]"


def _stdout_console() -> Console:
    return Console(soft_wrap=True, highlight=False)


def _stderr_console() -> Console:
    return Console(stderr=True, soft_wrap=True, highlight=False)


@dataclass(slots=True)
class Reporter:
    """Print progress on stdout and problems on stderr."""

    out: Console = field(default_factory=_stdout_console)
    err: Console = field(default_factory=_stderr_console)

    def info(self, message: str) -> None:
        """Report progress."""
        self.out.print(f"{_INFO} {escape(message)}")

    def warn(self, message: str) -> None:
        """Report a recoverable problem."""
        self.err.print(f"{_WARN} {escape(message)}")

    def error(self, message: str) -> None:
        """Report a fatal problem."""
        self.err.print(f"{_ERROR} {escape(message)}")

    def plain(self, message: str = "") -> None:
        """Print an unprefixed line."""
        self.out.print(escape(message))


__all__ = ["Reporter"]
