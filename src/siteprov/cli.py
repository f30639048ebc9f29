"""Typer entry point for ``siteprov``.

Running ``siteprov`` as root provisions the configured site end to end. The
only runtime input is the optional ``CERTBOT_EMAIL`` environment variable;
when it is unset the operator is prompted for an address.
"""
from __future__ import annotations

import os
import textwrap
from pathlib import Path

import typer

from . import __version__
from .config import ConfigError, load_config
from .console import Reporter
from .exit_codes import ExitCode
from .provision import (
    PrivilegeError,
    ProvisionError,
    Provisioner,
    ProvisionSummary,
    require_root,
)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to siteprov's YAML config file.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Provision nginx, Node.js and a Let's Encrypt certificate for one site.

        Installs the required packages, writes the reverse-proxy virtual host,
        requests a certificate (set CERTBOT_EMAIL to skip the prompt) and
        leaves operator instructions next to root's home directory.
        """
    ).strip(),
)


def _effective_uid() -> int:
    return os.geteuid()


def _prompt_email(text: str) -> str:
    """Ask for the notification email; EOF or Ctrl-D counts as no answer."""
    try:
        return str(typer.prompt(text, default="", show_default=False))
    except typer.Abort:
        return ""


def _render_summary(summary: ProvisionSummary, reporter: Reporter) -> None:
    reporter.plain()
    reporter.info("Provisioning complete.")
    reporter.plain(f"Site files directory: {summary.web_root}")
    if summary.node is not None:
        reporter.plain(f"Node.js version: {summary.node.version.version}")
    certificate = summary.certificate
    if certificate is not None:
        if certificate.status == "issued":
            detail = "issued"
            if certificate.certificate is not None:
                expires = certificate.certificate.not_valid_after.date().isoformat()
                detail = f"issued, expires {expires}"
            reporter.plain(f"TLS certificate: {detail}")
        else:
            reporter.plain(f"TLS certificate: {certificate.status}")
    path = summary.instructions_path
    if path is not None and path.exists():
        reporter.plain(f"npm project instructions saved to: {path}")
    if summary.warnings:
        reporter.plain("Warnings:")
        for warning in summary.warnings:
            reporter.warn(f"  {warning}")
    reporter.plain()


@app.command()
def provision(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the siteprov version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Provision the web server host.

    Set CERTBOT_EMAIL to skip the notification email prompt.
    """
    reporter = Reporter()
    if version:
        reporter.plain(f"siteprov {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    try:
        require_root(_effective_uid())
    except PrivilegeError as exc:
        reporter.error(str(exc))
        raise typer.Exit(code=ExitCode.FATAL) from exc

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        reporter.error(str(exc))
        raise typer.Exit(code=ExitCode.CONFIG) from exc

    provisioner = Provisioner.from_config(
        config,
        reporter=reporter,
        prompt=_prompt_email,
        euid=_effective_uid,
    )
    try:
        summary = provisioner.run()
    except ProvisionError as exc:
        reporter.error(str(exc))
        raise typer.Exit(code=ExitCode.FATAL) from exc

    _render_summary(summary, reporter)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
