"""The provisioning sequence.

Steps run strictly in order and stop at the first fatal error. Nothing is
rolled back: whatever earlier steps changed on the host stays in place. The
certificate request is the only step allowed to fail without aborting the run.
"""
from __future__ import annotations

import os
import subprocess
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .config import AppConfig
from .console import Reporter
from .instructions import InstructionsError, InstructionsWriter, build_context
from .logging import OperationScope, StructuredLogger
from .node_runtime import NodeEnsureResult, NodeRuntimeError, NodeRuntimeManager
from .providers import (
    AptError,
    AptProvider,
    CertbotProvider,
    NginxError,
    NginxProvider,
    NginxRenderResult,
    SystemdError,
    SystemdProvider,
)
from .templates import TemplateEngine, TemplateRenderError
from .tls import CertificateInfo, CertificateInspector, TLSInspectionError
from .webroot import WebRootError, WebRootProvisioner, WebRootResult

EMAIL_PROMPT = "Email for Let's Encrypt notifications"

FATAL_ERRORS: tuple[type[Exception], ...] = (
    AptError,
    SystemdError,
    NodeRuntimeError,
    NginxError,
    WebRootError,
    InstructionsError,
    TemplateRenderError,
    OSError,
)


class ProvisionError(RuntimeError):
    """Raised when a provisioning step fails and the run must stop."""

    def __init__(self, step: str, message: str) -> None:
        """Record the failing *step* alongside the error *message*."""
        super().__init__(message)
        self.step = step


class PrivilegeError(ProvisionError):
    """Raised when the run is not executed as root."""


def require_root(euid: int) -> None:
    """Abort unless the effective user is root."""
    if euid != 0:
        raise PrivilegeError(
            "privileges",
            "This command must be run as root (use sudo).",
        )


def build_nginx_context(config: AppConfig) -> dict[str, object]:
    """Return the render context for the site's nginx virtual host."""
    site = config.site
    log_dir = config.nginx.log_dir
    return {
        "server_names": list(site.server_names),
        "web_root": str(site.web_root),
        "access_log": str(log_dir / f"{site.domain}.access.log"),
        "error_log": str(log_dir / f"{site.domain}.error.log"),
        "upstream_location": config.upstream.location_name,
        "upstream_url": config.upstream.url,
        "static_expires": config.nginx.static_expires,
    }


@dataclass(slots=True)
class CertificateOutcome:
    """Result of the best-effort certificate step."""

    status: Literal["issued", "skipped", "failed"]
    message: str
    email: str | None = None
    manual_command: str | None = None
    certificate: CertificateInfo | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ProvisionSummary:
    """Everything the final report needs to know about the run."""

    web_root: Path
    instructions_path: Path | None = None
    node: NodeEnsureResult | None = None
    web: WebRootResult | None = None
    nginx: NginxRenderResult | None = None
    certificate: CertificateOutcome | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Provisioner:
    """Run the provisioning steps for the configured site."""

    config: AppConfig
    apt: AptProvider
    systemd: SystemdProvider
    node: NodeRuntimeManager
    web: WebRootProvisioner
    nginx: NginxProvider
    certbot: CertbotProvider
    inspector: CertificateInspector
    instructions: InstructionsWriter
    logger: StructuredLogger
    reporter: Reporter
    env: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    prompt: Callable[[str], str] | None = None
    euid: Callable[[], int] = os.geteuid

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        reporter: Reporter | None = None,
        prompt: Callable[[str], str] | None = None,
        env: Mapping[str, str] | None = None,
        euid: Callable[[], int] = os.geteuid,
    ) -> Provisioner:
        """Wire providers from *config*."""
        templates = TemplateEngine.packaged()
        apt = AptProvider(apt_get_bin=config.apt.apt_get_bin)
        systemd = SystemdProvider(systemctl_bin=config.systemd.systemctl_bin)
        node = NodeRuntimeManager(
            apt=apt,
            setup_script_url=config.node.setup_script_url,
            package=config.node.package,
            node_bin=config.node.node_bin,
            curl_bin=config.node.curl_bin,
            bash_bin=config.node.bash_bin,
        )
        nginx = NginxProvider(
            templates=templates,
            systemd=systemd,
            site_name=config.site.domain,
            sites_available=config.nginx.sites_available,
            sites_enabled=config.nginx.sites_enabled,
            nginx_bin=config.nginx.nginx_bin,
            service=config.nginx.service,
        )
        return cls(
            config=config,
            apt=apt,
            systemd=systemd,
            node=node,
            web=WebRootProvisioner(site=config.site, templates=templates),
            nginx=nginx,
            certbot=CertbotProvider(
                certbot_bin=config.certbot.certbot_bin,
                redirect=config.certbot.redirect,
            ),
            inspector=CertificateInspector(live_dir=config.certbot.live_dir),
            instructions=InstructionsWriter(
                templates=templates,
                path=config.instructions.path,
                mode=config.instructions.mode,
            ),
            logger=StructuredLogger(config.logs_dir),
            reporter=reporter or Reporter(),
            env=dict(os.environ if env is None else env),
            prompt=prompt,
            euid=euid,
        )

    def run(self) -> ProvisionSummary:
        """Execute every step in order and return the summary."""
        require_root(self.euid())
        summary = ProvisionSummary(web_root=self.config.site.web_root)
        self.refresh_packages()
        self.install_packages()
        self.start_nginx()
        summary.node = self.ensure_node()
        summary.warnings.extend(summary.node.warnings)
        summary.web = self.prepare_web_root()
        summary.nginx = self.configure_nginx()
        summary.certificate = self.obtain_certificate()
        if summary.certificate.status != "issued":
            summary.warnings.append(summary.certificate.message)
        summary.warnings.extend(summary.certificate.warnings)
        summary.instructions_path = self.write_instructions()
        return summary

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def refresh_packages(self) -> None:
        """Refresh the APT package index."""
        with self._step("apt.update") as op:
            self.reporter.info("Refreshing the APT package index...")
            self.apt.update()
            op.success("Package index refreshed.")

    def install_packages(self) -> None:
        """Install the web server, ACME client and helper packages."""
        packages = list(self.config.apt.packages)
        with self._step("apt.install", args={"packages": packages}) as op:
            self.reporter.info(f"Installing/upgrading packages: {' '.join(packages)}")
            self.apt.install(packages)
            op.success("Packages installed.", changed=len(packages))

    def start_nginx(self) -> None:
        """Enable nginx at boot (best-effort) and restart it."""
        service = self.config.nginx.service
        with self._step("systemd.restart", target={"unit": service}) as op:
            self.reporter.info(f"Enabling and starting {service}...")
            enabled = self.systemd.enable(service, check=False)
            self.systemd.restart(service)
            if enabled.returncode != 0:
                op.warning(
                    f"{service} restarted; enabling at boot failed.",
                    warnings=[f"systemctl enable {service} exited {enabled.returncode}"],
                )
            else:
                op.success(f"{service} enabled and restarted.", changed=1)

    def ensure_node(self) -> NodeEnsureResult:
        """Make sure a Node.js runtime of the minimum major version is installed."""
        minimum = self.config.node.minimum_major
        with self._step("node.ensure", args={"minimum_major": minimum}) as op:
            result = self.node.ensure_minimum(minimum)
            for message in result.warnings:
                self.reporter.warn(message)
            if result.installation_performed:
                self.reporter.info(f"Installed Node.js {result.version.raw}.")
            else:
                self.reporter.info(
                    f"Node.js {result.version.version} is already installed and "
                    f"satisfies >= {minimum}."
                )
            op.success(
                "Node.js runtime ready.",
                changed=int(result.installation_performed),
                warnings=result.warnings,
                context={
                    "version": result.version.version,
                    "installed": result.installation_performed,
                },
            )
            return result

    def prepare_web_root(self) -> WebRootResult:
        """Create the document root and its placeholder page."""
        site = self.config.site
        with self._step("webroot.ensure", target={"path": site.web_root}) as op:
            self.reporter.info(f"Creating web root directory {site.web_root}...")
            result = self.web.ensure()
            op.success(
                "Web root ready.",
                changed=int(result.created_root) + int(result.placeholder_written),
                context={"placeholder_written": result.placeholder_written},
            )
            return result

    def configure_nginx(self) -> NginxRenderResult:
        """Write and activate the virtual host, validating before reload."""
        site = self.config.site
        with self._step("nginx.apply", target={"site": self.nginx.site_path}) as op:
            self.reporter.info(f"Writing nginx configuration for {site.domain}...")
            result = self.nginx.apply(
                build_nginx_context(self.config),
                remove_default=self.config.nginx.remove_default_site,
            )
            self._report_output("nginx -t", result.validation)
            op.success(
                "nginx configuration validated and reloaded.",
                changed=int(result.changed),
                context={
                    "site": result.path,
                    "enabled": result.enabled_path,
                    "default_removed": result.default_removed,
                },
            )
            return result

    def obtain_certificate(self) -> CertificateOutcome:
        """Request a certificate for both hostnames; never fatal."""
        site = self.config.site
        domains = list(site.server_names)
        manual = self.certbot.manual_command(domains)
        with self.logger.operation(
            "certbot.obtain",
            args={"domains": domains},
            target={"kind": "certificate", "domain": site.domain},
        ) as op:
            email = self.resolve_email()
            if not email:
                message = (
                    "No email provided; skipping the Let's Encrypt certificate. "
                    "Configure the certificate manually later."
                )
                self.reporter.warn(message)
                op.warning(message, warnings=[message])
                return CertificateOutcome(
                    status="skipped", message=message, manual_command=manual
                )

            self.reporter.info(f"Requesting a Let's Encrypt certificate for {site.domain}...")
            result = self.certbot.obtain(email, domains)
            if not result.success:
                message = (
                    "Could not obtain a certificate automatically. Check the domain's "
                    "DNS records and retry manually:"
                )
                if result.message:
                    self.reporter.warn(result.message)
                self.reporter.warn(message)
                self.reporter.warn(f"  {manual}")
                op.warning(
                    message,
                    errors=[result.message],
                    context={"returncode": result.returncode, "manual_command": manual},
                )
                return CertificateOutcome(
                    status="failed",
                    message=f"{message} {manual}",
                    email=email,
                    manual_command=manual,
                )

            if result.message:
                self.reporter.plain(result.message)
            self.reporter.info(
                "Certificate installed. HTTPS is available without a forced HTTP redirect."
            )
            certificate, warnings = self._inspect_certificate(domains)
            for warning in warnings:
                self.reporter.warn(warning)
            context: dict[str, object] = {"email": email}
            if certificate is not None:
                context["certificate"] = certificate.to_dict()
            op.success("Certificate issued.", changed=1, warnings=warnings, context=context)
            return CertificateOutcome(
                status="issued",
                message="Certificate issued.",
                email=email,
                manual_command=manual,
                certificate=certificate,
                warnings=list(warnings),
            )

    def write_instructions(self) -> Path:
        """Render the operator instruction document."""
        path = self.config.instructions.path
        with self._step("instructions.write", target={"path": path}) as op:
            self.reporter.info(f"Writing operator instructions to {path}...")
            written = self.instructions.write(build_context(self.config))
            op.success("Instructions written.", changed=1)
            return written

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def resolve_email(self) -> str:
        """Return the notification email from the environment or a prompt."""
        email = (self.env.get(self.config.certbot.email_env) or "").strip()
        if email or self.prompt is None:
            return email
        return (self.prompt(EMAIL_PROMPT) or "").strip()

    def _inspect_certificate(
        self, domains: list[str]
    ) -> tuple[CertificateInfo | None, list[str]]:
        try:
            info = self.inspector.inspect(self.config.site.domain)
        except TLSInspectionError as exc:
            return None, [f"Certificate issued but could not be inspected: {exc}"]
        if not info.covers(domains):
            missing = ", ".join(sorted(set(domains) - set(info.names)))
            return info, [f"Issued certificate does not list: {missing}"]
        return info, []

    def _report_output(
        self, label: str, completed: subprocess.CompletedProcess[str] | None
    ) -> None:
        if completed is None:
            return
        output = completed.stderr or completed.stdout or ""
        for line in output.strip().splitlines():
            self.reporter.plain(f"  [{label}] {line}")

    @contextmanager
    def _step(
        self,
        name: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        with self.logger.operation(name, args=args, target=target) as op:
            try:
                yield op
            except FATAL_ERRORS as exc:
                op.error(str(exc), rc=1)
                raise ProvisionError(name, str(exc)) from exc


__all__ = [
    "CertificateOutcome",
    "PrivilegeError",
    "ProvisionError",
    "ProvisionSummary",
    "Provisioner",
    "build_nginx_context",
    "require_root",
]
