"""Helpers for enforcing a minimum Node.js runtime via the NodeSource repository."""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field

from packaging.version import InvalidVersion, Version

from .providers.apt import AptProvider

LOGGER = logging.getLogger(__name__)


class NodeRuntimeError(RuntimeError):
    """Raised when Node runtime management fails."""


class NodeVersionError(NodeRuntimeError):
    """Raised when ``node --version`` output cannot be parsed."""


@dataclass(slots=True)
class NodeVersionInfo:
    """Parsed Node version details."""

    raw: str
    version: str
    major: int
    minor: int
    patch: int

    def satisfies(self, minimum_major: int) -> bool:
        """Return ``True`` when the major version meets *minimum_major*."""
        return self.major >= minimum_major


@dataclass(slots=True)
class NodeEnsureResult:
    """Outcome of :meth:`NodeRuntimeManager.ensure_minimum`."""

    version: NodeVersionInfo
    minimum_major: int
    installation_performed: bool
    previous: NodeVersionInfo | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class NodeRuntimeManager:
    """Detect the installed Node.js and install a newer one when required."""

    apt: AptProvider
    setup_script_url: str = "https://deb.nodesource.com/setup_18.x"
    package: str = "nodejs"
    node_bin: str = "node"
    curl_bin: str = "curl"
    bash_bin: str = "bash"

    def detect_version(self) -> NodeVersionInfo | None:
        """Return the currently available Node version.

        ``None`` means node is not installed (or printed nothing). Output that
        is present but unparseable raises :class:`NodeVersionError`.
        """
        try:
            result = subprocess.run(  # noqa: S603,S607
                [self.node_bin, "--version"],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            return None
        output = (result.stdout or result.stderr or "").strip()
        if not output:
            return None
        return parse_node_version(output)

    def ensure_minimum(self, minimum_major: int) -> NodeEnsureResult:
        """Ensure a Node runtime with ``major >= minimum_major`` is on PATH.

        When the detected runtime already qualifies nothing is downloaded.
        A malformed version string counts as unusable and triggers the
        installer.
        """
        warnings: list[str] = []
        try:
            current = self.detect_version()
        except NodeVersionError as exc:
            message = f"{exc}; reinstalling Node.js."
            LOGGER.warning(message)
            warnings.append(message)
            current = None

        if current is not None and current.satisfies(minimum_major):
            LOGGER.debug(
                "Node.js %s satisfies minimum major %s.", current.version, minimum_major
            )
            return NodeEnsureResult(
                version=current,
                minimum_major=minimum_major,
                installation_performed=False,
                previous=current,
                warnings=warnings,
            )

        if current is not None:
            message = (
                f"Node.js {current.version} is older than {minimum_major}; "
                "installing a supported release."
            )
            LOGGER.warning(message)
            warnings.append(message)

        self.install()

        try:
            installed = self.detect_version()
        except NodeVersionError as exc:
            raise NodeRuntimeError(f"Node.js installed but {exc}") from exc
        if installed is None:
            raise NodeRuntimeError(
                f"{self.package} was installed but '{self.node_bin}' is not on PATH."
            )
        if not installed.satisfies(minimum_major):
            raise NodeRuntimeError(
                f"Installed Node.js {installed.version} is still older than {minimum_major}."
            )
        LOGGER.debug("Installed Node.js %s.", installed.version)
        return NodeEnsureResult(
            version=installed,
            minimum_major=minimum_major,
            installation_performed=True,
            previous=current,
            warnings=warnings,
        )

    def install(self) -> None:
        """Register the NodeSource repository and install the runtime package."""
        script = self._download_setup_script()
        self._run(
            [self.bash_bin, "-"],
            input_text=script,
            error_prefix=f"NodeSource setup script ({self.setup_script_url})",
        )
        self.apt.install([self.package])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _download_setup_script(self) -> str:
        result = self._run(
            [self.curl_bin, "-fsSL", self.setup_script_url],
            error_prefix=f"{self.curl_bin} {self.setup_script_url}",
        )
        script = result.stdout or ""
        if not script.strip():
            raise NodeRuntimeError(
                f"NodeSource setup script at {self.setup_script_url} was empty."
            )
        return script

    def _run(
        self,
        args: Sequence[str],
        *,
        error_prefix: str,
        input_text: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603,S607
                list(args),
                input=input_text,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise NodeRuntimeError(f"{args[0]} not found: {exc}") from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip() or "unknown error"
            raise NodeRuntimeError(
                f"{error_prefix} failed (exit {result.returncode}): {message}"
            )
        return result


def parse_node_version(raw: str) -> NodeVersionInfo:
    """Parse ``node --version`` output such as ``v18.19.1``."""
    text = raw.strip()
    if not text.startswith("v"):
        raise NodeVersionError(f"Unrecognised Node.js version string {raw!r}")
    try:
        parsed = Version(text[1:])
    except InvalidVersion as exc:
        raise NodeVersionError(f"Unrecognised Node.js version string {raw!r}") from exc
    release = (*parsed.release, 0, 0)
    return NodeVersionInfo(
        raw=text,
        version=text[1:],
        major=release[0],
        minor=release[1],
        patch=release[2],
    )


__all__ = [
    "NodeEnsureResult",
    "NodeRuntimeError",
    "NodeRuntimeManager",
    "NodeVersionError",
    "NodeVersionInfo",
    "parse_node_version",
]
