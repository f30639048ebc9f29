"""Configuration loader for siteprov.

The provisioning run targets a single site whose values are fixed in the
dataclass defaults below. Only host paths, binary names and the account that
owns the web root can be adjusted, merged in this order:

1. Built-in defaults.
2. ``/etc/siteprov/config.yml`` (or an override path).
3. Environment variables prefixed with ``SITEPROV_``.
4. Explicit overrides supplied programmatically.

Environment keys use double underscores to express nesting, e.g.::

    export SITEPROV_NGINX__NGINX_BIN=/usr/sbin/nginx
    export SITEPROV_LOGS_DIR=/tmp/siteprov

Values are coerced via PyYAML's ``safe_load``. The resulting configuration is
exposed as immutable ``dataclasses``.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

import yaml

ENV_PREFIX = "SITEPROV_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

DOMAIN = "obscpsl.ru"


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class SiteConfig:
    """Domain and document root settings for the provisioned site."""

    domain: str = DOMAIN
    www_root: Path = Path("/var/www")
    owner: str = "www-data"
    group: str = "www-data"
    mode: int = 0o755
    index_file: str = "index.html"
    lang: str = "en"

    @property
    def www_domain(self) -> str:
        """Return the ``www.`` alias served alongside the primary domain."""
        return f"www.{self.domain}"

    @property
    def server_names(self) -> tuple[str, str]:
        """Return both hostnames bound to the virtual host."""
        return (self.domain, self.www_domain)

    @property
    def site_dir(self) -> Path:
        """Return ``/var/www/<domain>``; ownership is applied from here down."""
        return self.www_root / self.domain

    @property
    def web_root(self) -> Path:
        """Return the directory nginx serves static files from."""
        return self.site_dir / "html"

    @property
    def app_dir(self) -> Path:
        """Return the suggested checkout location for the Node application."""
        return self.site_dir / "app"


@dataclass(frozen=True)
class UpstreamConfig:
    """Loopback development server that nginx falls back to."""

    host: str = "127.0.0.1"
    port: int = 3000
    location_name: str = "node_dev_server"

    @property
    def url(self) -> str:
        """Return the ``proxy_pass`` target."""
        return f"http://{self.host}:{self.port}"


@dataclass(frozen=True)
class AptConfig:
    """Package manager binary and the packages installed on every run."""

    apt_get_bin: str = "apt-get"
    packages: tuple[str, ...] = (
        "ca-certificates",
        "curl",
        "gnupg",
        "lsb-release",
        "nginx",
        "certbot",
        "python3-certbot-nginx",
    )


@dataclass(frozen=True)
class SystemdConfig:
    """Service manager configuration values."""

    systemctl_bin: str = "systemctl"


@dataclass(frozen=True)
class NodeConfig:
    """Node.js version gate and NodeSource bootstrap settings."""

    minimum_major: int = 16
    setup_script_url: str = "https://deb.nodesource.com/setup_18.x"
    package: str = "nodejs"
    node_bin: str = "node"
    curl_bin: str = "curl"
    bash_bin: str = "bash"


@dataclass(frozen=True)
class NginxConfig:
    """nginx paths, binaries and static asset caching."""

    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    log_dir: Path = Path("/var/log/nginx")
    nginx_bin: str = "nginx"
    service: str = "nginx"
    remove_default_site: bool = True
    static_expires: str = "7d"


@dataclass(frozen=True)
class CertbotConfig:
    """ACME client invocation settings."""

    certbot_bin: str = "certbot"
    email_env: str = "CERTBOT_EMAIL"
    redirect: bool = False
    live_dir: Path = Path("/etc/letsencrypt/live")


@dataclass(frozen=True)
class InstructionsConfig:
    """Operator instruction document settings."""

    path: Path = Path("/root") / f"{DOMAIN}_nginx_node_instructions.txt"
    mode: int = 0o600
    dev_service: str = "obscpsl-dev.service"


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for siteprov."""

    config_file: Path
    logs_dir: Path
    site: SiteConfig = field(default_factory=SiteConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    apt: AptConfig = field(default_factory=AptConfig)
    systemd: SystemdConfig = field(default_factory=SystemdConfig)
    node: NodeConfig = field(default_factory=NodeConfig)
    nginx: NginxConfig = field(default_factory=NginxConfig)
    certbot: CertbotConfig = field(default_factory=CertbotConfig)
    instructions: InstructionsConfig = field(default_factory=InstructionsConfig)


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/siteprov/config.yml",
    "logs_dir": "/var/log/siteprov",
    "site": {
        "www_root": "/var/www",
        "owner": "www-data",
        "group": "www-data",
    },
    "apt": {
        "apt_get_bin": "apt-get",
    },
    "systemd": {
        "systemctl_bin": "systemctl",
    },
    "node": {
        "node_bin": "node",
        "curl_bin": "curl",
        "bash_bin": "bash",
    },
    "nginx": {
        "sites_available": "/etc/nginx/sites-available",
        "sites_enabled": "/etc/nginx/sites-enabled",
        "log_dir": "/var/log/nginx",
        "nginx_bin": "nginx",
    },
    "certbot": {
        "certbot_bin": "certbot",
        "live_dir": "/etc/letsencrypt/live",
    },
    "instructions": {
        "path": str(InstructionsConfig().path),
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_SECTION_KEYS: dict[str, set[str]] = {
    section: set(cast(Mapping[str, object], value).keys())
    for section, value in DEFAULTS.items()
    if isinstance(value, Mapping)
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in ALLOWED_SECTION_KEYS.items():
        mapping = _as_dict(raw.get(section), section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    site_mapping = _as_dict(raw.get("site"), "site")
    apt_mapping = _as_dict(raw.get("apt"), "apt")
    systemd_mapping = _as_dict(raw.get("systemd"), "systemd")
    node_mapping = _as_dict(raw.get("node"), "node")
    nginx_mapping = _as_dict(raw.get("nginx"), "nginx")
    certbot_mapping = _as_dict(raw.get("certbot"), "certbot")
    instructions_mapping = _as_dict(raw.get("instructions"), "instructions")

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        logs_dir=_to_path(raw.get("logs_dir")),
        site=SiteConfig(
            www_root=_to_path(site_mapping.get("www_root")),
            owner=_expect_name(site_mapping.get("owner"), "site.owner"),
            group=_expect_name(site_mapping.get("group"), "site.group"),
        ),
        apt=AptConfig(
            apt_get_bin=_expect_name(apt_mapping.get("apt_get_bin"), "apt.apt_get_bin"),
        ),
        systemd=SystemdConfig(
            systemctl_bin=_expect_name(
                systemd_mapping.get("systemctl_bin"), "systemd.systemctl_bin"
            ),
        ),
        node=NodeConfig(
            node_bin=_expect_name(node_mapping.get("node_bin"), "node.node_bin"),
            curl_bin=_expect_name(node_mapping.get("curl_bin"), "node.curl_bin"),
            bash_bin=_expect_name(node_mapping.get("bash_bin"), "node.bash_bin"),
        ),
        nginx=NginxConfig(
            sites_available=_to_path(nginx_mapping.get("sites_available")),
            sites_enabled=_to_path(nginx_mapping.get("sites_enabled")),
            log_dir=_to_path(nginx_mapping.get("log_dir")),
            nginx_bin=_expect_name(nginx_mapping.get("nginx_bin"), "nginx.nginx_bin"),
        ),
        certbot=CertbotConfig(
            certbot_bin=_expect_name(certbot_mapping.get("certbot_bin"), "certbot.certbot_bin"),
            live_dir=_to_path(certbot_mapping.get("live_dir")),
        ),
        instructions=InstructionsConfig(
            path=_to_path(instructions_mapping.get("path")),
        ),
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str) and value.strip():
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_name(value: object, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{label} must be a non-empty string.")
    return value.strip()


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "AptConfig",
    "CertbotConfig",
    "ConfigError",
    "DOMAIN",
    "InstructionsConfig",
    "NginxConfig",
    "NodeConfig",
    "SiteConfig",
    "SystemdConfig",
    "UpstreamConfig",
    "load_config",
]
