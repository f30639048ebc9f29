"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import grp
import os
import pwd
from pathlib import Path

import pytest
import yaml

from siteprov.config import AppConfig, load_config


def current_owner() -> tuple[str, str]:
    """Return the user and group names of the test process."""
    return pwd.getpwuid(os.getuid()).pw_name, grp.getgrgid(os.getgid()).gr_name


def config_overrides(tmp_path: Path) -> dict[str, object]:
    """Point every host path used by siteprov into *tmp_path*."""
    user, group = current_owner()
    return {
        "logs_dir": str(tmp_path / "log" / "siteprov"),
        "site": {
            "www_root": str(tmp_path / "www"),
            "owner": user,
            "group": group,
        },
        "nginx": {
            "sites_available": str(tmp_path / "nginx" / "sites-available"),
            "sites_enabled": str(tmp_path / "nginx" / "sites-enabled"),
            "log_dir": str(tmp_path / "log" / "nginx"),
        },
        "certbot": {
            "live_dir": str(tmp_path / "letsencrypt" / "live"),
        },
        "instructions": {
            "path": str(tmp_path / "root" / "obscpsl.ru_nginx_node_instructions.txt"),
        },
    }


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    """Return a configuration whose filesystem paths live under ``tmp_path``."""
    return load_config(
        config_file=tmp_path / "missing.yml",
        env={},
        overrides=config_overrides(tmp_path),
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def owner() -> tuple[str, str]:
    """Return ``(user, group)`` names the test process may chown files to."""
    return current_owner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write the temporary-path overrides to a YAML file and return its path."""
    path = tmp_path / "etc" / "siteprov" / "config.yml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(config_overrides(tmp_path)), encoding="utf-8")
    return path
