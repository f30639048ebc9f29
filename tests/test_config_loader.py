"""Configuration loader tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from siteprov.config import AppConfig, ConfigError, load_config


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    """Defaults describe the single obscpsl.ru site."""
    config = load_config(config_file=tmp_path / "missing.yml", env={})

    assert isinstance(config, AppConfig)
    assert config.logs_dir == Path("/var/log/siteprov")
    assert config.site.domain == "obscpsl.ru"
    assert config.site.server_names == ("obscpsl.ru", "www.obscpsl.ru")
    assert config.site.web_root == Path("/var/www/obscpsl.ru/html")
    assert (config.site.owner, config.site.group) == ("www-data", "www-data")
    assert config.site.mode == 0o755
    assert config.upstream.url == "http://127.0.0.1:3000"
    assert config.node.minimum_major == 16
    assert config.node.setup_script_url == "https://deb.nodesource.com/setup_18.x"
    assert config.nginx.sites_available == Path("/etc/nginx/sites-available")
    assert config.nginx.remove_default_site is True
    assert config.certbot.email_env == "CERTBOT_EMAIL"
    assert config.certbot.redirect is False
    assert config.instructions.path == Path("/root/obscpsl.ru_nginx_node_instructions.txt")
    assert config.instructions.mode == 0o600
    assert "python3-certbot-nginx" in config.apt.packages


def test_load_config_reads_yaml_file(tmp_path: Path) -> None:
    """Host paths and binaries are loaded from the YAML config file."""
    cfg = tmp_path / "siteprov.yml"
    cfg.write_text(
        "site:\n"
        "  www_root: /srv/www\n"
        "nginx:\n"
        "  nginx_bin: /usr/sbin/nginx\n"
        "certbot:\n"
        "  live_dir: /srv/letsencrypt/live\n"
    )

    config = load_config(config_file=cfg, env={})

    assert config.config_file == cfg
    assert config.site.web_root == Path("/srv/www/obscpsl.ru/html")
    assert config.nginx.nginx_bin == "/usr/sbin/nginx"
    assert config.certbot.live_dir == Path("/srv/letsencrypt/live")
    assert config.site.domain == "obscpsl.ru"


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    """Environment variables override defaults and file settings."""
    cfg = tmp_path / "siteprov.yml"
    cfg.write_text("nginx:\n  nginx_bin: /opt/nginx\n")
    env = {
        "SITEPROV_NGINX__NGINX_BIN": "/usr/local/sbin/nginx",
        "SITEPROV_NODE__CURL_BIN": "/usr/bin/curl",
        "SITEPROV_LOGS_DIR": str(tmp_path / "logs"),
        "UNRELATED": "ignored",
    }

    config = load_config(config_file=cfg, env=env)

    assert config.nginx.nginx_bin == "/usr/local/sbin/nginx"
    assert config.node.curl_bin == "/usr/bin/curl"
    assert config.logs_dir == tmp_path / "logs"


def test_config_file_env_var_selects_file(tmp_path: Path) -> None:
    """SITEPROV_CONFIG_FILE points the loader at another file."""
    cfg = tmp_path / "alt.yml"
    cfg.write_text("certbot:\n  certbot_bin: /snap/bin/certbot\n")

    config = load_config(env={"SITEPROV_CONFIG_FILE": str(cfg)})

    assert config.config_file == cfg
    assert config.certbot.certbot_bin == "/snap/bin/certbot"


def test_overrides_apply_last(tmp_path: Path) -> None:
    """Programmatic overrides win over environment values."""
    config = load_config(
        config_file=tmp_path / "missing.yml",
        env={"SITEPROV_SYSTEMD__SYSTEMCTL_BIN": "/bin/systemctl"},
        overrides={"systemd": {"systemctl_bin": "/usr/bin/systemctl"}},
    )
    assert config.systemd.systemctl_bin == "/usr/bin/systemctl"


def test_unknown_top_level_key_rejected(tmp_path: Path) -> None:
    """Unknown keys are reported."""
    cfg = tmp_path / "siteprov.yml"
    cfg.write_text("bogus: 1\n")
    with pytest.raises(ConfigError, match="Unknown configuration keys: bogus"):
        load_config(config_file=cfg, env={})


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"site": {"domain": "example.org"}}, "Unknown site configuration keys: domain"),
        ({"upstream": {"port": 4000}}, "Unknown configuration keys: upstream"),
        ({"templates_dir": "/etc/siteprov/templates"}, "Unknown configuration keys"),
        ({"node": {"minimum_major": 18}}, "Unknown node configuration keys"),
        ({"apt": {"packages": ["nginx"]}}, "Unknown apt configuration keys"),
    ],
)
def test_site_values_are_not_configurable(
    tmp_path: Path,
    overrides: dict[str, object],
    message: str,
) -> None:
    """Only host paths, binaries and the web root owner may be overridden."""
    with pytest.raises(ConfigError, match=message):
        load_config(config_file=tmp_path / "missing.yml", env={}, overrides=overrides)


def test_domain_env_override_rejected(tmp_path: Path) -> None:
    """The domain cannot be changed from the environment either."""
    with pytest.raises(ConfigError, match="domain"):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={"SITEPROV_SITE__DOMAIN": "example.org"},
        )


def test_empty_binary_rejected(tmp_path: Path) -> None:
    """Binary names must be non-empty strings."""
    with pytest.raises(ConfigError, match="nginx.nginx_bin"):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={},
            overrides={"nginx": {"nginx_bin": "  "}},
        )


def test_non_mapping_file_rejected(tmp_path: Path) -> None:
    """The config file must contain a mapping."""
    cfg = tmp_path / "siteprov.yml"
    cfg.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError, match="must contain a mapping"):
        load_config(config_file=cfg, env={})
