"""Configuration loader tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from svcbootstrap.config import AppConfig, ConfigError, load_config


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    """Defaults describe the msparking service."""
    config = load_config(config_file=tmp_path / "missing.yml", env={}, cwd=tmp_path)

    assert isinstance(config, AppConfig)
    assert config.service_name == "msparking"
    assert config.service_user == "msparking"
    assert config.service_group == "msparking"
    assert config.service_shell == "/bin/false"
    assert config.install_root == Path("/opt/msparking")
    assert config.config_dir == Path("/opt/msparking/config")
    assert config.binary_path == Path("/opt/msparking/msparking")
    assert config.default_config_path == Path("/opt/msparking/config/default.toml")
    assert config.unit_name == "msparking.service"
    assert config.systemd.unit_dir == Path("/etc/systemd/system")
    assert config.sources.artifact == tmp_path / "target" / "release" / "msparking"
    assert config.sources.default_config == tmp_path / "config" / "default.toml"
    assert config.sources.unit == tmp_path / "msparking.service"


def test_service_name_drives_derived_paths(tmp_path: Path) -> None:
    """Renaming the service renames the account, root and sources."""
    config = load_config(
        config_file=tmp_path / "missing.yml",
        env={},
        overrides={"service_name": "billing"},
        cwd=tmp_path,
    )

    assert config.service_user == "billing"
    assert config.install_root == Path("/opt/billing")
    assert config.unit_name == "billing.service"
    assert config.sources.unit == tmp_path / "billing.service"


def test_load_config_reads_yaml_file(tmp_path: Path) -> None:
    """Values are loaded from the YAML config file."""
    cfg = tmp_path / "svcbootstrap.yml"
    cfg.write_text(
        "service_name: billing\n"
        "service_group: daemons\n"
        "install_root: /srv/billing\n"
        "sources:\n"
        "  artifact: /build/out/billing\n"
        "systemd:\n"
        "  unit_dir: /run/systemd/system\n",
        encoding="utf-8",
    )

    config = load_config(config_file=cfg, env={}, cwd=tmp_path)

    assert config.config_file == cfg
    assert config.service_user == "billing"
    assert config.service_group == "daemons"
    assert config.install_root == Path("/srv/billing")
    assert config.sources.artifact == Path("/build/out/billing")
    assert config.systemd.unit_dir == Path("/run/systemd/system")


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    """Environment variables override file settings."""
    cfg = tmp_path / "svcbootstrap.yml"
    cfg.write_text("default_config_name: app.toml\n", encoding="utf-8")
    env = {
        "SVCBOOTSTRAP_CONFIG_FILE": str(cfg),
        "SVCBOOTSTRAP_DEFAULT_CONFIG_NAME": "prod.toml",
        "SVCBOOTSTRAP_SYSTEMD__SYSTEMCTL_BIN": "/usr/bin/systemctl",
        "UNRELATED": "ignored",
    }

    config = load_config(env=env, cwd=tmp_path)

    assert config.config_file == cfg
    assert config.default_config_name == "prod.toml"
    assert config.sources.default_config == tmp_path / "config" / "prod.toml"
    assert config.systemd.systemctl_bin == "/usr/bin/systemctl"


def test_unknown_keys_rejected(tmp_path: Path) -> None:
    """Typos in the config file are reported."""
    cfg = tmp_path / "svcbootstrap.yml"
    cfg.write_text("servce_name: typo\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Unknown configuration keys: servce_name"):
        load_config(config_file=cfg, env={}, cwd=tmp_path)


def test_unknown_nested_keys_rejected(tmp_path: Path) -> None:
    """Nested sections validate their keys too."""
    with pytest.raises(ConfigError, match="Unknown sources configuration keys"):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={},
            overrides={"sources": {"binary": "/tmp/x"}},
            cwd=tmp_path,
        )


def test_top_level_must_be_mapping(tmp_path: Path) -> None:
    """A YAML list is not a valid config document."""
    cfg = tmp_path / "svcbootstrap.yml"
    cfg.write_text("- one\n- two\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="must contain a mapping"):
        load_config(config_file=cfg, env={}, cwd=tmp_path)


def test_relative_install_root_rejected(tmp_path: Path) -> None:
    """The install root must be absolute."""
    with pytest.raises(ConfigError, match="absolute"):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={},
            overrides={"install_root": "opt/msparking"},
            cwd=tmp_path,
        )


def test_config_file_names_must_be_plain(tmp_path: Path) -> None:
    """Names that would escape the config directory are refused."""
    with pytest.raises(ConfigError, match="plain file name"):
        load_config(
            config_file=tmp_path / "missing.yml",
            env={},
            overrides={"default_config_name": "../evil.toml"},
            cwd=tmp_path,
        )


def test_to_dict_round_trips_paths(tmp_path: Path) -> None:
    """Serialised config exposes paths as strings."""
    config = load_config(config_file=tmp_path / "missing.yml", env={}, cwd=tmp_path)
    payload = config.to_dict()

    assert payload["install_root"] == "/opt/msparking"
    assert payload["systemd"] == {
        "unit_dir": "/etc/systemd/system",
        "systemctl_bin": "systemctl",
    }
