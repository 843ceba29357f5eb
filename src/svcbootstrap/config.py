"""Configuration loader for svcbootstrap.

Values are resolved from several sources, later ones winning:

1. Built-in defaults (the ``msparking`` service).
2. ``/etc/svcbootstrap/config.yml`` (or an override path).
3. Environment variables prefixed with ``SVCBOOTSTRAP_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export SVCBOOTSTRAP_SERVICE_NAME=billing
    export SVCBOOTSTRAP_SYSTEMD__UNIT_DIR=/run/systemd/system

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. Several paths are derived from ``service_name`` when they are
not set explicitly, so renaming the service is a one-key change.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

ENV_PREFIX = "SVCBOOTSTRAP_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class SourcesConfig:
    """Locations of the artifacts produced by the build."""

    artifact: Path
    default_config: Path
    unit: Path

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "artifact": str(self.artifact),
            "default_config": str(self.default_config),
            "unit": str(self.unit),
        }


@dataclass(frozen=True)
class SystemdConfig:
    """Systemd integration configuration values."""

    unit_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "unit_dir": str(self.unit_dir),
            "systemctl_bin": self.systemctl_bin,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for svcbootstrap."""

    config_file: Path
    service_name: str
    service_user: str
    service_group: str
    service_shell: str
    install_root: Path
    config_dir_name: str
    default_config_name: str
    logs_dir: Path
    sources: SourcesConfig
    systemd: SystemdConfig

    @property
    def config_dir(self) -> Path:
        """Directory holding the service configuration."""
        return self.install_root / self.config_dir_name

    @property
    def binary_path(self) -> Path:
        """Installed location of the service binary."""
        return self.install_root / self.service_name

    @property
    def default_config_path(self) -> Path:
        """Installed location of the seeded default configuration."""
        return self.config_dir / self.default_config_name

    @property
    def unit_name(self) -> str:
        """Systemd unit name for the service."""
        return f"{self.service_name}.service"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "service_name": self.service_name,
            "service_user": self.service_user,
            "service_group": self.service_group,
            "service_shell": self.service_shell,
            "install_root": str(self.install_root),
            "config_dir_name": self.config_dir_name,
            "default_config_name": self.default_config_name,
            "logs_dir": str(self.logs_dir),
            "sources": self.sources.to_dict(),
            "systemd": self.systemd.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/svcbootstrap/config.yml",
    "service_name": "msparking",
    "service_user": None,  # derived from service_name when absent
    "service_group": None,  # derived from service_user when absent
    "service_shell": "/bin/false",
    "install_root": None,  # /opt/<service_name>
    "config_dir_name": "config",
    "default_config_name": "default.toml",
    "logs_dir": "/var/log/svcbootstrap",
    "sources": {
        "artifact": None,  # ./target/release/<service_name>
        "default_config": None,  # ./config/<default_config_name>
        "unit": None,  # ./<service_name>.service
    },
    "systemd": {
        "unit_dir": "/etc/systemd/system",
        "systemctl_bin": "systemctl",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
_SOURCES_KEYS = {"artifact", "default_config", "unit"}
_SYSTEMD_KEYS = {"unit_dir", "systemctl_bin"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
    cwd: Path | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`.

    Relative source paths are resolved against *cwd* (the current working
    directory by default), matching how the build tree is laid out.
    """
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

    return _build_app_config(merged, cwd=cwd if cwd is not None else Path.cwd())


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
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    sources = _as_dict(raw.get("sources"), "sources")
    unknown = set(sources.keys()) - _SOURCES_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown sources configuration keys: {joined}.")

    systemd = _as_dict(raw.get("systemd"), "systemd")
    unknown = set(systemd.keys()) - _SYSTEMD_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown systemd configuration keys: {joined}.")

    for key in ("config_dir_name", "default_config_name"):
        value = raw.get(key)
        if value is not None and (not isinstance(value, str) or "/" in value):
            raise ConfigError(f"{key} must be a plain file name. Got {value!r}.")


def _build_app_config(raw: Mapping[str, object], *, cwd: Path) -> AppConfig:
    service_name = _expect_name(raw.get("service_name"), "service_name")
    service_user = _expect_name(raw.get("service_user") or service_name, "service_user")
    service_group = _expect_name(raw.get("service_group") or service_user, "service_group")
    default_config_name = _expect_name(raw.get("default_config_name"), "default_config_name")

    install_root_value = raw.get("install_root")
    install_root = (
        _to_path(install_root_value) if install_root_value else Path("/opt") / service_name
    )
    if not install_root.is_absolute():
        raise ConfigError(f"install_root must be an absolute path. Got {install_root}.")

    sources_mapping = _as_dict(raw.get("sources"), "sources")
    sources = SourcesConfig(
        artifact=_resolve_source(
            sources_mapping.get("artifact"),
            Path("target") / "release" / service_name,
            cwd,
        ),
        default_config=_resolve_source(
            sources_mapping.get("default_config"),
            Path("config") / default_config_name,
            cwd,
        ),
        unit=_resolve_source(
            sources_mapping.get("unit"),
            Path(f"{service_name}.service"),
            cwd,
        ),
    )

    systemd_mapping = _as_dict(raw.get("systemd"), "systemd")
    systemd = SystemdConfig(
        unit_dir=_to_path(systemd_mapping.get("unit_dir", "/etc/systemd/system")),
        systemctl_bin=str(systemd_mapping.get("systemctl_bin", "systemctl")),
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        service_name=service_name,
        service_user=service_user,
        service_group=service_group,
        service_shell=str(raw.get("service_shell", "/bin/false")),
        install_root=install_root,
        config_dir_name=_expect_name(raw.get("config_dir_name"), "config_dir_name"),
        default_config_name=default_config_name,
        logs_dir=_to_path(raw.get("logs_dir")),
        sources=sources,
        systemd=systemd,
    )


def _resolve_source(value: object | None, default: Path, cwd: Path) -> Path:
    path = _to_path(value) if value else default
    if not path.is_absolute():
        path = cwd / path
    return path


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
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_name(value: object, key: str) -> str:
    text = _expect_str(value, key).strip()
    if not text:
        raise ConfigError(f"{key} must be a non-empty string.")
    return text


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
    "ConfigError",
    "SourcesConfig",
    "SystemdConfig",
    "load_config",
]
