"""Default configuration seeding with the preservation policy.

The default configuration is only written into an empty config directory.
Any entry at all, hidden files included, means the operator (or an earlier
run) owns the directory and it is left untouched.
"""
from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..errors import CopyFailure
from .files import FileSpec, install_file

SKIP_MESSAGE = "Config directory is not empty, skipping config file installation."


class ConfigAction(str, Enum):
    """Outcome of the seeding decision."""

    SEED = "seed"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class ConfigSeedResult:
    """What the config installer did."""

    action: ConfigAction
    path: Path

    @property
    def message(self) -> str:
        if self.action is ConfigAction.SKIP:
            return SKIP_MESSAGE
        return f"Installed default configuration {self.path}."


def list_config_entries(directory: Path) -> list[str]:
    """Return every entry name in *directory*; a missing directory is empty."""
    try:
        return sorted(os.listdir(directory))
    except FileNotFoundError:
        return []
    except OSError as exc:
        raise CopyFailure(f"Cannot list config directory {directory}: {exc}", step="config") from exc


def decide_config_action(entries: Sequence[str]) -> ConfigAction:
    """Return :attr:`ConfigAction.SEED` only when *entries* is empty."""
    return ConfigAction.SKIP if entries else ConfigAction.SEED


def seed_default_config(
    source: Path,
    config_dir: Path,
    name: str,
    *,
    mode: int = 0o644,
    uid: int | None = None,
    gid: int | None = None,
) -> ConfigSeedResult:
    """Copy *source* to ``config_dir / name`` if the directory is empty.

    The copy is staged in the parent of *config_dir*; a staging file left
    behind by an interrupted run must never make the directory look non-empty.
    """
    destination = config_dir / name
    entries = list_config_entries(config_dir)
    action = decide_config_action(entries)
    if action is ConfigAction.SKIP:
        return ConfigSeedResult(action=action, path=destination)

    install_file(
        FileSpec(
            source=source,
            destination=destination,
            mode=mode,
            uid=uid,
            gid=gid,
            staging_dir=config_dir.parent,
        ),
        step="config",
    )
    return ConfigSeedResult(action=action, path=destination)


__all__ = [
    "SKIP_MESSAGE",
    "ConfigAction",
    "ConfigSeedResult",
    "decide_config_action",
    "list_config_entries",
    "seed_default_config",
]
