"""Completion guidance printed after a successful install."""
from __future__ import annotations

from .config import AppConfig


def build_guidance(config: AppConfig, *, enable_command: str | None = None) -> list[str]:
    """Return the fixed operator guidance lines for *config*."""
    command = enable_command or f"systemctl enable --now {config.unit_name}"
    return [
        "Installed.",
        f"Please edit config under {config.default_config_path}",
        "And start the service using:",
        f"  {command}",
    ]


__all__ = ["build_guidance"]
