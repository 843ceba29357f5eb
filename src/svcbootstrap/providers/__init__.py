"""Provider interfaces for svcbootstrap."""
from __future__ import annotations

from .systemd import SystemdError, SystemdProvider

__all__ = [
    "SystemdError",
    "SystemdProvider",
]
