"""Admission check run before any host mutation."""
from __future__ import annotations

import os
from collections.abc import Callable

from ..errors import PermissionDenied


def ensure_privileged(geteuid: Callable[[], int] = os.geteuid) -> None:
    """Raise :class:`PermissionDenied` unless running with an effective uid of 0."""
    euid = geteuid()
    if euid != 0:
        raise PermissionDenied(
            f"Please run this installer as root (effective uid is {euid}).",
            step="privilege",
        )


__all__ = ["ensure_privileged"]
