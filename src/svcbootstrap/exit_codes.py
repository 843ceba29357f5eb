"""Enumerations for process exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Well-known exit codes returned by the installer."""

    OK = 0
    VALIDATION = 2
    ENVIRONMENT = 3
    PROVIDER = 4
    PERMISSION = 5
    COPY = 6
