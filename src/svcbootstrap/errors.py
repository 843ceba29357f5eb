"""Failure taxonomy for the provisioning pipeline.

Every step raises one of these; the orchestrator turns them into a failed
:class:`~svcbootstrap.orchestrator.StepResult` and stops the run.
"""
from __future__ import annotations

from .exit_codes import ExitCode


class ProvisionError(RuntimeError):
    """Base class for fatal provisioning failures."""

    exit_code: ExitCode = ExitCode.ENVIRONMENT
    kind: str = "provision-error"

    def __init__(self, message: str, *, step: str | None = None) -> None:
        """Initialise the error with *message* and the optional failing *step*."""
        super().__init__(message)
        self.step = step


class PermissionDenied(ProvisionError):
    """The invoking principal is not privileged."""

    exit_code = ExitCode.PERMISSION
    kind = "permission-denied"


class ResourceCreationFailure(ProvisionError):
    """An account or directory could not be created."""

    exit_code = ExitCode.ENVIRONMENT
    kind = "resource-creation-failure"


class CopyFailure(ProvisionError):
    """A file could not be copied into place."""

    exit_code = ExitCode.COPY
    kind = "copy-failure"


class RegistrationFailure(ProvisionError):
    """The service manager rejected or could not reload the unit."""

    exit_code = ExitCode.PROVIDER
    kind = "registration-failure"


__all__ = [
    "CopyFailure",
    "PermissionDenied",
    "ProvisionError",
    "RegistrationFailure",
    "ResourceCreationFailure",
]
