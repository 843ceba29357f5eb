"""Utilities for inspecting and provisioning the service account."""
from __future__ import annotations

import grp
import logging
import pwd
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from ..errors import ResourceCreationFailure

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceAccountSpec:
    """Desired attributes for the service runtime account."""

    name: str
    group: str | None = None
    system: bool = True
    home: Path | None = None
    shell: str | None = "/bin/false"


@dataclass(slots=True)
class ServiceAccountStatus:
    """Current state of the service account on the host."""

    user_exists: bool
    group_exists: bool
    uid: int | None = None
    gid: int | None = None
    home: Path | None = None
    shell: str | None = None
    primary_group: str | None = None


@dataclass(slots=True)
class ServiceAccountAction:
    """Single remediation step required to satisfy the desired state."""

    kind: Literal["ensure-group", "create-user"]
    description: str
    command: list[str]


@dataclass(slots=True)
class ServiceAccountPlan:
    """Aggregated actions and warnings required to satisfy the spec."""

    spec: ServiceAccountSpec
    status: ServiceAccountStatus
    actions: list[ServiceAccountAction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Return ``True`` when applying the plan would modify the host."""
        return bool(self.actions)


def inspect_service_account(spec: ServiceAccountSpec) -> ServiceAccountStatus:
    """Return the current status for *spec* from system passwd/group databases."""
    try:
        pw_entry = pwd.getpwnam(spec.name)
    except KeyError:
        user_exists = False
        uid = None
        gid = None
        home = None
        shell = None
        primary_group = None
    else:
        user_exists = True
        uid = pw_entry.pw_uid
        gid = pw_entry.pw_gid
        home = Path(pw_entry.pw_dir)
        shell = pw_entry.pw_shell
        try:
            primary_group = grp.getgrgid(gid).gr_name
        except KeyError:
            primary_group = None

    group_exists = False
    if spec.group:
        try:
            grp.getgrnam(spec.group)
        except KeyError:
            pass
        else:
            group_exists = True

    return ServiceAccountStatus(
        user_exists=user_exists,
        group_exists=group_exists,
        uid=uid,
        gid=gid,
        home=home,
        shell=shell,
        primary_group=primary_group,
    )


def plan_service_account(spec: ServiceAccountSpec) -> ServiceAccountPlan:
    """Return a plan describing how to satisfy *spec* on the current host.

    An existing user is never modified; differences from *spec* only produce
    warnings.
    """
    status = inspect_service_account(spec)
    plan = ServiceAccountPlan(spec=spec, status=status)

    # useradd --user-group creates a same-named group alongside the user.
    user_group = spec.group in (None, spec.name)

    if status.user_exists:
        if spec.group and status.primary_group and status.primary_group != spec.group:
            plan.warnings.append(
                "User "
                f"'{spec.name}' primary group is '{status.primary_group}', "
                f"expected '{spec.group}'."
            )
        if spec.home and status.home and status.home != spec.home:
            plan.warnings.append(
                f"User '{spec.name}' home '{status.home}' differs from desired '{spec.home}'."
            )
        if spec.shell and status.shell and str(status.shell) != str(spec.shell):
            plan.warnings.append(
                f"User '{spec.name}' shell '{status.shell}' differs from desired '{spec.shell}'."
            )
        return plan

    if spec.group and not status.group_exists and not user_group:
        command = ["groupadd"]
        if spec.system:
            command.append("--system")
        command.append(spec.group)
        plan.actions.append(
            ServiceAccountAction(
                kind="ensure-group",
                description=f"Create group '{spec.group}'.",
                command=command,
            )
        )

    command = ["useradd"]
    if spec.system:
        command.append("--system")
    if spec.home:
        command.extend(["--home-dir", str(spec.home)])
    else:
        command.append("--no-create-home")
    if spec.shell:
        command.extend(["--shell", str(spec.shell)])
    if user_group and not status.group_exists:
        command.append("--user-group")
    elif spec.group:
        command.extend(["--gid", spec.group])
    command.append(spec.name)
    plan.actions.append(
        ServiceAccountAction(
            kind="create-user",
            description=f"Create service user '{spec.name}'.",
            command=command,
        )
    )
    return plan


Runner = Callable[[list[str]], subprocess.CompletedProcess[str]]


def apply_service_account_plan(
    plan: ServiceAccountPlan,
    *,
    runner: Runner | None = None,
) -> None:
    """Execute the commands described by *plan*.

    Raises :class:`ResourceCreationFailure` on the first command that cannot be
    started or exits non-zero.
    """
    if runner is None:
        runner = default_runner

    for action in plan.actions:
        LOGGER.debug("Running %s", " ".join(action.command))
        try:
            result = runner(action.command)
        except FileNotFoundError as exc:
            raise ResourceCreationFailure(
                f"{action.description} failed: {action.command[0]} not found.",
                step="identity",
            ) from exc
        except OSError as exc:
            raise ResourceCreationFailure(
                f"{action.description} failed: cannot run {action.command[0]}: {exc}",
                step="identity",
            ) from exc
        except subprocess.CalledProcessError as exc:
            raise ResourceCreationFailure(
                f"{action.description} failed (exit {exc.returncode}): "
                f"{_describe_output(exc.stderr, exc.stdout)}",
                step="identity",
            ) from exc
        if result.returncode != 0:
            raise ResourceCreationFailure(
                f"{action.description} failed (exit {result.returncode}): "
                f"{_describe_output(result.stderr, result.stdout)}",
                step="identity",
            )


def lookup_account_ids(user: str, group: str) -> tuple[int, int]:
    """Return ``(uid, gid)`` for *user* and *group*."""
    try:
        uid = pwd.getpwnam(user).pw_uid
        gid = grp.getgrnam(group).gr_gid
    except KeyError as exc:
        raise ResourceCreationFailure(
            f"Service account '{user}:{group}' is not resolvable: {exc}",
            step="identity",
        ) from exc
    return uid, gid


def default_runner(command: list[str]) -> subprocess.CompletedProcess[str]:
    """Run *command* capturing text output without raising on failure."""
    return subprocess.run(command, check=False, capture_output=True, text=True)  # noqa: S603,S607


def _describe_output(stderr: str | None, stdout: str | None) -> str:
    return (stderr or "").strip() or (stdout or "").strip() or "no output"


__all__ = [
    "Runner",
    "ServiceAccountAction",
    "ServiceAccountPlan",
    "ServiceAccountSpec",
    "ServiceAccountStatus",
    "apply_service_account_plan",
    "default_runner",
    "inspect_service_account",
    "lookup_account_ids",
    "plan_service_account",
]
