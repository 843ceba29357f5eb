"""Planning helpers for the service directory layout."""
from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from ..errors import ResourceCreationFailure

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DirectorySpec:
    """Desired state of a single directory node."""

    path: Path
    mode: int = 0o755
    uid: int | None = None
    gid: int | None = None


@dataclass(slots=True)
class DirectoryAction:
    """Change required to bring a directory in line with its spec."""

    kind: Literal["mkdir", "chmod", "chown"]
    spec: DirectorySpec
    description: str


@dataclass(slots=True)
class DirectoryPlan:
    """Ordered actions plus paths that cannot be satisfied."""

    actions: list[DirectoryAction] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)


def plan_directories(specs: Iterable[DirectorySpec]) -> DirectoryPlan:
    """Compare *specs* against the filesystem and return the required actions."""
    plan = DirectoryPlan()
    for spec in specs:
        path = spec.path
        if path.exists() or path.is_symlink():
            if not path.is_dir():
                plan.conflicts.append(f"{path} exists and is not a directory.")
                continue
            info = path.stat()
            current_mode = info.st_mode & 0o7777
            if current_mode != spec.mode:
                plan.actions.append(
                    DirectoryAction(
                        kind="chmod",
                        spec=spec,
                        description=f"Set mode {spec.mode:04o} on {path} (was {current_mode:04o}).",
                    )
                )
            if _owner_differs(spec, info.st_uid, info.st_gid):
                plan.actions.append(
                    DirectoryAction(
                        kind="chown",
                        spec=spec,
                        description=f"Set owner {_describe_owner(spec)} on {path}.",
                    )
                )
            continue

        plan.actions.append(
            DirectoryAction(kind="mkdir", spec=spec, description=f"Create directory {path}.")
        )
        plan.actions.append(
            DirectoryAction(
                kind="chmod",
                spec=spec,
                description=f"Set mode {spec.mode:04o} on {path}.",
            )
        )
        if spec.uid is not None or spec.gid is not None:
            plan.actions.append(
                DirectoryAction(
                    kind="chown",
                    spec=spec,
                    description=f"Set owner {_describe_owner(spec)} on {path}.",
                )
            )
    return plan


def apply_directory_plan(plan: DirectoryPlan) -> None:
    """Apply *plan*, raising :class:`ResourceCreationFailure` on any problem."""
    if plan.conflicts:
        raise ResourceCreationFailure(" ".join(plan.conflicts), step="layout")

    for action in plan.actions:
        spec = action.spec
        LOGGER.debug(action.description)
        try:
            if action.kind == "mkdir":
                spec.path.mkdir(parents=True, exist_ok=True)
            elif action.kind == "chmod":
                os.chmod(spec.path, spec.mode)
            elif action.kind == "chown":
                os.chown(
                    spec.path,
                    -1 if spec.uid is None else spec.uid,
                    -1 if spec.gid is None else spec.gid,
                )
        except OSError as exc:
            raise ResourceCreationFailure(
                f"{action.description} failed: {exc}",
                step="layout",
            ) from exc


def _owner_differs(spec: DirectorySpec, uid: int, gid: int) -> bool:
    if spec.uid is not None and spec.uid != uid:
        return True
    return spec.gid is not None and spec.gid != gid


def _describe_owner(spec: DirectorySpec) -> str:
    uid = "-" if spec.uid is None else str(spec.uid)
    gid = "-" if spec.gid is None else str(spec.gid)
    return f"{uid}:{gid}"


__all__ = [
    "DirectoryAction",
    "DirectoryPlan",
    "DirectorySpec",
    "apply_directory_plan",
    "plan_directories",
]
