"""Copy build artifacts into place with fixed ownership and mode."""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ..errors import CopyFailure

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FileSpec:
    """Source and destination for a single installed file."""

    source: Path
    destination: Path
    mode: int
    uid: int | None = None
    gid: int | None = None
    staging_dir: Path | None = None


def install_file(spec: FileSpec, *, step: str | None = None) -> Path:
    """Copy ``spec.source`` over ``spec.destination``.

    The copy is staged next to the destination (or in ``spec.staging_dir``,
    which must be on the same filesystem) and renamed into place, so the
    destination is always replaced (new inode and modification time) even when
    the bytes are identical, and a running binary is never written in place.
    """
    source = spec.source
    destination = spec.destination
    if not source.is_file():
        raise CopyFailure(f"Source file {source} does not exist or is not a file.", step=step)
    if destination.is_dir():
        raise CopyFailure(f"Destination {destination} is a directory.", step=step)

    staging: Path | None = None
    try:
        fd, staging_name = tempfile.mkstemp(
            prefix=f".{destination.name}.",
            suffix=".tmp",
            dir=str(spec.staging_dir or destination.parent),
        )
        staging = Path(staging_name)
        with os.fdopen(fd, "wb") as target, source.open("rb") as origin:
            shutil.copyfileobj(origin, target)
        os.chmod(staging, spec.mode)
        if spec.uid is not None or spec.gid is not None:
            os.chown(
                staging,
                -1 if spec.uid is None else spec.uid,
                -1 if spec.gid is None else spec.gid,
            )
        os.replace(staging, destination)
        staging = None
    except OSError as exc:
        raise CopyFailure(f"Failed to install {source} to {destination}: {exc}", step=step) from exc
    finally:
        if staging is not None:
            staging.unlink(missing_ok=True)

    LOGGER.debug("Installed %s -> %s (mode %04o)", source, destination, spec.mode)
    return destination


__all__ = ["FileSpec", "install_file"]
