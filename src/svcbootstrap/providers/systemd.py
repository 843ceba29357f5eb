"""Systemd provider for registering the service unit."""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..bootstrap.files import FileSpec, install_file

LOGGER = logging.getLogger(__name__)


class SystemdError(RuntimeError):
    """Raised when systemd operations fail."""


@dataclass(slots=True)
class SystemdProvider:
    """Install a unit file and keep systemd's unit cache in sync."""

    service_name: str
    systemd_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"

    def unit_name(self) -> str:
        """Return the systemd unit name for the service."""
        return f"{self.service_name}.service"

    def unit_path(self) -> Path:
        """Return the full path for the installed unit file."""
        return self.systemd_dir / self.unit_name()

    def install_unit(self, source: Path) -> Path:
        """Copy *source* over the installed unit and reload the daemon.

        The copy always overwrites; unit files are not operator configuration.
        Copy problems raise :class:`~svcbootstrap.errors.CopyFailure`, reload
        problems raise :class:`SystemdError`.
        """
        path = install_file(
            FileSpec(source=source, destination=self.unit_path(), mode=0o644),
            step="service",
        )
        self.reload_daemon()
        return path

    def reload_daemon(self) -> subprocess.CompletedProcess[str]:
        """Run ``systemctl daemon-reload``."""
        return self._systemctl("daemon-reload")

    def enable_command(self) -> str:
        """Return the command an operator runs to enable and start the unit."""
        return f"{self.systemctl_bin} enable --now {self.unit_name()}"

    # ------------------------------------------------------------------
    def _systemctl(self, command: str) -> subprocess.CompletedProcess[str]:
        return self._run_command(
            [self.systemctl_bin, command],
            error_prefix=f"{self.systemctl_bin} {command}",
        )

    def _run_command(
        self,
        args: Sequence[str],
        *,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        LOGGER.debug("Running %s", " ".join(args))
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise SystemdError(f"{args[0]} not found: {exc}") from exc
        except OSError as exc:
            raise SystemdError(f"{args[0]} could not be executed: {exc}") from exc
        if result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise SystemdError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["SystemdProvider", "SystemdError"]
