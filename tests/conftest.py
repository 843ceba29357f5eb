"""Pytest fixtures that stand in for a host the tests are not allowed to touch."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace

import pytest

from svcbootstrap.config import AppConfig, load_config
from svcbootstrap.orchestrator import Orchestrator
from svcbootstrap.providers.systemd import SystemdProvider

ARTIFACT_BYTES = b"\x7fELF msparking build"
DEFAULT_CONFIG_TEXT = '[server]\nlisten = "0.0.0.0:8080"\n'
UNIT_TEXT = "[Unit]\nDescription=msparking\n\n[Service]\nExecStart=/opt/msparking/msparking\n"


class FakeAccounts:
    """In-memory passwd/group databases that ``useradd`` and ``groupadd`` mutate."""

    def __init__(self) -> None:
        """Start with empty databases."""
        self.users: dict[str, SimpleNamespace] = {}
        self.groups: dict[str, SimpleNamespace] = {}
        self.commands: list[list[str]] = []
        self.fail_with: tuple[int, str] | None = None

    def getpwnam(self, name: str) -> SimpleNamespace:
        try:
            return self.users[name]
        except KeyError:
            raise KeyError(f"getpwnam(): name not found: '{name}'") from None

    def getgrnam(self, name: str) -> SimpleNamespace:
        try:
            return self.groups[name]
        except KeyError:
            raise KeyError(f"getgrnam(): name not found: '{name}'") from None

    def getgrgid(self, gid: int) -> SimpleNamespace:
        for entry in self.groups.values():
            if entry.gr_gid == gid:
                return entry
        raise KeyError(f"getgrgid(): gid not found: {gid}")

    def add_group(self, name: str) -> SimpleNamespace:
        entry = SimpleNamespace(gr_name=name, gr_gid=os.getgid(), gr_mem=[])
        self.groups[name] = entry
        return entry

    def add_user(self, name: str, *, shell: str = "/bin/false", group: str | None = None) -> None:
        group_entry = self.groups.get(group or name) or self.add_group(group or name)
        self.users[name] = SimpleNamespace(
            pw_name=name,
            pw_uid=os.getuid(),
            pw_gid=group_entry.gr_gid,
            pw_dir="/",
            pw_shell=shell,
        )

    def run(self, command: list[str]) -> subprocess.CompletedProcess[str]:
        self.commands.append(list(command))
        if self.fail_with is not None:
            code, stderr = self.fail_with
            return subprocess.CompletedProcess(command, code, stdout="", stderr=stderr)
        if command[0] == "groupadd":
            self.add_group(command[-1])
        elif command[0] == "useradd":
            shell = command[command.index("--shell") + 1] if "--shell" in command else "/bin/sh"
            group = command[command.index("--gid") + 1] if "--gid" in command else None
            self.add_user(command[-1], shell=shell, group=group)
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")


@pytest.fixture
def fake_accounts(monkeypatch: pytest.MonkeyPatch) -> FakeAccounts:
    """Route passwd/group lookups through a :class:`FakeAccounts` instance."""
    from svcbootstrap.bootstrap import service_accounts

    accounts = FakeAccounts()
    monkeypatch.setattr(service_accounts.pwd, "getpwnam", accounts.getpwnam)
    monkeypatch.setattr(service_accounts.grp, "getgrnam", accounts.getgrnam)
    monkeypatch.setattr(service_accounts.grp, "getgrgid", accounts.getgrgid)
    return accounts


@pytest.fixture
def systemctl_calls(monkeypatch: pytest.MonkeyPatch) -> list[list[str]]:
    """Capture systemctl invocations instead of running them."""
    calls: list[list[str]] = []

    def fake_run(args: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        calls.append(list(args))
        return subprocess.CompletedProcess(args, 0, stdout="", stderr="")

    from svcbootstrap.providers import systemd

    monkeypatch.setattr(systemd.subprocess, "run", fake_run)
    return calls


@pytest.fixture
def build_tree(tmp_path: Path) -> Path:
    """Create the build outputs the installer copies from."""
    root = tmp_path / "build"
    artifact = root / "target" / "release" / "msparking"
    artifact.parent.mkdir(parents=True)
    artifact.write_bytes(ARTIFACT_BYTES)
    default_config = root / "config" / "default.toml"
    default_config.parent.mkdir(parents=True)
    default_config.write_text(DEFAULT_CONFIG_TEXT, encoding="utf-8")
    (root / "msparking.service").write_text(UNIT_TEXT, encoding="utf-8")
    return root


@pytest.fixture
def app_config(tmp_path: Path, build_tree: Path) -> AppConfig:
    """Return a config whose host paths all live under ``tmp_path``."""
    unit_dir = tmp_path / "etc" / "systemd" / "system"
    unit_dir.mkdir(parents=True)
    return load_config(
        config_file=tmp_path / "etc" / "svcbootstrap" / "config.yml",
        env={},
        cwd=build_tree,
        overrides={
            "install_root": str(tmp_path / "opt" / "msparking"),
            "logs_dir": str(tmp_path / "var" / "log" / "svcbootstrap"),
            "systemd": {"unit_dir": str(unit_dir)},
        },
    )


@pytest.fixture
def make_orchestrator(
    app_config: AppConfig,
    fake_accounts: FakeAccounts,
    systemctl_calls: list[list[str]],
) -> Callable[..., Orchestrator]:
    """Return a factory building orchestrators wired to the fake host."""

    def factory(config: AppConfig | None = None, *, euid: int = 0) -> Orchestrator:
        resolved = config or app_config
        return Orchestrator(
            resolved,
            systemd=SystemdProvider(
                service_name=resolved.service_name,
                systemd_dir=resolved.systemd.unit_dir,
            ),
            runner=fake_accounts.run,
            geteuid=lambda: euid,
            lookup_ids=lambda user, group: (os.getuid(), os.getgid()),
        )

    return factory
