"""Ordered, fail-fast provisioning pipeline.

The pipeline is a fixed chain::

    privilege -> identity -> layout -> artifact -> config -> service -> report

Every step returns a :class:`StepResult`. The first failed step ends the run;
nothing is retried and completed steps are not rolled back. A skipped config
step (preservation policy) is a normal outcome.
"""
from __future__ import annotations

import os
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .bootstrap import (
    ConfigAction,
    DirectorySpec,
    FileSpec,
    ServiceAccountSpec,
    apply_directory_plan,
    apply_service_account_plan,
    ensure_privileged,
    install_file,
    lookup_account_ids,
    plan_directories,
    plan_service_account,
    seed_default_config,
)
from .config import AppConfig
from .errors import ProvisionError, RegistrationFailure
from .exit_codes import ExitCode
from .logging import StructuredLogger
from .providers import SystemdError, SystemdProvider
from .reporter import build_guidance

Runner = Callable[[list[str]], subprocess.CompletedProcess[str]]
IdLookup = Callable[[str, str], tuple[int, int]]
ProgressCallback = Callable[["StepResult"], None]

DIRECTORY_MODE = 0o755
BINARY_MODE = 0o755
CONFIG_MODE = 0o644

STEP_ORDER = ("privilege", "identity", "layout", "artifact", "config", "service", "report")


class StepStatus(str, Enum):
    """Outcome of a single pipeline step."""

    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class StepResult:
    """Tagged result produced by each step."""

    step: str
    status: StepStatus
    message: str
    changed: bool = False
    warnings: list[str] = field(default_factory=list)
    error: ProvisionError | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation."""
        payload: dict[str, object] = {
            "step": self.step,
            "status": self.status.value,
            "message": self.message,
            "changed": self.changed,
        }
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        if self.error is not None:
            payload["error"] = self.error.kind
        return payload


@dataclass(slots=True)
class ProvisionReport:
    """Results of a pipeline run."""

    results: list[StepResult] = field(default_factory=list)
    guidance: list[str] = field(default_factory=list)

    @property
    def failed(self) -> StepResult | None:
        """Return the failed step, if any."""
        for result in self.results:
            if result.status is StepStatus.FAILED:
                return result
        return None

    @property
    def succeeded(self) -> bool:
        """Return ``True`` when every step ran and none failed."""
        return self.failed is None and len(self.results) == len(STEP_ORDER)

    @property
    def failed_step(self) -> str | None:
        failed = self.failed
        return failed.step if failed is not None else None

    @property
    def exit_code(self) -> ExitCode:
        """Return the process exit code matching the outcome."""
        failed = self.failed
        if failed is None:
            return ExitCode.OK
        if failed.error is not None:
            return failed.error.exit_code
        return ExitCode.ENVIRONMENT

    def result_for(self, step: str) -> StepResult | None:
        """Return the result recorded for *step*."""
        for result in self.results:
            if result.step == step:
                return result
        return None

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation."""
        return {
            "status": "success" if self.succeeded else "failed",
            "exit_code": int(self.exit_code),
            "failed_step": self.failed_step,
            "steps": [result.to_dict() for result in self.results],
            "guidance": list(self.guidance),
        }


class Orchestrator:
    """Run the provisioning steps for a single service on this host."""

    def __init__(
        self,
        config: AppConfig,
        *,
        logger: StructuredLogger | None = None,
        systemd: SystemdProvider | None = None,
        runner: Runner | None = None,
        geteuid: Callable[[], int] = os.geteuid,
        lookup_ids: IdLookup = lookup_account_ids,
    ) -> None:
        """Bind the pipeline to *config*; host access can be swapped for tests."""
        self.config = config
        self.logger = logger or StructuredLogger(config.logs_dir)
        self.systemd = systemd or SystemdProvider(
            service_name=config.service_name,
            systemd_dir=config.systemd.unit_dir,
            systemctl_bin=config.systemd.systemctl_bin,
        )
        self.runner = runner
        self.geteuid = geteuid
        self.lookup_ids = lookup_ids
        self._uid: int | None = None
        self._gid: int | None = None
        self._guidance: list[str] = []

    def run(self, progress: ProgressCallback | None = None) -> ProvisionReport:
        """Execute every step in order, stopping at the first failure."""
        report = ProvisionReport()
        admission = self._execute("privilege", self._check_privilege, report, progress)
        if admission.status is StepStatus.FAILED:
            return report

        with self.logger.operation(
            "install",
            args={"service": self.config.service_name},
            target={"kind": "host", "install_root": self.config.install_root},
        ) as op:
            op.add_step("privilege", admission.status.value, admission.message)
            for name, func in self._steps():
                result = self._execute(name, func, report, progress)
                op.add_step(name, result.status.value, result.message)
                if result.status is StepStatus.FAILED:
                    op.error(
                        f"Step '{name}' failed: {result.message}",
                        rc=int(report.exit_code),
                    )
                    return report
            warnings = [warning for result in report.results for warning in result.warnings]
            op.success(
                "Installation complete.",
                changed=sum(1 for result in report.results if result.changed),
                warnings=warnings,
            )
        report.guidance = list(self._guidance)
        return report

    # ------------------------------------------------------------------
    def _steps(self) -> list[tuple[str, Callable[[], StepResult]]]:
        return [
            ("identity", self._provision_identity),
            ("layout", self._provision_layout),
            ("artifact", self._install_artifact),
            ("config", self._install_config),
            ("service", self._register_service),
            ("report", self._report),
        ]

    def _execute(
        self,
        name: str,
        func: Callable[[], StepResult],
        report: ProvisionReport,
        progress: ProgressCallback | None,
    ) -> StepResult:
        try:
            result = func()
        except ProvisionError as exc:
            if exc.step is None:
                exc.step = name
            result = StepResult(step=name, status=StepStatus.FAILED, message=str(exc), error=exc)
        report.results.append(result)
        if progress is not None:
            progress(result)
        return result

    def _check_privilege(self) -> StepResult:
        ensure_privileged(self.geteuid)
        return StepResult(step="privilege", status=StepStatus.OK, message="Running as root.")

    def _provision_identity(self) -> StepResult:
        config = self.config
        spec = ServiceAccountSpec(
            name=config.service_user,
            group=config.service_group,
            shell=config.service_shell,
        )
        plan = plan_service_account(spec)
        apply_service_account_plan(plan, runner=self.runner)
        self._uid, self._gid = self.lookup_ids(config.service_user, config.service_group)
        if plan.changed:
            message = f"Created service account '{config.service_user}'."
        else:
            message = f"Service account '{config.service_user}' already exists."
        return StepResult(
            step="identity",
            status=StepStatus.OK,
            message=message,
            changed=plan.changed,
            warnings=list(plan.warnings),
        )

    def _provision_layout(self) -> StepResult:
        config = self.config
        specs = [
            DirectorySpec(path=path, mode=DIRECTORY_MODE, uid=self._uid, gid=self._gid)
            for path in (config.install_root, config.config_dir)
        ]
        plan = plan_directories(specs)
        apply_directory_plan(plan)
        return StepResult(
            step="layout",
            status=StepStatus.OK,
            message=f"Ensured {config.install_root} and {config.config_dir}.",
            changed=bool(plan.actions),
        )

    def _install_artifact(self) -> StepResult:
        config = self.config
        install_file(
            FileSpec(
                source=config.sources.artifact,
                destination=config.binary_path,
                mode=BINARY_MODE,
                uid=self._uid,
                gid=self._gid,
            ),
            step="artifact",
        )
        return StepResult(
            step="artifact",
            status=StepStatus.OK,
            message=f"Installed {config.binary_path}.",
            changed=True,
        )

    def _install_config(self) -> StepResult:
        config = self.config
        outcome = seed_default_config(
            config.sources.default_config,
            config.config_dir,
            config.default_config_name,
            mode=CONFIG_MODE,
            uid=self._uid,
            gid=self._gid,
        )
        if outcome.action is ConfigAction.SKIP:
            return StepResult(step="config", status=StepStatus.SKIPPED, message=outcome.message)
        return StepResult(
            step="config",
            status=StepStatus.OK,
            message=outcome.message,
            changed=True,
        )

    def _register_service(self) -> StepResult:
        try:
            path = self.systemd.install_unit(self.config.sources.unit)
        except SystemdError as exc:
            raise RegistrationFailure(str(exc), step="service") from exc
        return StepResult(
            step="service",
            status=StepStatus.OK,
            message=f"Installed {path} and reloaded systemd.",
            changed=True,
        )

    def _report(self) -> StepResult:
        self._guidance = build_guidance(
            self.config,
            enable_command=self.systemd.enable_command(),
        )
        return StepResult(step="report", status=StepStatus.OK, message="Guidance ready.")


__all__ = [
    "STEP_ORDER",
    "Orchestrator",
    "ProvisionReport",
    "StepResult",
    "StepStatus",
]
