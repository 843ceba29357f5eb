"""Typer-powered command line entry point for ``svcbootstrap``.

Running ``svcbootstrap`` with no arguments performs the full installation.
The only options select an alternate config file, switch the output to JSON
or print the version.
"""
from __future__ import annotations

import json
import os
from pathlib import Path

import typer
from rich.console import Console

from . import __version__
from .bootstrap import ensure_privileged
from .config import ConfigError, load_config
from .errors import PermissionDenied
from .exit_codes import ExitCode
from .orchestrator import Orchestrator, ProvisionReport, StepResult, StepStatus

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Provision the service account, files and systemd unit for a service.",
    add_completion=False,
)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to svcbootstrap's YAML config file.",
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit the run report as JSON instead of progress text.",
)
VERSION_OPTION = typer.Option(
    False,
    "--version",
    "-V",
    help="Show the svcbootstrap version and exit.",
)


def _render_step(result: StepResult) -> None:
    if result.status is StepStatus.FAILED:
        return
    if result.status is StepStatus.SKIPPED:
        console.print(f"[yellow]{result.message}[/yellow]", soft_wrap=True)
    elif result.step != "report":
        console.print(f"[green]✓[/green] {result.message}", soft_wrap=True)
    for warning in result.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")


def _emit_failure(report: ProvisionReport) -> None:
    failed = report.failed
    if failed is not None:
        err_console.print(
            f"[red]Step '{failed.step}' failed:[/red] {failed.message}", soft_wrap=True
        )


@app.command()
def install(
    config_file: Path | None = CONFIG_FILE_OPTION,
    json_output: bool = JSON_OPTION,
    version: bool = VERSION_OPTION,
) -> None:
    """Install or refresh the service on this host."""
    if version:
        console.print(f"svcbootstrap {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    # Admission comes before config parsing so unprivileged runs always exit 5.
    try:
        ensure_privileged(os.geteuid)
    except PermissionDenied as exc:
        denied = ProvisionReport(
            results=[
                StepResult(step="privilege", status=StepStatus.FAILED, message=str(exc), error=exc)
            ]
        )
        if json_output:
            typer.echo(json.dumps(denied.to_dict(), indent=2))
        _emit_failure(denied)
        raise typer.Exit(code=denied.exit_code) from exc

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc

    orchestrator = Orchestrator(config)
    report = orchestrator.run(progress=None if json_output else _render_step)

    if json_output:
        payload = report.to_dict()
        payload["config"] = config.to_dict()
        typer.echo(json.dumps(payload, indent=2))
        _emit_failure(report)
        raise typer.Exit(code=report.exit_code)

    if report.failed is not None:
        _emit_failure(report)
        raise typer.Exit(code=report.exit_code)

    for line in report.guidance:
        console.print(line, highlight=False, soft_wrap=True)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
