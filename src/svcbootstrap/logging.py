"""Structured operation logging for svcbootstrap.

Each CLI operation appends exactly one JSON record to
``<log_dir>/operations.jsonl`` and a one-line summary to
``<log_dir>/svcbootstrap.log``. The directory is created on first write so
that nothing touches the filesystem before the privilege gate has passed.

Logging is best effort: when the directory cannot be created or a write fails
the logger disables itself and the operation carries on.
"""
from __future__ import annotations

import json
import logging
import secrets
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

LOGGER = logging.getLogger(__name__)

OPERATIONS_LOG = "operations.jsonl"
HUMAN_LOG = "svcbootstrap.log"


def _timestamp() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def _sanitize(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


class OperationScope:
    """Mutable record for a single logged operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Create a scope for *command*; normally obtained via ``operation()``."""
        self._logger = logger
        self.command = command
        self.op_id = f"{datetime.now(tz=UTC):%Y%m%dT%H%M%SZ}-{secrets.token_hex(4)}"
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.result: dict[str, object] | None = None
        self._started = time.monotonic()

    def add_step(self, name: str, status: str, detail: str | None = None) -> None:
        """Append a sub-step to the operation record."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail:
            step["detail"] = detail
        self.steps.append(step)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result("success", message, changed=changed, warnings=warnings, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            errors=list(errors) if errors else [message],
            rc=rc,
            context=context,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": list(warnings or []),
            "errors": list(errors or []),
        }
        if rc is not None:
            result["rc"] = rc
        if context:
            result["context"] = _sanitize(context)
        self.result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON-safe record for this operation."""
        return {
            "ts": _timestamp(),
            "op_id": self.op_id,
            "command": self.command,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "steps": list(self.steps),
            "result": self.result or {"status": "unknown", "message": ""},
            "duration_ms": int((time.monotonic() - self._started) * 1000),
        }


class StructuredLogger:
    """Append operation records to the svcbootstrap log directory."""

    def __init__(self, log_dir: Path) -> None:
        """Remember *log_dir*; it is created lazily on first write."""
        self.log_dir = log_dir
        self._operations_log_path = log_dir / OPERATIONS_LOG
        self._human_log_path = log_dir / HUMAN_LOG
        self._enabled = True
        self._prepared = False

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit.

        An exception escaping the block is recorded as an error and re-raised.
        """
        scope = OperationScope(self, command, args=args, target=target)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(str(exc) or exc.__class__.__name__)
            raise
        finally:
            self._write(scope.to_record())

    def _prepare(self) -> bool:
        if self._prepared:
            return self._enabled
        self._prepared = True
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Disabling operation log; cannot create %s: %s", self.log_dir, exc)
            self._enabled = False
        return self._enabled

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled or not self._prepare():
            return
        result = record.get("result")
        status = result.get("status") if isinstance(result, Mapping) else "unknown"
        summary = f"{record['ts']} {record['op_id']} {record['command']} {status}\n"
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
            with self._human_log_path.open("a", encoding="utf-8") as handle:
                handle.write(summary)
        except OSError as exc:
            LOGGER.warning("Disabling operation log after write failure: %s", exc)
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
