"""Structured operation logging for siteprov.

Every provisioning step runs inside an :class:`OperationScope`. When the scope
closes, one JSON record is appended to ``<logs_dir>/operations.jsonl``
describing the step, its arguments, and the outcome. Logging must never break
a provisioning run, so the logger disables itself when the log directory
cannot be created or a write fails.
"""
from __future__ import annotations

import json
import logging
import secrets
import time
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

LOGGER = logging.getLogger(__name__)

OPERATIONS_LOG_NAME = "operations.jsonl"


def _timestamp() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def _sanitize(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_sanitize(item) for item in value]
    return str(value)


@dataclass(slots=True)
class OperationScope:
    """Collects the outcome of a single logged operation."""

    op_id: str
    command: str
    args: dict[str, object]
    target: dict[str, object]
    started_at: str
    result: dict[str, object] | None = None
    _started: float = field(default_factory=time.monotonic)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Iterable[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a successful outcome."""
        self._record("success", message, changed=changed, warnings=warnings, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[str] | None = None,
        errors: Iterable[str] | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record an outcome that completed with recoverable problems."""
        self._record(
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
        errors: Iterable[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a failed outcome."""
        self._record(
            "error",
            message,
            errors=list(errors) if errors is not None else [message],
            rc=rc,
            context=context,
        )

    @property
    def status(self) -> str | None:
        """Return the recorded status, if any."""
        if self.result is None:
            return None
        return str(self.result.get("status"))

    def _record(
        self,
        status: str,
        message: str,
        *,
        changed: int = 0,
        warnings: Iterable[str] | None = None,
        errors: Iterable[str] | None = None,
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
        """Return the JSON record written for this operation."""
        return {
            "ts": self.started_at,
            "op_id": self.op_id,
            "command": self.command,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "duration_ms": int((time.monotonic() - self._started) * 1000),
            "result": self.result,
        }


class StructuredLogger:
    """Append-only JSON-lines logger for provisioning operations."""

    def __init__(self, logs_dir: Path) -> None:
        """Bind the logger to *logs_dir*; the directory is created on first write."""
        self.logs_dir = Path(logs_dir)
        self._operations_log_path = self.logs_dir / OPERATIONS_LOG_NAME
        self._enabled = True
        self._prepared = False

    @property
    def path(self) -> Path:
        """Return the operations log path."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield a scope for *command* and persist its record on exit.

        Exceptions raised inside the block are recorded as errors (unless the
        scope already recorded an outcome) and re-raised unchanged.
        """
        scope = OperationScope(
            op_id=secrets.token_hex(6),
            command=command,
            args=dict(args or {}),
            target=dict(target or {}),
            started_at=_timestamp(),
        )
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(str(exc) or type(exc).__name__)
            raise
        finally:
            if scope.result is None:
                scope.success("Completed.")
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        if not self._prepared:
            try:
                self.logs_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                LOGGER.warning(
                    "Structured logging disabled: cannot create %s (%s)", self.logs_dir, exc
                )
                self._enabled = False
                return
            self._prepared = True
        line = json.dumps(record, sort_keys=True)
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            LOGGER.warning("Structured logging disabled after write failure: %s", exc)
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
