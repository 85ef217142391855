"""Structured operation logging for quicklify.

Each CLI command runs inside :meth:`StructuredLogger.operation`, which yields
an :class:`OperationScope`. The scope collects steps and a final result and,
when the block exits, appends one JSON record to ``operations.jsonl`` and a
summary line to the human-readable ``quicklify.log``.

Logging never fails a command: if the log directory cannot be created or a
write fails, the logger disables itself and the command carries on.
"""
from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from . import __version__

OPERATIONS_LOG_NAME = "operations.jsonl"
HUMAN_LOG_NAME = "quicklify.log"
ROOT_LOGGER_NAME = "quicklify"

_HANDLER_MARKER = "_quicklify_structured"


@dataclass(slots=True)
class OperationScope:
    """Mutable record of a single logged operation."""

    command: str
    args: Mapping[str, object] = field(default_factory=dict)
    target: Mapping[str, object] | None = None
    steps: list[dict[str, object]] = field(default_factory=list)
    result: dict[str, object] | None = None

    def add_step(self, name: str, *, status: str = "success", detail: object = None) -> None:
        """Record a named sub-step of the operation."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail is not None:
            step["detail"] = _json_safe(detail)
        self.steps.append(step)

    def success(
        self,
        message: str,
        *,
        changed: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self.result = _build_result("success", message, changed=changed, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[str] = (),
        errors: Iterable[str] = (),
        changed: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        result = _build_result("warning", message, changed=changed, context=context)
        result["warnings"] = [str(item) for item in warnings]
        result["errors"] = [str(item) for item in errors]
        self.result = result

    def error(
        self,
        message: str,
        *,
        errors: Iterable[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        result = _build_result("error", message, context=context)
        result["errors"] = [str(item) for item in errors] if errors else [message]
        if rc is not None:
            result["rc"] = int(rc)
        self.result = result


class StructuredLogger:
    """Write operation records to ``operations.jsonl`` and ``quicklify.log``."""

    def __init__(self, logs_dir: Path) -> None:
        self.logs_dir = Path(logs_dir).expanduser()
        self._operations_log_path = self.logs_dir / OPERATIONS_LOG_NAME
        self._human_log_path = self.logs_dir / HUMAN_LOG_NAME
        self._enabled = True
        self._logger = logging.getLogger(ROOT_LOGGER_NAME)
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            self._install_file_handler()
        except OSError:
            self._enabled = False

    @property
    def enabled(self) -> bool:
        """Return ``True`` while records are being written."""
        return self._enabled

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it when the block exits."""
        scope = OperationScope(
            command=command,
            args=dict(args or {}),
            target=dict(target) if target else None,
        )
        started = time.monotonic()
        try:
            yield scope
        except Exception as exc:
            if scope.result is None:
                scope.error(str(exc) or type(exc).__name__)
            raise
        finally:
            duration_ms = int((time.monotonic() - started) * 1000)
            self._write(scope, duration_ms)

    # ------------------------------------------------------------------
    def _install_file_handler(self) -> None:
        for handler in list(self._logger.handlers):
            if getattr(handler, _HANDLER_MARKER, False):
                self._logger.removeHandler(handler)
                handler.close()
        handler = logging.FileHandler(self._human_log_path, encoding="utf-8")
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        setattr(handler, _HANDLER_MARKER, True)
        self._logger.addHandler(handler)
        if self._logger.level == logging.NOTSET or self._logger.level > logging.INFO:
            self._logger.setLevel(logging.INFO)

    def _write(self, scope: OperationScope, duration_ms: int) -> None:
        if not self._enabled:
            return
        result = scope.result or {"status": "unknown", "message": "No result recorded."}
        record = {
            "timestamp": datetime.now(UTC).isoformat(),
            "command": scope.command,
            "args": _json_safe(scope.args),
            "target": _json_safe(scope.target),
            "duration_ms": duration_ms,
            "steps": scope.steps,
            "result": result,
            "context": {"quicklify_version": __version__},
        }
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=False) + "\n")
        except OSError:
            self._enabled = False
            return

        status = str(result.get("status", "unknown"))
        message = str(result.get("message", ""))
        level = {"error": logging.ERROR, "warning": logging.WARNING}.get(status, logging.INFO)
        name = (scope.target or {}).get("name")
        suffix = f" [{name}]" if name else ""
        self._logger.log(level, "%s%s %s: %s", scope.command, suffix, status, message)


def _build_result(
    status: str,
    message: str,
    *,
    changed: int | None = None,
    context: Mapping[str, object] | None = None,
) -> dict[str, object]:
    result: dict[str, object] = {"status": status, "message": message}
    if changed is not None:
        result["changed"] = changed
    if context:
        result["context"] = _json_safe(context)
    return result


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return str(value)


__all__ = ["OperationScope", "StructuredLogger"]
