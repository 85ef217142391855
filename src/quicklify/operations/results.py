"""Outcome records returned by orchestration operations.

Operations never let recoverable failures escape: they return one of these
records with ``success=False`` plus the normalised error kind, message and
remediation hint. :meth:`OperationResult.to_dict` produces the caller-facing
shape (camelCase keys, ``None`` values dropped) shared by the CLI ``--json``
output and the agent dispatcher.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, TypeVar

import httpx

from ..errors import CommandError, ErrorKind, QuicklifyError, normalize_error
from ..models import (
    FirewallStatus,
    ProviderName,
    SecureAuditResult,
    ServerRecord,
    SnapshotInfo,
)

# Failures an operation converts into a result instead of raising.
RECOVERABLE_ERRORS: tuple[type[BaseException], ...] = (QuicklifyError, httpx.HTTPError, OSError)

ResultT = TypeVar("ResultT", bound="OperationResult")


@dataclass(slots=True)
class OperationResult:
    """Fields shared by every outcome record."""

    success: bool
    error: str | None = None
    kind: ErrorKind | None = None
    hint: str | None = None
    warning: str | None = None

    @classmethod
    def failed(
        cls: type[ResultT],
        exc: BaseException,
        *,
        provider: ProviderName | str | None = None,
        host: str | None = None,
        **values: Any,
    ) -> ResultT:
        """Return a failure record describing *exc*."""
        normalized = normalize_error(exc, provider=provider, host=host)
        if isinstance(exc, CommandError) and "failed_step" in _field_names(cls):
            values.setdefault("failed_step", exc.failed_step)
        return cls(
            success=False,
            error=normalized.message,
            kind=normalized.kind,
            hint=normalized.hint,
            **values,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable mapping without ``None`` values."""
        payload: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is None:
                continue
            payload[_camel(item.name)] = _serialise(value)
        return payload


def _field_names(cls: type) -> set[str]:
    return {item.name for item in fields(cls)}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _serialise(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, Mapping):
        return {str(key): _serialise(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialise(item) for item in value]
    return value


# ----------------------------------------------------------------------
# Lifecycle
# ----------------------------------------------------------------------
@dataclass(slots=True)
class AddServerResult(OperationResult):
    server: ServerRecord | None = None
    coolify_status: str | None = None


@dataclass(slots=True)
class RemoveServerResult(OperationResult):
    server: ServerRecord | None = None


@dataclass(slots=True)
class DestroyServerResult(OperationResult):
    server: ServerRecord | None = None
    cloud_deleted: bool = False
    local_removed: bool = False


@dataclass(slots=True)
class ServerStatusResult(OperationResult):
    server: ServerRecord | None = None
    server_status: str | None = None
    coolify_status: str | None = None


@dataclass(slots=True)
class RestartResult(OperationResult):
    server: ServerRecord | None = None
    final_status: str | None = None
    attempts: int | None = None


# ----------------------------------------------------------------------
# Hardening
# ----------------------------------------------------------------------
@dataclass(slots=True)
class SecureSetupResult(OperationResult):
    ssh_hardening: bool = False
    fail2ban: bool = False
    ssh_key_count: int = 0
    ssh_port: int | None = None
    partial: bool | None = None
    failed_step: int | None = None


@dataclass(slots=True)
class SecureAuditReport(OperationResult):
    audit: SecureAuditResult | None = None
    score: int | None = None


# ----------------------------------------------------------------------
# Firewall
# ----------------------------------------------------------------------
@dataclass(slots=True)
class FirewallResult(OperationResult):
    ports: tuple[int, ...] | None = None
    failed_step: int | None = None


@dataclass(slots=True)
class FirewallStatusResult(OperationResult):
    status: FirewallStatus | None = None


# ----------------------------------------------------------------------
# Domain
# ----------------------------------------------------------------------
@dataclass(slots=True)
class DomainResult(OperationResult):
    fqdn: str | None = None
    failed_step: int | None = None


@dataclass(slots=True)
class DomainInfoResult(OperationResult):
    fqdn: str | None = None


@dataclass(slots=True)
class DnsCheckResult(OperationResult):
    domain: str | None = None
    match: bool = False
    resolved_ip: str | None = None
    expected_ip: str | None = None


# ----------------------------------------------------------------------
# Snapshots
# ----------------------------------------------------------------------
@dataclass(slots=True)
class SnapshotCreateResult(OperationResult):
    snapshot: SnapshotInfo | None = None
    cost_estimate: str | None = None


@dataclass(slots=True)
class SnapshotListResult(OperationResult):
    snapshots: tuple[SnapshotInfo, ...] = ()


@dataclass(slots=True)
class SnapshotDeleteResult(OperationResult):
    snapshot_id: str | None = None


@dataclass(slots=True)
class FleetSnapshotEntry(OperationResult):
    server: ServerRecord | None = None
    snapshots: tuple[SnapshotInfo, ...] = ()


__all__ = [
    "AddServerResult",
    "DestroyServerResult",
    "DnsCheckResult",
    "DomainInfoResult",
    "DomainResult",
    "FirewallResult",
    "FirewallStatusResult",
    "FleetSnapshotEntry",
    "OperationResult",
    "RECOVERABLE_ERRORS",
    "RemoveServerResult",
    "RestartResult",
    "SecureAuditReport",
    "SecureSetupResult",
    "ServerStatusResult",
    "SnapshotCreateResult",
    "SnapshotDeleteResult",
    "SnapshotListResult",
]
