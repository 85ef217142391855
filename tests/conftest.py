"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from quicklify.inventory import ServerInventory
from quicklify.models import ProviderName, RemoteExecResult, ServerMode, ServerRecord, SnapshotInfo
from quicklify.operations import OperationContext
from quicklify.state import StateRegistry

FIXED_EPOCH = 1_700_000_000.0


@dataclass
class ExecCall:
    host: str
    command: str
    port: int | None = None


@dataclass
class FakeExecutor:
    """Scripted stand-in for :class:`quicklify.ssh.SshExecutor`."""

    responses: list[RemoteExecResult | BaseException] = field(default_factory=list)
    default: RemoteExecResult = field(default_factory=lambda: RemoteExecResult(0))
    available: bool = True
    calls: list[ExecCall] = field(default_factory=list)

    def queue(self, *items: RemoteExecResult | BaseException) -> None:
        self.responses.extend(items)

    def execute(self, host: str, command: str, *, port: int | None = None) -> RemoteExecResult:
        self.calls.append(ExecCall(host, command, port))
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        return item

    def is_available(self) -> bool:
        return self.available


@dataclass
class FakeProvider:
    """Duck-typed cloud provider recording every call."""

    valid: bool = True
    errors: dict[str, BaseException] = field(default_factory=dict)
    snapshots: list[SnapshotInfo] = field(default_factory=list)
    cost: str = "$1.20/month"
    statuses: list[str | BaseException] = field(default_factory=list)
    calls: list[tuple[str, tuple[object, ...]]] = field(default_factory=list)

    def _record(self, method: str, *args: object) -> None:
        self.calls.append((method, args))
        error = self.errors.get(method)
        if error is not None:
            raise error

    def validate_token(self, token: str | None = None) -> bool:
        self._record("validate_token", token)
        return self.valid

    def get_server_status(self, server_id: str) -> str:
        self._record("get_server_status", server_id)
        item = self.statuses.pop(0) if self.statuses else "running"
        if isinstance(item, BaseException):
            raise item
        return item

    def reboot_server(self, server_id: str) -> None:
        self._record("reboot_server", server_id)

    def destroy_server(self, server_id: str) -> None:
        self._record("destroy_server", server_id)

    def create_snapshot(self, server_id: str, name: str) -> SnapshotInfo:
        self._record("create_snapshot", server_id, name)
        return SnapshotInfo(id="snap-1", server_id=server_id, name=name, status="creating")

    def list_snapshots(self, server_id: str) -> list[SnapshotInfo]:
        self._record("list_snapshots", server_id)
        return [snapshot for snapshot in self.snapshots if snapshot.server_id == server_id]

    def delete_snapshot(self, snapshot_id: str) -> None:
        self._record("delete_snapshot", snapshot_id)

    def get_snapshot_cost_estimate(self, server_id: str) -> str:
        self._record("get_snapshot_cost_estimate", server_id)
        return self.cost

    def method_calls(self, method: str) -> list[tuple[object, ...]]:
        return [args for name, args in self.calls if name == method]


@pytest.fixture
def inventory(tmp_path: Path) -> ServerInventory:
    """Inventory backed by a temporary state directory."""
    return ServerInventory(StateRegistry(tmp_path / "state"))


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def tokens() -> dict[str, str]:
    """Provider tokens visible to the operation context (mutable per test)."""
    return {name: f"{name}-token" for name in ProviderName.values()}


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by operations; nothing actually sleeps."""
    return []


@pytest.fixture
def provider_requests() -> list[tuple[ProviderName, str]]:
    return []


@pytest.fixture
def context(
    inventory: ServerInventory,
    executor: FakeExecutor,
    provider: FakeProvider,
    tokens: dict[str, str],
    provider_requests: list[tuple[ProviderName, str]],
    sleeps: list[float],
) -> OperationContext:
    """Operation context wired to fakes and a fixed clock."""

    def factory(name: ProviderName, token: str) -> FakeProvider:
        provider_requests.append((name, token))
        return provider

    return OperationContext(
        inventory=inventory,
        executor=executor,
        provider_factory=factory,  # type: ignore[arg-type]
        token_resolver=lambda name: tokens.get(name.value),
        clock=lambda: FIXED_EPOCH,
        sleep=sleeps.append,
    )


@pytest.fixture
def add_server_record(inventory: ServerInventory) -> Callable[..., ServerRecord]:
    """Return a helper persisting a server record with sensible defaults."""

    def _add(**overrides: object) -> ServerRecord:
        values: dict[str, object] = {
            "id": "12345",
            "name": "coolify-prod",
            "provider": "hetzner",
            "ip": "203.0.113.10",
            "region": "nbg1",
            "size": "cx22",
            "created_at": "2026-01-01T00:00:00+00:00",
            "mode": ServerMode.COOLIFY,
        }
        values.update(overrides)
        record = ServerRecord(**values)  # type: ignore[arg-type]
        inventory.save(record)
        return record

    return _add

