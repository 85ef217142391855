"""Server status and restart operation tests."""
from __future__ import annotations

from collections.abc import Callable

from conftest import FakeExecutor, FakeProvider

from quicklify.errors import ErrorKind, ProviderError, TransportError
from quicklify.models import RemoteExecResult, ServerMode, ServerRecord
from quicklify.operations import OperationContext, fleet_status, restart_server, server_status
from quicklify.operations.status import (
    COOLIFY_NOT_INSTALLED,
    COOLIFY_NOT_REACHABLE,
    COOLIFY_RUNNING,
    COOLIFY_UNKNOWN,
    SERVER_STATUS_ERROR,
    SERVER_STATUS_MANUAL,
    check_coolify_health,
)


def test_server_status_reports_power_state_and_health(
    context: OperationContext,
    executor: FakeExecutor,
    provider: FakeProvider,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Cloud servers ask the provider, then check Coolify over SSH."""
    record = add_server_record()
    provider.statuses.append("off")
    executor.queue(RemoteExecResult(0, "200"))

    result = server_status(context, "coolify-prod")

    assert result.success is True
    assert result.server == record
    assert result.server_status == "off"
    assert result.coolify_status == COOLIFY_RUNNING
    assert provider.method_calls("get_server_status") == [("12345",)]
    assert executor.calls[0].host == "203.0.113.10"


def test_server_status_manual_server_skips_provider(
    context: OperationContext,
    provider: FakeProvider,
    provider_requests: list[object],
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Manual records have no provider id to query."""
    add_server_record(id="manual-1")

    result = server_status(context, "203.0.113.10")

    assert result.success is True
    assert result.server_status == SERVER_STATUS_MANUAL
    assert provider.calls == []
    assert provider_requests == []


def test_server_status_provider_failure(
    context: OperationContext,
    executor: FakeExecutor,
    provider: FakeProvider,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """A provider error is reported without contacting the host."""
    add_server_record()
    provider.errors["get_server_status"] = ProviderError("unauthorized", status_code=401)

    result = server_status(context, "coolify-prod")

    assert result.success is False
    assert result.kind is ErrorKind.AUTH
    assert result.server_status == SERVER_STATUS_ERROR
    assert result.coolify_status == COOLIFY_UNKNOWN
    assert executor.calls == []


def test_server_status_unknown_server(context: OperationContext) -> None:
    result = server_status(context, "ghost")

    assert result.success is False
    assert result.kind is ErrorKind.NOT_FOUND


def test_coolify_health_variants(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Bare servers are n/a; SSH failures and non-200 answers are not reachable."""
    coolify = add_server_record()
    bare = add_server_record(
        id="67890", name="bare-box", ip="198.51.100.2", mode=ServerMode.BARE
    )

    assert check_coolify_health(context, bare) == COOLIFY_NOT_INSTALLED

    executor.queue(RemoteExecResult(0, "000"))
    assert check_coolify_health(context, coolify) == COOLIFY_NOT_REACHABLE

    executor.queue(TransportError("Connection refused", code="ECONNREFUSED"))
    assert check_coolify_health(context, coolify) == COOLIFY_NOT_REACHABLE

    executor.available = False
    assert check_coolify_health(context, coolify) == COOLIFY_UNKNOWN
    assert len(executor.calls) == 2


def test_fleet_status_isolates_failures(
    context: OperationContext,
    tokens: dict[str, str],
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """A server without a token fails alone; the others are still reported."""
    add_server_record()
    add_server_record(id="77", name="vultr-box", ip="198.51.100.2", provider="vultr")
    tokens.pop("vultr")

    results = fleet_status(context)

    assert [entry.server.name for entry in results if entry.server] == [
        "coolify-prod",
        "vultr-box",
    ]
    assert [entry.success for entry in results] == [True, False]
    assert results[1].kind is ErrorKind.AUTH
    assert "VULTR_TOKEN" in (results[1].error or "")


def test_fleet_status_empty_inventory(context: OperationContext) -> None:
    assert fleet_status(context) == []


def test_restart_server_polls_until_running(
    context: OperationContext,
    provider: FakeProvider,
    sleeps: list[float],
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Status errors during the reboot are retried until the server runs."""
    add_server_record()
    provider.statuses.extend(["off", ProviderError("locked", status_code=423), "running"])

    result = restart_server(context, "coolify-prod", initial_wait=5, interval=1)

    assert result.success is True
    assert result.final_status == "running"
    assert result.attempts == 3
    assert provider.method_calls("reboot_server") == [("12345",)]
    assert sleeps == [5, 1, 1]


def test_restart_server_times_out(
    context: OperationContext,
    provider: FakeProvider,
    sleeps: list[float],
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Running out of attempts is a failure with final status ``timeout``."""
    add_server_record()
    provider.statuses.extend(["off", "off", "off"])

    result = restart_server(context, "coolify-prod", max_attempts=3, interval=2, initial_wait=0)

    assert result.success is False
    assert result.final_status == "timeout"
    assert result.attempts == 3
    assert result.kind is ErrorKind.TRANSPORT
    assert "quicklify status" in (result.hint or "")
    assert sleeps == [0, 2, 2]


def test_restart_server_reboot_failure(
    context: OperationContext,
    provider: FakeProvider,
    sleeps: list[float],
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """A rejected reboot request stops before any waiting."""
    add_server_record()
    provider.errors["reboot_server"] = ProviderError("rate limited", status_code=429)

    result = restart_server(context, "coolify-prod")

    assert result.success is False
    assert result.kind is ErrorKind.RATE_LIMIT
    assert result.attempts is None
    assert sleeps == []


def test_restart_manual_server_is_refused(
    context: OperationContext,
    provider: FakeProvider,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    add_server_record(id="manual-1")

    result = restart_server(context, "coolify-prod")

    assert result.kind is ErrorKind.VALIDATION
    assert result.hint == "Use SSH instead: ssh root@203.0.113.10 reboot"
    assert provider.calls == []


def test_restart_blocked_in_safe_mode(
    context: OperationContext,
    provider: FakeProvider,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Safe mode refuses restart before looking anything up."""
    add_server_record()
    context.safe_mode = True

    result = restart_server(context, "no-such-server")

    assert result.kind is ErrorKind.SAFETY
    assert provider.calls == []
