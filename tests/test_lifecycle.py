"""Server lifecycle operation tests."""
from __future__ import annotations

from collections.abc import Callable

import pytest
from conftest import FIXED_EPOCH, FakeExecutor, FakeProvider

from quicklify.errors import ErrorKind, ProviderError, TransportError
from quicklify.inventory import ServerInventory
from quicklify.models import ProviderName, RemoteExecResult, ServerMode, ServerRecord
from quicklify.operations import OperationContext, add_server, destroy_server, remove_server
from quicklify.operations.lifecycle import (
    STATUS_CONTAINERS_DETECTED,
    STATUS_NOT_DETECTED,
    STATUS_RUNNING,
    STATUS_SKIPPED,
    STATUS_SSH_UNAVAILABLE,
    STATUS_VERIFICATION_FAILED,
    verify_coolify,
)


def _add(context: OperationContext, **overrides: object):
    values: dict[str, object] = {
        "provider": "hetzner",
        "ip": "203.0.113.10",
        "name": "coolify-prod",
    }
    values.update(overrides)
    return add_server(context, **values)  # type: ignore[arg-type]


def test_add_server_persists_manual_record(
    context: OperationContext,
    inventory: ServerInventory,
    executor: FakeExecutor,
    provider: FakeProvider,
) -> None:
    """A successful add stores a manual record after verifying Coolify."""
    executor.queue(RemoteExecResult(0, "200\n"))

    result = _add(context)

    assert result.success is True
    assert result.coolify_status == STATUS_RUNNING
    assert result.server is not None
    assert result.server.id == f"manual-{int(FIXED_EPOCH * 1000)}"
    assert result.server.created_at.startswith("2023-11-14T22:13:20")
    assert result.server.region == "unknown"
    assert inventory.list() == [result.server]
    assert provider.method_calls("validate_token") == [("hetzner-token",)]


def test_add_server_bare_mode_skips_verification(
    context: OperationContext, executor: FakeExecutor
) -> None:
    """Bare servers are never checked for Coolify."""
    result = _add(context, mode="bare")

    assert result.success is True
    assert result.coolify_status == STATUS_SKIPPED
    assert result.server is not None and result.server.mode is ServerMode.BARE
    assert executor.calls == []


def test_add_server_validation_order(
    context: OperationContext,
    tokens: dict[str, str],
    provider: FakeProvider,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Provider, token, IP, uniqueness and name are checked before the API."""
    unknown = _add(context, provider="aws")
    assert unknown.kind is ErrorKind.VALIDATION
    assert "Valid: hetzner" in (unknown.error or "")

    tokens.pop("hetzner")
    missing_token = _add(context, ip="not-an-ip")
    assert missing_token.kind is ErrorKind.AUTH
    assert "HETZNER_TOKEN" in (missing_token.error or "")
    tokens["hetzner"] = "hetzner-token"

    bad_ip = _add(context, ip="127.0.0.1", name="x")
    assert bad_ip.error == "Reserved IP address not allowed"

    existing = add_server_record()
    duplicate = _add(context, name="x")
    assert duplicate.kind is ErrorKind.CONFLICT
    assert duplicate.error == "Server with IP 203.0.113.10 already exists: coolify-prod"
    assert context.inventory.list() == [existing]

    bad_name = _add(context, ip="198.51.100.2", name="x")
    assert bad_name.kind is ErrorKind.VALIDATION
    assert provider.calls == []


@pytest.mark.parametrize(
    "ip",
    ["1.2.3.²", "١.2.3.4", "1.2.3.4\n", 1234, None, ["1.2.3.4"]],
)
def test_add_server_rejects_non_ascii_or_non_string_ip(
    context: OperationContext,
    inventory: ServerInventory,
    provider: FakeProvider,
    ip: object,
) -> None:
    """Only plain ASCII dotted quads pass; nothing raises or reaches the provider."""
    result = _add(context, ip=ip)

    assert result.success is False
    assert result.kind is ErrorKind.VALIDATION
    assert provider.calls == []
    assert inventory.list() == []


def test_add_server_rejects_invalid_token(
    context: OperationContext, inventory: ServerInventory, provider: FakeProvider
) -> None:
    """A rejected token leaves the inventory untouched."""
    provider.valid = False

    result = _add(context, skip_verify=True)

    assert result.success is False
    assert result.kind is ErrorKind.AUTH
    assert result.error == "Invalid API token for hetzner"
    assert "console.hetzner.cloud" in (result.hint or "")
    assert inventory.list() == []


def test_add_server_token_validation_error_is_auth(
    context: OperationContext, provider: FakeProvider
) -> None:
    """Provider failures during token validation are reported as auth errors."""
    provider.errors["validate_token"] = ProviderError("boom", status_code=500)

    result = _add(context, skip_verify=True)

    assert result.kind is ErrorKind.AUTH
    assert (result.error or "").startswith("Token validation failed")


@pytest.mark.parametrize(
    ("responses", "expected"),
    [
        ([RemoteExecResult(0, "200")], STATUS_RUNNING),
        ([RemoteExecResult(0, "000"), RemoteExecResult(0, "OK")], STATUS_CONTAINERS_DETECTED),
        ([RemoteExecResult(0, "502"), RemoteExecResult(1, "")], STATUS_NOT_DETECTED),
        ([TransportError("refused", code="ECONNREFUSED")], STATUS_VERIFICATION_FAILED),
    ],
)
def test_verify_coolify_statuses(
    context: OperationContext,
    executor: FakeExecutor,
    responses: list[object],
    expected: str,
) -> None:
    """Verification outcomes map to the documented status values."""
    executor.queue(*responses)  # type: ignore[arg-type]

    assert verify_coolify(context, "203.0.113.10") == expected


def test_verify_coolify_without_ssh(context: OperationContext, executor: FakeExecutor) -> None:
    """Without SSH credentials nothing is executed."""
    executor.available = False

    assert verify_coolify(context, "203.0.113.10") == STATUS_SSH_UNAVAILABLE
    assert executor.calls == []


def test_remove_server_by_name_or_ip(
    context: OperationContext,
    inventory: ServerInventory,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Removal is local only and reports unknown servers as not found."""
    record = add_server_record()

    result = remove_server(context, "coolify-prod")
    missing = remove_server(context, "203.0.113.10")

    assert result.success is True
    assert result.server == record
    assert inventory.list() == []
    assert missing.kind is ErrorKind.NOT_FOUND


def test_destroy_server_deletes_cloud_then_local(
    context: OperationContext,
    inventory: ServerInventory,
    provider: FakeProvider,
    provider_requests: list[tuple[ProviderName, str]],
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Destroy calls the provider with the stored id and removes the record."""
    add_server_record()

    result = destroy_server(context, "203.0.113.10")

    assert result.success is True
    assert (result.cloud_deleted, result.local_removed) == (True, True)
    assert provider.method_calls("destroy_server") == [("12345",)]
    assert provider_requests == [(ProviderName.HETZNER, "hetzner-token")]
    assert inventory.list() == []


def test_destroy_server_already_gone(
    context: OperationContext,
    inventory: ServerInventory,
    provider: FakeProvider,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """A provider 404 still removes the local record."""
    add_server_record()
    provider.errors["destroy_server"] = ProviderError("not found", status_code=404)

    result = destroy_server(context, "coolify-prod")

    assert result.success is True
    assert result.cloud_deleted is False
    assert result.local_removed is True
    assert "may have been deleted manually" in (result.hint or "")
    assert inventory.list() == []


def test_destroy_server_provider_failure_keeps_record(
    context: OperationContext,
    inventory: ServerInventory,
    provider: FakeProvider,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Other provider failures leave the inventory intact."""
    record = add_server_record()
    provider.errors["destroy_server"] = ProviderError("rate limited", status_code=429)

    result = destroy_server(context, "coolify-prod")

    assert result.success is False
    assert result.kind is ErrorKind.RATE_LIMIT
    assert result.server == record
    assert inventory.list() == [record]


def test_destroy_server_force_removes_local_record(
    context: OperationContext,
    inventory: ServerInventory,
    provider: FakeProvider,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """With force a provider refusal still drops the inventory record."""
    record = add_server_record()
    provider.errors["destroy_server"] = ProviderError("server is locked", status_code=423)

    result = destroy_server(context, "coolify-prod", force=True)

    assert result.success is True
    assert result.cloud_deleted is False
    assert result.local_removed is True
    assert result.server == record
    assert "Cloud deletion failed: server is locked" in (result.warning or "")
    assert "removed from local inventory only" in (result.warning or "")
    assert inventory.list() == []


def test_destroy_server_force_does_not_bypass_safe_mode(
    context: OperationContext,
    inventory: ServerInventory,
    provider: FakeProvider,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """force only applies to provider failures."""
    record = add_server_record()
    context.safe_mode = True

    result = destroy_server(context, "coolify-prod", force=True)

    assert result.kind is ErrorKind.SAFETY
    assert provider.calls == []
    assert inventory.list() == [record]


def test_destroy_manual_server_is_refused(
    context: OperationContext,
    provider: FakeProvider,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Manually added servers must be removed, not destroyed."""
    add_server_record(id="manual-1")

    result = destroy_server(context, "coolify-prod")

    assert result.kind is ErrorKind.VALIDATION
    assert result.hint == "quicklify remove coolify-prod"
    assert provider.calls == []


def test_destroy_server_missing_token(
    context: OperationContext,
    tokens: dict[str, str],
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Without a token the provider is never contacted."""
    add_server_record()
    tokens.clear()

    result = destroy_server(context, "coolify-prod")

    assert result.kind is ErrorKind.AUTH
    assert "HETZNER_TOKEN" in (result.error or "")


def test_destroy_blocked_in_safe_mode(
    context: OperationContext,
    inventory: ServerInventory,
    provider: FakeProvider,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Safe mode refuses destroy before looking anything up."""
    record = add_server_record()
    context.safe_mode = True

    result = destroy_server(context, "no-such-server")

    assert result.success is False
    assert result.kind is ErrorKind.SAFETY
    assert provider.calls == []
    assert inventory.list() == [record]
