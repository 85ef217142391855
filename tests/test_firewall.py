"""Firewall operation tests."""
from __future__ import annotations

from collections.abc import Callable

import pytest
from conftest import FakeExecutor

from quicklify.errors import ErrorKind
from quicklify.models import FirewallRule, RemoteExecResult, ServerMode, ServerRecord
from quicklify.operations import (
    OperationContext,
    firewall_add,
    firewall_remove,
    firewall_setup,
    firewall_status,
)
from quicklify.operations.firewall import removal_warning


def test_firewall_setup_coolify_ports(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Coolify servers get the platform ports plus SSH in one round trip."""
    add_server_record()

    result = firewall_setup(context, "coolify-prod")

    assert result.success is True
    assert result.ports == (80, 443, 8000, 6001, 6002, 22)
    assert len(executor.calls) == 1
    assert "ufw allow 6001/tcp" in executor.calls[0].command
    assert result.to_dict() == {"success": True, "ports": [80, 443, 8000, 6001, 6002, 22]}


def test_firewall_setup_bare_ports(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Bare servers only open web ports plus SSH."""
    add_server_record(mode=ServerMode.BARE)

    result = firewall_setup(context, "coolify-prod")

    assert result.ports == (80, 443, 22)
    assert "8000" not in executor.calls[0].command


def test_firewall_setup_failure_reports_step(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """A failing install reports the step that broke."""
    add_server_record()
    executor.queue(RemoteExecResult(100, "", "E: Could not get lock /var/lib/dpkg/lock"))

    result = firewall_setup(context, "coolify-prod")

    assert result.success is False
    assert result.failed_step == 1
    assert result.kind is ErrorKind.COMMAND


def test_firewall_add_validates_before_connecting(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Bad ports or protocols never reach the server."""
    add_server_record()

    bad_port = firewall_add(context, "coolify-prod", 70000)
    bad_protocol = firewall_add(context, "coolify-prod", 80, "icmp")

    assert bad_port.kind is ErrorKind.VALIDATION
    assert bad_protocol.kind is ErrorKind.VALIDATION
    assert executor.calls == []


def test_firewall_add_runs_ufw(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Adding a rule issues a single ufw allow."""
    add_server_record()

    result = firewall_add(context, "203.0.113.10", 3000, "udp")

    assert result.success is True
    assert result.ports == (3000,)
    assert executor.calls[0].command == "ufw allow 3000/udp"


@pytest.mark.parametrize("protocol", ["tcp", "udp"])
def test_firewall_remove_protects_ssh(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
    protocol: str,
) -> None:
    """Port 22 can never be removed, whatever the protocol."""
    add_server_record()

    result = firewall_remove(context, "coolify-prod", 22, protocol)

    assert result.success is False
    assert result.kind is ErrorKind.VALIDATION
    assert result.error == "Port 22 is protected (SSH access). Cannot remove."
    assert executor.calls == []


def test_firewall_remove_warns_for_platform_ports(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Removing a Coolify port succeeds with a warning."""
    add_server_record()

    result = firewall_remove(context, "coolify-prod", 8000)

    assert result.success is True
    assert result.warning == "Port 8000 is used by Coolify. Removing it may break Coolify access."
    assert executor.calls[0].command == "ufw delete allow 8000/tcp"


def test_firewall_remove_keeps_warning_on_failure(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """The caution is still reported when the removal fails."""
    add_server_record()
    executor.queue(RemoteExecResult(1, "", "Could not delete non-existent rule"))

    result = firewall_remove(context, "coolify-prod", 443)

    assert result.success is False
    assert result.warning is not None
    assert "Could not delete non-existent rule" in (result.error or "")


def test_removal_warning_per_mode(add_server_record: Callable[..., ServerRecord]) -> None:
    """Bare servers warn about web ports; other ports are silent."""
    coolify = add_server_record()
    bare = add_server_record(id="2", name="bare-box", ip="198.51.100.9", mode=ServerMode.BARE)

    assert removal_warning(coolify, 3000) is None
    assert removal_warning(bare, 8000) is None
    assert removal_warning(bare, 80) == (
        "Port 80 serves web traffic. Removing it may break access to your apps."
    )


def test_firewall_status_parses_rules(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """Status is recomputed from live ufw output."""
    add_server_record()
    executor.queue(RemoteExecResult(0, "Status: active\n[ 1] 22/tcp ALLOW IN Anywhere\n"))

    result = firewall_status(context, "coolify-prod")

    assert result.success is True
    assert result.status is not None
    assert result.status.active is True
    assert result.status.rules == (FirewallRule(22, "tcp", "ALLOW", "Anywhere"),)
    assert executor.calls[0].command == "ufw status numbered"


def test_firewall_status_inactive_is_not_an_error(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """An inactive firewall is reported as such."""
    add_server_record()
    executor.queue(RemoteExecResult(0, "Status: inactive\n"))

    result = firewall_status(context, "coolify-prod")

    assert result.success is True
    assert result.status is not None
    assert result.status.active is False
    assert result.status.rules == ()


def test_firewall_status_missing_ufw(
    context: OperationContext,
    executor: FakeExecutor,
    add_server_record: Callable[..., ServerRecord],
) -> None:
    """ufw not being installed surfaces as a command failure."""
    add_server_record()
    executor.queue(RemoteExecResult(127, "", "bash: ufw: command not found"))

    result = firewall_status(context, "coolify-prod")

    assert result.success is False
    assert result.kind is ErrorKind.COMMAND
