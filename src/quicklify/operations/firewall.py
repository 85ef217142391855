"""UFW firewall management."""
from __future__ import annotations

import logging

from ..commands import (
    BARE_PORTS,
    COOLIFY_PORTS,
    PROTECTED_PORTS,
    build_firewall_allow_plan,
    build_firewall_delete_plan,
    build_firewall_setup_plan,
    build_firewall_status_plan,
    firewall_ports_for,
)
from ..errors import ValidationError
from ..models import ServerRecord
from ..parsers import parse_ufw_status
from ..validation import assert_valid_port, assert_valid_protocol
from .context import OperationContext
from .results import RECOVERABLE_ERRORS, FirewallResult, FirewallStatusResult

LOGGER = logging.getLogger(__name__)


def firewall_setup(context: OperationContext, query: str) -> FirewallResult:
    """Install UFW and open the ports required by the server's mode."""
    host: str | None = None
    try:
        server = context.resolve_server(query)
        host = server.ip
        context.run_plan(host, build_firewall_setup_plan(server.mode))
    except RECOVERABLE_ERRORS as exc:
        return FirewallResult.failed(exc, host=host)
    ports = (*firewall_ports_for(server.mode), *PROTECTED_PORTS)
    LOGGER.info("Enabled firewall on %s with ports %s.", host, ", ".join(map(str, ports)))
    return FirewallResult(success=True, ports=ports)


def firewall_add(
    context: OperationContext,
    query: str,
    port: int,
    protocol: str = "tcp",
) -> FirewallResult:
    """Allow inbound traffic on *port*/*protocol*."""
    host: str | None = None
    try:
        assert_valid_port(port)
        assert_valid_protocol(protocol)
        server = context.resolve_server(query)
        host = server.ip
        context.run_plan(host, build_firewall_allow_plan(port, protocol))
    except RECOVERABLE_ERRORS as exc:
        return FirewallResult.failed(exc, host=host)
    return FirewallResult(success=True, ports=(port,))


def firewall_remove(
    context: OperationContext,
    query: str,
    port: int,
    protocol: str = "tcp",
) -> FirewallResult:
    """Delete the allow rule for *port*/*protocol*.

    Port 22 can never be removed. Removing a port the server's platform
    depends on succeeds but carries a warning, which is kept on failure too.
    """
    host: str | None = None
    warning: str | None = None
    try:
        assert_valid_port(port)
        assert_valid_protocol(protocol)
        if port in PROTECTED_PORTS:
            raise ValidationError(f"Port {port} is protected (SSH access). Cannot remove.")
        server = context.resolve_server(query)
        host = server.ip
        warning = removal_warning(server, port)
        context.run_plan(host, build_firewall_delete_plan(port, protocol))
    except RECOVERABLE_ERRORS as exc:
        return FirewallResult.failed(exc, host=host, warning=warning)
    return FirewallResult(success=True, ports=(port,), warning=warning)


def removal_warning(server: ServerRecord, port: int) -> str | None:
    """Return the caution attached to closing *port* on *server*, if any."""
    if server.is_bare:
        if port in BARE_PORTS:
            return f"Port {port} serves web traffic. Removing it may break access to your apps."
        return None
    if port in COOLIFY_PORTS:
        return f"Port {port} is used by Coolify. Removing it may break Coolify access."
    return None


def firewall_status(context: OperationContext, query: str) -> FirewallStatusResult:
    """Return the live UFW state; an inactive firewall is not an error."""
    host: str | None = None
    try:
        server = context.resolve_server(query)
        host = server.ip
        result = context.run_plan(host, build_firewall_status_plan())
    except RECOVERABLE_ERRORS as exc:
        return FirewallStatusResult.failed(exc, host=host)
    return FirewallStatusResult(success=True, status=parse_ufw_status(result.stdout))


__all__ = [
    "firewall_add",
    "firewall_remove",
    "firewall_setup",
    "firewall_status",
    "removal_warning",
]
