"""Server power state, Coolify health and provider reboots."""
from __future__ import annotations

import logging

from ..commands import build_health_probe_plan
from ..errors import ErrorKind, ValidationError, error_message
from ..models import ServerRecord
from .context import OperationContext
from .results import RECOVERABLE_ERRORS, RestartResult, ServerStatusResult

LOGGER = logging.getLogger(__name__)

SERVER_STATUS_MANUAL = "unknown (manual)"
SERVER_STATUS_ERROR = "error"
COOLIFY_RUNNING = "running"
COOLIFY_NOT_REACHABLE = "not reachable"
COOLIFY_NOT_INSTALLED = "n/a"
COOLIFY_UNKNOWN = "unknown"

RESTART_MAX_ATTEMPTS = 30
RESTART_INTERVAL = 2.0
RESTART_INITIAL_WAIT = 10.0


def check_coolify_health(context: OperationContext, server: ServerRecord) -> str:
    """Return the Coolify health of *server*; never raises."""
    if server.is_bare:
        return COOLIFY_NOT_INSTALLED
    if not context.executor.is_available():
        return COOLIFY_UNKNOWN
    try:
        result = context.executor.execute(server.ip, build_health_probe_plan().render())
    except RECOVERABLE_ERRORS as exc:
        LOGGER.info("Coolify health probe failed for %s: %s", server.ip, error_message(exc))
        return COOLIFY_NOT_REACHABLE
    if result.ok and "200" in result.stdout:
        return COOLIFY_RUNNING
    return COOLIFY_NOT_REACHABLE


def _status_of(context: OperationContext, server: ServerRecord) -> ServerStatusResult:
    try:
        if server.is_manual:
            server_status = SERVER_STATUS_MANUAL
        else:
            server_status = context.provider_for(server.provider).get_server_status(server.id)
    except RECOVERABLE_ERRORS as exc:
        LOGGER.warning("Could not get status of %s: %s", server.name, error_message(exc))
        return ServerStatusResult.failed(
            exc,
            provider=server.provider,
            server=server,
            server_status=SERVER_STATUS_ERROR,
            coolify_status=COOLIFY_UNKNOWN,
        )
    return ServerStatusResult(
        success=True,
        server=server,
        server_status=server_status,
        coolify_status=check_coolify_health(context, server),
    )


def server_status(context: OperationContext, query: str) -> ServerStatusResult:
    """Return the cloud power state and Coolify health of one server.

    Manually added servers have no provider id; their cloud state is
    reported as ``unknown (manual)`` and only the health probe runs.
    """
    try:
        server = context.resolve_server(query)
    except RECOVERABLE_ERRORS as exc:
        return ServerStatusResult.failed(exc)
    return _status_of(context, server)


def fleet_status(context: OperationContext) -> list[ServerStatusResult]:
    """Return the status of every inventory server.

    A failure on one server (missing token, provider error) is recorded on
    that server's entry and does not stop the others.
    """
    return [_status_of(context, server) for server in context.inventory.list()]


def restart_server(
    context: OperationContext,
    query: str,
    *,
    max_attempts: int = RESTART_MAX_ATTEMPTS,
    interval: float = RESTART_INTERVAL,
    initial_wait: float = RESTART_INITIAL_WAIT,
) -> RestartResult:
    """Reboot a cloud server through its provider and wait until it runs again.

    Refused in safe mode and for manually added servers. Status errors while polling are
    expected during a reboot and retried; running out of attempts is
    reported as a failure with ``final_status="timeout"``.
    """
    server: ServerRecord | None = None
    try:
        context.gate.check("restart")
        server = context.resolve_server(query)
        if server.is_manual:
            raise ValidationError(
                f'Server "{server.name}" was manually added and cannot be rebooted via API.',
                hint=f"Use SSH instead: ssh root@{server.ip} reboot",
            )
        client = context.provider_for(server.provider)
        client.reboot_server(server.id)
    except RECOVERABLE_ERRORS as exc:
        provider = server.provider if server is not None else None
        return RestartResult.failed(exc, provider=provider, server=server)

    LOGGER.info("Reboot requested for %s (%s).", server.name, server.ip)
    context.sleep(initial_wait)
    for attempt in range(1, max_attempts + 1):
        try:
            status = client.get_server_status(server.id)
        except RECOVERABLE_ERRORS as exc:
            LOGGER.debug("Status poll %d for %s failed: %s", attempt, server.name, exc)
            status = None
        if status == "running":
            LOGGER.info("Server %s is running again.", server.name)
            return RestartResult(
                success=True, server=server, final_status="running", attempts=attempt
            )
        if attempt < max_attempts:
            context.sleep(interval)

    return RestartResult(
        success=False,
        server=server,
        final_status="timeout",
        attempts=max_attempts,
        error="Server did not come back online in time",
        kind=ErrorKind.TRANSPORT,
        hint="The server may still be rebooting. Check later with: quicklify status",
    )


__all__ = [
    "COOLIFY_NOT_INSTALLED",
    "COOLIFY_NOT_REACHABLE",
    "COOLIFY_RUNNING",
    "COOLIFY_UNKNOWN",
    "SERVER_STATUS_ERROR",
    "SERVER_STATUS_MANUAL",
    "check_coolify_health",
    "fleet_status",
    "restart_server",
    "server_status",
]
