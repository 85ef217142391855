"""Add, remove and destroy servers."""
from __future__ import annotations

import logging
from datetime import UTC, datetime

from ..commands import build_container_probe_plan, build_health_probe_plan
from ..errors import (
    AuthError,
    ConflictError,
    ValidationError,
    error_message,
    is_not_found,
    normalize_error,
    token_hint,
)
from ..models import MANUAL_ID_PREFIX, ServerMode, ServerRecord
from ..validation import parse_provider, validate_ip_address, validate_server_name
from .context import OperationContext
from .results import (
    RECOVERABLE_ERRORS,
    AddServerResult,
    DestroyServerResult,
    RemoveServerResult,
)

LOGGER = logging.getLogger(__name__)

# Values reported in AddServerResult.coolify_status.
STATUS_RUNNING = "running"
STATUS_CONTAINERS_DETECTED = "containers_detected"
STATUS_NOT_DETECTED = "not_detected"
STATUS_SSH_UNAVAILABLE = "ssh_unavailable"
STATUS_VERIFICATION_FAILED = "verification_failed"
STATUS_SKIPPED = "skipped"


def add_server(
    context: OperationContext,
    *,
    provider: str,
    ip: str,
    name: str,
    mode: ServerMode | str = ServerMode.COOLIFY,
    skip_verify: bool = False,
) -> AddServerResult:
    """Register an existing machine in the inventory.

    Checks run in a fixed order and stop at the first failure: provider,
    token presence, IP format, IP uniqueness, name, token validity. The
    inventory is only written once every check has passed.
    """
    try:
        provider_name = parse_provider(provider)
        try:
            server_mode = ServerMode(mode)
        except ValueError:
            raise ValidationError(f"Invalid mode: {mode}. Valid: coolify, bare") from None

        token = context.token_resolver(provider_name)
        if not token:
            raise AuthError(
                f"No API token found for provider: {provider_name.value}. "
                f"Set {provider_name.token_env} environment variable",
                hint=token_hint(provider_name),
            )

        ip_error = validate_ip_address(ip)
        if ip_error:
            raise ValidationError(ip_error)

        for existing in context.inventory.list():
            if existing.ip == ip:
                raise ConflictError(f"Server with IP {ip} already exists: {existing.name}")

        name_error = validate_server_name(name)
        if name_error:
            raise ValidationError(name_error)

        client = context.provider_factory(provider_name, token)
        try:
            valid = client.validate_token(token)
        except RECOVERABLE_ERRORS as exc:
            hint = normalize_error(exc, provider=provider_name).hint
            raise AuthError(f"Token validation failed: {error_message(exc)}", hint=hint) from exc
        if not valid:
            raise AuthError(
                f"Invalid API token for {provider_name.value}",
                hint=token_hint(provider_name),
            )

        if skip_verify or server_mode is ServerMode.BARE:
            coolify_status = STATUS_SKIPPED
        else:
            coolify_status = verify_coolify(context, ip)

        record = ServerRecord(
            id=f"{MANUAL_ID_PREFIX}{context.epoch_ms()}",
            name=name,
            provider=provider_name.value,
            ip=ip,
            created_at=datetime.fromtimestamp(context.clock(), UTC).isoformat(),
            mode=server_mode,
        )
        context.inventory.save(record)
    except RECOVERABLE_ERRORS as exc:
        return AddServerResult.failed(exc, provider=provider)

    LOGGER.info("Added server %s (%s) with status %s.", record.name, record.ip, coolify_status)
    return AddServerResult(success=True, server=record, coolify_status=coolify_status)


def verify_coolify(context: OperationContext, ip: str) -> str:
    """Probe *ip* for a running Coolify instance; never raises."""
    if not context.executor.is_available():
        return STATUS_SSH_UNAVAILABLE
    try:
        health = context.executor.execute(ip, build_health_probe_plan().render())
        if health.ok and "200" in health.stdout.strip():
            return STATUS_RUNNING
        containers = context.executor.execute(ip, build_container_probe_plan().render())
        if containers.ok and "OK" in containers.stdout.strip():
            return STATUS_CONTAINERS_DETECTED
        return STATUS_NOT_DETECTED
    except RECOVERABLE_ERRORS as exc:
        LOGGER.warning("Coolify verification failed for %s: %s", ip, error_message(exc))
        return STATUS_VERIFICATION_FAILED


def remove_server(context: OperationContext, query: str) -> RemoveServerResult:
    """Remove a server from the local inventory only."""
    try:
        server = context.resolve_server(query)
        if not context.inventory.remove(server.id):
            raise ValidationError(f"Failed to remove server: {server.name}")
    except RECOVERABLE_ERRORS as exc:
        return RemoveServerResult.failed(exc)
    LOGGER.info("Removed server %s (%s) from inventory.", server.name, server.ip)
    return RemoveServerResult(success=True, server=server)


def destroy_server(
    context: OperationContext, query: str, *, force: bool = False
) -> DestroyServerResult:
    """Delete a cloud server and its inventory record.

    Safe mode is checked before anything else. A provider answering "not
    found" means the server is already gone: the local record is removed and
    the call succeeds with ``cloud_deleted=False``. Any other provider failure
    leaves the inventory untouched unless *force* is set, in which case the
    local record is removed anyway and the failure is reported as a warning.
    """
    server: ServerRecord | None = None
    try:
        context.gate.check("destroy")
        server = context.resolve_server(query)
        if server.is_manual:
            raise ValidationError(
                f'Server "{server.name}" was manually added (no cloud provider ID). '
                "Use the remove action instead.",
                hint=f"quicklify remove {server.name}",
            )
        client = context.provider_for(server.provider)
        try:
            client.destroy_server(server.id)
        except RECOVERABLE_ERRORS as exc:
            if not is_not_found(exc):
                if not force:
                    raise
                return _force_remove(context, server, exc)
            context.inventory.remove(server.id)
            LOGGER.info(
                "Server %s already absent on %s; removed locally.", server.name, server.provider
            )
            return DestroyServerResult(
                success=True,
                server=server,
                cloud_deleted=False,
                local_removed=True,
                hint=(
                    f"Server not found on {server.provider} (may have been deleted manually). "
                    "Removed from local inventory."
                ),
            )
        context.inventory.remove(server.id)
    except RECOVERABLE_ERRORS as exc:
        provider = server.provider if server is not None else None
        return DestroyServerResult.failed(exc, provider=provider, server=server)

    LOGGER.info("Destroyed server %s (%s) on %s.", server.name, server.ip, server.provider)
    return DestroyServerResult(success=True, server=server, cloud_deleted=True, local_removed=True)


def _force_remove(
    context: OperationContext, server: ServerRecord, exc: BaseException
) -> DestroyServerResult:
    normalized = normalize_error(exc, provider=server.provider)
    context.inventory.remove(server.id)
    LOGGER.warning(
        "Cloud deletion of %s failed (%s); forced removal from inventory.",
        server.name,
        normalized.message,
    )
    return DestroyServerResult(
        success=True,
        server=server,
        cloud_deleted=False,
        local_removed=True,
        warning=(
            f"Cloud deletion failed: {normalized.message}. The server may still exist on "
            f"{server.provider}; removed from local inventory only."
        ),
        hint=normalized.hint,
    )


__all__ = [
    "STATUS_CONTAINERS_DETECTED",
    "STATUS_NOT_DETECTED",
    "STATUS_RUNNING",
    "STATUS_SKIPPED",
    "STATUS_SSH_UNAVAILABLE",
    "STATUS_VERIFICATION_FAILED",
    "add_server",
    "destroy_server",
    "remove_server",
    "verify_coolify",
]
