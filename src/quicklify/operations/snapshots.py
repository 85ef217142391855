"""Provider-side snapshot management for cloud-backed servers."""
from __future__ import annotations

import logging

from ..errors import ValidationError, error_message
from ..models import ServerRecord
from ..providers import SNAPSHOT_PREFIX, CloudProvider
from .context import OperationContext
from .results import (
    RECOVERABLE_ERRORS,
    FleetSnapshotEntry,
    SnapshotCreateResult,
    SnapshotDeleteResult,
    SnapshotListResult,
)

LOGGER = logging.getLogger(__name__)


def _cloud_server(context: OperationContext, query: str) -> ServerRecord:
    server = context.resolve_server(query)
    if server.is_manual:
        raise ValidationError(
            f'Server "{server.name}" was manually added and has no cloud provider ID. '
            "Snapshots are only available for provider-managed servers."
        )
    return server


def create_snapshot(context: OperationContext, query: str) -> SnapshotCreateResult:
    """Create a ``quicklify-<epoch-ms>`` snapshot of a server."""
    provider: str | None = None
    try:
        server = _cloud_server(context, query)
        provider = server.provider
        client = context.provider_for(server.provider)
        cost_estimate = _cost_estimate(client, server)
        snapshot = client.create_snapshot(server.id, f"{SNAPSHOT_PREFIX}{context.epoch_ms()}")
    except RECOVERABLE_ERRORS as exc:
        return SnapshotCreateResult.failed(exc, provider=provider)
    LOGGER.info("Created snapshot %s of %s on %s.", snapshot.id, server.name, provider)
    return SnapshotCreateResult(success=True, snapshot=snapshot, cost_estimate=cost_estimate)


def _cost_estimate(client: CloudProvider, server: ServerRecord) -> str | None:
    try:
        return client.get_snapshot_cost_estimate(server.id)
    except RECOVERABLE_ERRORS as exc:
        LOGGER.info("Snapshot cost estimate unavailable for %s: %s", server.name, exc)
        return None


def list_snapshots(context: OperationContext, query: str) -> SnapshotListResult:
    """Return the quicklify-managed snapshots of one server."""
    provider: str | None = None
    try:
        server = _cloud_server(context, query)
        provider = server.provider
        snapshots = context.provider_for(server.provider).list_snapshots(server.id)
    except RECOVERABLE_ERRORS as exc:
        return SnapshotListResult.failed(exc, provider=provider)
    return SnapshotListResult(success=True, snapshots=tuple(snapshots))


def delete_snapshot(
    context: OperationContext,
    query: str,
    snapshot_id: str,
) -> SnapshotDeleteResult:
    """Delete *snapshot_id*; blocked in safe mode before any lookup."""
    provider: str | None = None
    try:
        context.gate.check("snapshot-delete")
        if not snapshot_id or not str(snapshot_id).strip():
            raise ValidationError("Snapshot ID is required")
        server = _cloud_server(context, query)
        provider = server.provider
        context.provider_for(server.provider).delete_snapshot(str(snapshot_id).strip())
    except RECOVERABLE_ERRORS as exc:
        return SnapshotDeleteResult.failed(exc, provider=provider, snapshot_id=snapshot_id)
    LOGGER.info("Deleted snapshot %s of %s.", snapshot_id, server.name)
    return SnapshotDeleteResult(success=True, snapshot_id=str(snapshot_id).strip())


def list_fleet_snapshots(context: OperationContext) -> list[FleetSnapshotEntry]:
    """List snapshots for every cloud-backed server in the inventory.

    Servers are visited one after another. A missing token or provider
    failure is recorded on that server's entry and does not stop the rest.
    """
    entries: list[FleetSnapshotEntry] = []
    for server in context.inventory.list():
        if server.is_manual:
            continue
        try:
            snapshots = context.provider_for(server.provider).list_snapshots(server.id)
        except RECOVERABLE_ERRORS as exc:
            LOGGER.warning(
                "Could not list snapshots for %s: %s", server.name, error_message(exc)
            )
            entries.append(
                FleetSnapshotEntry.failed(exc, provider=server.provider, server=server)
            )
            continue
        entries.append(FleetSnapshotEntry(success=True, server=server, snapshots=tuple(snapshots)))
    return entries


__all__ = ["create_snapshot", "delete_snapshot", "list_fleet_snapshots", "list_snapshots"]
