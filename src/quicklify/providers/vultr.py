"""Vultr API client."""
from __future__ import annotations

from typing import Any

from ..models import ProviderName, SnapshotInfo
from .base import (
    SNAPSHOT_PREFIX,
    CloudProvider,
    format_cost,
    split_tagged_description,
    tagged_description,
)

SNAPSHOT_PRICE_PER_GB = 0.05
_BYTES_PER_GB = 1024**3


class VultrProvider(CloudProvider):
    """Vultr (``api.vultr.com/v2``).

    Vultr snapshots are not linked to an instance after creation. The
    instance id is written into the snapshot description and listings keep
    only the ``quicklify-`` snapshots tagged with the requested instance.
    """

    name = ProviderName.VULTR
    base_url = "https://api.vultr.com/v2"
    validate_path = "/account"

    def get_server_status(self, server_id: str) -> str:
        payload = self._request(
            "GET", f"/instances/{server_id}", action="Failed to get server status"
        )
        instance = payload.get("instance") or {}
        return str(instance.get("power_status") or "unknown")

    def reboot_server(self, server_id: str) -> None:
        self._request(
            "POST", f"/instances/{server_id}/reboot", json={}, action="Failed to reboot server"
        )

    def destroy_server(self, server_id: str) -> None:
        self._request("DELETE", f"/instances/{server_id}", action="Failed to destroy server")

    def create_snapshot(self, server_id: str, name: str) -> SnapshotInfo:
        payload = self._request(
            "POST",
            "/snapshots",
            json={"instance_id": server_id, "description": tagged_description(name, server_id)},
            action="Failed to create snapshot",
        )
        return _snapshot_from_payload(payload.get("snapshot") or {}, server_id, name)

    def list_snapshots(self, server_id: str) -> list[SnapshotInfo]:
        payload = self._request(
            "GET", "/snapshots", params={"per_page": 100}, action="Failed to list snapshots"
        )
        snapshots: list[SnapshotInfo] = []
        for item in payload.get("snapshots") or []:
            if not isinstance(item, dict):
                continue
            name, owner = split_tagged_description(str(item.get("description") or ""))
            if owner == server_id and name.startswith(SNAPSHOT_PREFIX):
                snapshots.append(_snapshot_from_payload(item, server_id))
        return snapshots

    def delete_snapshot(self, snapshot_id: str) -> None:
        self._request("DELETE", f"/snapshots/{snapshot_id}", action="Failed to delete snapshot")

    def get_snapshot_cost_estimate(self, server_id: str) -> str:
        payload = self._request(
            "GET", f"/instances/{server_id}", action="Failed to get snapshot cost"
        )
        instance = payload.get("instance") or {}
        disk_gb = float(instance.get("disk") or 0)
        return format_cost(disk_gb, SNAPSHOT_PRICE_PER_GB)


def _snapshot_from_payload(
    item: dict[str, Any],
    server_id: str,
    fallback_name: str = "",
) -> SnapshotInfo:
    size_gb = float(item.get("size") or 0) / _BYTES_PER_GB
    name, _ = split_tagged_description(str(item.get("description") or ""))
    return SnapshotInfo(
        id=str(item.get("id", "")),
        server_id=server_id,
        name=name or fallback_name,
        status=str(item.get("status") or "unknown"),
        size_gb=round(size_gb, 2),
        created_at=str(item.get("date_created") or ""),
        cost_per_month=format_cost(size_gb, SNAPSHOT_PRICE_PER_GB),
    )


__all__ = ["VultrProvider"]
