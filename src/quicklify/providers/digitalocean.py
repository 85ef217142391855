"""DigitalOcean API client."""
from __future__ import annotations

from ..models import ProviderName, SnapshotInfo
from .base import SNAPSHOT_PREFIX, CloudProvider, format_cost

# USD per GB per month for droplet snapshots.
SNAPSHOT_PRICE_PER_GB = 0.06


class DigitalOceanProvider(CloudProvider):
    """DigitalOcean (``api.digitalocean.com/v2``)."""

    name = ProviderName.DIGITALOCEAN
    base_url = "https://api.digitalocean.com/v2"
    validate_path = "/account"

    def get_server_status(self, server_id: str) -> str:
        payload = self._request(
            "GET", f"/droplets/{server_id}", action="Failed to get server status"
        )
        droplet = payload.get("droplet") or {}
        status = str(droplet.get("status") or "unknown")
        return "running" if status == "active" else status

    def reboot_server(self, server_id: str) -> None:
        self._request(
            "POST",
            f"/droplets/{server_id}/actions",
            json={"type": "reboot"},
            action="Failed to reboot server",
        )

    def destroy_server(self, server_id: str) -> None:
        self._request("DELETE", f"/droplets/{server_id}", action="Failed to destroy server")

    def create_snapshot(self, server_id: str, name: str) -> SnapshotInfo:
        # The snapshot id is only known once the action completes, so the
        # action id is reported instead.
        payload = self._request(
            "POST",
            f"/droplets/{server_id}/actions",
            json={"type": "snapshot", "name": name},
            action="Failed to create snapshot",
        )
        action = payload.get("action") or {}
        return SnapshotInfo(
            id=str(action.get("id", "")),
            server_id=server_id,
            name=name,
            status=str(action.get("status") or "in-progress"),
            created_at=str(action.get("started_at") or ""),
        )

    def list_snapshots(self, server_id: str) -> list[SnapshotInfo]:
        payload = self._request(
            "GET",
            f"/droplets/{server_id}/snapshots",
            params={"per_page": 100},
            action="Failed to list snapshots",
        )
        snapshots: list[SnapshotInfo] = []
        for item in payload.get("snapshots") or []:
            if not isinstance(item, dict):
                continue
            name = str(item.get("name") or "")
            if not name.startswith(SNAPSHOT_PREFIX):
                continue
            size_gb = float(item.get("size_gigabytes") or 0)
            snapshots.append(
                SnapshotInfo(
                    id=str(item.get("id", "")),
                    server_id=server_id,
                    name=name,
                    status="available",
                    size_gb=size_gb,
                    created_at=str(item.get("created_at") or ""),
                    cost_per_month=format_cost(size_gb, SNAPSHOT_PRICE_PER_GB),
                )
            )
        return snapshots

    def delete_snapshot(self, snapshot_id: str) -> None:
        self._request("DELETE", f"/snapshots/{snapshot_id}", action="Failed to delete snapshot")

    def get_snapshot_cost_estimate(self, server_id: str) -> str:
        payload = self._request(
            "GET", f"/droplets/{server_id}", action="Failed to get snapshot cost"
        )
        droplet = payload.get("droplet") or {}
        disk_gb = float(droplet.get("disk") or 0)
        return format_cost(disk_gb, SNAPSHOT_PRICE_PER_GB)


__all__ = ["DigitalOceanProvider"]
