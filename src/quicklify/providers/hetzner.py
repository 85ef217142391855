"""Hetzner Cloud API client."""
from __future__ import annotations

from typing import Any

from ..models import ProviderName, SnapshotInfo
from .base import SNAPSHOT_PREFIX, CloudProvider, format_cost

# EUR per GB per month for snapshot storage.
SNAPSHOT_PRICE_PER_GB = 0.0119


class HetznerProvider(CloudProvider):
    """Hetzner Cloud (``api.hetzner.cloud/v1``)."""

    name = ProviderName.HETZNER
    base_url = "https://api.hetzner.cloud/v1"
    validate_path = "/servers"

    def get_server_status(self, server_id: str) -> str:
        payload = self._request(
            "GET", f"/servers/{server_id}", action="Failed to get server status"
        )
        server = payload.get("server") or {}
        return str(server.get("status") or "unknown")

    def reboot_server(self, server_id: str) -> None:
        self._request(
            "POST", f"/servers/{server_id}/actions/reboot", action="Failed to reboot server"
        )

    def destroy_server(self, server_id: str) -> None:
        self._request("DELETE", f"/servers/{server_id}", action="Failed to destroy server")

    def create_snapshot(self, server_id: str, name: str) -> SnapshotInfo:
        payload = self._request(
            "POST",
            f"/servers/{server_id}/actions/create_image",
            json={"type": "snapshot", "description": name},
            action="Failed to create snapshot",
        )
        image = payload.get("image") or {}
        return _snapshot_from_image(image, server_id, fallback_name=name)

    def list_snapshots(self, server_id: str) -> list[SnapshotInfo]:
        payload = self._request(
            "GET",
            "/images",
            params={"type": "snapshot", "bound_to": server_id, "per_page": 50},
            action="Failed to list snapshots",
        )
        images = payload.get("images") or []
        return [
            _snapshot_from_image(image, server_id)
            for image in images
            if isinstance(image, dict)
            and str(image.get("description") or "").startswith(SNAPSHOT_PREFIX)
        ]

    def delete_snapshot(self, snapshot_id: str) -> None:
        self._request("DELETE", f"/images/{snapshot_id}", action="Failed to delete snapshot")

    def get_snapshot_cost_estimate(self, server_id: str) -> str:
        payload = self._request(
            "GET", f"/servers/{server_id}", action="Failed to get snapshot cost"
        )
        server = payload.get("server") or {}
        server_type = server.get("server_type") or {}
        disk_gb = float(server_type.get("disk") or 0)
        return format_cost(disk_gb, SNAPSHOT_PRICE_PER_GB, currency="€")


def _snapshot_from_image(
    image: dict[str, Any],
    server_id: str,
    *,
    fallback_name: str = "",
) -> SnapshotInfo:
    size_gb = float(image.get("image_size") or 0)
    return SnapshotInfo(
        id=str(image.get("id", "")),
        server_id=server_id,
        name=str(image.get("description") or fallback_name),
        status=str(image.get("status") or "unknown"),
        size_gb=size_gb,
        created_at=str(image.get("created") or ""),
        cost_per_month=format_cost(size_gb, SNAPSHOT_PRICE_PER_GB, currency="€"),
    )


__all__ = ["HetznerProvider"]
