"""Linode (Akamai) API client."""
from __future__ import annotations

from typing import Any

from ..errors import ProviderError
from ..models import ProviderName, SnapshotInfo
from .base import (
    SNAPSHOT_PREFIX,
    CloudProvider,
    format_cost,
    split_tagged_description,
    tagged_description,
)

SNAPSHOT_PRICE_PER_GB = 0.004


class LinodeProvider(CloudProvider):
    """Linode (``api.linode.com/v4``).

    Snapshots are private images built from the instance's largest disk.
    Images are not linked to an instance, so the instance id is written into
    the image description. Linode reports sizes in MB.
    """

    name = ProviderName.LINODE
    base_url = "https://api.linode.com/v4"
    validate_path = "/profile"

    def get_server_status(self, server_id: str) -> str:
        payload = self._request(
            "GET", f"/linode/instances/{server_id}", action="Failed to get server status"
        )
        return str(payload.get("status") or "unknown")

    def reboot_server(self, server_id: str) -> None:
        self._request(
            "POST", f"/linode/instances/{server_id}/reboot", action="Failed to reboot server"
        )

    def destroy_server(self, server_id: str) -> None:
        self._request(
            "DELETE", f"/linode/instances/{server_id}", action="Failed to destroy server"
        )

    def create_snapshot(self, server_id: str, name: str) -> SnapshotInfo:
        action = "Failed to create snapshot"
        disks_payload = self._request(
            "GET", f"/linode/instances/{server_id}/disks", action=action
        )
        disks = [disk for disk in disks_payload.get("data") or [] if isinstance(disk, dict)]
        if not disks:
            raise ProviderError(f"{action}: No disks found on this instance")
        disk = max(disks, key=lambda item: item.get("size") or 0)
        image = self._request(
            "POST",
            "/images",
            json={
                "disk_id": disk.get("id"),
                "label": name,
                "description": tagged_description(name, server_id),
            },
            action=action,
        )
        return _snapshot_from_image(image, server_id, fallback_name=name)

    def list_snapshots(self, server_id: str) -> list[SnapshotInfo]:
        payload = self._request(
            "GET",
            "/images",
            params={"page": 1, "page_size": 100},
            action="Failed to list snapshots",
        )
        return [
            _snapshot_from_image(image, server_id)
            for image in payload.get("data") or []
            if isinstance(image, dict)
            and image.get("type") == "manual"
            and str(image.get("label") or "").startswith(SNAPSHOT_PREFIX)
            and split_tagged_description(str(image.get("description") or ""))[1] == server_id
        ]

    def delete_snapshot(self, snapshot_id: str) -> None:
        self._request("DELETE", f"/images/{snapshot_id}", action="Failed to delete snapshot")

    def get_snapshot_cost_estimate(self, server_id: str) -> str:
        payload = self._request(
            "GET", f"/linode/instances/{server_id}", action="Failed to get snapshot cost"
        )
        specs = payload.get("specs") or {}
        disk_mb = float(specs.get("disk") or payload.get("disk") or 0)
        return format_cost(disk_mb / 1024, SNAPSHOT_PRICE_PER_GB)


def _snapshot_from_image(
    image: dict[str, Any],
    server_id: str,
    *,
    fallback_name: str = "",
) -> SnapshotInfo:
    size_gb = float(image.get("size") or 0) / 1024
    return SnapshotInfo(
        id=str(image.get("id", "")),
        server_id=server_id,
        name=str(image.get("label") or fallback_name),
        status=str(image.get("status") or "unknown"),
        size_gb=size_gb,
        created_at=str(image.get("created") or ""),
        cost_per_month=format_cost(size_gb, SNAPSHOT_PRICE_PER_GB),
    )


__all__ = ["LinodeProvider"]
