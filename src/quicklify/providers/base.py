"""Capability interface shared by all cloud provider clients."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

import httpx

from ..errors import ProviderError, classify_transport_text
from ..models import ProviderName, SnapshotInfo

LOGGER = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "quicklify-"
# Appended to snapshot descriptions on APIs that do not link images to an instance.
SNAPSHOT_INSTANCE_TAG = " instance:"


class CloudProvider(ABC):
    """Operations quicklify needs from a cloud provider.

    Implementations talk to the provider's REST API through an
    :class:`httpx.Client`. Passing *client* shares a connection pool (and
    lets tests inject ``httpx.MockTransport``); otherwise a private client
    with *timeout* is created.

    HTTP failures raise :class:`ProviderError` with ``status_code`` set and a
    message built only from known error fields of the response body.
    """

    name: ProviderName
    base_url: str
    validate_path: str

    def __init__(
        self,
        token: str,
        *,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._token = token
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    @property
    def display_name(self) -> str:
        return self.name.display_name

    # ------------------------------------------------------------------
    # Capability surface
    # ------------------------------------------------------------------
    def validate_token(self, token: str | None = None) -> bool:
        """Return ``False`` when the API rejects *token* (default: own token)."""
        try:
            self._request("GET", self.validate_path, token=token, action="Failed to validate token")
        except ProviderError as exc:
            if exc.status_code in (401, 403):
                return False
            raise
        return True

    @abstractmethod
    def get_server_status(self, server_id: str) -> str:
        """Return the provider's power state for *server_id* (``running`` when up)."""

    @abstractmethod
    def reboot_server(self, server_id: str) -> None:
        """Request a reboot of *server_id*; returns once the API accepted it."""

    @abstractmethod
    def destroy_server(self, server_id: str) -> None:
        """Delete the server with *server_id*."""

    @abstractmethod
    def create_snapshot(self, server_id: str, name: str) -> SnapshotInfo:
        """Create a disk image of *server_id* labelled *name*."""

    @abstractmethod
    def list_snapshots(self, server_id: str) -> list[SnapshotInfo]:
        """Return quicklify-managed snapshots of *server_id*."""

    @abstractmethod
    def delete_snapshot(self, snapshot_id: str) -> None:
        """Delete the snapshot *snapshot_id*."""

    @abstractmethod
    def get_snapshot_cost_estimate(self, server_id: str) -> str:
        """Return a monthly storage cost estimate for a snapshot of *server_id*."""

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        json: Mapping[str, object] | None = None,
        params: Mapping[str, object] | None = None,
        token: str | None = None,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {token or self._token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        url = f"{self.base_url}{path}"
        LOGGER.debug("%s %s %s", self.name.value, method, path)
        # Exceptions are re-raised without their cause: httpx errors carry the
        # request, including the Authorization header.
        try:
            response = self._client.request(
                method,
                url,
                headers=headers,
                json=dict(json) if json is not None else None,
                params=dict(params) if params is not None else None,
            )
        except httpx.TimeoutException:
            raise ProviderError(
                f"{action}: {self.display_name} API request timed out.", code="ETIMEDOUT"
            ) from None
        except httpx.ConnectError as exc:
            code = classify_transport_text(str(exc)) or "ECONNREFUSED"
            raise ProviderError(
                f"{action}: cannot reach {self.display_name} API.", code=code
            ) from None
        except httpx.HTTPError as exc:
            raise ProviderError(
                f"{action}: {type(exc).__name__} talking to {self.display_name} API.",
                code="ENETWORK",
            ) from None

        if response.status_code >= 400:
            detail = extract_error_detail(response)
            raise ProviderError(
                f"{action}: {detail}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {"data": payload}


def extract_error_detail(response: httpx.Response) -> str:
    """Return the provider's error message using known body fields only."""
    fallback = f"HTTP {response.status_code} {response.reason_phrase}".strip()
    try:
        body = response.json()
    except ValueError:
        return fallback
    if not isinstance(body, dict):
        return fallback

    messages: list[str] = []
    error = body.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        messages.append(error["message"])
    elif isinstance(error, str):
        messages.append(error)
    if isinstance(body.get("message"), str):
        messages.append(body["message"])
    errors = body.get("errors")
    if isinstance(errors, list):
        reasons = [
            item["reason"]
            for item in errors
            if isinstance(item, dict) and isinstance(item.get("reason"), str)
        ]
        if reasons:
            messages.append(", ".join(reasons))
    return "; ".join(messages) or fallback


def tagged_description(name: str, server_id: str) -> str:
    """Return a snapshot description recording the source instance."""
    return f"{name}{SNAPSHOT_INSTANCE_TAG}{server_id}"


def split_tagged_description(description: str) -> tuple[str, str | None]:
    """Return ``(name, server_id)`` from a :func:`tagged_description` value."""
    name, tag, server_id = description.rpartition(SNAPSHOT_INSTANCE_TAG)
    if not tag:
        return description, None
    return name, server_id


def format_cost(size_gb: float, price_per_gb: float, currency: str = "$") -> str:
    """Return a ``$0.00/mo`` style monthly cost string."""
    return f"{currency}{size_gb * price_per_gb:.2f}/mo"


__all__ = [
    "CloudProvider",
    "SNAPSHOT_INSTANCE_TAG",
    "SNAPSHOT_PREFIX",
    "extract_error_detail",
    "format_cost",
    "split_tagged_description",
    "tagged_description",
]
