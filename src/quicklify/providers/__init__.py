"""Cloud provider clients and the factory selecting one per :class:`ProviderName`."""
from __future__ import annotations

import httpx

from ..models import ProviderName
from .base import SNAPSHOT_PREFIX, CloudProvider
from .digitalocean import DigitalOceanProvider
from .hetzner import HetznerProvider
from .linode import LinodeProvider
from .vultr import VultrProvider

PROVIDER_CLASSES: dict[ProviderName, type[CloudProvider]] = {
    ProviderName.HETZNER: HetznerProvider,
    ProviderName.DIGITALOCEAN: DigitalOceanProvider,
    ProviderName.VULTR: VultrProvider,
    ProviderName.LINODE: LinodeProvider,
}


def create_provider(
    provider: ProviderName,
    token: str,
    *,
    client: httpx.Client | None = None,
    timeout: float = 30.0,
) -> CloudProvider:
    """Return the client implementation for *provider*."""
    return PROVIDER_CLASSES[ProviderName(provider)](token, client=client, timeout=timeout)


__all__ = [
    "CloudProvider",
    "DigitalOceanProvider",
    "HetznerProvider",
    "LinodeProvider",
    "PROVIDER_CLASSES",
    "SNAPSHOT_PREFIX",
    "VultrProvider",
    "create_provider",
]
