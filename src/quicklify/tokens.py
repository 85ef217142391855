"""Provider API token lookup."""
from __future__ import annotations

import os
from collections.abc import Iterable, Mapping

from .models import ProviderName, ServerRecord


def get_provider_token(
    provider: ProviderName | str,
    env: Mapping[str, str] | None = None,
) -> str | None:
    """Return the API token for *provider* from the environment, if set."""
    source = os.environ if env is None else env
    try:
        name = ProviderName(provider)
    except ValueError:
        return None
    token = source.get(name.token_env, "").strip()
    return token or None


def collect_provider_tokens(
    servers: Iterable[ServerRecord],
    env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return tokens for every provider backing a cloud (non-manual) server."""
    tokens: dict[str, str] = {}
    for server in servers:
        if server.is_manual or server.provider in tokens:
            continue
        token = get_provider_token(server.provider, env)
        if token:
            tokens[server.provider] = token
    return tokens


__all__ = ["collect_provider_tokens", "get_provider_token"]
