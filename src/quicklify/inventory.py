"""Server inventory backed by ``servers.yml``."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import ConflictError
from .models import ServerRecord
from .state import StateRegistry

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ServerInventory:
    """List, look up, add and remove :class:`ServerRecord` entries.

    Every mutation rewrites the whole document through
    :meth:`StateRegistry.write_servers`, which replaces the file atomically.
    Concurrent writers from separate processes are not coordinated.
    """

    registry: StateRegistry

    # ------------------------------------------------------------------
    def list(self) -> list[ServerRecord]:
        """Return all registered servers in insertion order."""
        return [ServerRecord.from_mapping(entry) for entry in self.registry.read_servers()]

    def find(self, query: str) -> ServerRecord | None:
        """Return the server whose IP (preferred) or name equals *query*."""
        needle = query.strip()
        if not needle:
            return None
        servers = self.list()
        for server in servers:
            if server.ip == needle:
                return server
        for server in servers:
            if server.name == needle:
                return server
        return None

    def save(self, record: ServerRecord) -> None:
        """Append *record*, refusing a second entry for the same IP address."""
        servers = self.list()
        if any(server.ip == record.ip for server in servers):
            raise ConflictError(f"Server with IP {record.ip} already exists.")
        servers.append(record)
        self.registry.write_servers(server.to_dict() for server in servers)
        LOGGER.debug("Saved server %s (%s) to inventory.", record.name, record.ip)

    def remove(self, server_id: str) -> bool:
        """Remove the entry with *server_id*; return ``False`` when absent."""
        servers = self.list()
        remaining = [server for server in servers if server.id != server_id]
        if len(remaining) == len(servers):
            return False
        self.registry.write_servers(server.to_dict() for server in remaining)
        LOGGER.debug("Removed server id %s from inventory.", server_id)
        return True


__all__ = ["ServerInventory"]
