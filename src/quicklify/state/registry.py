"""Helpers for interacting with the quicklify state directory.

The state directory (``~/.quicklify`` by default) stores YAML documents such
as ``servers.yml``. This module reads and writes those files using atomic
replacement so an interrupted write never leaves a truncated inventory.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable, Mapping
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path

import yaml

SERVERS_FILE = "servers.yml"


class StateRegistryError(RuntimeError):
    """Raised when state documents cannot be read or are malformed."""


@dataclass(frozen=True)
class StateRegistry:
    """High-level interface to the YAML state documents."""

    root: Path

    def __post_init__(self) -> None:
        """Normalise the root path after initialisation."""
        object.__setattr__(self, "root", self.root.expanduser())

    def ensure_root(self) -> None:
        """Create the state directory if it does not yet exist."""
        self.root.mkdir(parents=True, exist_ok=True)
        os.chmod(self.root, 0o700)

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------
    def path_for(self, name: str) -> Path:
        """Return the filesystem path for a named state file."""
        return self.root / name

    def read(self, name: str, *, default: object | None = None) -> object | None:
        """Read a state file, returning *default* when missing."""
        path = self.path_for(name)
        if not path.exists():
            return deepcopy(default)
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise StateRegistryError(f"Failed to parse state file {path}: {exc}") from exc
        return data if data is not None else deepcopy(default)

    def write(self, name: str, payload: Mapping[str, object]) -> None:
        """Atomically write *payload* to the given state file."""
        self.ensure_root()
        path = self.path_for(name)

        tmp_fd, tmp_name = tempfile.mkstemp(dir=str(self.root), prefix=f".{path.name}.")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                yaml.safe_dump(payload, handle, sort_keys=False)
            os.replace(tmp_path, path)
            os.chmod(path, 0o600)
        finally:
            tmp_path.unlink(missing_ok=True)

    # Convenience wrappers -------------------------------------------------
    def read_servers(self) -> list[dict[str, object]]:
        """Return the raw server entries from ``servers.yml``.

        A missing file yields an empty list. A document that is present but
        not shaped like ``{"servers": [...]}`` raises
        :class:`StateRegistryError` rather than being silently discarded.
        """
        path = self.path_for(SERVERS_FILE)
        value = self.read(SERVERS_FILE, default={"servers": []})
        if not isinstance(value, Mapping):
            raise StateRegistryError(f"State file {path} must contain a mapping.")
        raw_servers = value.get("servers", [])
        if raw_servers is None:
            return []
        if not isinstance(raw_servers, list):
            raise StateRegistryError(f"State file {path} has a malformed 'servers' list.")
        entries: list[dict[str, object]] = []
        for index, entry in enumerate(raw_servers):
            if not isinstance(entry, Mapping):
                raise StateRegistryError(f"Server entry #{index} in {path} must be a mapping.")
            entries.append(dict(entry))
        return entries

    def write_servers(self, servers: Iterable[Mapping[str, object]]) -> None:
        """Persist server entries to ``servers.yml``."""
        self.write(SERVERS_FILE, {"servers": [dict(entry) for entry in servers]})


__all__ = ["SERVERS_FILE", "StateRegistry", "StateRegistryError"]
