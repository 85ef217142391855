"""Persistent state helpers for quicklify."""
from __future__ import annotations

from .registry import SERVERS_FILE, StateRegistry, StateRegistryError

__all__ = ["SERVERS_FILE", "StateRegistry", "StateRegistryError"]
