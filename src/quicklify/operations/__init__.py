"""Orchestration operations composing inventory, providers and remote plans."""
from __future__ import annotations

from .context import OperationContext
from .dispatch import ACTIONS, dispatch, select_server
from .domain import domain_check, domain_info, domain_remove, domain_set
from .firewall import firewall_add, firewall_remove, firewall_setup, firewall_status
from .hardening import secure_audit, secure_setup
from .lifecycle import add_server, destroy_server, remove_server, verify_coolify
from .results import RECOVERABLE_ERRORS, OperationResult
from .snapshots import create_snapshot, delete_snapshot, list_fleet_snapshots, list_snapshots
from .status import fleet_status, restart_server, server_status

__all__ = [
    "ACTIONS",
    "OperationContext",
    "OperationResult",
    "RECOVERABLE_ERRORS",
    "add_server",
    "create_snapshot",
    "delete_snapshot",
    "destroy_server",
    "dispatch",
    "domain_check",
    "domain_info",
    "domain_remove",
    "domain_set",
    "firewall_add",
    "firewall_remove",
    "firewall_setup",
    "firewall_status",
    "fleet_status",
    "list_fleet_snapshots",
    "list_snapshots",
    "remove_server",
    "restart_server",
    "secure_audit",
    "secure_setup",
    "select_server",
    "server_status",
    "verify_coolify",
]
