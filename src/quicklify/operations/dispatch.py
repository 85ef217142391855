"""Agent-facing action dispatcher.

:func:`dispatch` accepts an action, an optional server selector and a
parameter mapping. It always returns a JSON-serialisable mapping with
``success`` and, on failure, ``error``, ``kind`` and ``hint``.

Server selection follows one rule for every action that targets a machine:
an explicit name or IP is looked up in the inventory; without one the only
registered server is used.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from ..errors import NotFoundError, ValidationError, normalize_error
from ..models import ServerRecord
from ..validation import is_ascii_digits
from .context import OperationContext
from .domain import domain_check, domain_info, domain_remove, domain_set
from .firewall import firewall_add, firewall_remove, firewall_setup, firewall_status
from .hardening import secure_audit, secure_setup
from .lifecycle import add_server, destroy_server, remove_server
from .results import RECOVERABLE_ERRORS, OperationResult
from .snapshots import create_snapshot, delete_snapshot, list_fleet_snapshots, list_snapshots
from .status import fleet_status, restart_server, server_status

Handler = Callable[[OperationContext, ServerRecord, Mapping[str, Any]], OperationResult]


def _present(params: Mapping[str, Any], key: str, action: str) -> Any:
    value = params.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Parameter '{key}' is required for {action}")
    return value


def _require(params: Mapping[str, Any], key: str, action: str) -> str:
    value = _present(params, key, action)
    if not isinstance(value, str):
        raise ValidationError(f"Parameter '{key}' must be a string for {action}")
    return value


def coerce_port(value: Any) -> int:
    """Return *value* as a port number, accepting digit strings."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid port: {value}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and is_ascii_digits(value.strip()):
        return int(value.strip())
    raise ValidationError(f"Invalid port: {value}")


def coerce_bool(value: Any, *, default: bool) -> bool:
    """Return *value* as a boolean, accepting common string spellings."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1", "on"}:
            return True
        if lowered in {"false", "no", "0", "off"}:
            return False
    raise ValidationError(f"Invalid boolean value: {value}")


def _port_param(params: Mapping[str, Any], action: str) -> int:
    return coerce_port(_present(params, "port", action))


def _secure_setup(context, server, params):
    port = params.get("port")
    return secure_setup(context, server.ip, port=None if port is None else coerce_port(port))


def _firewall_add(context, server, params):
    port = _port_param(params, "firewall-add")
    return firewall_add(context, server.ip, port, params.get("protocol") or "tcp")


def _firewall_remove(context, server, params):
    port = _port_param(params, "firewall-remove")
    return firewall_remove(context, server.ip, port, params.get("protocol") or "tcp")


def _domain_set(context, server, params):
    domain = _require(params, "domain", "domain-set")
    ssl = coerce_bool(params.get("ssl"), default=True)
    return domain_set(context, server.ip, domain, ssl=ssl)


def _domain_check(context, server, params):
    return domain_check(context, server.ip, _require(params, "domain", "domain-check"))


def _snapshot_delete(context, server, params):
    snapshot_id = _present(params, "snapshot_id", "snapshot-delete")
    if isinstance(snapshot_id, bool) or not isinstance(snapshot_id, (str, int)):
        raise ValidationError("Parameter 'snapshot_id' must be a string for snapshot-delete")
    return delete_snapshot(context, server.ip, str(snapshot_id))


def _destroy(context, server, params):
    force = coerce_bool(params.get("force"), default=False)
    return destroy_server(context, server.ip, force=force)


SERVER_ACTIONS: dict[str, Handler] = {
    "remove": lambda context, server, params: remove_server(context, server.ip),
    "destroy": _destroy,
    "status": lambda context, server, params: server_status(context, server.ip),
    "restart": lambda context, server, params: restart_server(context, server.ip),
    "secure-setup": _secure_setup,
    "secure-audit": lambda context, server, params: secure_audit(context, server.ip),
    "firewall-setup": lambda context, server, params: firewall_setup(context, server.ip),
    "firewall-add": _firewall_add,
    "firewall-remove": _firewall_remove,
    "firewall-status": lambda context, server, params: firewall_status(context, server.ip),
    "domain-set": _domain_set,
    "domain-remove": lambda context, server, params: domain_remove(context, server.ip),
    "domain-check": _domain_check,
    "domain-info": lambda context, server, params: domain_info(context, server.ip),
    "snapshot-create": lambda context, server, params: create_snapshot(context, server.ip),
    "snapshot-list": lambda context, server, params: list_snapshots(context, server.ip),
    "snapshot-delete": _snapshot_delete,
}

ACTIONS: tuple[str, ...] = ("add", *SERVER_ACTIONS)

# Actions refused in safe mode before the target is looked up.
GATED_ACTIONS = frozenset({"destroy", "restart", "snapshot-delete"})
# Actions that cover every registered server when called with all=true.
FLEET_ACTIONS = frozenset({"snapshot-list", "status"})


def select_server(context: OperationContext, selector: str | None) -> ServerRecord:
    """Return the target server for an agent call.

    With *selector* the inventory is searched by IP, then name. Without one
    the single registered server is chosen; zero or several servers is an
    error naming what is available.
    """
    servers = context.inventory.list()
    if not servers:
        raise NotFoundError("No servers found", hint="Add a server first: quicklify add")
    if selector:
        server = context.inventory.find(selector)
        if server is None:
            raise NotFoundError(
                f"Server not found: {selector}",
                hint=f"Available servers: {_describe(servers)}",
            )
        return server
    if len(servers) == 1:
        return servers[0]
    raise ValidationError(
        "Multiple servers found. Specify which server to use.",
        hint=f"Available servers: {_describe(servers)}",
    )


def _describe(servers: list[ServerRecord]) -> str:
    return ", ".join(f"{server.name} ({server.ip})" for server in servers)


def dispatch(
    context: OperationContext,
    action: str,
    server: str | None = None,
    params: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Run *action* with *params* and return its outcome as a plain mapping.

    Parameter values come from untrusted callers: wrong types are reported
    as validation failures, never raised.
    """
    try:
        if params is None:
            params = {}
        elif not isinstance(params, Mapping):
            raise ValidationError("Parameters must be a mapping of names to values")
        if not isinstance(action, str):
            raise ValidationError(f"Action must be a string. Got {action!r}")
        if server is not None and not isinstance(server, str):
            raise ValidationError(f"Server selector must be a string. Got {server!r}")

        if action == "add":
            result = add_server(
                context,
                provider=_require(params, "provider", action),
                ip=_require(params, "ip", action),
                name=_require(params, "name", action),
                mode=params.get("mode") or "coolify",
                skip_verify=coerce_bool(params.get("skip_verify"), default=False),
            )
            return result.to_dict()

        fleet = action in FLEET_ACTIONS and coerce_bool(params.get("all"), default=False)
        if action == "snapshot-list" and fleet:
            entries = list_fleet_snapshots(context)
            return {"success": True, "servers": [entry.to_dict() for entry in entries]}
        if action == "status" and fleet:
            statuses = fleet_status(context)
            return {"success": True, "servers": [entry.to_dict() for entry in statuses]}

        handler = SERVER_ACTIONS.get(action)
        if handler is None:
            raise ValidationError(
                f"Unknown action: {action}",
                hint=f"Valid actions: {', '.join(ACTIONS)}",
            )
        if action in GATED_ACTIONS:
            context.gate.check(action)
        target = select_server(context, server)
        result = handler(context, target, params)
    except RECOVERABLE_ERRORS as exc:
        return _error_payload(exc)

    payload = result.to_dict()
    if "server" not in payload:
        payload["server"] = target.name
    payload.setdefault("ip", target.ip)
    return payload


def _error_payload(exc: BaseException) -> dict[str, Any]:
    normalized = normalize_error(exc)
    payload: dict[str, Any] = {
        "success": False,
        "error": normalized.message,
        "kind": normalized.kind.value,
    }
    if normalized.hint:
        payload["hint"] = normalized.hint
    return payload


__all__ = [
    "ACTIONS",
    "FLEET_ACTIONS",
    "GATED_ACTIONS",
    "SERVER_ACTIONS",
    "coerce_bool",
    "coerce_port",
    "dispatch",
    "select_server",
]
