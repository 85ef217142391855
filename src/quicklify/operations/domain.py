"""Coolify FQDN management and DNS verification."""
from __future__ import annotations

import logging

from ..commands import (
    COOLIFY_DASHBOARD_PORT,
    COOLIFY_DB_CONTAINER,
    build_coolify_db_probe_plan,
    build_dns_check_plan,
    build_get_fqdn_plan,
    build_set_fqdn_plan,
)
from ..errors import CommandError, NotFoundError, ValidationError
from ..guard import require_coolify_mode
from ..models import ServerRecord
from ..parsers import parse_dns_result, parse_fqdn
from ..validation import is_valid_domain, sanitize_domain
from .context import OperationContext
from .results import RECOVERABLE_ERRORS, DnsCheckResult, DomainInfoResult, DomainResult

LOGGER = logging.getLogger(__name__)


def _clean_domain(domain: str) -> str:
    cleaned = sanitize_domain(domain)
    if not is_valid_domain(cleaned):
        raise ValidationError(f"Invalid domain: {domain}")
    return cleaned


def _coolify_server(context: OperationContext, query: str) -> ServerRecord:
    server = context.resolve_server(query)
    require_coolify_mode(server, "domain")
    return server


def _require_coolify_db(context: OperationContext, host: str) -> None:
    probe = context.executor.execute(host, build_coolify_db_probe_plan().render())
    if COOLIFY_DB_CONTAINER not in probe.stdout:
        raise NotFoundError(
            f"Coolify database container ({COOLIFY_DB_CONTAINER}) is not running on {host}.",
            hint="Check that Coolify is installed and running: docker ps",
        )


def _apply_fqdn(context: OperationContext, host: str, target: str, *, ssl: bool) -> str:
    plan = build_set_fqdn_plan(target, ssl=ssl)
    _require_coolify_db(context, host)
    context.run_plan(host, plan)
    scheme = "https" if ssl else "http"
    return f"{scheme}://{target}"


def domain_set(
    context: OperationContext,
    query: str,
    domain: str,
    *,
    ssl: bool = True,
) -> DomainResult:
    """Store *domain* as the Coolify FQDN and restart Coolify."""
    host: str | None = None
    try:
        cleaned = _clean_domain(domain)
        server = _coolify_server(context, query)
        host = server.ip
        fqdn = _apply_fqdn(context, host, cleaned, ssl=ssl)
    except RECOVERABLE_ERRORS as exc:
        return DomainResult.failed(exc, host=host)
    LOGGER.info("Set Coolify FQDN on %s to %s.", host, fqdn)
    return DomainResult(success=True, fqdn=fqdn)


def domain_remove(context: OperationContext, query: str) -> DomainResult:
    """Reset the Coolify FQDN to ``http://<ip>:8000``."""
    host: str | None = None
    try:
        server = _coolify_server(context, query)
        host = server.ip
        fqdn = _apply_fqdn(context, host, f"{host}:{COOLIFY_DASHBOARD_PORT}", ssl=False)
    except RECOVERABLE_ERRORS as exc:
        return DomainResult.failed(exc, host=host)
    LOGGER.info("Reset Coolify FQDN on %s to %s.", host, fqdn)
    return DomainResult(success=True, fqdn=fqdn)


def domain_check(context: OperationContext, query: str, domain: str) -> DnsCheckResult:
    """Resolve *domain* from the server and compare it with the server's IP."""
    host: str | None = None
    cleaned: str | None = None
    try:
        cleaned = _clean_domain(domain)
        server = _coolify_server(context, query)
        host = server.ip
        result = context.executor.execute(host, build_dns_check_plan(cleaned).render())
        if not result.ok and not result.stdout.strip():
            raise CommandError(
                f"DNS lookup failed (exit code {result.exit_code}): "
                f"{result.stderr.strip() or 'no output'}",
                exit_code=result.exit_code,
            )
    except RECOVERABLE_ERRORS as exc:
        return DnsCheckResult.failed(exc, host=host, domain=cleaned, expected_ip=host)

    resolved = parse_dns_result(result.stdout)
    if resolved is None:
        return DnsCheckResult(
            success=True,
            domain=cleaned,
            match=False,
            expected_ip=host,
            hint=f"No A record found for {cleaned}. Add an A record pointing to {host}.",
        )
    if resolved != host:
        return DnsCheckResult(
            success=True,
            domain=cleaned,
            match=False,
            resolved_ip=resolved,
            expected_ip=host,
            hint=(
                f"{cleaned} resolves to {resolved}, but the server IP is {host}. "
                f"Update the A record to point to {host}."
            ),
        )
    return DnsCheckResult(
        success=True,
        domain=cleaned,
        match=True,
        resolved_ip=resolved,
        expected_ip=host,
    )


def domain_info(context: OperationContext, query: str) -> DomainInfoResult:
    """Return the stored Coolify FQDN, or ``None`` when unset."""
    host: str | None = None
    try:
        server = _coolify_server(context, query)
        host = server.ip
        result = context.run_plan(host, build_get_fqdn_plan())
    except RECOVERABLE_ERRORS as exc:
        return DomainInfoResult.failed(exc, host=host)
    return DomainInfoResult(success=True, fqdn=parse_fqdn(result.stdout))


__all__ = ["domain_check", "domain_info", "domain_remove", "domain_set"]
