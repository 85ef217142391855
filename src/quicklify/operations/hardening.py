"""SSH hardening, fail2ban installation and security audit."""
from __future__ import annotations

import logging

from ..commands import (
    AUTHORIZED_KEYS_PATH,
    build_audit_plan,
    build_fail2ban_plan,
    build_hardening_plan,
    build_key_check_plan,
)
from ..errors import CommandError, SafetyAbort, error_message
from ..models import DEFAULT_SSH_PORT, SecureAuditResult
from ..parsers import calculate_security_score, parse_audit_output, parse_key_count
from ..validation import assert_valid_port
from .context import OperationContext
from .results import RECOVERABLE_ERRORS, SecureAuditReport, SecureSetupResult

LOGGER = logging.getLogger(__name__)


def secure_setup(
    context: OperationContext,
    query: str,
    *,
    port: int | None = None,
) -> SecureSetupResult:
    """Harden sshd on a server, then install fail2ban.

    Nothing is changed unless at least one public key is already authorised
    for root; otherwise the operation aborts with :class:`SafetyAbort`.
    Hardening failures fail the operation. A fail2ban failure leaves the
    hardening in place and reports a partial success.
    """
    key_count = 0
    host: str | None = None
    try:
        if port is not None:
            assert_valid_port(port)
        server = context.resolve_server(query)
        host = server.ip

        key_check = context.executor.execute(host, build_key_check_plan().render())
        key_count = parse_key_count(key_check.stdout)
        if key_count == 0:
            raise SafetyAbort(
                f"No SSH keys found in {AUTHORIZED_KEYS_PATH}. Refusing to disable "
                "password authentication.",
                hint=f"Add your public key first: ssh-copy-id root@{host}",
            )

        context.run_plan(host, build_hardening_plan(port))
        LOGGER.info("Applied SSH hardening on %s.", host)
    except RECOVERABLE_ERRORS as exc:
        return SecureSetupResult.failed(exc, host=host, ssh_key_count=key_count)

    ssh_port = port if port is not None else DEFAULT_SSH_PORT
    # sshd has been restarted, so new connections must use the new port.
    connect_port = ssh_port if ssh_port != DEFAULT_SSH_PORT else None
    try:
        context.run_plan(host, build_fail2ban_plan(ssh_port), port=connect_port)
    except RECOVERABLE_ERRORS as exc:
        LOGGER.warning("fail2ban installation failed on %s: %s", host, error_message(exc))
        failed_step = exc.failed_step if isinstance(exc, CommandError) else None
        return SecureSetupResult(
            success=True,
            ssh_hardening=True,
            fail2ban=False,
            ssh_key_count=key_count,
            ssh_port=ssh_port,
            partial=True,
            failed_step=failed_step,
            warning=f"fail2ban setup failed: {error_message(exc)}",
            hint=(
                "SSH hardening applied, but fail2ban setup failed. "
                f"Retry: quicklify secure setup {host}"
            ),
        )

    return SecureSetupResult(
        success=True,
        ssh_hardening=True,
        fail2ban=True,
        ssh_key_count=key_count,
        ssh_port=ssh_port,
    )


def secure_audit(context: OperationContext, query: str) -> SecureAuditReport:
    """Read sshd_config and fail2ban status in one round trip and score them."""
    host: str | None = None
    try:
        server = context.resolve_server(query)
        host = server.ip
        result = context.executor.execute(host, build_audit_plan().render())
        if not result.ok and not result.stdout.strip():
            detail = result.stderr.strip() or "no output"
            raise CommandError(
                f"Security audit failed (exit code {result.exit_code}): {detail}",
                exit_code=result.exit_code,
            )
    except RECOVERABLE_ERRORS as exc:
        return SecureAuditReport.failed(exc, host=host, audit=SecureAuditResult(), score=0)

    audit = parse_audit_output(result.stdout)
    return SecureAuditReport(success=True, audit=audit, score=calculate_security_score(audit))


__all__ = ["secure_audit", "secure_setup"]
