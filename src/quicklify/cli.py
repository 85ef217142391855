"""Typer-powered command line interface for ``quicklify``.

Every command runs inside :meth:`StructuredLogger.operation` so each
invocation leaves one JSON record in ``operations.jsonl``. Commands are thin:
they resolve runtime objects, call one orchestration operation and render its
result. Failures are reported through :func:`_fail_result` or
:func:`_command_error` with the exit code mapped from the error kind.
"""
from __future__ import annotations

import functools
import json
import textwrap
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn

import httpx
import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .commands import (
    COOLIFY_DASHBOARD_PORT,
    RemotePlan,
    build_audit_plan,
    build_coolify_db_probe_plan,
    build_dns_check_plan,
    build_fail2ban_plan,
    build_firewall_allow_plan,
    build_firewall_delete_plan,
    build_firewall_setup_plan,
    build_get_fqdn_plan,
    build_hardening_plan,
    build_key_check_plan,
    build_set_fqdn_plan,
)
from .config import AppConfig, ConfigError, load_config
from .errors import ErrorKind, QuicklifyError, ValidationError, normalize_error
from .exit_codes import ExitCode, exit_code_for
from .guard import require_coolify_mode
from .inventory import ServerInventory
from .logging import OperationScope, StructuredLogger
from .models import DEFAULT_SSH_PORT, ServerRecord
from .operations import (
    ACTIONS,
    OperationContext,
    OperationResult,
    add_server,
    create_snapshot,
    delete_snapshot,
    destroy_server,
    dispatch,
    domain_check,
    domain_info,
    domain_remove,
    domain_set,
    firewall_add,
    firewall_remove,
    firewall_setup,
    firewall_status,
    fleet_status,
    list_fleet_snapshots,
    list_snapshots,
    remove_server,
    restart_server,
    secure_audit,
    secure_setup,
    server_status,
)
from .operations.firewall import removal_warning
from .operations.results import (
    DnsCheckResult,
    FirewallStatusResult,
    SecureAuditReport,
    ServerStatusResult,
    SnapshotListResult,
)
from .providers import create_provider
from .ssh import SshExecutor
from .state import StateRegistry, StateRegistryError
from .tokens import collect_provider_tokens
from .validation import assert_valid_port, is_valid_domain, sanitize_domain

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to quicklify's YAML config file.",
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit the result as JSON.",
)
DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    help="Print the remote commands that would run without connecting.",
)
YES_OPTION = typer.Option(
    False,
    "--yes",
    "-y",
    help="Skip confirmation prompts (non-interactive mode).",
)
PROTOCOL_OPTION = typer.Option(
    "tcp",
    "--protocol",
    help="Protocol for the firewall rule (tcp|udp).",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Coolify multi-cloud server lifecycle and hardening CLI.

        Register servers from Hetzner, DigitalOcean, Vultr or Linode, harden
        SSH, manage UFW rules and the Coolify domain, and take provider
        snapshots.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    registry: StateRegistry
    inventory: ServerInventory
    executor: SshExecutor
    logger: StructuredLogger
    http_client: httpx.Client
    operations: OperationContext


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        raise typer.Exit(code=int(ExitCode.VALIDATION)) from exc

    registry = StateRegistry(config.state_dir)
    inventory = ServerInventory(registry)
    executor = SshExecutor.from_config(config.ssh)
    logger = StructuredLogger(config.logs_dir)
    http_client = httpx.Client(timeout=config.providers.request_timeout)
    ctx.call_on_close(http_client.close)
    operations = OperationContext(
        inventory=inventory,
        executor=executor,
        provider_factory=functools.partial(
            create_provider,
            client=http_client,
            timeout=config.providers.request_timeout,
        ),
        safe_mode=config.safe_mode,
    )
    runtime = RuntimeContext(
        config=config,
        registry=registry,
        inventory=inventory,
        executor=executor,
        logger=logger,
        http_client=http_client,
        operations=operations,
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.find_root().obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx.find_root(), None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the quicklify version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"quicklify {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


# ----------------------------------------------------------------------
# Shared helpers
# ----------------------------------------------------------------------
def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = int(ExitCode.VALIDATION),
    hint: str | None = None,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    if hint:
        console.print(f"[dim]Hint: {hint}[/dim]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _exception_error(op: OperationScope, exc: BaseException) -> NoReturn:
    normalized = normalize_error(exc)
    _command_error(
        op,
        normalized.message,
        rc=int(exit_code_for(normalized.kind)),
        hint=normalized.hint,
    )


def _fail_result(op: OperationScope, result: OperationResult, *, json_output: bool) -> NoReturn:
    """Report a failed operation result and terminate the command."""
    message = result.error or "Operation failed."
    rc = int(exit_code_for(result.kind))
    if json_output:
        console.print_json(data=result.to_dict())
    else:
        console.print(f"[red]{message}[/red]")
        if result.hint:
            console.print(f"[dim]Hint: {result.hint}[/dim]")
        if result.warning:
            console.print(f"[yellow]Warning: {result.warning}[/yellow]")
    context = {"kind": result.kind.value} if result.kind else None
    op.error(message, errors=[message], rc=rc, context=context)
    raise typer.Exit(code=rc)


def _finish(
    op: OperationScope,
    result: OperationResult,
    message: str,
    *,
    json_output: bool = False,
    changed: int = 0,
    render: Callable[[], None] | None = None,
) -> None:
    """Render *result*, record it on *op* and exit non-zero on failure."""
    if not result.success:
        _fail_result(op, result, json_output=json_output)

    if json_output:
        console.print_json(data=result.to_dict())
    else:
        if render is not None:
            render()
        else:
            console.print(f"[green]{message}[/green]")
        if result.warning:
            console.print(f"[yellow]Warning: {result.warning}[/yellow]")
        if result.hint:
            console.print(f"[dim]Hint: {result.hint}[/dim]")

    if result.warning:
        op.warning(message, warnings=[result.warning], changed=changed)
    else:
        op.success(message, changed=changed)


def _require_server(runtime: RuntimeContext, op: OperationScope, query: str) -> ServerRecord:
    try:
        server = runtime.inventory.find(query)
    except StateRegistryError as exc:
        _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))
    if server is None:
        _command_error(
            op,
            f"Server not found: {query}",
            hint="Run 'quicklify list' to see registered servers.",
        )
    return server


def _dry_run_plans(
    op: OperationScope,
    host: str,
    plans: Sequence[tuple[str, RemotePlan]],
    summary: str,
) -> None:
    """Print the rendered plans for *host* and finish the operation."""
    for label, plan in plans:
        console.print(f"[bold]{label}[/bold] on {host}:")
        for index, step in enumerate(plan.steps, start=1):
            console.print(f"  {index}. {step}", markup=False, highlight=False)
        op.add_step(label, status="skipped", detail="dry-run")
    console.print(f"[yellow]Dry run[/yellow]: {summary}")
    op.success("Dry run complete.", changed=0)


def _confirm(prompt: str, *, auto_confirm: bool) -> bool:
    return auto_confirm or typer.confirm(prompt, default=False)


def _cancelled(op: OperationScope, message: str) -> None:
    console.print(f"[yellow]{message}[/yellow]")
    op.add_step("confirm", status="skipped", detail="declined")
    op.success(message, changed=0)


# ----------------------------------------------------------------------
# Inventory and lifecycle
# ----------------------------------------------------------------------
@app.command("add")
def add(
    ctx: typer.Context,
    provider: str = typer.Option(..., "--provider", help="hetzner|digitalocean|vultr|linode"),
    ip: str = typer.Option(..., "--ip", help="Public IPv4 address of the server."),
    name: str = typer.Option(..., "--name", help="Server name (lowercase, 3-63 chars)."),
    mode: str = typer.Option("coolify", "--mode", help="coolify|bare"),
    skip_verify: bool = typer.Option(
        False,
        "--skip-verify",
        help="Do not probe the server for a running Coolify instance.",
    ),
    json_output: bool = JSON_OPTION,
) -> None:
    """Register an existing server in the local inventory."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "add",
        args={"provider": provider, "ip": ip, "name": name, "mode": mode},
        target={"kind": "server", "name": name},
    ) as op:
        try:
            result = add_server(
                runtime.operations,
                provider=provider,
                ip=ip,
                name=name,
                mode=mode,
                skip_verify=skip_verify,
            )
        except StateRegistryError as exc:
            _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))
        if result.success:
            op.add_step("coolify.verify", status="success", detail=result.coolify_status)
        _finish(
            op,
            result,
            f"Added server '{name}' ({ip}). Coolify status: {result.coolify_status}.",
            json_output=json_output,
            changed=1,
        )


@app.command("list")
def list_servers(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """List registered servers."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "list",
        args={"json": json_output},
        target={"kind": "server", "scope": "inventory"},
    ) as op:
        try:
            servers = runtime.inventory.list()
        except StateRegistryError as exc:
            _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))

        if json_output:
            console.print_json(data={"servers": [server.to_dict() for server in servers]})
            op.success("Reported server list as JSON.", changed=0)
            return

        tokens = collect_provider_tokens(servers)
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Name", style="bold")
        table.add_column("IP")
        table.add_column("Provider")
        table.add_column("Mode")
        table.add_column("ID")
        table.add_column("Token")

        if not servers:
            table.add_row("(none)", "", "", "", "", "")
        for server in servers:
            if server.is_manual:
                token_state = "n/a"
            else:
                token_state = "yes" if server.provider in tokens else "missing"
            table.add_row(
                server.name,
                server.ip,
                server.provider,
                server.mode.value,
                server.id,
                token_state,
            )

        console.print(table)
        op.success("Reported server list.", changed=0)


@app.command("remove")
def remove(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    yes: bool = YES_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Remove a server from the local inventory (the cloud server is kept)."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "remove",
        args={"query": query},
        target={"kind": "server", "name": query},
    ) as op:
        if not _confirm(f"Remove '{query}' from the local inventory?", auto_confirm=yes):
            _cancelled(op, "Remove cancelled.")
            return
        try:
            result = remove_server(runtime.operations, query)
        except StateRegistryError as exc:
            _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))
        _finish(
            op,
            result,
            f"Removed '{query}' from the local inventory.",
            json_output=json_output,
            changed=1,
        )


@app.command("destroy")
def destroy(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    force: bool = typer.Option(
        False,
        "--force",
        help="Remove the local record even when the provider refuses the deletion.",
    ),
    yes: bool = YES_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Permanently delete a cloud server and remove it from the inventory."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "destroy",
        args={"query": query, "force": force, "safe_mode": runtime.operations.safe_mode},
        target={"kind": "server", "name": query},
    ) as op:
        # Safe mode fails inside the operation before any lookup; no prompt needed.
        if not runtime.operations.safe_mode and not _confirm(
            f"Permanently destroy '{query}'? This cannot be undone.",
            auto_confirm=yes,
        ):
            _cancelled(op, "Destroy cancelled.")
            return
        try:
            result = destroy_server(runtime.operations, query, force=force)
        except StateRegistryError as exc:
            _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))
        if result.success:
            if result.cloud_deleted:
                step_status, detail = "success", None
            elif result.warning:
                step_status, detail = "error", "forced-local-removal"
            else:
                step_status, detail = "skipped", "not-found"
            op.add_step("provider.destroy", status=step_status, detail=detail)
        if result.success and not result.cloud_deleted and result.warning:
            message = f"Removed '{query}' from the local inventory only."
        else:
            message = f"Destroyed '{query}'."
        _finish(
            op,
            result,
            message,
            json_output=json_output,
            changed=2 if result.cloud_deleted else 1,
        )


@app.command("status")
def status(
    ctx: typer.Context,
    query: str | None = typer.Argument(None, help="Server name or IP."),
    all_servers: bool = typer.Option(
        False,
        "--all",
        help="Report every server in the inventory.",
    ),
    json_output: bool = JSON_OPTION,
) -> None:
    """Show the cloud power state and Coolify health of servers."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "status",
        args={"query": query, "all": all_servers, "json": json_output},
        target={"kind": "server", "name": query or "*"},
    ) as op:
        if all_servers:
            try:
                entries = fleet_status(runtime.operations)
            except StateRegistryError as exc:
                _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))
            _report_statuses(op, entries, json_output=json_output)
            return
        if not query:
            _command_error(op, "Specify a server or pass --all.")
        try:
            result = server_status(runtime.operations, query)
        except StateRegistryError as exc:
            _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))
        _finish(
            op,
            result,
            f"Server status: {result.server_status}, Coolify: {result.coolify_status}.",
            json_output=json_output,
            render=lambda: _render_statuses([result]),
        )


def _report_statuses(
    op: OperationScope, entries: Sequence[ServerStatusResult], *, json_output: bool
) -> None:
    failures = [entry for entry in entries if not entry.success]
    for entry in entries:
        name = entry.server.name if entry.server else "?"
        op.add_step(
            f"status.{name}",
            status="success" if entry.success else "error",
            detail=entry.error or entry.server_status,
        )
    if json_output:
        console.print_json(data={"servers": [entry.to_dict() for entry in entries]})
    else:
        _render_statuses(entries)
    if failures:
        warnings = [
            f"{entry.server.name if entry.server else '?'}: {entry.error}" for entry in failures
        ]
        op.warning("Status check incomplete.", warnings=warnings, changed=0)
    else:
        op.success("Reported fleet status.", changed=0)


def _render_statuses(entries: Sequence[ServerStatusResult]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Name", style="bold")
    table.add_column("IP")
    table.add_column("Provider")
    table.add_column("Server")
    table.add_column("Coolify")
    if not entries:
        table.add_row("(none)", "", "", "", "")
    for entry in entries:
        server = entry.server
        server_state = entry.server_status or ""
        if not entry.success:
            server_state = f"[red]{entry.error}[/red]"
        table.add_row(
            server.name if server else "?",
            server.ip if server else "",
            server.provider if server else "",
            server_state,
            entry.coolify_status or "",
        )
    console.print(table)


@app.command("restart")
def restart(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    yes: bool = YES_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Reboot a cloud server through its provider and wait until it is running."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "restart",
        args={"query": query, "safe_mode": runtime.operations.safe_mode},
        target={"kind": "server", "name": query},
    ) as op:
        if not runtime.operations.safe_mode and not _confirm(
            f"Restart '{query}'? This will cause brief downtime.",
            auto_confirm=yes,
        ):
            _cancelled(op, "Restart cancelled.")
            return
        try:
            result = restart_server(runtime.operations, query)
        except StateRegistryError as exc:
            _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))
        if result.attempts is not None:
            op.add_step("provider.reboot", status="success")
            op.add_step(
                "provider.wait",
                status="success" if result.success else "error",
                detail=result.final_status,
            )
        _finish(
            op,
            result,
            f"Server '{query}' restarted and running.",
            json_output=json_output,
            changed=1,
        )


# ----------------------------------------------------------------------
# secure
# ----------------------------------------------------------------------
secure_app = typer.Typer(help="Harden SSH and audit server security.")
firewall_app = typer.Typer(help="Manage UFW firewall rules.")
domain_app = typer.Typer(help="Manage the Coolify domain (FQDN).")
snapshot_app = typer.Typer(help="Create and manage provider snapshots.")

app.add_typer(secure_app, name="secure")
app.add_typer(firewall_app, name="firewall")
app.add_typer(domain_app, name="domain")
app.add_typer(snapshot_app, name="snapshot")


@secure_app.command("setup")
def secure_setup_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    port: int | None = typer.Option(None, "--port", help="Move sshd to this port."),
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Disable password logins, restrict root and install fail2ban."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "secure setup",
        args={"query": query, "port": port, "dry_run": dry_run},
        target={"kind": "server", "name": query},
    ) as op:
        if dry_run:
            server = _require_server(runtime, op, query)
            try:
                if port is not None:
                    assert_valid_port(port)
                plans = [
                    ("ssh.key-check", build_key_check_plan()),
                    ("ssh.harden", build_hardening_plan(port)),
                    ("fail2ban.install", build_fail2ban_plan(port or DEFAULT_SSH_PORT)),
                ]
            except QuicklifyError as exc:
                _exception_error(op, exc)
            _dry_run_plans(op, server.ip, plans, "SSH hardening would be applied.")
            return

        result = secure_setup(runtime.operations, query, port=port)
        if result.success:
            op.add_step("ssh.harden", status="success")
            op.add_step(
                "fail2ban.install",
                status="success" if result.fail2ban else "error",
                detail=result.failed_step,
            )

        def _render() -> None:
            console.print(
                f"[green]SSH hardened on {query}[/green] "
                f"(keys: {result.ssh_key_count}, port: {result.ssh_port})."
            )
            state = "[green]active[/green]" if result.fail2ban else "[red]not installed[/red]"
            console.print(f"fail2ban: {state}")

        _finish(
            op,
            result,
            "Security setup complete." if not result.partial else "Security setup partial.",
            json_output=json_output,
            changed=2 if result.fail2ban else 1,
            render=_render,
        )


@secure_app.command("audit")
def secure_audit_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Report the SSH and fail2ban posture with a 0-100 score."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "secure audit",
        args={"query": query, "json": json_output},
        target={"kind": "server", "name": query},
    ) as op:
        if dry_run:
            server = _require_server(runtime, op, query)
            _dry_run_plans(
                op, server.ip, [("audit", build_audit_plan())], "Audit would be collected."
            )
            return

        result = secure_audit(runtime.operations, query)
        _finish(
            op,
            result,
            f"Security score: {result.score}/100.",
            json_output=json_output,
            render=lambda: _render_audit(result),
        )


def _render_audit(report: SecureAuditReport) -> None:
    audit = report.audit
    if audit is None:
        return
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Check", style="bold")
    table.add_column("Value")
    table.add_column("Status")
    settings = (audit.password_auth, audit.root_login, audit.pubkey_auth, audit.max_auth_tries)
    for setting in settings:
        table.add_row(setting.key, setting.value or "-", _status_label(setting.status.value))
    fail2ban = "active" if audit.fail2ban.active else (
        "installed" if audit.fail2ban.installed else "missing"
    )
    table.add_row(
        "fail2ban",
        fail2ban,
        _status_label("secure" if audit.fail2ban.active else "insecure"),
    )
    table.add_row("Port", str(audit.ssh_port), "")
    console.print(table)
    console.print(f"Security score: [bold]{report.score}[/bold]/100")


def _status_label(status: str) -> str:
    if status == "secure":
        return "[green]OK[/green]"
    if status == "missing":
        return "[yellow]MISSING[/yellow]"
    return "[red]INSECURE[/red]"


# ----------------------------------------------------------------------
# firewall
# ----------------------------------------------------------------------
@firewall_app.command("setup")
def firewall_setup_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Install UFW, deny inbound by default and open the required ports."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "firewall setup",
        args={"query": query, "dry_run": dry_run},
        target={"kind": "server", "name": query},
    ) as op:
        if dry_run:
            server = _require_server(runtime, op, query)
            plan = build_firewall_setup_plan(server.mode)
            _dry_run_plans(op, server.ip, [("ufw.setup", plan)], "UFW would be enabled.")
            return
        result = firewall_setup(runtime.operations, query)
        ports = ", ".join(str(port) for port in result.ports or ())
        _finish(
            op,
            result,
            f"UFW enabled on {query} with ports {ports}.",
            json_output=json_output,
            changed=1,
        )


@firewall_app.command("add")
def firewall_add_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    port: int = typer.Argument(..., help="Port to allow (1-65535)."),
    protocol: str = PROTOCOL_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Allow inbound traffic on a port."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "firewall add",
        args={"query": query, "port": port, "protocol": protocol, "dry_run": dry_run},
        target={"kind": "server", "name": query},
    ) as op:
        if dry_run:
            server = _require_server(runtime, op, query)
            try:
                plan = build_firewall_allow_plan(port, protocol)
            except QuicklifyError as exc:
                _exception_error(op, exc)
            _dry_run_plans(op, server.ip, [("ufw.allow", plan)], f"{port}/{protocol} would open.")
            return
        result = firewall_add(runtime.operations, query, port, protocol)
        _finish(
            op,
            result,
            f"Allowed {port}/{protocol} on {query}.",
            json_output=json_output,
            changed=1,
        )


@firewall_app.command("remove")
def firewall_remove_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    port: int = typer.Argument(..., help="Port to close (1-65535)."),
    protocol: str = PROTOCOL_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    yes: bool = YES_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Delete the allow rule for a port. Port 22 is never removed."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "firewall remove",
        args={"query": query, "port": port, "protocol": protocol, "dry_run": dry_run},
        target={"kind": "server", "name": query},
    ) as op:
        if dry_run:
            server = _require_server(runtime, op, query)
            try:
                plan = build_firewall_delete_plan(port, protocol)
            except QuicklifyError as exc:
                _exception_error(op, exc)
            _dry_run_plans(op, server.ip, [("ufw.delete", plan)], f"{port}/{protocol} would close.")
            return

        server = runtime.inventory.find(query)
        warning = removal_warning(server, port) if server is not None else None
        if warning and not _confirm(f"{warning} Continue?", auto_confirm=yes):
            _cancelled(op, "Firewall rule removal cancelled.")
            return

        result = firewall_remove(runtime.operations, query, port, protocol)
        _finish(
            op,
            result,
            f"Removed {port}/{protocol} from {query}.",
            json_output=json_output,
            changed=1,
        )


@firewall_app.command("status")
def firewall_status_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    json_output: bool = JSON_OPTION,
) -> None:
    """Show whether UFW is active and list its rules."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "firewall status",
        args={"query": query, "json": json_output},
        target={"kind": "server", "name": query},
    ) as op:
        result = firewall_status(runtime.operations, query)
        _finish(
            op,
            result,
            "Reported firewall status.",
            json_output=json_output,
            render=lambda: _render_firewall(result),
        )


def _render_firewall(result: FirewallStatusResult) -> None:
    status = result.status
    if status is None:
        return
    state = "[green]active[/green]" if status.active else "[yellow]inactive[/yellow]"
    console.print(f"UFW: {state}")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Port", style="bold")
    table.add_column("Protocol")
    table.add_column("Action")
    table.add_column("From")
    if not status.rules:
        table.add_row("(none)", "", "", "")
    for rule in status.rules:
        table.add_row(str(rule.port), rule.protocol, rule.action, rule.source)
    console.print(table)


# ----------------------------------------------------------------------
# domain
# ----------------------------------------------------------------------
@domain_app.command("set")
def domain_set_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    domain: str = typer.Argument(..., help="Domain to serve Coolify on."),
    ssl: bool = typer.Option(True, "--ssl/--no-ssl", help="Serve the dashboard over https."),
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Set the Coolify instance FQDN and restart Coolify."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "domain set",
        args={"query": query, "domain": domain, "ssl": ssl, "dry_run": dry_run},
        target={"kind": "server", "name": query},
    ) as op:
        if dry_run:
            server = _require_server(runtime, op, query)
            cleaned = sanitize_domain(domain)
            try:
                require_coolify_mode(server, "domain")
                if not is_valid_domain(cleaned):
                    raise ValidationError(f"Invalid domain: {domain}")
                plans = [
                    ("coolify.db-probe", build_coolify_db_probe_plan()),
                    ("coolify.set-fqdn", build_set_fqdn_plan(cleaned, ssl=ssl)),
                ]
            except QuicklifyError as exc:
                _exception_error(op, exc)
            _dry_run_plans(op, server.ip, plans, f"FQDN would be set to {cleaned}.")
            return

        result = domain_set(runtime.operations, query, domain, ssl=ssl)
        _finish(
            op,
            result,
            f"Coolify FQDN set to {result.fqdn}.",
            json_output=json_output,
            changed=1,
        )


@domain_app.command("remove")
def domain_remove_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Reset the Coolify FQDN to the server IP on port 8000."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "domain remove",
        args={"query": query, "dry_run": dry_run},
        target={"kind": "server", "name": query},
    ) as op:
        if dry_run:
            server = _require_server(runtime, op, query)
            try:
                require_coolify_mode(server, "domain")
            except QuicklifyError as exc:
                _exception_error(op, exc)
            target = f"{server.ip}:{COOLIFY_DASHBOARD_PORT}"
            plans = [
                ("coolify.db-probe", build_coolify_db_probe_plan()),
                ("coolify.set-fqdn", build_set_fqdn_plan(target, ssl=False)),
            ]
            _dry_run_plans(op, server.ip, plans, f"FQDN would be reset to http://{target}.")
            return

        result = domain_remove(runtime.operations, query)
        _finish(
            op,
            result,
            f"Coolify FQDN reset to {result.fqdn}.",
            json_output=json_output,
            changed=1,
        )


@domain_app.command("check")
def domain_check_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    domain: str = typer.Argument(..., help="Domain whose A record to verify."),
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Check that a domain's A record points at the server."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "domain check",
        args={"query": query, "domain": domain},
        target={"kind": "server", "name": query},
    ) as op:
        if dry_run:
            server = _require_server(runtime, op, query)
            try:
                plan = build_dns_check_plan(sanitize_domain(domain))
            except QuicklifyError as exc:
                _exception_error(op, exc)
            _dry_run_plans(op, server.ip, [("dns.lookup", plan)], "DNS would be resolved.")
            return

        result = domain_check(runtime.operations, query, domain)
        if result.success and not result.match:
            result.warning = f"{result.domain} does not point to {result.expected_ip}."
        _finish(
            op,
            result,
            f"DNS for {result.domain} checked.",
            json_output=json_output,
            render=lambda: _render_dns(result),
        )


def _render_dns(result: DnsCheckResult) -> None:
    if result.match:
        console.print(
            f"[green]{result.domain} resolves to {result.resolved_ip} (matches server).[/green]"
        )
    elif result.resolved_ip:
        console.print(
            f"[red]{result.domain} resolves to {result.resolved_ip}, "
            f"expected {result.expected_ip}.[/red]"
        )
    else:
        console.print(f"[red]No A record found for {result.domain}.[/red]")


@domain_app.command("info")
def domain_info_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show the FQDN Coolify is currently configured with."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "domain info",
        args={"query": query, "json": json_output},
        target={"kind": "server", "name": query},
    ) as op:
        if dry_run:
            server = _require_server(runtime, op, query)
            _dry_run_plans(
                op, server.ip, [("coolify.get-fqdn", build_get_fqdn_plan())], "FQDN would be read."
            )
            return

        result = domain_info(runtime.operations, query)
        message = f"Coolify FQDN: {result.fqdn}" if result.fqdn else "No FQDN configured."
        _finish(op, result, message, json_output=json_output)


# ----------------------------------------------------------------------
# snapshot
# ----------------------------------------------------------------------
@snapshot_app.command("create")
def snapshot_create_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    json_output: bool = JSON_OPTION,
) -> None:
    """Create a provider snapshot of a cloud server."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "snapshot create",
        args={"query": query},
        target={"kind": "server", "name": query},
    ) as op:
        result = create_snapshot(runtime.operations, query)
        snapshot_name = result.snapshot.name if result.snapshot else ""
        cost = f" Estimated cost: {result.cost_estimate}." if result.cost_estimate else ""
        _finish(
            op,
            result,
            f"Snapshot {snapshot_name} requested.{cost}",
            json_output=json_output,
            changed=1,
        )


@snapshot_app.command("list")
def snapshot_list_command(
    ctx: typer.Context,
    query: str | None = typer.Argument(None, help="Server name or IP."),
    all_servers: bool = typer.Option(
        False,
        "--all",
        help="List snapshots of every cloud server in the inventory.",
    ),
    json_output: bool = JSON_OPTION,
) -> None:
    """List quicklify snapshots of one server or the whole fleet."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "snapshot list",
        args={"query": query, "all": all_servers, "json": json_output},
        target={"kind": "server", "name": query or "*"},
    ) as op:
        if all_servers:
            _snapshot_fleet(runtime, op, json_output=json_output)
            return
        if not query:
            _command_error(op, "Specify a server or pass --all.")
        result = list_snapshots(runtime.operations, query)
        _finish(
            op,
            result,
            f"Found {len(result.snapshots)} snapshot(s).",
            json_output=json_output,
            render=lambda: _render_snapshots(result),
        )


def _snapshot_fleet(runtime: RuntimeContext, op: OperationScope, *, json_output: bool) -> None:
    try:
        entries = list_fleet_snapshots(runtime.operations)
    except StateRegistryError as exc:
        _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))
    failures = [entry for entry in entries if not entry.success]
    for entry in entries:
        name = entry.server.name if entry.server else "?"
        op.add_step(
            f"snapshots.{name}",
            status="success" if entry.success else "error",
            detail=entry.error,
        )

    if json_output:
        console.print_json(data={"servers": [entry.to_dict() for entry in entries]})
    else:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Server", style="bold")
        table.add_column("Snapshot")
        table.add_column("Status")
        table.add_column("Size (GB)")
        table.add_column("Cost/month")
        if not entries:
            table.add_row("(none)", "", "", "", "")
        for entry in entries:
            name = entry.server.name if entry.server else "?"
            if not entry.success:
                table.add_row(name, "", f"[red]{entry.error}[/red]", "", "")
                continue
            if not entry.snapshots:
                table.add_row(name, "(none)", "", "", "")
            for snapshot in entry.snapshots:
                table.add_row(
                    name,
                    snapshot.name,
                    snapshot.status,
                    f"{snapshot.size_gb:g}",
                    snapshot.cost_per_month,
                )
        console.print(table)

    if failures:
        warnings = [
            f"{entry.server.name if entry.server else '?'}: {entry.error}" for entry in failures
        ]
        op.warning("Snapshot listing incomplete.", warnings=warnings, changed=0)
    else:
        op.success("Reported fleet snapshots.", changed=0)


def _render_snapshots(result: SnapshotListResult) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Size (GB)")
    table.add_column("Created")
    table.add_column("Cost/month")
    if not result.snapshots:
        table.add_row("(none)", "", "", "", "", "")
    for snapshot in result.snapshots:
        table.add_row(
            snapshot.id,
            snapshot.name,
            snapshot.status,
            f"{snapshot.size_gb:g}",
            snapshot.created_at,
            snapshot.cost_per_month,
        )
    console.print(table)


@snapshot_app.command("delete")
def snapshot_delete_command(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Server name or IP."),
    snapshot_id: str = typer.Argument(..., help="Provider snapshot id."),
    yes: bool = YES_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Delete a provider snapshot."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "snapshot delete",
        args={"query": query, "snapshot_id": snapshot_id},
        target={"kind": "snapshot", "name": snapshot_id},
    ) as op:
        if not runtime.operations.safe_mode and not _confirm(
            f"Delete snapshot {snapshot_id} of '{query}'?",
            auto_confirm=yes,
        ):
            _cancelled(op, "Snapshot delete cancelled.")
            return
        result = delete_snapshot(runtime.operations, query, snapshot_id)
        _finish(
            op,
            result,
            f"Deleted snapshot {snapshot_id}.",
            json_output=json_output,
            changed=1,
        )


# ----------------------------------------------------------------------
# agent tool
# ----------------------------------------------------------------------
def _parse_params(pairs: Sequence[str], raw_json: str | None) -> dict[str, Any]:
    params: dict[str, Any] = {}
    if raw_json:
        try:
            loaded = json.loads(raw_json)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"--params is not valid JSON: {exc.msg}") from None
        if not isinstance(loaded, Mapping):
            raise ValidationError("--params must be a JSON object.")
        params.update({str(key): value for key, value in loaded.items()})
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValidationError(f"Invalid parameter '{pair}'. Expected KEY=VALUE.")
        params[key.strip().replace("-", "_")] = value
    return params


@app.command("tool")
def tool(
    ctx: typer.Context,
    action: str = typer.Argument(..., help=f"One of: {', '.join(ACTIONS)}."),
    server: str | None = typer.Option(
        None,
        "--server",
        help="Server name or IP (optional when only one server is registered).",
    ),
    param: list[str] = typer.Option(
        [],
        "--param",
        "-p",
        help="Action parameter as KEY=VALUE (repeatable).",
    ),
    params_json: str | None = typer.Option(
        None,
        "--params",
        help="Action parameters as a JSON object.",
    ),
) -> None:
    """Run an agent action and print its JSON result."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        f"tool {action}",
        args={"action": action, "server": server},
        target={"kind": "server", "name": server} if server else None,
    ) as op:
        try:
            params = _parse_params(param, params_json)
            payload = dispatch(runtime.operations, action, server, params)
        except StateRegistryError as exc:
            _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))
        except QuicklifyError as exc:
            normalized = normalize_error(exc)
            payload = {
                "success": False,
                "error": normalized.message,
                "kind": normalized.kind.value,
            }
            if normalized.hint:
                payload["hint"] = normalized.hint

        console.print_json(data=payload)
        if payload.get("success"):
            if payload.get("warning"):
                op.warning(f"Action {action} completed.", warnings=[payload["warning"]])
            else:
                op.success(f"Action {action} completed.", changed=0)
            return

        kind = payload.get("kind")
        rc = int(exit_code_for(_kind_from_value(kind)))
        message = str(payload.get("error") or f"Action {action} failed.")
        op.error(message, errors=[message], rc=rc)
        raise typer.Exit(code=rc)


def _kind_from_value(value: object) -> ErrorKind | None:
    try:
        return ErrorKind(value)
    except ValueError:
        return None


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
