"""Explicit dependencies handed to every orchestration operation."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..commands import RemotePlan
from ..errors import AuthError, CommandError, NotFoundError, ValidationError, token_hint
from ..guard import SafeModeGate
from ..inventory import ServerInventory
from ..models import ProviderName, RemoteExecResult, ServerRecord
from ..parsers import parse_step_markers
from ..providers import CloudProvider, create_provider
from ..ssh import RemoteExecutor
from ..tokens import get_provider_token

LOGGER = logging.getLogger(__name__)

ProviderFactory = Callable[[ProviderName, str], CloudProvider]
TokenResolver = Callable[[ProviderName], str | None]


@dataclass(slots=True)
class OperationContext:
    """Inventory, transport, provider access and safety settings for one run.

    ``safe_mode`` comes from configuration and is never read from the
    process environment by the operations themselves.
    """

    inventory: ServerInventory
    executor: RemoteExecutor
    provider_factory: ProviderFactory = create_provider
    token_resolver: TokenResolver = get_provider_token
    safe_mode: bool = False
    clock: Callable[[], float] = time.time
    sleep: Callable[[float], None] = time.sleep

    @property
    def gate(self) -> SafeModeGate:
        return SafeModeGate(self.safe_mode)

    def epoch_ms(self) -> int:
        """Return the current time in epoch milliseconds."""
        return int(self.clock() * 1000)

    def resolve_server(self, query: str) -> ServerRecord:
        """Return the inventory record for *query* (IP first, then name)."""
        server = self.inventory.find(query)
        if server is None:
            raise NotFoundError(
                f"Server not found: {query}",
                hint="Run 'quicklify list' to see registered servers.",
            )
        return server

    def provider_for(self, provider: ProviderName | str) -> CloudProvider:
        """Return a provider client, raising :class:`AuthError` without a token."""
        try:
            name = ProviderName(provider)
        except ValueError:
            raise ValidationError(f"Unsupported provider: {provider}") from None
        token = self.token_resolver(name)
        if not token:
            raise AuthError(
                f"No API token found for provider: {name.value}. "
                f"Set {name.token_env} environment variable",
                hint=token_hint(name),
            )
        return self.provider_factory(name, token)

    def run_plan(
        self,
        host: str,
        plan: RemotePlan,
        *,
        port: int | None = None,
    ) -> RemoteExecResult:
        """Execute *plan* on *host* in one round trip.

        Multi-step plans are rendered with progress markers; on a non-zero
        exit a :class:`CommandError` names the first step that did not
        complete. Markers are removed from the returned stdout.
        """
        tracked = len(plan) > 1
        command = plan.render_tracked() if tracked else plan.render()
        if port is None:
            result = self.executor.execute(host, command)
        else:
            result = self.executor.execute(host, command, port=port)

        completed, stdout = parse_step_markers(result.stdout) if tracked else (0, result.stdout)
        if result.ok:
            return RemoteExecResult(result.exit_code, stdout, result.stderr)

        failed_step = min(completed + 1, len(plan))
        detail = _last_line(result.stderr) or _last_line(stdout)
        message = (
            f"Step {failed_step}/{len(plan)} failed (exit code {result.exit_code}): "
            f"{plan.step(failed_step)}"
        )
        if detail:
            message = f"{message}: {detail}"
        LOGGER.warning("Remote plan failed on %s: %s", host, message)
        raise CommandError(message, exit_code=result.exit_code, failed_step=failed_step)


def _last_line(text: str) -> str:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else ""


__all__ = ["OperationContext", "ProviderFactory", "TokenResolver"]
