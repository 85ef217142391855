"""Safety gates consulted before destructive or mode-specific operations."""
from __future__ import annotations

from dataclasses import dataclass

from .errors import SafetyAbort, ValidationError
from .models import ServerRecord

SAFE_MODE_HINT = "Unset QUICKLIFY_SAFE_MODE (or set safe_mode: false) to allow destructive actions."


@dataclass(slots=True, frozen=True)
class SafeModeGate:
    """Refuse destructive actions while safe mode is enabled."""

    enabled: bool = False

    def check(self, action: str) -> None:
        """Raise :class:`SafetyAbort` when *action* is blocked."""
        if self.enabled:
            raise SafetyAbort(
                f"The '{action}' action is blocked because safe mode is enabled.",
                hint=SAFE_MODE_HINT,
            )


def require_coolify_mode(server: ServerRecord, command: str) -> None:
    """Raise :class:`ValidationError` when *server* is a bare server."""
    if server.is_bare:
        raise ValidationError(
            f'The "{command}" command is not available for bare servers. '
            "This command requires Coolify."
        )


__all__ = ["SAFE_MODE_HINT", "SafeModeGate", "require_coolify_mode"]
