"""Data models shared across quicklify components."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


class ProviderName(str, Enum):
    """Closed set of supported cloud backends."""

    HETZNER = "hetzner"
    DIGITALOCEAN = "digitalocean"
    VULTR = "vultr"
    LINODE = "linode"

    @property
    def display_name(self) -> str:
        """Return the human-facing provider name."""
        return _DISPLAY_NAMES[self]

    @property
    def token_env(self) -> str:
        """Return the environment variable holding this provider's API token."""
        return f"{self.value.upper()}_TOKEN"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        """Return the accepted provider identifiers."""
        return tuple(member.value for member in cls)


_DISPLAY_NAMES = {
    ProviderName.HETZNER: "Hetzner Cloud",
    ProviderName.DIGITALOCEAN: "DigitalOcean",
    ProviderName.VULTR: "Vultr",
    ProviderName.LINODE: "Linode (Akamai)",
}


class ServerMode(str, Enum):
    """Whether a server runs the Coolify platform or is managed bare."""

    COOLIFY = "coolify"
    BARE = "bare"


MANUAL_ID_PREFIX = "manual-"


@dataclass(slots=True, frozen=True)
class ServerRecord:
    """A managed machine as persisted in the inventory."""

    id: str
    name: str
    provider: str
    ip: str
    region: str = "unknown"
    size: str = "unknown"
    created_at: str = ""
    mode: ServerMode = ServerMode.COOLIFY

    @property
    def is_manual(self) -> bool:
        """Return ``True`` for records registered without a provider-side id."""
        return self.id.startswith(MANUAL_ID_PREFIX)

    @property
    def is_bare(self) -> bool:
        """Return ``True`` when the server does not run Coolify."""
        return self.mode is ServerMode.BARE

    def to_dict(self) -> dict[str, str]:
        """Return the persisted representation."""
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "ip": self.ip,
            "region": self.region,
            "size": self.size,
            "createdAt": self.created_at,
            "mode": self.mode.value,
        }

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object]) -> ServerRecord:
        """Build a record from a persisted mapping (``mode`` may be absent)."""
        mode_raw = raw.get("mode") or ServerMode.COOLIFY.value
        try:
            mode = ServerMode(str(mode_raw))
        except ValueError:
            mode = ServerMode.COOLIFY
        return cls(
            id=str(raw.get("id", "")),
            name=str(raw.get("name", "")),
            provider=str(raw.get("provider", "")),
            ip=str(raw.get("ip", "")),
            region=str(raw.get("region") or "unknown"),
            size=str(raw.get("size") or "unknown"),
            created_at=str(raw.get("createdAt") or raw.get("created_at") or ""),
            mode=mode,
        )


@dataclass(slots=True, frozen=True)
class RemoteExecResult:
    """Outcome of a single remote command invocation."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """Return ``True`` when the command exited with status zero."""
        return self.exit_code == 0


FirewallProtocol = Literal["tcp", "udp"]
FirewallAction = Literal["ALLOW", "DENY"]


@dataclass(slots=True, frozen=True)
class FirewallRule:
    """A single numbered UFW rule."""

    port: int
    protocol: FirewallProtocol
    action: FirewallAction
    source: str = "Anywhere"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "port": self.port,
            "protocol": self.protocol,
            "action": self.action,
            "from": self.source,
        }


@dataclass(slots=True, frozen=True)
class FirewallStatus:
    """Firewall state recomputed from the remote host."""

    active: bool = False
    rules: tuple[FirewallRule, ...] = ()

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"active": self.active, "rules": [rule.to_dict() for rule in self.rules]}


class SettingStatus(str, Enum):
    """Assessment of one tracked sshd directive."""

    SECURE = "secure"
    INSECURE = "insecure"
    MISSING = "missing"


@dataclass(slots=True, frozen=True)
class SshdSetting:
    """Observed value of a tracked sshd directive."""

    key: str
    value: str = ""
    status: SettingStatus = SettingStatus.MISSING

    def to_dict(self) -> dict[str, str]:
        """Return a serialisable representation."""
        return {"key": self.key, "value": self.value, "status": self.status.value}


@dataclass(slots=True, frozen=True)
class Fail2banState:
    """Installation and runtime state of fail2ban."""

    installed: bool = False
    active: bool = False

    def to_dict(self) -> dict[str, bool]:
        """Return a serialisable representation."""
        return {"installed": self.installed, "active": self.active}


DEFAULT_SSH_PORT = 22


@dataclass(slots=True, frozen=True)
class SecureAuditResult:
    """Parsed SSH and fail2ban posture of a host."""

    password_auth: SshdSetting = field(
        default_factory=lambda: SshdSetting("PasswordAuthentication")
    )
    root_login: SshdSetting = field(default_factory=lambda: SshdSetting("PermitRootLogin"))
    pubkey_auth: SshdSetting = field(
        default_factory=lambda: SshdSetting("PubkeyAuthentication")
    )
    max_auth_tries: SshdSetting = field(default_factory=lambda: SshdSetting("MaxAuthTries"))
    fail2ban: Fail2banState = field(default_factory=Fail2banState)
    ssh_port: int = DEFAULT_SSH_PORT

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable representation."""
        return {
            "passwordAuth": self.password_auth.to_dict(),
            "rootLogin": self.root_login.to_dict(),
            "pubkeyAuth": self.pubkey_auth.to_dict(),
            "maxAuthTries": self.max_auth_tries.to_dict(),
            "fail2ban": self.fail2ban.to_dict(),
            "sshPort": self.ssh_port,
        }


@dataclass(slots=True, frozen=True)
class SnapshotInfo:
    """A provider-side disk image of a server."""

    id: str
    server_id: str
    name: str
    status: str
    size_gb: float = 0.0
    created_at: str = ""
    cost_per_month: str = ""

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "id": self.id,
            "serverId": self.server_id,
            "name": self.name,
            "status": self.status,
            "sizeGb": self.size_gb,
            "createdAt": self.created_at,
            "costPerMonth": self.cost_per_month,
        }


__all__ = [
    "DEFAULT_SSH_PORT",
    "Fail2banState",
    "FirewallAction",
    "FirewallProtocol",
    "FirewallRule",
    "FirewallStatus",
    "MANUAL_ID_PREFIX",
    "ProviderName",
    "RemoteExecResult",
    "SecureAuditResult",
    "ServerMode",
    "ServerRecord",
    "SettingStatus",
    "SnapshotInfo",
    "SshdSetting",
]
