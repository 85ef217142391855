"""Remote command builders.

Every builder is a pure function returning a :class:`RemotePlan`: an ordered
tuple of shell steps executed in one SSH round trip. Inputs that end up in a
command line are re-validated against allow-lists here, and anything that
fails validation raises :class:`~quicklify.errors.ValidationError` instead of
being escaped.
"""
from __future__ import annotations

from dataclasses import dataclass

from .errors import ValidationError
from .models import DEFAULT_SSH_PORT, ServerMode
from .validation import (
    assert_fqdn_safe,
    assert_valid_port,
    assert_valid_protocol,
    is_valid_domain,
)

STEP_MARKER = "__QUICKLIFY_STEP__"
AUDIT_SEPARATOR = "__QUICKLIFY_SECTION__"

SSHD_CONFIG_PATH = "/etc/ssh/sshd_config"
AUTHORIZED_KEYS_PATH = "/root/.ssh/authorized_keys"
FAIL2BAN_JAIL_PATH = "/etc/fail2ban/jail.local"

COOLIFY_PORTS: tuple[int, ...] = (80, 443, 8000, 6001, 6002)
BARE_PORTS: tuple[int, ...] = (80, 443)
PROTECTED_PORTS: tuple[int, ...] = (DEFAULT_SSH_PORT,)

COOLIFY_DASHBOARD_PORT = 8000
COOLIFY_SOURCE_DIR = "/data/coolify/source"
COOLIFY_DB_CONTAINER = "coolify-db"
COOLIFY_DB_USER = "coolify"
COOLIFY_DB_NAME = "coolify"

# Directive -> value written by the hardening plan.
HARDENED_SSHD_SETTINGS: tuple[tuple[str, str], ...] = (
    ("PasswordAuthentication", "no"),
    ("PermitRootLogin", "prohibit-password"),
    ("PubkeyAuthentication", "yes"),
    ("MaxAuthTries", "3"),
)


@dataclass(slots=True, frozen=True)
class RemotePlan:
    """Ordered shell steps destined for a single remote invocation."""

    steps: tuple[str, ...]

    def __post_init__(self) -> None:
        """Reject empty plans."""
        if not self.steps:
            raise ValueError("A remote plan requires at least one step.")

    def __len__(self) -> int:
        return len(self.steps)

    def step(self, index: int) -> str:
        """Return the 1-based step *index*."""
        return self.steps[index - 1]

    def render(self) -> str:
        """Return the steps joined so that the first failure stops the chain."""
        return " && ".join(_group(step) for step in self.steps)

    def render_tracked(self) -> str:
        """Return :meth:`render` with a progress marker echoed after each step."""
        parts: list[str] = []
        for index, step in enumerate(self.steps, start=1):
            parts.append(_group(step))
            parts.append(f"echo '{STEP_MARKER} {index}'")
        return " && ".join(parts)


def _group(step: str) -> str:
    # ``a || b`` inside an && chain would swallow earlier failures.
    if "||" in step:
        return "{ " + step + "; }"
    return step


def _sshd_set(key: str, value: str) -> str:
    return f"sed -i 's/^#\\?{key}.*/{key} {value}/' {SSHD_CONFIG_PATH}"


# ----------------------------------------------------------------------
# SSH hardening
# ----------------------------------------------------------------------
def build_hardening_plan(port: int | None = None) -> RemotePlan:
    """Return the sshd hardening plan.

    When *port* is supplied and differs from 22 the ``Port`` directive is
    rewritten and, if UFW is active, the new port is allowed before sshd is
    restarted. The configuration is validated with ``sshd -t`` before the
    restart so a broken file never takes the daemon down.
    """
    steps = [f"cp {SSHD_CONFIG_PATH} {SSHD_CONFIG_PATH}.bak"]
    steps.extend(_sshd_set(key, value) for key, value in HARDENED_SSHD_SETTINGS)
    if port is not None:
        assert_valid_port(port)
        if port != DEFAULT_SSH_PORT:
            steps.append(_sshd_set("Port", str(port)))
            steps.append(
                f"ufw status 2>/dev/null | grep -q 'Status: active' && ufw allow {port}/tcp || true"
            )
    steps.append("sshd -t")
    steps.append("systemctl restart sshd 2>/dev/null || systemctl restart ssh")
    return RemotePlan(tuple(steps))


def build_fail2ban_plan(ssh_port: int = DEFAULT_SSH_PORT) -> RemotePlan:
    """Return the plan installing fail2ban with an sshd jail on *ssh_port*."""
    assert_valid_port(ssh_port)
    port_value = "ssh" if ssh_port == DEFAULT_SSH_PORT else str(ssh_port)
    jail = "\\n".join(
        [
            "[sshd]",
            "enabled = true",
            f"port = {port_value}",
            "filter = sshd",
            "backend = systemd",
            "maxretry = 5",
            "bantime = 3600",
            "findtime = 600",
        ]
    )
    return RemotePlan(
        (
            "DEBIAN_FRONTEND=noninteractive apt-get install -y fail2ban python3-systemd",
            f"printf '{jail}\\n' > {FAIL2BAN_JAIL_PATH}",
            "systemctl enable fail2ban",
            "systemctl restart fail2ban",
        )
    )


def build_key_check_plan() -> RemotePlan:
    """Return a plan printing the number of public keys root can log in with.

    Exactly one count is printed and the step always succeeds, also for a
    missing file or one without keys.
    """
    return RemotePlan(
        (
            f"if test -f {AUTHORIZED_KEYS_PATH}; then "
            f"grep -cE '(^|[[:space:]])(ssh-|ecdsa-|sk-)' {AUTHORIZED_KEYS_PATH} || true; "
            "else echo 0; fi",
        )
    )


def build_audit_plan() -> RemotePlan:
    """Return a plan printing sshd_config and fail2ban status, separator-delimited."""
    return RemotePlan(
        (
            f"cat {SSHD_CONFIG_PATH}",
            f"echo '{AUDIT_SEPARATOR}'",
            "systemctl status fail2ban --no-pager 2>&1 || true",
        )
    )


# ----------------------------------------------------------------------
# Firewall
# ----------------------------------------------------------------------
def firewall_ports_for(mode: ServerMode) -> tuple[int, ...]:
    """Return the ports opened by firewall setup for *mode*."""
    return BARE_PORTS if mode is ServerMode.BARE else COOLIFY_PORTS


def build_firewall_setup_plan(mode: ServerMode = ServerMode.COOLIFY) -> RemotePlan:
    """Return the UFW install plan: deny inbound, allow outbound, open mode ports."""
    steps = [
        "DEBIAN_FRONTEND=noninteractive apt-get install -y ufw",
        "ufw default deny incoming",
        "ufw default allow outgoing",
    ]
    steps.extend(f"ufw allow {port}/tcp" for port in firewall_ports_for(mode))
    steps.extend(f"ufw allow {port}/tcp" for port in PROTECTED_PORTS)
    steps.append('echo "y" | ufw enable')
    return RemotePlan(tuple(steps))


def build_firewall_allow_plan(port: int, protocol: str = "tcp") -> RemotePlan:
    """Return a plan adding an allow rule."""
    assert_valid_port(port)
    assert_valid_protocol(protocol)
    return RemotePlan((f"ufw allow {port}/{protocol}",))


def build_firewall_delete_plan(port: int, protocol: str = "tcp") -> RemotePlan:
    """Return a plan deleting an allow rule."""
    assert_valid_port(port)
    assert_valid_protocol(protocol)
    return RemotePlan((f"ufw delete allow {port}/{protocol}",))


def build_firewall_status_plan() -> RemotePlan:
    return RemotePlan(("ufw status numbered",))


# ----------------------------------------------------------------------
# Coolify FQDN and probes
# ----------------------------------------------------------------------
def _psql(sql: str, *, tuples_only: bool = False) -> str:
    flags = "-t " if tuples_only else ""
    return (
        f"docker exec {COOLIFY_DB_CONTAINER} psql -U {COOLIFY_DB_USER} "
        f"-d {COOLIFY_DB_NAME} {flags}-c \"{sql}\""
    )


def build_coolify_db_probe_plan() -> RemotePlan:
    """Return a plan printing the Coolify database container name when running."""
    return RemotePlan(
        (f"docker ps --filter name={COOLIFY_DB_CONTAINER} --format '{{{{.Names}}}}' 2>/dev/null",)
    )


def build_set_fqdn_plan(host: str, *, ssl: bool = True) -> RemotePlan:
    """Return a plan storing ``http(s)://<host>`` as the Coolify FQDN and restarting it.

    *host* may carry a port (``1.2.3.4:8000``). Characters outside
    ``[A-Za-z0-9.:_-]`` are rejected.
    """
    assert_fqdn_safe(host)
    scheme = "https" if ssl else "http"
    url = f"{scheme}://{host}"
    return RemotePlan(
        (
            _psql(f"UPDATE instance_settings SET fqdn='{url}' WHERE id=0;"),
            f"cd {COOLIFY_SOURCE_DIR} && docker compose -f docker-compose.yml "
            "-f docker-compose.prod.yml restart coolify",
        )
    )


def build_get_fqdn_plan() -> RemotePlan:
    return RemotePlan((_psql("SELECT fqdn FROM instance_settings WHERE id=0;", tuples_only=True),))


def build_dns_check_plan(domain: str) -> RemotePlan:
    """Return a plan resolving the A record of *domain* from the server itself."""
    if not is_valid_domain(domain):
        raise ValidationError(f"Invalid domain: {domain}")
    return RemotePlan(
        (
            f"dig +short A {domain} 2>/dev/null || "
            f"getent ahosts {domain} 2>/dev/null | head -1 | awk '{{print $1}}'",
        )
    )


def build_health_probe_plan() -> RemotePlan:
    """Return a plan printing the HTTP status of the Coolify health endpoint."""
    return RemotePlan(
        (
            "curl -s -o /dev/null -w '%{http_code}' "
            f"http://localhost:{COOLIFY_DASHBOARD_PORT}/api/health",
        )
    )


def build_container_probe_plan() -> RemotePlan:
    """Return a plan echoing ``OK`` when any Coolify container is running."""
    return RemotePlan(("docker ps --format '{{.Names}}' 2>/dev/null | grep -q coolify && echo OK",))


__all__ = [
    "AUDIT_SEPARATOR",
    "BARE_PORTS",
    "COOLIFY_DASHBOARD_PORT",
    "COOLIFY_PORTS",
    "HARDENED_SSHD_SETTINGS",
    "PROTECTED_PORTS",
    "RemotePlan",
    "STEP_MARKER",
    "build_audit_plan",
    "build_container_probe_plan",
    "build_coolify_db_probe_plan",
    "build_dns_check_plan",
    "build_fail2ban_plan",
    "build_firewall_allow_plan",
    "build_firewall_delete_plan",
    "build_firewall_setup_plan",
    "build_firewall_status_plan",
    "build_get_fqdn_plan",
    "build_hardening_plan",
    "build_health_probe_plan",
    "build_key_check_plan",
    "build_set_fqdn_plan",
    "firewall_ports_for",
]
