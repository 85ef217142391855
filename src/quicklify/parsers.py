"""Tokenizers turning remote command output into structured results.

Each parser works line by line against a small, explicit grammar. Missing or
malformed input never raises: absent settings are reported as ``missing``,
absent values as ``None`` and numeric fields fall back to documented defaults.
"""
from __future__ import annotations

from collections.abc import Iterator

from .commands import AUDIT_SEPARATOR, HARDENED_SSHD_SETTINGS, STEP_MARKER
from .models import (
    DEFAULT_SSH_PORT,
    Fail2banState,
    FirewallRule,
    FirewallStatus,
    SecureAuditResult,
    SettingStatus,
    SshdSetting,
)
from .validation import is_ascii_digits, is_ipv4, is_valid_port

_SECURE_VALUES = {key.lower(): value for key, value in HARDENED_SSHD_SETTINGS}
_CANONICAL_KEYS = {key.lower(): key for key, _ in HARDENED_SSHD_SETTINGS}


# ----------------------------------------------------------------------
# sshd_config
# ----------------------------------------------------------------------
def iter_sshd_directives(content: str) -> Iterator[tuple[str, str]]:
    """Yield ``(keyword, value)`` pairs from the global section of sshd_config.

    Grammar per line: ``Keyword value`` or ``Keyword=value``. Blank lines and
    ``#`` comments are skipped and iteration stops at the first ``Match``
    block, whose directives only apply conditionally.
    """
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        keyword, value = _split_directive(line)
        if not keyword:
            continue
        if keyword.lower() == "match":
            return
        yield keyword, value


def _split_directive(line: str) -> tuple[str, str]:
    keyword_end = len(line)
    for index, char in enumerate(line):
        if char.isspace() or char == "=":
            keyword_end = index
            break
    keyword = line[:keyword_end]
    rest = line[keyword_end:].strip()
    if rest.startswith("="):
        rest = rest[1:].strip()
    # Inline comments are not part of the value.
    if " #" in rest:
        rest = rest.split(" #", 1)[0].rstrip()
    return keyword, rest


def parse_sshd_config(content: str) -> dict[str, SshdSetting]:
    """Return the four tracked directives keyed by canonical name.

    The first occurrence of a keyword wins, matching sshd's own behaviour.
    """
    found: dict[str, str] = {}
    for keyword, value in iter_sshd_directives(content):
        lowered = keyword.lower()
        if lowered in _CANONICAL_KEYS and lowered not in found:
            found[lowered] = value

    settings: dict[str, SshdSetting] = {}
    for lowered, canonical in _CANONICAL_KEYS.items():
        value = found.get(lowered)
        if value is None or not value:
            settings[canonical] = SshdSetting(canonical)
            continue
        secure = value.lower() == _SECURE_VALUES[lowered].lower()
        status = SettingStatus.SECURE if secure else SettingStatus.INSECURE
        settings[canonical] = SshdSetting(canonical, value, status)
    return settings


def parse_ssh_port(content: str) -> int:
    """Return the first ``Port`` directive, defaulting to 22."""
    for keyword, value in iter_sshd_directives(content):
        if keyword.lower() != "port":
            continue
        token = value.split()[0] if value.split() else ""
        if is_ascii_digits(token) and is_valid_port(int(token)):
            return int(token)
        return DEFAULT_SSH_PORT
    return DEFAULT_SSH_PORT


# ----------------------------------------------------------------------
# fail2ban + audit
# ----------------------------------------------------------------------
def parse_fail2ban_status(text: str) -> Fail2banState:
    """Interpret ``systemctl status fail2ban`` output."""
    lowered = text.lower()
    if "could not be found" in lowered or "not-found" in lowered:
        return Fail2banState(installed=False, active=False)
    installed = "active" in lowered or "inactive" in lowered
    active = "active (running)" in lowered
    return Fail2banState(installed=installed, active=active)


def parse_audit_output(stdout: str) -> SecureAuditResult:
    """Split audit output on the separator line and parse both sections.

    Output without a separator is treated as sshd_config only.
    """
    sshd_lines: list[str] = []
    status_lines: list[str] = []
    target = sshd_lines
    for line in stdout.splitlines():
        if target is sshd_lines and line.strip() == AUDIT_SEPARATOR:
            target = status_lines
            continue
        target.append(line)

    sshd_content = "\n".join(sshd_lines)
    settings = parse_sshd_config(sshd_content)
    return SecureAuditResult(
        password_auth=settings["PasswordAuthentication"],
        root_login=settings["PermitRootLogin"],
        pubkey_auth=settings["PubkeyAuthentication"],
        max_auth_tries=settings["MaxAuthTries"],
        fail2ban=parse_fail2ban_status("\n".join(status_lines)),
        ssh_port=parse_ssh_port(sshd_content),
    )


def calculate_security_score(audit: SecureAuditResult) -> int:
    """Return a 0-100 score in 25-point steps."""
    score = 0
    if audit.password_auth.value.lower() == "no":
        score += 25
    if audit.root_login.value.lower() == "prohibit-password":
        score += 25
    if audit.fail2ban.active:
        score += 25
    if audit.ssh_port != DEFAULT_SSH_PORT:
        score += 25
    return score


# ----------------------------------------------------------------------
# UFW
# ----------------------------------------------------------------------
def parse_ufw_status(stdout: str) -> FirewallStatus:
    """Parse ``ufw status numbered`` output.

    Rule grammar: ``[ n] <port>/<proto> <ALLOW|DENY> IN <from...>``. IPv6
    duplicates, port ranges and application profiles are skipped. Output
    without a ``Status: active`` line means the firewall is inactive.
    """
    active = False
    rules: list[FirewallRule] = []
    for raw_line in stdout.splitlines():
        line = raw_line.strip()
        if line.lower().startswith("status:"):
            active = line.split(":", 1)[1].strip().lower() == "active"
            continue
        if not active:
            continue
        rule = _parse_ufw_rule(line)
        if rule is not None:
            rules.append(rule)
    if not active:
        return FirewallStatus()
    return FirewallStatus(active=True, rules=tuple(rules))


def _parse_ufw_rule(line: str) -> FirewallRule | None:
    if not line.startswith("["):
        return None
    closing = line.find("]")
    if closing == -1 or not is_ascii_digits(line[1:closing].strip()):
        return None
    tokens = line[closing + 1 :].split()
    if len(tokens) < 3 or "(v6)" in tokens:
        return None

    target, action, direction, *source = tokens
    port_text, _, protocol = target.partition("/")
    protocol = protocol.lower()
    if not is_ascii_digits(port_text) or protocol not in ("tcp", "udp"):
        return None
    port = int(port_text)
    if not is_valid_port(port):
        return None

    action = action.upper()
    if action not in ("ALLOW", "DENY"):
        return None
    if direction.upper() != "IN":
        return None
    if "#" in source:
        source = source[: source.index("#")]
    return FirewallRule(
        port=port,
        protocol=protocol,  # type: ignore[arg-type]
        action=action,  # type: ignore[arg-type]
        source=" ".join(source) or "Anywhere",
    )


# ----------------------------------------------------------------------
# Misc single-value outputs
# ----------------------------------------------------------------------
def parse_dns_result(stdout: str) -> str | None:
    """Return the first IPv4 address in lookup output (CNAME lines skipped)."""
    for line in stdout.splitlines():
        for token in line.split():
            if is_ipv4(token):
                return token
    return None


def parse_fqdn(stdout: str) -> str | None:
    """Return the stored FQDN or ``None`` when unset."""
    value = stdout.strip()
    return value or None


def parse_key_count(stdout: str) -> int:
    """Return the first integer in key-check output, defaulting to 0."""
    for token in stdout.split():
        if is_ascii_digits(token):
            return int(token)
    return 0


def parse_step_markers(stdout: str) -> tuple[int, str]:
    """Return the highest completed step index and output without markers."""
    completed = 0
    kept: list[str] = []
    for line in stdout.splitlines():
        stripped = line.strip()
        if stripped.startswith(STEP_MARKER):
            index_text = stripped[len(STEP_MARKER) :].strip()
            if is_ascii_digits(index_text):
                completed = max(completed, int(index_text))
            continue
        kept.append(line)
    return completed, "\n".join(kept)


__all__ = [
    "calculate_security_score",
    "iter_sshd_directives",
    "parse_audit_output",
    "parse_dns_result",
    "parse_fail2ban_status",
    "parse_fqdn",
    "parse_key_count",
    "parse_ssh_port",
    "parse_sshd_config",
    "parse_step_markers",
    "parse_ufw_status",
]
