"""Pre-flight validators for user supplied values.

Validators return an error message (``None`` when the value is acceptable)
so callers can report every problem without touching the network. The
``assert_*`` variants raise :class:`~quicklify.errors.ValidationError`.
"""
from __future__ import annotations

import re

from .errors import ValidationError
from .models import ProviderName

SERVER_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9-]*[a-z0-9]$")
DOMAIN_PATTERN = re.compile(
    r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.[A-Za-z0-9-]{1,63})*\.[A-Za-z]{2,}$"
)
# Characters allowed to reach a shell command when building FQDN updates.
FQDN_SAFE_PATTERN = re.compile(r"^[A-Za-z0-9.:_-]+$")

_SCHEME_PATTERN = re.compile(r"^https?://", re.I)
_PORT_SUFFIX_PATTERN = re.compile(r":\d+$", re.ASCII)
_IPV4_PATTERN = re.compile(r"\d{1,3}(?:\.\d{1,3}){3}", re.ASCII)
_DIGITS_PATTERN = re.compile(r"[0-9]+")


def is_ascii_digits(value: object) -> bool:
    """Return ``True`` when *value* is a non-empty string of ASCII digits 0-9."""
    return isinstance(value, str) and _DIGITS_PATTERN.fullmatch(value) is not None


def validate_ip_address(ip: object) -> str | None:
    """Return an error message when *ip* is not a usable IPv4 address."""
    if ip is None or ip == "":
        return "IP address is required"
    if not isinstance(ip, str) or _IPV4_PATTERN.fullmatch(ip) is None:
        return "Invalid IP address format"
    octets = ip.split(".")
    if any(int(part) > 255 for part in octets):
        return "Invalid IP address (octets must be 0-255)"
    if ip == "0.0.0.0" or octets[0] == "127":
        return "Reserved IP address not allowed"
    return None


def is_ipv4(value: object) -> bool:
    """Return ``True`` when *value* is a dotted-quad IPv4 address."""
    if not isinstance(value, str) or _IPV4_PATTERN.fullmatch(value) is None:
        return False
    return all(int(part) <= 255 for part in value.split("."))


def assert_valid_ip(ip: object) -> None:
    """Raise :class:`ValidationError` unless *ip* is a dotted-quad address."""
    if not is_ipv4(ip):
        raise ValidationError(f"Invalid IP address: {ip!r}")


def validate_server_name(name: object) -> str | None:
    """Return an error message when *name* is not a valid DNS-label style name."""
    if name is None or name == "":
        return "Server name is required"
    if not isinstance(name, str):
        return "Server name must be a string"
    if len(name) < 3 or len(name) > 63:
        return "Server name must be 3-63 characters"
    if not SERVER_NAME_PATTERN.fullmatch(name):
        return (
            "Must start with a letter, end with letter/number, only lowercase letters, "
            "numbers, hyphens"
        )
    return None


def parse_provider(provider: str) -> ProviderName:
    """Return the :class:`ProviderName` for *provider* or raise ValidationError."""
    try:
        return ProviderName(provider)
    except ValueError:
        valid = ", ".join(ProviderName.values())
        raise ValidationError(f"Invalid provider: {provider}. Valid: {valid}") from None


def is_valid_port(port: object) -> bool:
    """Return ``True`` for integer ports in the range 1-65535."""
    return isinstance(port, int) and not isinstance(port, bool) and 1 <= port <= 65535


def assert_valid_port(port: object) -> int:
    """Return *port* unchanged or raise :class:`ValidationError`."""
    if not is_valid_port(port):
        raise ValidationError(f"Invalid port: {port}. Must be 1-65535.")
    return port  # type: ignore[return-value]


def assert_valid_protocol(protocol: str) -> str:
    """Return *protocol* when it is ``tcp`` or ``udp``."""
    if protocol not in ("tcp", "udp"):
        raise ValidationError(f"Invalid protocol: {protocol}. Must be tcp or udp.")
    return protocol


def sanitize_domain(value: str) -> str:
    """Strip scheme, trailing slashes and port suffix from *value*.

    Sanitising is idempotent: ``sanitize_domain(sanitize_domain(x)) ==
    sanitize_domain(x)``.
    """
    domain = value
    while True:
        cleaned = _SCHEME_PATTERN.sub("", domain.strip())
        cleaned = _PORT_SUFFIX_PATTERN.sub("", cleaned.rstrip("/"))
        if cleaned == domain:
            return cleaned
        domain = cleaned


def is_valid_domain(domain: str) -> bool:
    """Return ``True`` when *domain* matches the accepted hostname grammar."""
    return DOMAIN_PATTERN.fullmatch(domain) is not None


def assert_fqdn_safe(value: str) -> str:
    """Reject values containing characters outside the URL-safe allow-list."""
    if not isinstance(value, str) or not FQDN_SAFE_PATTERN.fullmatch(value):
        raise ValidationError(f"Invalid domain for FQDN command: {value}")
    return value


__all__ = [
    "assert_fqdn_safe",
    "assert_valid_ip",
    "assert_valid_port",
    "assert_valid_protocol",
    "is_ascii_digits",
    "is_ipv4",
    "is_valid_domain",
    "is_valid_port",
    "parse_provider",
    "sanitize_domain",
    "validate_ip_address",
    "validate_server_name",
]
