"""Error taxonomy and failure normalisation for quicklify.

Every failure an operation can encounter is expressed as a subclass of
:class:`QuicklifyError` carrying an :class:`ErrorKind` and an optional human
remediation hint. Third-party failures (``httpx`` transport errors, ``OSError``
raised by the filesystem or the SSH client) are classified by
:func:`normalize_error` using a fixed priority order:

1. HTTP status code (provider API responses).
2. Transport error code (``ECONNREFUSED``, ``ETIMEDOUT``, SSH auth failures...).
3. Message text patterns.

The same underlying failure therefore always produces the same kind and hint.
"""
from __future__ import annotations

import errno
import re
from dataclasses import dataclass
from enum import Enum

import httpx

from .models import ProviderName


class ErrorKind(str, Enum):
    """Classification attached to every normalised failure."""

    VALIDATION = "validation"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSPORT = "transport"
    COMMAND = "command"
    RATE_LIMIT = "rate_limit"
    PROVIDER_SERVER = "provider_server"
    PROVIDER = "provider"
    FILESYSTEM = "filesystem"
    SAFETY = "safety"
    UNKNOWN = "unknown"


class QuicklifyError(RuntimeError):
    """Base class for failures raised by quicklify components."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ValidationError(QuicklifyError):
    """Local, pre-flight validation failure. Never touches the network."""

    kind = ErrorKind.VALIDATION


class AuthError(QuicklifyError):
    """Token or credential missing or rejected."""

    kind = ErrorKind.AUTH


class NotFoundError(QuicklifyError):
    """Inventory, remote or cloud resource absent."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(QuicklifyError):
    """Duplicate IP address or resource already in use."""

    kind = ErrorKind.CONFLICT


class TransportError(QuicklifyError):
    """Remote channel failure (connection, authentication, host key, timeout)."""

    kind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        host: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.code = code
        self.host = host


class CommandError(QuicklifyError):
    """Remote command exited with a non-zero status."""

    kind = ErrorKind.COMMAND

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        failed_step: int | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.exit_code = exit_code
        self.failed_step = failed_step


class RateLimitError(QuicklifyError):
    """Provider API rate limit exceeded."""

    kind = ErrorKind.RATE_LIMIT


class ProviderServerError(QuicklifyError):
    """Provider API answered with a 5xx status."""

    kind = ErrorKind.PROVIDER_SERVER


class SafetyAbort(QuicklifyError):
    """Operation refused to prevent lockout or blocked by safe mode."""

    kind = ErrorKind.SAFETY


class ProviderError(QuicklifyError):
    """HTTP-level failure raised by a cloud provider client.

    Messages are sanitised by the provider clients: only known error fields
    from the response body are kept, never headers or request payloads.
    """

    kind = ErrorKind.PROVIDER

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.code = code


@dataclass(slots=True, frozen=True)
class NormalizedError:
    """Result of classifying a failure."""

    kind: ErrorKind
    message: str
    hint: str | None = None


PROVIDER_URLS: dict[ProviderName, tuple[str, str]] = {
    ProviderName.HETZNER: (
        "https://console.hetzner.cloud/projects → API Tokens",
        "https://console.hetzner.cloud/billing",
    ),
    ProviderName.DIGITALOCEAN: (
        "https://cloud.digitalocean.com/account/api/tokens",
        "https://cloud.digitalocean.com/account/billing",
    ),
    ProviderName.VULTR: (
        "https://my.vultr.com/settings/#settingsapi",
        "https://my.vultr.com/billing",
    ),
    ProviderName.LINODE: (
        "https://cloud.linode.com/profile/tokens",
        "https://cloud.linode.com/account/billing",
    ),
}

_ERRNO_CODES = {
    errno.ECONNREFUSED: "ECONNREFUSED",
    errno.ETIMEDOUT: "ETIMEDOUT",
    errno.ECONNRESET: "ECONNRESET",
    errno.EHOSTUNREACH: "EHOSTUNREACH",
    errno.ENETUNREACH: "ENETUNREACH",
    errno.ENOSPC: "ENOSPC",
    errno.EACCES: "EACCES",
    errno.EPERM: "EPERM",
    errno.ENOENT: "ENOENT",
    errno.EROFS: "EROFS",
}

_FILESYSTEM_CODES = {"EACCES", "EPERM", "ENOENT", "EROFS", "ENOSPC"}

# Ordered (pattern, code) pairs used to classify SSH client stderr.
_TRANSPORT_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(
            r"host key verification failed|remote host identification has changed"
            r"|not found in known_hosts",
            re.I,
        ),
        "EHOSTKEY",
    ),
    (re.compile(r"permission denied \(|too many authentication failures", re.I), "EAUTH"),
    (re.compile(r"connection refused", re.I), "ECONNREFUSED"),
    (re.compile(r"timed out", re.I), "ETIMEDOUT"),
    (re.compile(r"connection reset|broken pipe|connection closed by", re.I), "ECONNRESET"),
    (re.compile(r"no route to host|network is unreachable", re.I), "EHOSTUNREACH"),
    (re.compile(r"could not resolve hostname|name or service not known", re.I), "ENOTFOUND"),
    (re.compile(r"no space left on device", re.I), "ENOSPC"),
)


def classify_transport_text(text: str) -> str | None:
    """Return the transport error code matching SSH client output, if any."""
    for pattern, code in _TRANSPORT_PATTERNS:
        if pattern.search(text):
            return code
    return None


def error_message(error: BaseException) -> str:
    """Return a printable message for *error*."""
    message = str(error).strip()
    return message or type(error).__name__


def is_not_found(error: BaseException) -> bool:
    """Return ``True`` when *error* reports a missing cloud resource."""
    status = _http_status(error)
    if status is not None:
        return status == 404
    if isinstance(error, NotFoundError):
        return True
    lowered = error_message(error).lower()
    return "not found" in lowered or "not_found" in lowered


def token_hint(provider: ProviderName | str | None) -> str:
    """Return the remediation hint for a rejected or missing API token."""
    return _classify_status(401, _coerce_provider(provider))[1]


def normalize_error(
    error: BaseException,
    *,
    provider: ProviderName | str | None = None,
    host: str | None = None,
) -> NormalizedError:
    """Classify *error* into an :class:`ErrorKind` plus remediation hint."""
    message = error_message(error)
    provider_name = _coerce_provider(provider)

    status = _http_status(error)
    if status is not None:
        kind, hint = _classify_status(status, provider_name)
        return NormalizedError(kind, message, getattr(error, "hint", None) or hint)

    code = _transport_code(error)
    if code is not None:
        kind, hint = _classify_code(code, provider_name, host, error)
        return NormalizedError(kind, message, getattr(error, "hint", None) or hint)

    if isinstance(error, QuicklifyError):
        hint = error.hint or _classify_message(message, provider_name)
        return NormalizedError(error.kind, message, hint)

    hint = _classify_message(message, provider_name)
    return NormalizedError(ErrorKind.UNKNOWN, message, hint)


# ----------------------------------------------------------------------
# Internal helpers
# ----------------------------------------------------------------------
def _coerce_provider(provider: ProviderName | str | None) -> ProviderName | None:
    if provider is None or isinstance(provider, ProviderName):
        return provider
    try:
        return ProviderName(provider)
    except ValueError:
        return None


def _display(provider: ProviderName | None) -> str:
    return provider.display_name if provider is not None else "the provider"


def _http_status(error: BaseException) -> int | None:
    if isinstance(error, ProviderError) and error.status_code is not None:
        return error.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def _transport_code(error: BaseException) -> str | None:
    if isinstance(error, (TransportError, ProviderError)) and error.code:
        return error.code
    if isinstance(error, httpx.TimeoutException):
        return "ETIMEDOUT"
    if isinstance(error, httpx.ConnectError):
        return classify_transport_text(str(error)) or "ECONNREFUSED"
    if isinstance(error, httpx.TransportError):
        return "ENETWORK"
    if isinstance(error, TimeoutError):
        return "ETIMEDOUT"
    if isinstance(error, OSError) and error.errno in _ERRNO_CODES:
        return _ERRNO_CODES[error.errno]
    if isinstance(error, TransportError):
        return classify_transport_text(error_message(error))
    return None


def _classify_status(status: int, provider: ProviderName | None) -> tuple[ErrorKind, str]:
    token_url, billing_url = (
        PROVIDER_URLS[provider]
        if provider is not None
        else ("your provider dashboard", "your provider billing page")
    )
    if status in (401, 403):
        return (
            ErrorKind.AUTH,
            f"API token is invalid or expired. Generate a new Read & Write token from {token_url}",
        )
    if status == 402:
        return ErrorKind.PROVIDER, f"Insufficient account balance. Add funds at {billing_url}"
    if status == 404:
        return (
            ErrorKind.NOT_FOUND,
            "Resource not found. The server may have been deleted or the ID is incorrect.",
        )
    if status == 409:
        return (
            ErrorKind.CONFLICT,
            "Resource conflict. This name or resource may already be in use.",
        )
    if status == 422:
        return (
            ErrorKind.VALIDATION,
            "Invalid request parameters. Please check your input and try again.",
        )
    if status == 429:
        return (
            ErrorKind.RATE_LIMIT,
            f"{_display(provider)} rate limit exceeded. Wait a moment and try again.",
        )
    if status >= 500:
        return (
            ErrorKind.PROVIDER_SERVER,
            f"{_display(provider)} API is experiencing issues (HTTP {status}). Try again later.",
        )
    return ErrorKind.PROVIDER, f"{_display(provider)} API rejected the request (HTTP {status})."


def _classify_code(
    code: str,
    provider: ProviderName | None,
    host: str | None,
    error: BaseException,
) -> tuple[ErrorKind, str]:
    if host is None and provider is not None:
        name = provider.display_name
        if code in {"ETIMEDOUT"}:
            return (
                ErrorKind.TRANSPORT,
                f"{name} API request timed out. Check your connection and try again.",
            )
        if code in {"ECONNREFUSED", "ENOTFOUND"}:
            return (
                ErrorKind.TRANSPORT,
                f"Cannot reach {name} API. Check your internet connection.",
            )
        return (
            ErrorKind.TRANSPORT,
            f"Network error connecting to {name}. Check your internet connection.",
        )

    if code in _FILESYSTEM_CODES and not isinstance(error, TransportError):
        filename = getattr(error, "filename", None) or "the quicklify state directory"
        if code == "ENOSPC":
            return ErrorKind.FILESYSTEM, "Local disk is full. Free some space and retry."
        if code == "ENOENT":
            return ErrorKind.FILESYSTEM, f"File not found: {filename}."
        return (
            ErrorKind.FILESYSTEM,
            f"Permission denied for {filename}. Check ownership and permissions.",
        )

    target = host or "the server"
    hints = {
        "ECONNREFUSED": (
            f"Connection refused by {target}. Check the server is running and "
            "SSH is listening on the expected port."
        ),
        "EAUTH": (
            f"SSH authentication failed. Load your key with ssh-add or run: "
            f"ssh-copy-id root@{target}"
        ),
        "EHOSTKEY": (
            f"Host key for {target} changed. If the server was rebuilt, run: "
            f"ssh-keygen -R {target}"
        ),
        "ETIMEDOUT": (
            f"Connection to {target} timed out. Check the IP address and any "
            "cloud firewall rules."
        ),
        "ECONNRESET": (
            f"Connection to {target} was reset. The SSH service may be restarting; "
            "retry shortly."
        ),
        "EHOSTUNREACH": f"{target} is unreachable. Check the IP address and your network.",
        "ENETUNREACH": f"{target} is unreachable. Check the IP address and your network.",
        "ENOTFOUND": f"Could not resolve {target}. Check the address.",
        "ENOSPC": f"Disk full on {target}. Free space (for example docker system prune) and retry.",
        "ENOKEY": "No SSH key or agent found. Create a key with ssh-keygen or run ssh-add.",
    }
    hint = hints.get(code, f"Network error talking to {target}. Check connectivity and retry.")
    return ErrorKind.TRANSPORT, hint


def _classify_message(message: str, provider: ProviderName | None) -> str | None:
    billing_url = (
        PROVIDER_URLS[provider][1] if provider is not None else "your provider billing page"
    )
    if re.search(r"insufficient.*(balance|fund|credit)", message, re.I):
        return f"Insufficient account balance. Add funds at {billing_url}"
    if re.search(r"unavailable|not available|sold out", message, re.I):
        return (
            "This server type is not available in the selected region. "
            "Try a different size or region."
        )
    code = classify_transport_text(message)
    if code is not None:
        return _classify_code(code, None, None, TransportError(message))[1]
    return None


__all__ = [
    "AuthError",
    "CommandError",
    "ConflictError",
    "ErrorKind",
    "NormalizedError",
    "NotFoundError",
    "ProviderError",
    "ProviderServerError",
    "QuicklifyError",
    "RateLimitError",
    "SafetyAbort",
    "TransportError",
    "ValidationError",
    "classify_transport_text",
    "error_message",
    "is_not_found",
    "normalize_error",
    "token_hint",
]
