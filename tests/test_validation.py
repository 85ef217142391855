"""Validator tests."""
from __future__ import annotations

import pytest

from quicklify.errors import ValidationError
from quicklify.models import ProviderName
from quicklify.validation import (
    assert_fqdn_safe,
    assert_valid_port,
    assert_valid_protocol,
    is_ascii_digits,
    is_ipv4,
    is_valid_domain,
    is_valid_port,
    parse_provider,
    sanitize_domain,
    validate_ip_address,
    validate_server_name,
)


@pytest.mark.parametrize(
    ("ip", "expected"),
    [
        ("1.2.3.4", None),
        ("203.0.113.10", None),
        ("", "IP address is required"),
        ("1.2.3", "Invalid IP address format"),
        ("a.b.c.d", "Invalid IP address format"),
        ("1.2.3.4.5", "Invalid IP address format"),
        ("256.1.1.1", "Invalid IP address (octets must be 0-255)"),
        ("0.0.0.0", "Reserved IP address not allowed"),
        ("127.0.0.1", "Reserved IP address not allowed"),
        ("127.8.8.8", "Reserved IP address not allowed"),
        ("1.2.3.\u00b2", "Invalid IP address format"),
        ("\u0661.2.3.4", "Invalid IP address format"),
        ("1.2.3.4\n", "Invalid IP address format"),
    ],
)
def test_validate_ip_address(ip: str, expected: str | None) -> None:
    """IP validation reports the first problem found."""
    assert validate_ip_address(ip) == expected


def test_is_ipv4_rejects_hostnames() -> None:
    """Only dotted quads count as IPv4."""
    assert is_ipv4("10.0.0.1") is True
    assert is_ipv4("example.com") is False
    assert is_ipv4("10.0.0.300") is False


@pytest.mark.parametrize("value", [1234, None, ["1.2.3.4"], b"1.2.3.4"])
def test_ip_checks_reject_non_strings(value: object) -> None:
    """Non-string input is reported, never raised."""
    assert validate_ip_address(value) in ("IP address is required", "Invalid IP address format")
    assert is_ipv4(value) is False


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("0", True),
        ("2222", True),
        ("", False),
        ("²", False),
        ("٢٢", False),
        ("２２", False),
        ("22\n", False),
        (22, False),
    ],
)
def test_is_ascii_digits(value: object, expected: bool) -> None:
    """Only the characters 0-9 count as digits."""
    assert is_ascii_digits(value) is expected


def test_validate_server_name_rejects_non_string() -> None:
    assert validate_server_name(42) == "Server name must be a string"
    assert validate_server_name("сoolify") is not None


@pytest.mark.parametrize("name", ["abc", "coolify-prod", "web1", "a" * 63])
def test_validate_server_name_accepts(name: str) -> None:
    """DNS-label style names are accepted."""
    assert validate_server_name(name) is None


@pytest.mark.parametrize(
    ("name", "fragment"),
    [
        ("", "required"),
        ("ab", "3-63"),
        ("a" * 64, "3-63"),
        ("1abc", "Must start with a letter"),
        ("abc-", "Must start with a letter"),
        ("Abc", "Must start with a letter"),
        ("my_server", "Must start with a letter"),
    ],
)
def test_validate_server_name_rejects(name: str, fragment: str) -> None:
    """Invalid names produce a descriptive message."""
    message = validate_server_name(name)
    assert message is not None
    assert fragment in message


def test_parse_provider() -> None:
    """Known providers parse; unknown ones list the valid choices."""
    assert parse_provider("linode") is ProviderName.LINODE

    with pytest.raises(ValidationError, match="Valid: hetzner, digitalocean, vultr, linode"):
        parse_provider("aws")


@pytest.mark.parametrize(
    ("port", "valid"),
    [
        (1, True),
        (22, True),
        (65535, True),
        (0, False),
        (65536, False),
        (True, False),
        ("80", False),
    ],
)
def test_is_valid_port(port: object, valid: bool) -> None:
    """Ports must be real integers within 1-65535."""
    assert is_valid_port(port) is valid


def test_assert_helpers_raise_validation_error() -> None:
    """assert_* helpers raise ValidationError on bad input."""
    assert assert_valid_port(8080) == 8080
    assert assert_valid_protocol("udp") == "udp"
    with pytest.raises(ValidationError):
        assert_valid_port(70000)
    with pytest.raises(ValidationError):
        assert_valid_protocol("icmp")
    with pytest.raises(ValidationError):
        assert_fqdn_safe("example.com'; rm -rf /")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("https://example.com:8080/", "example.com"),
        ("http://example.com", "example.com"),
        ("  example.com/  ", "example.com"),
        ("example.com:443", "example.com"),
        ("HTTPS://Example.com", "Example.com"),
        ("https://https://example.com:80//", "example.com"),
        ("example.com", "example.com"),
    ],
)
def test_sanitize_domain(raw: str, expected: str) -> None:
    """Scheme, trailing slashes and port suffix are stripped."""
    assert sanitize_domain(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["https://example.com:8080/", "http://http://a.b.io:1/:2/", " x ", "", "sub.example.co.uk"],
)
def test_sanitize_domain_is_idempotent(raw: str) -> None:
    """Sanitising twice gives the same result as sanitising once."""
    once = sanitize_domain(raw)
    assert sanitize_domain(once) == once


@pytest.mark.parametrize(
    ("domain", "valid"),
    [
        ("example.com", True),
        ("coolify.my-site.co.uk", True),
        ("localhost", False),
        ("-bad.com", False),
        ("bad-.com", False),
        ("exa mple.com", False),
        ("example.c", False),
        ("example.com;ls", False),
    ],
)
def test_is_valid_domain(domain: str, valid: bool) -> None:
    """Domain grammar requires labels and an alphabetic TLD."""
    assert is_valid_domain(domain) is valid
