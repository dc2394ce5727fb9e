"""Structural checks for generated setting values."""

from __future__ import annotations

import ipaddress
import re
from urllib.parse import urlsplit

from ._errors import ValidationError

_HOSTNAME_MAX_LENGTH = 253
_LABEL_RE = re.compile(r"^[A-Za-z0-9-]{1,63}$")


def dns_ip_from_ipv4_cidr(cidr: str) -> str:
    """Return the cluster DNS address for a service CIDR.

    The final octet is replaced with ``10``; the prefix length goes with it.

    Examples
    --------
    >>> dns_ip_from_ipv4_cidr("10.100.0.0/16")
    '10.100.0.10'
    >>> dns_ip_from_ipv4_cidr("123_456_789_0/123")
    Traceback (most recent call last):
    ...
    nodeconf._errors.ValidationError: Unable to parse CIDR '123_456_789_0/123': expected 4 components but found 1
    """

    parts = cidr.split(".")
    if len(parts) != 4:
        msg = (
            f"Unable to parse CIDR {cidr!r}: "
            f"expected 4 components but found {len(parts)}"
        )
        raise ValidationError(msg)
    parts[3] = "10"
    return ".".join(parts)


def parse_ip(value: str, *, setting: str | None = None) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    """Parse *value* as an IPv4 or IPv6 address."""

    try:
        return ipaddress.ip_address(value.strip())
    except ValueError as exc:
        msg = f"Unable to parse IP {value!r}: {exc}"
        raise ValidationError(msg, setting=setting) from exc


def validate_hostname(value: str, *, setting: str | None = None) -> str:
    """Return *value* when it is a valid Linux hostname.

    Examples
    --------
    >>> validate_hostname("ip-10-0-0-5.us-west-2.compute.internal")
    'ip-10-0-0-5.us-west-2.compute.internal'
    >>> validate_hostname("-bad")
    Traceback (most recent call last):
    ...
    nodeconf._errors.ValidationError: Invalid hostname '-bad': must not start with '-' or '.'
    """

    candidate = value.strip()
    reason: str | None = None
    if not candidate or len(candidate) > _HOSTNAME_MAX_LENGTH:
        reason = f"length must be between 1 and {_HOSTNAME_MAX_LENGTH}"
    elif candidate[0] in "-.":
        reason = "must not start with '-' or '.'"
    elif not all(_LABEL_RE.match(label) for label in candidate.rstrip(".").split(".")):
        reason = "labels must be 1-63 characters of letters, digits, or '-'"
    if reason is not None:
        msg = f"Invalid hostname {value!r}: {reason}"
        raise ValidationError(msg, setting=setting)
    return candidate


def validate_url(value: str, *, setting: str | None = None) -> str:
    """Return *value* when it is shaped like a URL with a scheme.

    Examples
    --------
    >>> validate_url("aws:///us-west-2a/i-0123456789abcdef0")
    'aws:///us-west-2a/i-0123456789abcdef0'
    """

    if not value or any(char.isspace() or ord(char) < 0x20 for char in value):
        msg = f"Invalid URL {value!r}: empty or contains whitespace"
        raise ValidationError(msg, setting=setting)
    try:
        parts = urlsplit(value)
    except ValueError as exc:
        msg = f"Invalid URL {value!r}: {exc}"
        raise ValidationError(msg, setting=setting) from exc
    if not parts.scheme or not (parts.netloc or parts.path):
        msg = f"Invalid URL {value!r}: expected '<scheme>://...'"
        raise ValidationError(msg, setting=setting)
    return value


__all__ = [
    "dns_ip_from_ipv4_cidr",
    "parse_ip",
    "validate_hostname",
    "validate_url",
]
