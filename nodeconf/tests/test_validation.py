"""Tests for value validation helpers."""

from __future__ import annotations

import pytest

from nodeconf._errors import ValidationError
from nodeconf._validation import (
    dns_ip_from_ipv4_cidr,
    parse_ip,
    validate_hostname,
    validate_url,
)


@pytest.mark.parametrize(
    ("cidr", "expected"),
    [
        ("123.456.789.0/123", "123.456.789.10"),
        ("10.100.0.0/16", "10.100.0.10"),
        ("172.20.0.0/16", "172.20.0.10"),
    ],
)
def test_dns_ip_from_ipv4_cidr(cidr: str, expected: str) -> None:
    assert dns_ip_from_ipv4_cidr(cidr) == expected


@pytest.mark.parametrize("cidr", ["123_456_789_0/123", "10.100.0/16", "1.2.3.4.5/8"])
def test_dns_ip_from_ipv4_cidr_rejects_malformed(cidr: str) -> None:
    with pytest.raises(ValidationError, match="expected 4 components"):
        dns_ip_from_ipv4_cidr(cidr)


def test_parse_ip_accepts_both_families() -> None:
    assert parse_ip("10.0.0.1").version == 4
    assert parse_ip("fd00::a").version == 6


def test_parse_ip_rejects_garbage() -> None:
    with pytest.raises(ValidationError, match="Unable to parse IP"):
        parse_ip("not-an-ip", setting="kubernetes.node-ip")


@pytest.mark.parametrize(
    "hostname",
    ["i-0123456789abcdef0", "ip-10-0-0-5.us-west-2.compute.internal", "node1"],
)
def test_validate_hostname_accepts(hostname: str) -> None:
    assert validate_hostname(hostname) == hostname


@pytest.mark.parametrize(
    "hostname",
    ["", "-leading", ".leading", "under_score", "a" * 64, "a.." + "b", "x" * 254],
)
def test_validate_hostname_rejects(hostname: str) -> None:
    with pytest.raises(ValidationError, match="Invalid hostname"):
        validate_hostname(hostname)


def test_validate_url_accepts_provider_id() -> None:
    value = "aws:///us-west-2a/i-0123456789abcdef0"
    assert validate_url(value) == value


@pytest.mark.parametrize("value", ["", "no scheme here", "just-a-path"])
def test_validate_url_rejects(value: str) -> None:
    with pytest.raises(ValidationError, match="Invalid URL"):
        validate_url(value)
