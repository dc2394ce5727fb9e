"""Tests for the settings snapshot, delta, and overlay view."""

from __future__ import annotations

import pytest

from nodeconf._errors import ValidationError
from nodeconf._settings import (
    HostnameOverrideSource,
    Setting,
    SettingsDelta,
    SettingsSnapshot,
    SettingsView,
)


def test_snapshot_from_document_reads_known_keys() -> None:
    snapshot = SettingsSnapshot.from_document(
        {
            "settings": {
                "aws": {"region": "us-west-2"},
                "kubernetes": {"cluster-name": "prod", "max-pods": None},
                "network": {"no-proxy": ["localhost"]},
                "motd": "hello",
            }
        }
    )
    assert snapshot.get(Setting.REGION) == "us-west-2"
    assert snapshot.get(Setting.CLUSTER_NAME) == "prod"
    assert snapshot.get(Setting.NO_PROXY) == ["localhost"]
    assert snapshot.get(Setting.MAX_PODS) is None, "null values are absent"
    assert Setting.MAX_PODS not in snapshot.values


def test_snapshot_is_read_only() -> None:
    snapshot = SettingsSnapshot.from_values({"aws.region": "us-west-2"})
    with pytest.raises(TypeError):
        snapshot.values[Setting.REGION] = "eu-west-1"  # type: ignore[index]


def test_snapshot_tolerates_unexpected_shapes() -> None:
    snapshot = SettingsSnapshot.from_document({"settings": {"kubernetes": "oops"}})
    assert snapshot.get(Setting.CLUSTER_NAME) is None


def test_delta_rejects_second_write() -> None:
    delta = SettingsDelta()
    delta.set(Setting.MAX_PODS, 29)
    with pytest.raises(ValueError, match="already been generated"):
        delta.set(Setting.MAX_PODS, 58)
    assert delta.get(Setting.MAX_PODS) == 29


def test_delta_kubernetes_patch_contains_only_changed_fields() -> None:
    delta = SettingsDelta()
    delta.set(Setting.CLUSTER_DNS_IP, "10.100.0.10")
    delta.set(Setting.NODE_IP, "192.168.10.20")
    assert delta.kubernetes_patch() == {
        "kubernetes": {"cluster-dns-ip": "10.100.0.10", "node-ip": "192.168.10.20"}
    }


def test_empty_delta_has_no_patch() -> None:
    assert SettingsDelta().kubernetes_patch() is None


def test_view_prefers_delta_over_snapshot() -> None:
    snapshot = SettingsSnapshot.from_values({"aws.region": "us-west-2"})
    delta = SettingsDelta()
    view = SettingsView(snapshot, delta)
    assert view.get(Setting.REGION) == "us-west-2"
    assert not view.is_known(Setting.NODE_IP)
    delta.set(Setting.NODE_IP, "10.0.0.5")
    assert view.get(Setting.NODE_IP) == "10.0.0.5"
    assert snapshot.get(Setting.NODE_IP) is None, "the snapshot never changes"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("instance-id", HostnameOverrideSource.INSTANCE_ID),
        ("InstanceID", HostnameOverrideSource.INSTANCE_ID),
        ("private-dns-name", HostnameOverrideSource.PRIVATE_DNS_NAME),
        ("PrivateDNSName", HostnameOverrideSource.PRIVATE_DNS_NAME),
    ],
)
def test_hostname_override_source_parse(raw: str, expected: HostnameOverrideSource) -> None:
    assert HostnameOverrideSource.parse(raw) is expected


def test_hostname_override_source_rejects_unknown() -> None:
    with pytest.raises(ValidationError, match="Unknown hostname override source"):
        HostnameOverrideSource.parse("mac-address")
