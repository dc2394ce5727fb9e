"""Settings snapshot, delta, and the overlay view resolvers read through.

The settings store returns a nested document such as::

    {"settings": {"aws": {"region": "us-west-2"},
                  "kubernetes": {"cluster-name": "prod"}}}

Only the keys listed in :class:`Setting` are relevant here. The snapshot
captures them once; the delta collects newly generated values; the view
combines the two with the delta taking precedence.

Examples
--------
>>> snapshot = SettingsSnapshot.from_document({"settings": {"aws": {"region": "us-west-2"}}})
>>> delta = SettingsDelta()
>>> delta.set(Setting.MAX_PODS, 29)
>>> view = SettingsView(snapshot, delta)
>>> view.get(Setting.REGION), view.get(Setting.MAX_PODS), view.get(Setting.NODE_IP)
('us-west-2', 29, None)
"""

from __future__ import annotations

from collections import abc as cabc
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from ._errors import ValidationError


class Setting(StrEnum):
    """Dotted keys of the settings consulted or generated at boot."""

    REGION = "aws.region"
    AWS_CONFIG = "aws.config"
    HTTPS_PROXY = "network.https-proxy"
    NO_PROXY = "network.no-proxy"
    CLUSTER_NAME = "kubernetes.cluster-name"
    MAX_PODS = "kubernetes.max-pods"
    CLUSTER_DNS_IP = "kubernetes.cluster-dns-ip"
    NODE_IP = "kubernetes.node-ip"
    PROVIDER_ID = "kubernetes.provider-id"
    HOSTNAME_OVERRIDE = "kubernetes.hostname-override"
    HOSTNAME_OVERRIDE_SOURCE = "kubernetes.hostname-override-source"

    @property
    def section(self) -> str:
        """Return the top-level settings section, e.g. ``kubernetes``."""

        return self.value.split(".", 1)[0]

    @property
    def field_name(self) -> str:
        """Return the field name within the section."""

        return self.value.split(".", 1)[1]


class HostnameOverrideSource(StrEnum):
    """Accepted values for ``kubernetes.hostname-override-source``."""

    INSTANCE_ID = "instance-id"
    PRIVATE_DNS_NAME = "private-dns-name"

    @classmethod
    def parse(cls, value: str) -> HostnameOverrideSource:
        """Parse kebab-case or CamelCase spellings of a source.

        Examples
        --------
        >>> HostnameOverrideSource.parse("PrivateDNSName")
        <HostnameOverrideSource.PRIVATE_DNS_NAME: 'private-dns-name'>
        """

        normalised = str(value).replace("-", "").replace("_", "").lower()
        for member in cls:
            if member.value.replace("-", "") == normalised:
                return member
        msg = f"Unknown hostname override source {value!r}"
        raise ValidationError(msg, setting=Setting.HOSTNAME_OVERRIDE_SOURCE.value)


def _lookup(document: cabc.Mapping[str, Any], setting: Setting) -> Any:
    section = document.get(setting.section)
    if not isinstance(section, cabc.Mapping):
        return None
    return section.get(setting.field_name)


@dataclass(frozen=True, slots=True)
class SettingsSnapshot:
    """Read-only baseline of settings already present in the store."""

    values: cabc.Mapping[Setting, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def from_document(cls, document: cabc.Mapping[str, Any]) -> SettingsSnapshot:
        """Build a snapshot from an ``apiclient get`` style document.

        The outer ``settings`` wrapper is optional. Keys whose value is
        ``None`` are treated as absent.

        Examples
        --------
        >>> SettingsSnapshot.from_document({"kubernetes": {"max-pods": 110}}).get(Setting.MAX_PODS)
        110
        """

        root = document.get("settings", document)
        if not isinstance(root, cabc.Mapping):
            root = {}
        values = {
            setting: value
            for setting in Setting
            if (value := _lookup(root, setting)) is not None
        }
        return cls(values=MappingProxyType(values))

    @classmethod
    def from_values(cls, values: cabc.Mapping[Setting | str, Any]) -> SettingsSnapshot:
        """Build a snapshot from a flat ``{dotted key: value}`` mapping."""

        return cls(
            values=MappingProxyType(
                {Setting(key): value for key, value in values.items() if value is not None}
            )
        )

    def get(self, setting: Setting) -> Any:
        """Return the stored value or ``None`` when absent."""

        return self.values.get(setting)


@dataclass(slots=True)
class SettingsDelta:
    """Append-only collection of newly generated settings."""

    _values: dict[Setting, Any] = field(default_factory=dict)

    def set(self, setting: Setting, value: Any) -> None:
        """Record *value* for *setting*; each key may be written once.

        Examples
        --------
        >>> delta = SettingsDelta(); delta.set(Setting.NODE_IP, "10.0.0.5")
        >>> delta.set(Setting.NODE_IP, "10.0.0.6")
        Traceback (most recent call last):
        ...
        ValueError: kubernetes.node-ip has already been generated
        """

        if setting in self._values:
            msg = f"{setting} has already been generated"
            raise ValueError(msg)
        self._values[setting] = value

    def get(self, setting: Setting) -> Any:
        return self._values.get(setting)

    def items(self) -> cabc.ItemsView[Setting, Any]:
        return self._values.items()

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, setting: object) -> bool:
        return setting in self._values

    def kubernetes_patch(self) -> dict[str, Any] | None:
        """Return ``{"kubernetes": {...}}`` for the generated fields, if any.

        Examples
        --------
        >>> delta = SettingsDelta(); delta.set(Setting.MAX_PODS, 29)
        >>> delta.kubernetes_patch()
        {'kubernetes': {'max-pods': 29}}
        >>> SettingsDelta().kubernetes_patch() is None
        True
        """

        kubernetes = {
            setting.field_name: value
            for setting, value in self._values.items()
            if setting.section == "kubernetes"
        }
        if not kubernetes:
            return None
        return {"kubernetes": kubernetes}


@dataclass(frozen=True, slots=True)
class SettingsView:
    """Delta-over-snapshot lookup used by every resolver."""

    snapshot: SettingsSnapshot
    delta: SettingsDelta

    def get(self, setting: Setting) -> Any:
        """Return the generated value, else the stored value, else ``None``."""

        value = self.delta.get(setting)
        if value is not None:
            return value
        return self.snapshot.get(setting)

    def is_known(self, setting: Setting) -> bool:
        return self.get(setting) is not None


__all__ = [
    "HostnameOverrideSource",
    "Setting",
    "SettingsDelta",
    "SettingsSnapshot",
    "SettingsView",
]
