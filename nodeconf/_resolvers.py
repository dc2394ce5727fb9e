"""Resolvers that generate one Kubernetes setting each.

Every resolver goes through :func:`resolve_once`, which skips the work when
the setting is already present in the snapshot or the delta. Values written
here are never overwritten later in the run.
"""

from __future__ import annotations

import ipaddress
import logging
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from ._aws import ClusterNetworkDescriptor, ProxySettings
from ._errors import MissingFieldError, NodeConfError
from ._max_pods import (
    ENI_MAX_PODS_OVERRIDE_PATH,
    ENI_MAX_PODS_PATH,
    max_pods_from_file,
)
from ._settings import HostnameOverrideSource, Setting, SettingsView
from ._validation import (
    dns_ip_from_ipv4_cidr,
    parse_ip,
    validate_hostname,
    validate_url,
)

logger = logging.getLogger(__name__)

# Default unless the primary VPC CIDR block begins with "10.".
DEFAULT_DNS_CLUSTER_IP = "10.100.0.10"
# Used when the primary VPC CIDR block begins with "10.".
DEFAULT_10_RANGE_DNS_CLUSTER_IP = "172.20.0.10"


class MetadataSource(Protocol):
    """Instance metadata lookups consumed by the resolvers."""

    def fetch_instance_type(self) -> str | None: ...

    def fetch_instance_id(self) -> str | None: ...

    def fetch_zone(self) -> str | None: ...

    def fetch_mac_addresses(self) -> list[str] | None: ...

    def fetch_cidr_blocks_for_mac(self, mac: str) -> list[str] | None: ...

    def fetch_local_ipv4_address(self) -> str | None: ...

    def fetch_primary_ipv6_address(self) -> str | None: ...


class CloudApi(Protocol):
    """Cluster control-plane and compute API lookups."""

    def get_cluster_network_config(
        self,
        region: str,
        cluster_name: str,
        proxy: ProxySettings | None = None,
    ) -> ClusterNetworkDescriptor: ...

    def get_private_dns_name(
        self,
        region: str,
        instance_id: str,
        proxy: ProxySettings | None = None,
    ) -> str: ...


@dataclass(frozen=True, slots=True)
class ResolverContext:
    """Everything a resolver may consult during a run."""

    view: SettingsView
    imds: MetadataSource
    cloud: CloudApi
    max_pods_files: tuple[Path, ...] = (ENI_MAX_PODS_OVERRIDE_PATH, ENI_MAX_PODS_PATH)

    @property
    def proxy(self) -> ProxySettings:
        no_proxy = self.view.get(Setting.NO_PROXY) or ()
        if isinstance(no_proxy, str):
            no_proxy = [item.strip() for item in no_proxy.split(",") if item.strip()]
        return ProxySettings(
            https_proxy=self.view.get(Setting.HTTPS_PROXY),
            no_proxy=tuple(no_proxy),
        )


type Generator = cabc.Callable[[ResolverContext], Any]


def resolve_once(ctx: ResolverContext, setting: Setting, generate: Generator) -> None:
    """Generate *setting* unless it is already known, then record it.

    A ``None`` result leaves the setting unset.
    """

    logger.info("Generating %s", setting)
    if ctx.view.is_known(setting):
        logger.info("%s already set", setting)
        return
    try:
        value = generate(ctx)
    except NodeConfError as exc:
        raise exc.for_setting(setting.value)
    if value is None:
        logger.info("%s left unset", setting)
        return
    logger.info("Setting %s to %r", setting, value)
    ctx.view.delta.set(setting, value)


def _require[T](value: T | None, what: str) -> T:
    if value is None or value == []:
        msg = f"IMDS request failed: No '{what}' found"
        raise MissingFieldError(msg, source="imds")
    return value


# Cluster DNS IP


def _dns_ip_from_cluster(ctx: ResolverContext) -> str | None:
    """Derive the DNS IP from the cluster's service CIDR, or ``None``."""

    region = ctx.view.get(Setting.REGION)
    cluster_name = ctx.view.get(Setting.CLUSTER_NAME)
    if not region or not cluster_name:
        logger.info("Region or cluster name unknown, skipping cluster lookup")
        return None
    try:
        descriptor = ctx.cloud.get_cluster_network_config(region, cluster_name, ctx.proxy)
    except NodeConfError as exc:
        logger.warning("Unable to obtain cluster network config: %s", exc)
        return None
    if not descriptor.service_ipv4_cidr:
        logger.info("Cluster network config has no service IPv4 CIDR")
        return None
    try:
        return dns_ip_from_ipv4_cidr(descriptor.service_ipv4_cidr)
    except NodeConfError as exc:
        logger.warning("%s", exc)
        return None


def _dns_ip_from_primary_cidr(ctx: ResolverContext) -> str:
    """Pick a default DNS IP from the primary interface's first CIDR block."""

    macs = _require(ctx.imds.fetch_mac_addresses(), "mac addresses")
    cidr_blocks = _require(ctx.imds.fetch_cidr_blocks_for_mac(macs[0]), "CIDR blocks")
    if cidr_blocks[0].startswith("10."):
        return DEFAULT_10_RANGE_DNS_CLUSTER_IP
    return DEFAULT_DNS_CLUSTER_IP


def _generate_cluster_dns_ip(ctx: ResolverContext) -> str:
    dns_ip = _dns_ip_from_cluster(ctx)
    if dns_ip is None:
        logger.info("Falling back to default cluster DNS IP from IMDS CIDR block")
        dns_ip = _dns_ip_from_primary_cidr(ctx)
    return str(parse_ip(dns_ip))


def resolve_cluster_dns_ip(ctx: ResolverContext) -> None:
    resolve_once(ctx, Setting.CLUSTER_DNS_IP, _generate_cluster_dns_ip)


# Node IP


def _first_cluster_dns_ip(ctx: ResolverContext) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    value = ctx.view.get(Setting.CLUSTER_DNS_IP)
    if isinstance(value, cabc.Sequence) and not isinstance(value, str):
        value = next(iter(value), None)
    if not value:
        raise MissingFieldError("No IP address found for this host")
    return parse_ip(str(value), setting=Setting.CLUSTER_DNS_IP.value)


def _generate_node_ip(ctx: ResolverContext) -> str:
    resolve_cluster_dns_ip(ctx)
    dns_ip = _first_cluster_dns_ip(ctx)
    if dns_ip.version == 4:
        node_ip = _require(ctx.imds.fetch_local_ipv4_address(), "node ipv4 address")
    else:
        node_ip = _require(
            ctx.imds.fetch_primary_ipv6_address(),
            "ipv6s associated with primary network interface",
        )
    return str(parse_ip(node_ip))


def resolve_node_ip(ctx: ResolverContext) -> None:
    resolve_once(ctx, Setting.NODE_IP, _generate_node_ip)


# Max pods


def _generate_max_pods(ctx: ResolverContext) -> int | None:
    try:
        instance_type = _require(ctx.imds.fetch_instance_type(), "instance_type")
    except NodeConfError as exc:
        logger.warning("Unable to determine instance type: %s", exc)
        return None
    logger.info("Got instance type %s", instance_type)
    for path in ctx.max_pods_files:
        try:
            return max_pods_from_file(instance_type, path)
        except NodeConfError as exc:
            logger.info("%s", exc)
    return None


def resolve_max_pods(ctx: ResolverContext) -> None:
    resolve_once(ctx, Setting.MAX_PODS, _generate_max_pods)


# Provider ID


def _generate_provider_id(ctx: ResolverContext) -> str:
    instance_id = _require(ctx.imds.fetch_instance_id(), "instance ID")
    zone = _require(ctx.imds.fetch_zone(), "zone")
    return validate_url(f"aws:///{zone}/{instance_id}")


def resolve_provider_id(ctx: ResolverContext) -> None:
    resolve_once(ctx, Setting.PROVIDER_ID, _generate_provider_id)


# Hostname override


def _generate_hostname_override(ctx: ResolverContext) -> str | None:
    raw_source = ctx.view.get(Setting.HOSTNAME_OVERRIDE_SOURCE)
    if raw_source is None:
        return None
    source = HostnameOverrideSource.parse(raw_source)
    logger.info("Generating hostname from source %s", source)

    region = ctx.view.get(Setting.REGION)
    if not region:
        raise MissingFieldError("Missing AWS region", source="apiclient")
    instance_id = _require(ctx.imds.fetch_instance_id(), "instance ID")

    match source:
        case HostnameOverrideSource.PRIVATE_DNS_NAME:
            candidate = ctx.cloud.get_private_dns_name(region, instance_id, ctx.proxy)
        case HostnameOverrideSource.INSTANCE_ID:
            candidate = instance_id
    return validate_hostname(candidate)


def resolve_hostname_override(ctx: ResolverContext) -> None:
    resolve_once(ctx, Setting.HOSTNAME_OVERRIDE, _generate_hostname_override)


__all__ = [
    "CloudApi",
    "DEFAULT_10_RANGE_DNS_CLUSTER_IP",
    "DEFAULT_DNS_CLUSTER_IP",
    "MetadataSource",
    "ResolverContext",
    "resolve_cluster_dns_ip",
    "resolve_hostname_override",
    "resolve_max_pods",
    "resolve_node_ip",
    "resolve_once",
    "resolve_provider_id",
]
