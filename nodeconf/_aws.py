"""Cluster control-plane and compute API lookups through the AWS SDK.

A fresh boto3 session is created per call so a staged ``AWS_CONFIG_FILE`` is
honoured. The node's ``network.https-proxy`` / ``network.no-proxy`` settings
decide whether the service endpoint is reached through the proxy.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from requests.utils import should_bypass_proxies

from ._errors import LocalIOError, MissingFieldError, TransportError, ValidationError

logger = logging.getLogger(__name__)

# Upper bound for reading a single describe response.
AWS_CALL_TIMEOUT_SECONDS = 300
AWS_CONNECT_TIMEOUT_SECONDS = 60

AWS_CONFIG_FILE_ENV_VAR = "AWS_CONFIG_FILE"
AWS_CONFIG_FILE_NAME = "config.nodeconf"


@dataclass(frozen=True, slots=True)
class ProxySettings:
    """Proxy configuration applied to cloud API calls."""

    https_proxy: str | None = None
    no_proxy: tuple[str, ...] = ()

    def proxies_for(self, url: str) -> dict[str, str] | None:
        """Return the botocore ``proxies`` mapping for *url*, if any.

        Examples
        --------
        >>> proxy = ProxySettings("http://proxy:3128", ("localhost", ".internal"))
        >>> proxy.proxies_for("https://eks.us-west-2.amazonaws.com")
        {'https': 'http://proxy:3128'}
        >>> proxy.proxies_for("https://vpce.internal") is None
        True
        """

        if not self.https_proxy:
            return None
        if self.no_proxy and should_bypass_proxies(url, no_proxy=",".join(self.no_proxy)):
            return None
        return {"https": self.https_proxy}


@dataclass(frozen=True, slots=True)
class ClusterNetworkDescriptor:
    """Networking facts about a managed cluster."""

    service_ipv4_cidr: str | None = None
    service_ipv6_cidr: str | None = None
    ip_family: str | None = None

    @classmethod
    def from_response(cls, payload: cabc.Mapping[str, Any]) -> ClusterNetworkDescriptor:
        """Parse ``cluster.kubernetesNetworkConfig`` from ``DescribeCluster``.

        Examples
        --------
        >>> ClusterNetworkDescriptor.from_response(
        ...     {"cluster": {"kubernetesNetworkConfig": {"serviceIpv4Cidr": "10.100.0.0/16"}}}
        ... ).service_ipv4_cidr
        '10.100.0.0/16'
        """

        cluster = payload.get("cluster")
        if not isinstance(cluster, cabc.Mapping):
            raise MissingFieldError("Missing field 'cluster' in EKS response", source="eks")
        config = cluster.get("kubernetesNetworkConfig")
        if not isinstance(config, cabc.Mapping):
            msg = "Missing field 'kubernetesNetworkConfig' in EKS response"
            raise MissingFieldError(msg, source="eks")
        return cls(
            service_ipv4_cidr=config.get("serviceIpv4Cidr"),
            service_ipv6_cidr=config.get("serviceIpv6Cidr"),
            ip_family=config.get("ipFamily"),
        )


@dataclass(frozen=True, slots=True)
class AwsClient:
    """Runs EKS and EC2 describe calls with bounded timeouts."""

    timeout: float = AWS_CALL_TIMEOUT_SECONDS
    connect_timeout: float = AWS_CONNECT_TIMEOUT_SECONDS

    def _client(self, service: str, region: str, proxy: ProxySettings) -> Any:
        session = boto3.session.Session(region_name=region)
        config = Config(
            connect_timeout=self.connect_timeout,
            read_timeout=self.timeout,
            retries={"mode": "standard"},
        )
        client = session.client(service, config=config)
        proxies = proxy.proxies_for(client.meta.endpoint_url)
        if proxies is None:
            return client
        logger.debug("Using proxy for %s", client.meta.endpoint_url)
        return session.client(service, config=config.merge(Config(proxies=proxies)))

    def _describe(
        self,
        service: str,
        operation: str,
        region: str,
        proxy: ProxySettings,
        **params: Any,
    ) -> cabc.Mapping[str, Any]:
        try:
            client = self._client(service, region, proxy)
            return getattr(client, operation)(**params)
        except (BotoCoreError, ClientError) as exc:
            msg = f"{service} {operation} failed: {exc}"
            raise TransportError(msg, source=service) from exc

    def get_cluster_network_config(
        self,
        region: str,
        cluster_name: str,
        proxy: ProxySettings | None = None,
    ) -> ClusterNetworkDescriptor:
        """Return the cluster's network descriptor from ``DescribeCluster``."""

        logger.info("Describing cluster %s in %s", cluster_name, region)
        payload = self._describe(
            "eks",
            "describe_cluster",
            region,
            proxy or ProxySettings(),
            name=cluster_name,
        )
        descriptor = ClusterNetworkDescriptor.from_response(payload)
        logger.info("Got cluster network config %s", descriptor)
        return descriptor

    def get_private_dns_name(
        self,
        region: str,
        instance_id: str,
        proxy: ProxySettings | None = None,
    ) -> str:
        """Return the instance's private DNS name from ``DescribeInstances``."""

        payload = self._describe(
            "ec2",
            "describe_instances",
            region,
            proxy or ProxySettings(),
            InstanceIds=[instance_id],
        )
        for reservation in _mappings(payload.get("Reservations")):
            for instance in _mappings(reservation.get("Instances")):
                if instance.get("InstanceId") not in (None, instance_id):
                    continue
                if name := instance.get("PrivateDnsName"):
                    return str(name)
        msg = f"No private DNS name found for instance {instance_id}"
        raise MissingFieldError(msg, source="ec2")


def _mappings(value: Any) -> list[cabc.Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, cabc.Mapping)]


def stage_aws_config(encoded: str | None, directory: Path) -> Path | None:
    """Decode *encoded* into ``directory`` and export ``AWS_CONFIG_FILE``.

    Returns the written path, or ``None`` when there is no config to stage.

    Examples
    --------
    >>> import tempfile
    >>> with tempfile.TemporaryDirectory() as tmp:
    ...     path = stage_aws_config("W2RlZmF1bHRdCg==", Path(tmp))
    ...     path.read_text()
    '[default]\\n'
    """

    if not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        msg = f"Unable to decode base64 in AWS config: {exc}"
        raise ValidationError(msg, setting="aws.config") from exc

    path = directory / AWS_CONFIG_FILE_NAME
    try:
        path.write_bytes(decoded)
        path.chmod(0o600)
    except OSError as exc:
        msg = f"Unable to write AWS config file to {path}: {exc}"
        raise LocalIOError(msg, setting="aws.config") from exc

    os.environ[AWS_CONFIG_FILE_ENV_VAR] = str(path)
    logger.info("Saved AWS config to %s", path)
    return path


__all__ = [
    "AWS_CALL_TIMEOUT_SECONDS",
    "AWS_CONFIG_FILE_ENV_VAR",
    "AwsClient",
    "ClusterNetworkDescriptor",
    "ProxySettings",
    "stage_aws_config",
]
