"""Instance metadata (IMDSv2) client.

Each ``fetch_*`` method returns ``None`` when the target does not exist (HTTP
404) and raises :class:`TransportError` for any other failure, keeping
"absent" distinct from "unreachable".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import requests

from ._errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://169.254.169.254"
SCHEMA_VERSION = "2021-07-15"
TOKEN_TTL_SECONDS = 60
DEFAULT_TIMEOUT_SECONDS = 10.0

_TOKEN_PATH = "/latest/api/token"
_TOKEN_TTL_HEADER = "X-aws-ec2-metadata-token-ttl-seconds"
_TOKEN_HEADER = "X-aws-ec2-metadata-token"


def _lines(body: str | None) -> list[str] | None:
    if body is None:
        return None
    return [line.strip().rstrip("/") for line in body.splitlines() if line.strip()]


@dataclass(slots=True)
class ImdsClient:
    """Token-authenticated client for the instance metadata service."""

    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    session: requests.Session = field(default_factory=requests.Session)
    _token: str | None = field(default=None, repr=False)

    def _fetch_token(self) -> str:
        url = f"{self.endpoint}{_TOKEN_PATH}"
        try:
            response = self.session.put(
                url,
                headers={_TOKEN_TTL_HEADER: str(TOKEN_TTL_SECONDS)},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            msg = f"IMDS token request failed: {exc}"
            raise TransportError(msg, source="imds") from exc
        return response.text.strip()

    def _get(self, target: str) -> requests.Response:
        if self._token is None:
            self._token = self._fetch_token()
        url = f"{self.endpoint}/{SCHEMA_VERSION}/meta-data/{target}"
        logger.debug("Fetching %s", url)
        try:
            return self.session.get(
                url,
                headers={_TOKEN_HEADER: self._token},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            msg = f"IMDS request for {target!r} failed: {exc}"
            raise TransportError(msg, source="imds") from exc

    def fetch(self, target: str) -> str | None:
        """Return the body of ``meta-data/<target>`` or ``None`` on 404.

        An expired token (HTTP 401) is replaced once before giving up.
        """

        response = self._get(target)
        if response.status_code == requests.codes.unauthorized:
            logger.info("IMDS token rejected, requesting a new one")
            self._token = None
            response = self._get(target)
        if response.status_code == requests.codes.not_found:
            return None
        if not response.ok:
            msg = f"IMDS request for {target!r} returned HTTP {response.status_code}"
            raise TransportError(msg, source="imds")
        return response.text.strip()

    def fetch_instance_type(self) -> str | None:
        return self.fetch("instance-type")

    def fetch_instance_id(self) -> str | None:
        return self.fetch("instance-id")

    def fetch_zone(self) -> str | None:
        return self.fetch("placement/availability-zone")

    def fetch_local_ipv4_address(self) -> str | None:
        return self.fetch("local-ipv4")

    def fetch_mac_addresses(self) -> list[str] | None:
        """Return MAC addresses of attached interfaces, primary first."""

        macs = _lines(self.fetch("network/interfaces/macs"))
        primary = self.fetch("mac")
        if macs is None or primary is None or primary not in macs:
            return macs
        return [primary, *(mac for mac in macs if mac != primary)]

    def fetch_cidr_blocks_for_mac(self, mac: str) -> list[str] | None:
        return _lines(self.fetch(f"network/interfaces/macs/{mac}/vpc-ipv4-cidr-blocks"))

    def fetch_primary_ipv6_address(self) -> str | None:
        """Return the first IPv6 address of the primary interface."""

        mac = self.fetch("mac")
        if mac is None:
            return None
        addresses = _lines(self.fetch(f"network/interfaces/macs/{mac}/ipv6s"))
        if not addresses:
            return None
        return addresses[0]


__all__ = [
    "DEFAULT_ENDPOINT",
    "DEFAULT_TIMEOUT_SECONDS",
    "ImdsClient",
    "SCHEMA_VERSION",
]
