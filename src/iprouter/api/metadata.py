"""Instance metadata server client"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import httpx

from iprouter.api.client import APIError, NotFoundError

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1"


class MetadataError(APIError):
    """Metadata server did not answer as expected"""

    pass


@dataclass(frozen=True)
class NetworkInterface:
    ip: str
    gateway: str


@dataclass(frozen=True)
class InstanceIdentity:
    """Identity of the running instance, read once per run."""

    id: str
    name: str
    zone: str
    project_id: str
    nics: Tuple[NetworkInterface, ...]

    @property
    def core_ip(self) -> str:
        """nic0 is attached to the core network"""
        return self.nics[0].ip

    @property
    def app_nic(self) -> NetworkInterface:
        """nic1 is attached to the app network"""
        return self.nics[1]


class MetadataClient:
    """Read-only access to the metadata server"""

    def __init__(
        self,
        base_url: str = METADATA_URL,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def get(self, key: str) -> str:
        """Get a metadata value, e.g. ``instance/id``"""
        return self._request(key).text.strip()

    def attributes(self) -> Dict[str, str]:
        """Get all custom instance attributes"""
        attributes = self._request("instance/attributes/", params={"recursive": "true"}).json()
        if not isinstance(attributes, dict):
            raise MetadataError(f"Unexpected instance attributes: {attributes!r}")
        return attributes

    def identity(self, nic_count: int = 2) -> InstanceIdentity:
        """Read the instance identity and the first ``nic_count`` interfaces"""
        nics = tuple(
            NetworkInterface(
                ip=self.get(f"instance/network-interfaces/{i}/ip"),
                gateway=self.get(f"instance/network-interfaces/{i}/gateway"),
            )
            for i in range(nic_count)
        )
        return InstanceIdentity(
            id=self.get("instance/id"),
            name=self.get("instance/name"),
            # projects/123456/zones/us-central1-a -> us-central1-a
            zone=self.get("instance/zone").rsplit("/", 1)[-1],
            project_id=self.get("project/project-id"),
            nics=nics,
        )

    def _request(self, key: str, params: Optional[Dict[str, str]] = None) -> httpx.Response:
        url = f"{self.base_url}/{key}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(url, headers={"Metadata-Flavor": "Google"}, params=params)
        except httpx.HTTPError as e:
            raise MetadataError(f"Metadata server unreachable for {key}: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"Metadata key not found: {key}", 404)
        elif response.status_code >= 400:
            raise MetadataError(f"Metadata error {response.status_code} for {key}", response.status_code)

        return response
