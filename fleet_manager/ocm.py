import enum
import logging
import typing as t

import httpx
from pydantic import BaseModel, Field

from .auth import ClientCredentialsAuth

logger = logging.getLogger(__name__)


#: The API prefix for the clusters service
CLUSTERS_PREFIX = "/api/clusters_mgmt/v1/clusters"


class ClusterManagementError(Exception):
    """
    Raised when the cluster management API returns an error response.
    """
    def __init__(self, status_code, reason):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"[{status_code}] {reason}")

    @classmethod
    def from_response(cls, response):
        try:
            reason = response.json().get("reason") or response.reason_phrase
        except ValueError:
            reason = response.text or response.reason_phrase
        return cls(response.status_code, reason)


class IdentityProviderExistsError(ClusterManagementError):
    """
    Raised when an identity provider with the same name already exists on a cluster.
    """


class ClusterState(str, enum.Enum):
    """
    The states reported by the cluster management API for a cluster.
    """

    ERROR = "error"
    HIBERNATING = "hibernating"
    INSTALLING = "installing"
    PENDING = "pending"
    POWERING_DOWN = "powering_down"
    READY = "ready"
    RESUMING = "resuming"
    UNINSTALLING = "uninstalling"
    UNKNOWN = "unknown"
    VALIDATING = "validating"
    WAITING = "waiting"


class AddonState(str, enum.Enum):
    """
    The states reported by the cluster management API for an addon installation.
    """

    DELETED = "deleted"
    DELETING = "deleting"
    FAILED = "failed"
    INSTALLING = "installing"
    PENDING = "pending"
    READY = "ready"


class RemoteCluster(BaseModel):
    """
    A cluster as reported by the cluster management API.
    """

    id: str
    name: t.Optional[str] = None
    external_id: t.Optional[str] = None
    state: ClusterState = ClusterState.UNKNOWN


class AddonInstallation(BaseModel):
    """
    An addon installation on a cluster.
    """

    id: str
    state: t.Optional[AddonState] = None
    parameters: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_api(cls, data):
        parameters = {
            item["id"]: item.get("value", "")
            for item in data.get("parameters", {}).get("items", [])
        }
        return cls(id=data["id"], state=data.get("state") or None, parameters=parameters)


class Syncset(BaseModel):
    """
    A set of resources that is synchronised to a cluster.
    """

    id: str
    resources: list[t.Any] = Field(default_factory=list)


class IdentityProvider(BaseModel):
    """
    An identity provider on a cluster.
    """

    id: t.Optional[str] = None
    name: str
    type: str = "OpenIDIdentityProvider"
    mapping_method: str = "claim"
    open_id: dict[str, t.Any] = Field(default_factory=dict)


def build_cluster_request(cluster, data_plane):
    """
    Returns the cluster management API request for creating the given cluster.
    """
    request = {
        "name": cluster.metadata.name[:15],
        "cloud_provider": {"id": cluster.spec.cloud_provider},
        "region": {"id": cluster.spec.region},
        "multi_az": cluster.spec.multi_az,
        "managed": True,
        "nodes": {
            "compute": data_plane.compute_nodes,
            "compute_machine_type": {"id": data_plane.compute_machine_type},
        },
    }
    if data_plane.openshift_version:
        request["version"] = {"id": data_plane.openshift_version}
    return request


class ClusterManagementClient:
    """
    Client for the cluster management API.
    """
    def __init__(self, base_url, auth = None, timeout = 30, transport = None):
        self._client = httpx.AsyncClient(
            base_url = base_url.rstrip("/"),
            auth = auth,
            timeout = timeout,
            transport = transport
        )

    @classmethod
    def from_config(cls, config):
        """
        Returns a client for the given cluster management configuration.
        """
        return cls(
            config.base_url,
            ClientCredentialsAuth(config.token_url, config.client_id, config.client_secret),
            config.timeout
        )

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method, path, **kwargs):
        response = await self._client.request(method, f"{CLUSTERS_PREFIX}{path}", **kwargs)
        if response.is_error:
            raise ClusterManagementError.from_response(response)
        return response

    async def _get_or_none(self, path):
        try:
            response = await self._request("GET", path)
        except ClusterManagementError as exc:
            if exc.status_code == 404:
                return None
            raise
        return response.json()

    async def create_cluster(self, request):
        """
        Requests the creation of a cluster and returns the created cluster.
        """
        response = await self._request("POST", "", json=request)
        return RemoteCluster.model_validate(response.json())

    async def get_cluster(self, cluster_id):
        response = await self._request("GET", f"/{cluster_id}")
        return RemoteCluster.model_validate(response.json())

    async def find_cluster_by_name(self, name):
        """
        Returns the cluster with the given name, or None if there is no such cluster.
        """
        response = await self._request("GET", "", params={"search": f"name = '{name}'"})
        for item in response.json().get("items", []):
            if item.get("name") == name:
                return RemoteCluster.model_validate(item)
        return None

    async def delete_cluster(self, cluster_id):
        """
        Requests the deletion of the given cluster.

        Returns True if the cluster no longer exists and False if the deletion
        was accepted but has not yet completed.
        """
        try:
            await self._request("DELETE", f"/{cluster_id}")
        except ClusterManagementError as exc:
            if exc.status_code == 404:
                return True
            raise
        return False

    async def get_cluster_dns(self, cluster_id):
        """
        Returns the DNS of the default ingress for the given cluster.
        """
        response = await self._request("GET", f"/{cluster_id}/ingresses")
        items = response.json().get("items", [])
        ingress = next((item for item in items if item.get("default")), None)
        if not ingress or not ingress.get("dns_name"):
            raise ClusterManagementError(404, "no default ingress for cluster")
        return ingress["dns_name"]

    async def get_addon(self, cluster_id, addon_id):
        """
        Returns the installation of the given addon, or None if it is not installed.
        """
        data = await self._get_or_none(f"/{cluster_id}/addons/{addon_id}")
        return AddonInstallation.from_api(data) if data else None

    async def create_addon(self, cluster_id, addon_id, parameters = None):
        payload = {"addon": {"id": addon_id}}
        if parameters:
            payload["parameters"] = {
                "items": [{"id": k, "value": v} for k, v in parameters.items()]
            }
        response = await self._request("POST", f"/{cluster_id}/addons", json=payload)
        return AddonInstallation.from_api(response.json())

    async def update_addon_parameters(self, cluster_id, addon_id, parameters):
        payload = {
            "parameters": {
                "items": [{"id": k, "value": v} for k, v in parameters.items()]
            },
        }
        response = await self._request(
            "PATCH",
            f"/{cluster_id}/addons/{addon_id}",
            json=payload
        )
        return AddonInstallation.from_api(response.json())

    async def get_syncset(self, cluster_id, syncset_id):
        """
        Returns the given syncset, or None if it does not exist.
        """
        data = await self._get_or_none(
            f"/{cluster_id}/external_configuration/syncsets/{syncset_id}"
        )
        return Syncset.model_validate(data) if data else None

    async def create_syncset(self, cluster_id, syncset):
        response = await self._request(
            "POST",
            f"/{cluster_id}/external_configuration/syncsets",
            json=syncset.model_dump(mode="json")
        )
        return Syncset.model_validate(response.json())

    async def update_syncset(self, cluster_id, syncset_id, syncset):
        # The ID of a syncset cannot be changed, so it is not included in updates
        response = await self._request(
            "PATCH",
            f"/{cluster_id}/external_configuration/syncsets/{syncset_id}",
            json=syncset.model_dump(mode="json", exclude={"id"})
        )
        return Syncset.model_validate(response.json())

    async def create_identity_provider(self, cluster_id, identity_provider):
        """
        Creates the given identity provider on the cluster.

        Raises IdentityProviderExistsError if a provider with the same name exists.
        """
        try:
            response = await self._request(
                "POST",
                f"/{cluster_id}/identity_providers",
                json=identity_provider.model_dump(mode="json", exclude_none=True)
            )
        except ClusterManagementError as exc:
            if exc.status_code == 409 or "already exists" in str(exc.reason):
                raise IdentityProviderExistsError(exc.status_code, exc.reason)
            raise
        return IdentityProvider.model_validate(response.json())

    async def get_identity_provider_list(self, cluster_id):
        response = await self._request("GET", f"/{cluster_id}/identity_providers")
        return [
            IdentityProvider.model_validate(item)
            for item in response.json().get("items", [])
        ]
