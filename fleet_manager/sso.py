import logging
import typing as t

import httpx
from pydantic import BaseModel

from .auth import ClientCredentialsAuth

logger = logging.getLogger(__name__)


class SSOError(Exception):
    """
    Raised when the SSO server returns an error response.
    """
    def __init__(self, status_code, message):
        self.status_code = status_code
        self.message = message
        super().__init__(f"[{status_code}] {message}")

    @classmethod
    def from_response(cls, response):
        try:
            data = response.json()
            message = (
                data.get("errorMessage") or
                data.get("error_description") or
                data.get("error") or
                response.reason_phrase
            )
        except ValueError:
            message = response.text or response.reason_phrase
        return cls(response.status_code, message)


class RealmConfig(BaseModel):
    """
    The OpenID configuration of a realm.
    """

    issuer: str
    token_endpoint: t.Optional[str] = None
    jwks_uri: t.Optional[str] = None


class ServiceAccount(BaseModel):
    """
    A service account, i.e. a confidential client that authenticates as itself.
    """

    id: str
    client_id: str
    client_secret: str


class SSOClient:
    """
    Client for the admin API of a Keycloak-compatible SSO server.
    """
    def __init__(
        self,
        base_url,
        realm,
        agent_realm = None,
        auth = None,
        timeout = 30,
        transport = None
    ):
        self.realm = realm
        self.agent_realm = agent_realm or realm
        self._client = httpx.AsyncClient(
            base_url = base_url.rstrip("/"),
            auth = auth,
            timeout = timeout,
            transport = transport
        )

    @classmethod
    def from_config(cls, config):
        """
        Returns a client for the given SSO configuration.
        """
        base_url = config.base_url.rstrip("/")
        token_url = f"{base_url}/realms/{config.realm}/protocol/openid-connect/token"
        return cls(
            base_url,
            config.realm,
            config.agent_realm,
            ClientCredentialsAuth(token_url, config.client_id, config.client_secret),
            config.timeout
        )

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method, path, **kwargs):
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            raise SSOError.from_response(response)
        return response

    async def _find_client(self, realm, client_id):
        """
        Returns the representation of the client with the given client ID, if it exists.
        """
        response = await self._request(
            "GET",
            f"/admin/realms/{realm}/clients",
            params = {"clientId": client_id}
        )
        return next(iter(response.json()), None)

    async def _create_client(self, realm, representation):
        await self._request("POST", f"/admin/realms/{realm}/clients", json=representation)
        # The create response has no body, so look the client up again to get the ID
        client = await self._find_client(realm, representation["clientId"])
        if not client:
            raise SSOError(404, f"client '{representation['clientId']}' not found")
        return client

    async def _get_client_secret(self, realm, id):
        response = await self._request(
            "GET",
            f"/admin/realms/{realm}/clients/{id}/client-secret"
        )
        return response.json()["value"]

    async def get_realm_config(self):
        """
        Returns the OpenID configuration for the cluster realm.
        """
        response = await self._request(
            "GET",
            f"/realms/{self.realm}/.well-known/openid-configuration"
        )
        return RealmConfig.model_validate(response.json())

    async def register_cluster_client(self, cluster_id, callback_uri):
        """
        Registers an OAuth client for the given cluster and returns its secret.

        If the client already exists, the secret of the existing client is returned.
        """
        client = await self._find_client(self.realm, cluster_id)
        if not client:
            logger.info("registering sso client for cluster %s", cluster_id)
            client = await self._create_client(
                self.realm,
                {
                    "clientId": cluster_id,
                    "name": cluster_id,
                    "enabled": True,
                    "protocol": "openid-connect",
                    "publicClient": False,
                    "standardFlowEnabled": True,
                    "redirectUris": [callback_uri],
                }
            )
        return await self._get_client_secret(self.realm, client["id"])

    async def deregister_client(self, client_id):
        """
        Removes the OAuth client with the given client ID, if it exists.
        """
        client = await self._find_client(self.realm, client_id)
        if not client:
            logger.info("sso client %s already removed", client_id)
            return
        try:
            await self._request("DELETE", f"/admin/realms/{self.realm}/clients/{client['id']}")
        except SSOError as exc:
            if exc.status_code != 404:
                raise

    async def get_service_account(self, client_id):
        """
        Returns the service account with the given client ID, or None if it does not exist.
        """
        client = await self._find_client(self.agent_realm, client_id)
        if not client:
            return None
        secret = await self._get_client_secret(self.agent_realm, client["id"])
        return ServiceAccount(id=client["id"], client_id=client_id, client_secret=secret)

    async def create_service_account(self, client_id, description = None):
        """
        Creates a service account with the given client ID.
        """
        client = await self._create_client(
            self.agent_realm,
            {
                "clientId": client_id,
                "name": client_id,
                "description": description or "",
                "enabled": True,
                "protocol": "openid-connect",
                "publicClient": False,
                "standardFlowEnabled": False,
                "serviceAccountsEnabled": True,
            }
        )
        secret = await self._get_client_secret(self.agent_realm, client["id"])
        return ServiceAccount(id=client["id"], client_id=client_id, client_secret=secret)

    async def delete_service_account(self, client_id):
        """
        Removes the service account with the given client ID, if it exists.
        """
        client = await self._find_client(self.agent_realm, client_id)
        if not client:
            return
        try:
            await self._request(
                "DELETE",
                f"/admin/realms/{self.agent_realm}/clients/{client['id']}"
            )
        except SSOError as exc:
            if exc.status_code != 404:
                raise
