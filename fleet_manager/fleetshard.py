import logging

logger = logging.getLogger(__name__)


#: Addon parameters for the fleetshard agent
PARAM_CLUSTER_ID = "cluster-id"
PARAM_CONTROL_PLANE_URL = "control-plane-url"
PARAM_SSO_AUTH_SERVER_URL = "sso-auth-server-url"
PARAM_SSO_CLIENT_ID = "sso-client-id"
PARAM_SSO_SECRET = "sso-secret"


def service_account_client_id(cluster_id):
    """
    Returns the client ID of the service account for the fleetshard agent on a cluster.
    """
    return f"kas-fleetshard-agent-{cluster_id}"


class FleetshardOperatorAddon:
    """
    Provisions the credentials that the fleetshard agent uses to talk to the fleet manager.
    """
    def __init__(self, ocm, sso, settings):
        self.ocm = ocm
        self.sso = sso
        self.settings = settings

    @property
    def addon_id(self):
        return self.settings.data_plane.fleetshard_operator_addon_id

    def _parameters(self, cluster, service_account):
        return {
            PARAM_CLUSTER_ID: cluster.status.cluster_id,
            PARAM_CONTROL_PLANE_URL: self.settings.fleet_manager_endpoint,
            PARAM_SSO_AUTH_SERVER_URL: (
                f"{self.settings.sso.base_url.rstrip('/')}"
                f"/realms/{self.settings.sso.agent_realm}"
            ),
            PARAM_SSO_CLIENT_ID: service_account.client_id,
            PARAM_SSO_SECRET: service_account.client_secret,
        }

    async def provision(self, cluster, installation = None):
        """
        Ensures that the fleetshard addon installation carries the credentials of the
        agent service account for the cluster.

        Returns True if the installation was updated, False if there was nothing to do.
        """
        cluster_id = cluster.status.cluster_id
        if installation is None:
            installation = await self.ocm.get_addon(cluster_id, self.addon_id)
        if installation is None:
            logger.info(
                "fleetshard addon not yet requested for cluster %s",
                cluster.metadata.name
            )
            return False
        client_id = service_account_client_id(cluster_id)
        if installation.parameters.get(PARAM_SSO_CLIENT_ID) == client_id:
            return False
        service_account = await self.sso.get_service_account(client_id)
        if service_account is None:
            logger.info(
                "creating fleetshard agent service account for cluster %s",
                cluster.metadata.name
            )
            service_account = await self.sso.create_service_account(
                client_id,
                f"fleetshard agent for cluster {cluster_id}"
            )
        await self.ocm.update_addon_parameters(
            cluster_id,
            self.addon_id,
            self._parameters(cluster, service_account)
        )
        return True

    async def remove_service_account(self, cluster):
        """
        Removes the fleetshard agent service account for the cluster, if it exists.
        """
        cluster_id = cluster.status.cluster_id
        if not cluster_id:
            return
        await self.sso.delete_service_account(service_account_client_id(cluster_id))
