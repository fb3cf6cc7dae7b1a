import logging

from .errors import ClusterDNSNotResolvedError, IdentityProviderNotFoundError
from .dns import reconcile_cluster_dns
from .ocm import IdentityProvider, IdentityProviderExistsError

logger = logging.getLogger(__name__)


#: The claims to map from the identity provider to OpenShift users
CLAIMS = {
    "email": ["email"],
    "preferred_username": ["preferred_username"],
    "name": ["last_name", "preferred_username"],
}


def callback_uri(cluster_dns, identity_provider_name):
    """
    Returns the OAuth callback URI for the identity provider on a cluster.
    """
    return f"https://oauth-openshift.{cluster_dns}/oauth2callback/{identity_provider_name}"


def build_identity_provider(name, issuer, client_id, client_secret):
    return IdentityProvider(
        name=name,
        type="OpenIDIdentityProvider",
        mapping_method="claim",
        open_id={
            "client_id": client_id,
            "client_secret": client_secret,
            "issuer": issuer,
            "claims": CLAIMS,
        },
    )


async def _find_identity_provider(ocm, cluster_id, name):
    for identity_provider in await ocm.get_identity_provider_list(cluster_id):
        if identity_provider.name == name:
            return identity_provider
    raise IdentityProviderNotFoundError(cluster_id, name)


async def reconcile_identity_provider(cluster, store, ocm, sso, settings):
    """
    Ensures that an identity provider backed by the SSO server exists on the cluster
    and that the cluster record references it.
    """
    cluster_dns = await reconcile_cluster_dns(cluster, store, ocm)
    if not cluster_dns:
        raise ClusterDNSNotResolvedError(cluster.metadata.name)
    cluster_id = cluster.status.cluster_id
    name = settings.sso.identity_provider_name
    client_secret = await sso.register_cluster_client(
        cluster_id,
        callback_uri(cluster_dns, name)
    )
    realm_config = await sso.get_realm_config()
    identity_provider = build_identity_provider(
        name,
        realm_config.issuer,
        cluster_id,
        client_secret
    )
    try:
        created = await ocm.create_identity_provider(cluster_id, identity_provider)
    except IdentityProviderExistsError:
        logger.info(
            "identity provider %s already exists for cluster %s",
            name,
            cluster.metadata.name
        )
        created = await _find_identity_provider(ocm, cluster_id, name)
    cluster.status.identity_provider_id = created.id
    await store.update(cluster)
    logger.info(
        "identity provider %s configured for cluster %s",
        created.id,
        cluster.metadata.name
    )
    return created
