import logging

from .ocm import AddonState

logger = logging.getLogger(__name__)


def addon_ready(installation):
    return installation is not None and installation.state == AddonState.READY


async def ensure_addon(ocm, cluster_id, addon_id):
    """
    Returns the installation of the addon on the cluster, requesting the installation
    if the addon has not been requested before.
    """
    installation = await ocm.get_addon(cluster_id, addon_id)
    if installation is None:
        logger.info("requesting installation of addon %s on %s", addon_id, cluster_id)
        installation = await ocm.create_addon(cluster_id, addon_id)
    return installation


async def reconcile_addon_operators(cluster, ocm, fleetshard, data_plane):
    """
    Installs the streaming operator addon followed by the fleetshard operator addon.

    Returns True once the fleetshard addon has been requested and provisioned.
    """
    cluster_id = cluster.status.cluster_id
    strimzi = await ensure_addon(ocm, cluster_id, data_plane.strimzi_operator_addon_id)
    if not addon_ready(strimzi):
        logger.info(
            "waiting for addon %s on cluster %s (state: %s)",
            data_plane.strimzi_operator_addon_id,
            cluster.metadata.name,
            strimzi.state.value if strimzi.state else "unknown"
        )
        return False
    installation = await ensure_addon(
        ocm,
        cluster_id,
        data_plane.fleetshard_operator_addon_id
    )
    if await fleetshard.provision(cluster, installation):
        logger.info("provisioned fleetshard addon for cluster %s", cluster.metadata.name)
    return True
