import logging

logger = logging.getLogger(__name__)


def ingress_dns(cluster_dns, data_plane):
    """
    Returns the DNS for tenant ingress, derived from the DNS of the default ingress.
    """
    return cluster_dns.replace(
        data_plane.default_ingress_prefix,
        data_plane.ingress_prefix,
        1
    )


async def reconcile_cluster_dns(cluster, store, ocm):
    """
    Returns the DNS for the cluster, fetching and storing it if not already known.
    """
    if cluster.status.cluster_dns:
        return cluster.status.cluster_dns
    dns = await ocm.get_cluster_dns(cluster.status.cluster_id)
    logger.info(
        "resolved dns for cluster %s - %s",
        cluster.metadata.name,
        dns
    )
    cluster.status.cluster_dns = dns
    await store.update(cluster)
    return dns
