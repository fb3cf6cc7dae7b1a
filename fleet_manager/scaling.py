import logging

from .models.v1alpha1 import ACTIVE_PHASES, ClusterPhase

logger = logging.getLogger(__name__)


#: Phases in which a cluster is already on its way out
TERMINATING_PHASES = (
    ClusterPhase.DEPROVISIONING,
    ClusterPhase.CLEANUP,
    ClusterPhase.DELETED,
)


async def reconcile_clusters_for_regions(store, settings):
    """
    Registers a new cluster for each supported provider and region that has no
    active clusters.

    Returns a list of the errors that occurred while registering clusters. An error
    counting the existing clusters is raised.
    """
    providers = [provider.name for provider in settings.providers]
    regions = [
        region.name
        for provider in settings.providers
        for region in provider.regions
    ]
    groups = await store.list_group_by_provider_and_region(
        providers,
        regions,
        ACTIVE_PHASES
    )
    counts = {(group.cloud_provider, group.region): group.count for group in groups}
    errors = []
    for provider in settings.providers:
        for region in provider.regions:
            if counts.get((provider.name, region.name), 0) > 0:
                continue
            logger.info("no clusters in %s/%s - registering one", provider.name, region.name)
            try:
                await store.register_cluster_job(provider.name, region.name, multi_az = True)
            except Exception as exc:
                logger.exception(
                    "failed to register cluster in %s/%s",
                    provider.name,
                    region.name
                )
                errors.append(exc)
    return errors


async def reconcile_clusters_with_manual_config(store, settings):
    """
    Makes the cluster records match the manually configured clusters.

    Configured clusters without a record are registered, and each configured
    cluster is marked schedulable only while it is below its tenant instance
    limit. Clusters that are no longer configured are deprovisioned once they
    are empty.

    Returns a list of the errors that occurred while updating records. An error
    listing the records or counting tenant instances is raised.
    """
    manual_clusters = settings.data_plane.manual_clusters
    configured_ids = {entry.cluster_id for entry in manual_clusters}
    clusters = await store.list_all()
    clusters_by_id = {
        cluster.status.cluster_id: cluster
        for cluster in clusters
        if cluster.status.cluster_id
    }
    excess = [
        cluster
        for cluster in clusters
        if (
            cluster.status.cluster_id and
            cluster.status.cluster_id not in configured_ids and
            cluster.status.phase not in TERMINATING_PHASES
        )
    ]
    counts = await store.find_tenant_instance_count(
        [entry.cluster_id for entry in manual_clusters] +
        [cluster.status.cluster_id for cluster in excess]
    )

    errors = []
    for entry in manual_clusters:
        count = counts.get(entry.cluster_id, 0)
        schedulable = entry.schedulable and count < entry.tenant_instance_limit
        try:
            cluster = clusters_by_id.get(entry.cluster_id)
            if cluster is None:
                logger.info("registering manually configured cluster %s", entry.cluster_id)
                cluster = await store.register_cluster_job(
                    entry.cloud_provider,
                    entry.region,
                    multi_az = entry.multi_az,
                    phase = ClusterPhase.PROVISIONING,
                    cluster_id = entry.cluster_id
                )
            if cluster.status.schedulable != schedulable:
                logger.info(
                    "marking cluster %s as %s (%d/%d instances)",
                    entry.cluster_id,
                    "schedulable" if schedulable else "unschedulable",
                    count,
                    entry.tenant_instance_limit
                )
                cluster.status.schedulable = schedulable
                await store.update(cluster)
        except Exception as exc:
            logger.exception("failed to reconcile manually configured cluster %s", entry.cluster_id)
            errors.append(exc)

    empty_ids = []
    for cluster in excess:
        cluster_id = cluster.status.cluster_id
        if counts.get(cluster_id, 0) > 0:
            logger.info(
                "cluster %s is no longer configured but still has %d instances",
                cluster_id,
                counts[cluster_id]
            )
        else:
            empty_ids.append(cluster_id)
    if empty_ids:
        logger.info("deprovisioning clusters that are no longer configured: %s", empty_ids)
        try:
            await store.update_multi_cluster_status(empty_ids, ClusterPhase.DEPROVISIONING)
        except Exception as exc:
            logger.exception("failed to deprovision clusters %s", empty_ids)
            errors.append(exc)
    return errors


async def reconcile_empty_cluster(cluster, store):
    """
    Moves the cluster to deprovisioning if it has no tenant instances and there is
    at least one other ready cluster in the same provider and region.

    Returns True if the cluster was moved to deprovisioning.
    """
    if await store.find_non_empty_cluster_by_id(cluster.status.cluster_id):
        return False
    groups = await store.list_group_by_provider_and_region(
        [cluster.spec.cloud_provider],
        [cluster.spec.region],
        (ClusterPhase.READY, )
    )
    # The count includes the cluster itself
    if not groups or groups[0].count < 2:
        return False
    logger.info("cluster %s is empty and has siblings - deprovisioning", cluster.metadata.name)
    await store.update_status(cluster, ClusterPhase.DEPROVISIONING)
    return True
