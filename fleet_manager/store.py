import collections
import datetime as dt
import logging
import uuid

from pydantic import BaseModel

from .models.v1alpha1 import ClusterPhase, ManagedCluster, ManagedClusterStatus

logger = logging.getLogger(__name__)


class RegionCapacity(BaseModel):
    """
    The number of clusters in a provider and region.
    """

    cloud_provider: str
    region: str
    count: int


class ClusterStore:
    """
    Stores cluster records as custom resources using the given easykube client.
    """
    def __init__(self, ekclient, settings):
        self.ekclient = ekclient
        self.settings = settings

    async def _resource(self, subresource = None):
        api = self.ekclient.api(f"{self.settings.api_group}/{ManagedCluster._meta.version}")
        resource = ManagedCluster._meta.plural_name
        if subresource:
            resource = f"{resource}/{subresource}"
        return await api.resource(resource)

    async def _list(self):
        ekresource = await self._resource()
        async for obj in ekresource.list():
            yield ManagedCluster.model_validate(obj)

    async def list_all(self):
        """
        Returns all the cluster records that have not been deleted.
        """
        return [
            cluster
            async for cluster in self._list()
            if not cluster.status.deleted_at
        ]

    async def update(self, cluster):
        """
        Saves the status of the given cluster record.
        """
        ekresource = await self._resource("status")
        data = await ekresource.replace(
            cluster.metadata.name,
            {
                # Include the resource version for optimistic concurrency
                "metadata": { "resourceVersion": cluster.metadata.resource_version },
                "status": cluster.status.model_dump(exclude_defaults = True),
            }
        )
        # Store the new resource version
        cluster.metadata.resource_version = data["metadata"]["resourceVersion"]

    async def update_status(self, cluster, phase):
        """
        Moves the cluster to the given phase, saving the record only if the phase changed.

        Returns True if the record was saved.
        """
        if cluster.status.phase == phase:
            return False
        logger.info("cluster %s moving to %s", cluster.metadata.name, ClusterPhase(phase).value)
        cluster.status.phase = phase
        await self.update(cluster)
        return True

    async def update_multi_cluster_status(self, cluster_ids, phase):
        """
        Moves all the clusters with the given cluster IDs to the given phase.

        Returns the number of records that were saved.
        """
        cluster_ids = set(cluster_ids)
        updated = 0
        for cluster in await self.list_all():
            if cluster.status.cluster_id in cluster_ids:
                if await self.update_status(cluster, phase):
                    updated = updated + 1
        return updated

    async def register_cluster_job(
        self,
        cloud_provider,
        region,
        multi_az = True,
        phase = ClusterPhase.ACCEPTED,
        cluster_id = None
    ):
        """
        Registers a new cluster record in the given phase.
        """
        if cluster_id:
            # Use a stable name for clusters that already exist remotely
            name = cluster_id.lower()
        else:
            name = f"{self.settings.data_plane.cluster_name_prefix}-{uuid.uuid4().hex[:10]}"
        data = await self.ekclient.apply_object(
            {
                "apiVersion": f"{self.settings.api_group}/{ManagedCluster._meta.version}",
                "kind": ManagedCluster._meta.kind,
                "metadata": { "name": name },
                "spec": {
                    "cloudProvider": cloud_provider,
                    "region": region,
                    "multiAz": multi_az,
                },
            },
            force = True
        )
        cluster = ManagedCluster.model_validate(data)
        # Replace any status left over from a previously deleted record with the same name
        cluster.status = ManagedClusterStatus(phase = phase, cluster_id = cluster_id)
        await self.update(cluster)
        logger.info(
            "registered cluster %s in %s/%s",
            cluster.metadata.name,
            cloud_provider,
            region
        )
        return cluster

    async def find_cluster(
        self,
        cloud_provider,
        region,
        phase,
        multi_az = None,
        exclude = None
    ):
        """
        Returns a cluster matching the given criteria, or None if there is no such cluster.

        If multi_az is None, clusters match regardless of their multi-AZ flag.
        """
        for cluster in await self.list_all():
            if (
                cluster.metadata.name != exclude and
                cluster.spec.cloud_provider == cloud_provider and
                cluster.spec.region == region and
                (multi_az is None or cluster.spec.multi_az == multi_az) and
                cluster.status.phase == phase
            ):
                return cluster
        return None

    async def find_tenant_instance_count(self, cluster_ids):
        """
        Returns a dictionary of the number of tenant instances placed on each of the
        given clusters. Clusters with no instances are not included.
        """
        config = self.settings.tenant_instances
        cluster_ids = set(cluster_ids)
        counts = collections.Counter()
        ekapi = self.ekclient.api(config.api_version)
        ekresource = await ekapi.resource(config.resource)
        async for instance in ekresource.list(all_namespaces = True):
            labels = instance.get("metadata", {}).get("labels", {})
            cluster_id = labels.get(config.cluster_id_label)
            if cluster_id in cluster_ids:
                counts[cluster_id] += 1
        return dict(counts)

    async def find_non_empty_cluster_by_id(self, cluster_id):
        """
        Returns True if there are tenant instances placed on the given cluster.
        """
        counts = await self.find_tenant_instance_count([cluster_id])
        return counts.get(cluster_id, 0) > 0

    async def list_group_by_provider_and_region(self, providers, regions, phases):
        """
        Returns the number of clusters in each provider and region for the clusters in
        the given phases. Providers and regions with no clusters are not included.
        """
        counts = collections.Counter(
            (cluster.spec.cloud_provider, cluster.spec.region)
            for cluster in await self.list_all()
            if (
                cluster.spec.cloud_provider in providers and
                cluster.spec.region in regions and
                cluster.status.phase in phases
            )
        )
        return [
            RegionCapacity(cloud_provider=provider, region=region, count=count)
            for (provider, region), count in sorted(counts.items())
        ]

    async def soft_delete(self, cluster):
        """
        Marks the given cluster record as deleted.
        """
        cluster.status.phase = ClusterPhase.DELETED
        cluster.status.deleted_at = dt.datetime.now(dt.timezone.utc)
        await self.update(cluster)

    async def delete_by_cluster_id(self, cluster_id):
        """
        Marks the cluster records with the given cluster ID as deleted.
        """
        for cluster in await self.list_all():
            if cluster.status.cluster_id == cluster_id:
                await self.soft_delete(cluster)
