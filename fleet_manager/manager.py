import logging

from . import scaling, status
from .addons import reconcile_addon_operators
from .dns import reconcile_cluster_dns
from .fleetshard import FleetshardOperatorAddon
from .identity import reconcile_identity_provider
from .models.v1alpha1 import ClusterPhase
from .ocm import build_cluster_request
from .syncset import reconcile_syncset

logger = logging.getLogger(__name__)


class ClusterManager:
    """
    Drives each cluster record through its lifecycle, one pass per call to reconcile.
    """
    def __init__(self, settings, store, ocm, sso, fleetshard = None):
        self.settings = settings
        self.store = store
        self.ocm = ocm
        self.sso = sso
        self.fleetshard = fleetshard or FleetshardOperatorAddon(ocm, sso, settings)
        self._handlers = {
            ClusterPhase.ACCEPTED: self.reconcile_accepted,
            ClusterPhase.PROVISIONING: self.reconcile_provisioning,
            ClusterPhase.PROVISIONED: self.reconcile_provisioned,
            ClusterPhase.WAITING_FOR_FLEETSHARD_OPERATOR: self.reconcile_provisioned,
            ClusterPhase.READY: self.reconcile_ready,
            ClusterPhase.DEPROVISIONING: self.reconcile_deprovisioning,
            ClusterPhase.CLEANUP: self.reconcile_cleanup,
            ClusterPhase.FAILED: self.reconcile_terminal,
            ClusterPhase.DELETED: self.reconcile_terminal,
        }

    @property
    def manual_scaling(self):
        return self.settings.data_plane.manual_scaling

    async def reconcile(self):
        """
        Runs a single reconciliation pass over the capacity plan and every cluster.

        Errors are logged and returned rather than raised.
        """
        errors = []
        try:
            if self.manual_scaling:
                errors.extend(
                    await scaling.reconcile_clusters_with_manual_config(
                        self.store,
                        self.settings
                    )
                )
            else:
                errors.extend(
                    await scaling.reconcile_clusters_for_regions(self.store, self.settings)
                )
        except Exception as exc:
            logger.exception("error planning cluster capacity")
            errors.append(exc)
        try:
            clusters = await self.store.list_all()
        except Exception as exc:
            logger.exception("error listing clusters")
            errors.append(exc)
            return errors
        for cluster in clusters:
            try:
                await self.reconcile_cluster(cluster)
            except Exception as exc:
                logger.exception(
                    "error reconciling cluster %s in phase %s",
                    cluster.metadata.name,
                    status.phase_name(cluster.status.phase)
                )
                errors.append(exc)
        return errors

    async def reconcile_cluster(self, cluster):
        """
        Reconciles a single cluster using the handler for its current phase.
        """
        if cluster.status.phase is None:
            if cluster.status.cluster_id:
                handler = self.reconcile_provisioning
            else:
                handler = self.reconcile_accepted
        else:
            handler = self._handlers[ClusterPhase(cluster.status.phase)]
        await handler(cluster)

    async def _reconcile_remote_status(self, cluster):
        remote = await self.ocm.get_cluster(cluster.status.cluster_id)
        if status.remote_cluster_observed(cluster, remote):
            await self.store.update(cluster)

    async def reconcile_accepted(self, cluster):
        """
        Requests the creation of the cluster from the cluster management API.
        """
        request = build_cluster_request(cluster, self.settings.data_plane)
        # Adopt a cluster created by a previous pass whose record was not saved
        remote = await self.ocm.find_cluster_by_name(request["name"])
        if remote:
            logger.info("adopting cluster %s with id %s", cluster.metadata.name, remote.id)
        else:
            remote = await self.ocm.create_cluster(request)
            logger.info("created cluster %s with id %s", cluster.metadata.name, remote.id)
        cluster.status.cluster_id = remote.id
        cluster.status.phase = ClusterPhase.PROVISIONING
        await self.store.update(cluster)

    async def reconcile_provisioning(self, cluster):
        await self._reconcile_remote_status(cluster)

    async def reconcile_provisioned(self, cluster):
        """
        Configures a provisioned cluster and installs the addons.
        """
        await self._reconcile_remote_status(cluster)
        if cluster.status.phase == ClusterPhase.FAILED:
            return
        await reconcile_cluster_dns(cluster, self.store, self.ocm)
        await reconcile_syncset(cluster, self.store, self.ocm, self.settings)
        if not cluster.status.identity_provider_id:
            await reconcile_identity_provider(
                cluster,
                self.store,
                self.ocm,
                self.sso,
                self.settings
            )
        addons_done = await reconcile_addon_operators(
            cluster,
            self.ocm,
            self.fleetshard,
            self.settings.data_plane
        )
        if addons_done:
            await self.store.update_status(
                cluster,
                ClusterPhase.WAITING_FOR_FLEETSHARD_OPERATOR
            )

    async def reconcile_ready(self, cluster):
        """
        Keeps a ready cluster configured, or deprovisions it if it is surplus.
        """
        if not self.manual_scaling:
            if await scaling.reconcile_empty_cluster(cluster, self.store):
                return
        await reconcile_syncset(cluster, self.store, self.ocm, self.settings)

    async def reconcile_deprovisioning(self, cluster):
        """
        Requests the deletion of the cluster, as long as it is not the last one
        available in its provider and region.
        """
        if not self.manual_scaling:
            sibling = await self.store.find_cluster(
                cluster.spec.cloud_provider,
                cluster.spec.region,
                ClusterPhase.READY,
                exclude = cluster.metadata.name
            )
            if sibling is None:
                logger.info(
                    "no other ready cluster in %s/%s - keeping cluster %s",
                    cluster.spec.cloud_provider,
                    cluster.spec.region,
                    cluster.metadata.name
                )
                await self.store.update_status(cluster, ClusterPhase.READY)
                return
        if not cluster.status.cluster_id:
            # The cluster was never created, so there is nothing to delete
            await self.store.update_status(cluster, ClusterPhase.CLEANUP)
            return
        if await self.ocm.delete_cluster(cluster.status.cluster_id):
            await self.store.update_status(cluster, ClusterPhase.CLEANUP)
        else:
            logger.info("deletion of cluster %s is in progress", cluster.metadata.name)

    async def reconcile_cleanup(self, cluster):
        """
        Removes the credentials for the cluster and deletes the record.
        """
        cluster_id = cluster.status.cluster_id
        if cluster_id:
            await self.sso.deregister_client(cluster_id)
            await self.fleetshard.remove_service_account(cluster)
            await self.store.delete_by_cluster_id(cluster_id)
        else:
            await self.store.soft_delete(cluster)
        logger.info("cluster %s deleted", cluster.metadata.name)

    async def reconcile_terminal(self, cluster):
        pass
