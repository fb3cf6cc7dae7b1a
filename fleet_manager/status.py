import logging

from .errors import InconsistentStateError
from .models.v1alpha1 import ClusterPhase
from .ocm import ClusterState

logger = logging.getLogger(__name__)


def phase_name(phase):
    """
    Returns a printable name for the given phase, which may be unset.
    """
    return ClusterPhase(phase).value if phase else "<unset>"


def _handle_remote_ready(cluster, remote):
    if cluster.status.phase not in (None, ClusterPhase.PROVISIONING):
        return None
    if not remote.external_id:
        raise InconsistentStateError(
            remote.id,
            "cluster is ready but has no external id"
        )
    return ClusterPhase.PROVISIONED


def _handle_remote_error(cluster, remote):
    if cluster.status.phase in (
        None,
        ClusterPhase.PROVISIONING,
        ClusterPhase.PROVISIONED,
    ):
        return ClusterPhase.FAILED
    return None


def _handle_remote_other(cluster, remote):
    if cluster.status.phase is None:
        return ClusterPhase.PROVISIONING
    return None


def next_phase(cluster, remote):
    """
    Returns the phase that the cluster should move to given the observed state of
    the remote cluster, or None if the phase should not change.
    """
    if remote.state == ClusterState.READY:
        return _handle_remote_ready(cluster, remote)
    if remote.state == ClusterState.ERROR:
        return _handle_remote_error(cluster, remote)
    return _handle_remote_other(cluster, remote)


def remote_cluster_observed(cluster, remote):
    """
    Updates the status of the cluster from the observed remote cluster.

    Returns True if the status changed and needs to be saved.
    """
    phase = next_phase(cluster, remote)
    if phase is None:
        return False
    logger.info(
        "cluster %s moving from %s to %s (remote state: %s)",
        cluster.metadata.name,
        phase_name(cluster.status.phase),
        phase_name(phase),
        ClusterState(remote.state).value
    )
    cluster.status.phase = phase
    if phase == ClusterPhase.PROVISIONED:
        cluster.status.external_id = remote.external_id
    return True
