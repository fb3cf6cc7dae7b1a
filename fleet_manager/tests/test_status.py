import unittest

from fleet_manager import status
from fleet_manager.errors import InconsistentStateError
from fleet_manager.models.v1alpha1 import ClusterPhase
from fleet_manager.ocm import ClusterState, RemoteCluster

from .util import make_cluster


class TestStatus(unittest.TestCase):
    def remote(self, state, external_id = None):
        return RemoteCluster(id="ocm-1", state=state, external_id=external_id)

    def test_provisioning_to_provisioned(self):
        cluster = make_cluster(phase=ClusterPhase.PROVISIONING, cluster_id="ocm-1")

        changed = status.remote_cluster_observed(
            cluster,
            self.remote(ClusterState.READY, "ext-1")
        )

        self.assertTrue(changed)
        self.assertEqual(cluster.status.phase, ClusterPhase.PROVISIONED)
        self.assertEqual(cluster.status.external_id, "ext-1")

    def test_unset_to_provisioned(self):
        cluster = make_cluster(cluster_id="ocm-1")

        changed = status.remote_cluster_observed(
            cluster,
            self.remote(ClusterState.READY, "ext-1")
        )

        self.assertTrue(changed)
        self.assertEqual(cluster.status.phase, ClusterPhase.PROVISIONED)

    def test_ready_without_external_id_is_an_error(self):
        for phase in (None, ClusterPhase.PROVISIONING):
            cluster = make_cluster(phase=phase, cluster_id="ocm-1")

            with self.assertRaises(InconsistentStateError):
                status.remote_cluster_observed(cluster, self.remote(ClusterState.READY))

            self.assertEqual(cluster.status.phase, phase)
            self.assertIsNone(cluster.status.external_id)

    def test_installing_while_provisioning_is_unchanged(self):
        cluster = make_cluster(phase=ClusterPhase.PROVISIONING, cluster_id="ocm-1")

        changed = status.remote_cluster_observed(
            cluster,
            self.remote(ClusterState.INSTALLING)
        )

        self.assertFalse(changed)
        self.assertEqual(cluster.status.phase, ClusterPhase.PROVISIONING)

    def test_unset_with_pending_remote_is_provisioning(self):
        cluster = make_cluster(cluster_id="ocm-1")

        changed = status.remote_cluster_observed(cluster, self.remote(ClusterState.PENDING))

        self.assertTrue(changed)
        self.assertEqual(cluster.status.phase, ClusterPhase.PROVISIONING)

    def test_remote_error_fails_cluster(self):
        for phase in (None, ClusterPhase.PROVISIONING, ClusterPhase.PROVISIONED):
            cluster = make_cluster(phase=phase, cluster_id="ocm-1")

            changed = status.remote_cluster_observed(
                cluster,
                self.remote(ClusterState.ERROR)
            )

            self.assertTrue(changed)
            self.assertEqual(cluster.status.phase, ClusterPhase.FAILED)

    def test_later_phases_ignore_remote_state(self):
        phases = [
            ClusterPhase.WAITING_FOR_FLEETSHARD_OPERATOR,
            ClusterPhase.READY,
            ClusterPhase.DEPROVISIONING,
            ClusterPhase.FAILED,
        ]
        for phase in phases:
            for state in ClusterState:
                cluster = make_cluster(phase=phase, cluster_id="ocm-1")
                self.assertIsNone(
                    status.next_phase(cluster, self.remote(state, "ext-1")),
                    f"{phase} / {state}"
                )

    def test_provisioned_ignores_ready_remote(self):
        cluster = make_cluster(
            phase=ClusterPhase.PROVISIONED,
            cluster_id="ocm-1",
            externalId="ext-1"
        )

        self.assertIsNone(status.next_phase(cluster, self.remote(ClusterState.READY)))
        self.assertIsNone(status.next_phase(cluster, self.remote(ClusterState.INSTALLING)))

    def test_phase_name(self):
        self.assertEqual(status.phase_name(None), "<unset>")
        self.assertEqual(status.phase_name(ClusterPhase.READY), "Ready")
        self.assertEqual(status.phase_name("Cleanup"), "Cleanup")
