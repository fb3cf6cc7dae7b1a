import unittest

from pydantic import ValidationError

from fleet_manager.config import DataPlaneConfig, ManualCluster, ScalingMode


class TestManualCluster(unittest.TestCase):
    def test_tenant_instance_limit_is_required(self):
        with self.assertRaises(ValidationError):
            ManualCluster(cluster_id="ocm-1")

    def test_cluster(self):
        cluster = ManualCluster(cluster_id="ocm-1", tenant_instance_limit=5)

        self.assertEqual(cluster.tenant_instance_limit, 5)
        self.assertTrue(cluster.schedulable)


class TestDataPlaneConfig(unittest.TestCase):
    def test_manual_scaling(self):
        config = DataPlaneConfig(
            scaling_mode=ScalingMode.MANUAL,
            manual_clusters=[ManualCluster(cluster_id="ocm-1", tenant_instance_limit=5)]
        )

        self.assertTrue(config.manual_scaling)
        self.assertFalse(DataPlaneConfig().manual_scaling)
