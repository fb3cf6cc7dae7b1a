import copy
import unittest
from unittest import mock

from fleet_manager import syncset
from fleet_manager.ocm import ClusterManagementError, Syncset

from .util import make_cluster, make_settings, make_store


class TestBuildSyncset(unittest.TestCase):
    def build(self, **data_plane):
        settings = make_settings(**data_plane)
        return syncset.build_syncset(
            settings.data_plane,
            settings.observability,
            "kas.example.com"
        )

    def test_resources_in_order(self):
        kinds = [resource.kind for resource in self.build()]

        self.assertEqual(kinds, [
            "StorageClass",
            "IngressController",
            "Project",
            "Secret",
            "CatalogSource",
            "OperatorGroup",
            "Subscription",
            "Group",
            "ClusterRoleBinding",
        ])

    def test_deterministic(self):
        first = [resource.to_generic() for resource in self.build()]
        second = [resource.to_generic() for resource in self.build()]

        self.assertEqual(first, second)
        self.assertFalse(syncset.resources_changed(first, self.build()))

    def test_image_pull_secrets(self):
        resources = self.build(image_pull_docker_config='{"auths": {}}')

        self.assertEqual(len(resources), 11)
        secrets = [resource.to_generic() for resource in resources[-2:]]
        self.assertEqual(
            [secret["metadata"]["namespace"] for secret in secrets],
            ["redhat-managed-kafka-operator", "redhat-kas-fleetshard-operator"]
        )
        for secret in secrets:
            self.assertEqual(secret["type"], "kubernetes.io/dockercfg")
            self.assertEqual(secret["metadata"]["name"], "rhoas-image-pull-secret")
            self.assertIn(".dockercfg", secret["data"])

    def test_generic_form_uses_kubernetes_field_names(self):
        resources = {resource.kind: resource.to_generic() for resource in self.build()}

        storage_class = resources["StorageClass"]
        self.assertEqual(storage_class["apiVersion"], "storage.k8s.io/v1")
        self.assertEqual(storage_class["parameters"], {"encrypted": "false", "type": "gp2"})
        self.assertEqual(storage_class["volumeBindingMode"], "WaitForFirstConsumer")
        self.assertTrue(storage_class["allowVolumeExpansion"])

        ingress = resources["IngressController"]["spec"]
        self.assertEqual(ingress["domain"], "kas.example.com")
        self.assertEqual(ingress["routeSelector"], {"matchLabels": {"ingressType": "sharded"}})
        self.assertEqual(ingress["endpointPublishingStrategy"]["loadBalancer"]["scope"], "External")
        self.assertEqual(
            ingress["nodePlacement"]["nodeSelector"]["matchLabels"],
            {"node-role.kubernetes.io/worker": ""}
        )

        subscription = resources["Subscription"]["spec"]
        self.assertEqual(subscription["startingCSV"], "observability-operator.v3.0.1")
        self.assertEqual(subscription["installPlanApproval"], "Automatic")

        binding = resources["ClusterRoleBinding"]
        self.assertEqual(binding["roleRef"]["name"], "dedicated-readers")
        self.assertEqual(binding["subjects"][0]["name"], "mk-readonly-access")


class TestResourcesChanged(unittest.TestCase):
    def setUp(self):
        settings = make_settings()
        self.desired = syncset.build_syncset(
            settings.data_plane,
            settings.observability,
            "kas.example.com"
        )
        self.existing = [resource.to_generic() for resource in self.desired]

    def test_unchanged(self):
        self.assertFalse(syncset.resources_changed(self.existing, self.desired))

    def test_typed_existing_resources_are_compared(self):
        self.assertFalse(syncset.resources_changed(list(self.desired), self.desired))

    def test_count_mismatch(self):
        self.assertTrue(syncset.resources_changed(self.existing[:1], self.desired[:2]))

    def test_name_change(self):
        existing = copy.deepcopy(self.existing)
        existing[2]["metadata"]["name"] = "other-namespace"

        self.assertTrue(syncset.resources_changed(existing, self.desired))

    def test_field_change(self):
        existing = copy.deepcopy(self.existing)
        existing[1]["spec"]["replicas"] = 3

        self.assertTrue(syncset.resources_changed(existing, self.desired))

    def test_unknown_kind(self):
        existing = copy.deepcopy(self.existing)
        existing[2]["kind"] = "TestProject"

        self.assertTrue(syncset.resources_changed(existing, self.desired))

    def test_invalid_resource(self):
        existing = copy.deepcopy(self.existing)
        del existing[0]["provisioner"]

        self.assertTrue(syncset.resources_changed(existing, self.desired))

    def test_order_matters(self):
        existing = list(reversed(self.existing))

        self.assertTrue(syncset.resources_changed(existing, self.desired))

    def test_extra_fields_in_existing_are_ignored(self):
        existing = copy.deepcopy(self.existing)
        existing[2]["metadata"]["uid"] = "1234"

        self.assertFalse(syncset.resources_changed(existing, self.desired))


class TestReconcileSyncset(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.settings = make_settings()
        self.store = make_store()
        self.ocm = mock.AsyncMock()
        self.cluster = make_cluster(
            cluster_id="ocm-1",
            clusterDns="apps.c1.example.com"
        )
        self.desired = syncset.build_syncset(
            self.settings.data_plane,
            self.settings.observability,
            "kas.c1.example.com"
        )

    async def test_create_when_absent(self):
        self.ocm.get_syncset.return_value = None

        await syncset.reconcile_syncset(self.cluster, self.store, self.ocm, self.settings)

        self.ocm.create_syncset.assert_awaited_once()
        cluster_id, created = self.ocm.create_syncset.await_args.args
        self.assertEqual(cluster_id, "ocm-1")
        self.assertEqual(created.id, syncset.SYNCSET_ID)
        self.assertEqual(created.resources[1]["spec"]["domain"], "kas.c1.example.com")
        self.ocm.update_syncset.assert_not_awaited()

    async def test_no_write_when_unchanged(self):
        self.ocm.get_syncset.return_value = Syncset(
            id=syncset.SYNCSET_ID,
            resources=[resource.to_generic() for resource in self.desired]
        )

        result = await syncset.reconcile_syncset(
            self.cluster,
            self.store,
            self.ocm,
            self.settings
        )

        self.assertIsNone(result)
        self.ocm.create_syncset.assert_not_awaited()
        self.ocm.update_syncset.assert_not_awaited()

    async def test_update_when_changed(self):
        self.ocm.get_syncset.return_value = Syncset(
            id=syncset.SYNCSET_ID,
            resources=[self.desired[0].to_generic()]
        )

        await syncset.reconcile_syncset(self.cluster, self.store, self.ocm, self.settings)

        self.ocm.update_syncset.assert_awaited_once()
        cluster_id, syncset_id, updated = self.ocm.update_syncset.await_args.args
        self.assertEqual(cluster_id, "ocm-1")
        self.assertEqual(syncset_id, syncset.SYNCSET_ID)
        self.assertEqual(len(updated.resources), len(self.desired))
        self.ocm.create_syncset.assert_not_awaited()

    async def test_resolves_dns_first(self):
        cluster = make_cluster(cluster_id="ocm-1")
        self.ocm.get_cluster_dns.return_value = "apps.c1.example.com"
        self.ocm.get_syncset.return_value = None

        await syncset.reconcile_syncset(cluster, self.store, self.ocm, self.settings)

        self.assertEqual(cluster.status.cluster_dns, "apps.c1.example.com")
        self.store.update.assert_awaited_once_with(cluster)
        created = self.ocm.create_syncset.await_args.args[1]
        self.assertEqual(created.resources[1]["spec"]["domain"], "kas.c1.example.com")

    async def test_dns_error(self):
        cluster = make_cluster(cluster_id="ocm-1")
        self.ocm.get_cluster_dns.side_effect = ClusterManagementError(500, "boom")

        with self.assertRaises(ClusterManagementError):
            await syncset.reconcile_syncset(cluster, self.store, self.ocm, self.settings)

        self.ocm.get_syncset.assert_not_awaited()
        self.store.update.assert_not_awaited()

    async def test_create_error(self):
        self.ocm.get_syncset.return_value = None
        self.ocm.create_syncset.side_effect = ClusterManagementError(500, "boom")

        with self.assertRaises(ClusterManagementError):
            await syncset.reconcile_syncset(
                self.cluster,
                self.store,
                self.ocm,
                self.settings
            )

    async def test_update_error(self):
        self.ocm.get_syncset.return_value = Syncset(id=syncset.SYNCSET_ID, resources=[])
        self.ocm.update_syncset.side_effect = ClusterManagementError(500, "boom")

        with self.assertRaises(ClusterManagementError):
            await syncset.reconcile_syncset(
                self.cluster,
                self.store,
                self.ocm,
                self.settings
            )
