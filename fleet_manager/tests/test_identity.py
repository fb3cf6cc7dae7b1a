import unittest
from unittest import mock

from fleet_manager import dns, identity
from fleet_manager.errors import IdentityProviderNotFoundError
from fleet_manager.ocm import (
    ClusterManagementError,
    IdentityProvider,
    IdentityProviderExistsError,
)
from fleet_manager.sso import RealmConfig, SSOError

from .util import make_cluster, make_settings, make_store


class TestClusterDNS(unittest.IsolatedAsyncioTestCase):
    async def test_existing_dns_is_kept(self):
        store = make_store()
        ocm = mock.AsyncMock()
        cluster = make_cluster(cluster_id="ocm-1", clusterDns="apps.c1.example.com")

        result = await dns.reconcile_cluster_dns(cluster, store, ocm)

        self.assertEqual(result, "apps.c1.example.com")
        ocm.get_cluster_dns.assert_not_awaited()
        store.update.assert_not_awaited()

    async def test_dns_is_fetched_and_stored(self):
        store = make_store()
        ocm = mock.AsyncMock()
        ocm.get_cluster_dns.return_value = "apps.c1.example.com"
        cluster = make_cluster(cluster_id="ocm-1")

        result = await dns.reconcile_cluster_dns(cluster, store, ocm)

        self.assertEqual(result, "apps.c1.example.com")
        ocm.get_cluster_dns.assert_awaited_once_with("ocm-1")
        self.assertEqual(cluster.status.cluster_dns, "apps.c1.example.com")
        store.update.assert_awaited_once_with(cluster)

    async def test_get_error(self):
        store = make_store()
        ocm = mock.AsyncMock()
        ocm.get_cluster_dns.side_effect = ClusterManagementError(500, "boom")
        cluster = make_cluster(cluster_id="ocm-1")

        with self.assertRaises(ClusterManagementError):
            await dns.reconcile_cluster_dns(cluster, store, ocm)

        store.update.assert_not_awaited()

    async def test_update_error(self):
        store = make_store()
        store.update.side_effect = RuntimeError("conflict")
        ocm = mock.AsyncMock()
        ocm.get_cluster_dns.return_value = "apps.c1.example.com"

        with self.assertRaises(RuntimeError):
            await dns.reconcile_cluster_dns(make_cluster(cluster_id="ocm-1"), store, ocm)

    def test_ingress_dns(self):
        data_plane = make_settings().data_plane

        self.assertEqual(
            dns.ingress_dns("apps.c1.apps.example.com", data_plane),
            "kas.c1.apps.example.com"
        )


class TestIdentityProvider(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.settings = make_settings()
        self.store = make_store()
        self.ocm = mock.AsyncMock()
        self.sso = mock.AsyncMock()
        self.sso.register_cluster_client.return_value = "s3cret"
        self.sso.get_realm_config.return_value = RealmConfig(
            issuer="https://sso.example.com/auth/realms/rhoas"
        )
        self.cluster = make_cluster(cluster_id="ocm-1", clusterDns="apps.c1.example.com")

    async def reconcile(self):
        return await identity.reconcile_identity_provider(
            self.cluster,
            self.store,
            self.ocm,
            self.sso,
            self.settings
        )

    async def test_creates_identity_provider(self):
        self.ocm.create_identity_provider.return_value = IdentityProvider(
            id="idp-1",
            name="Kafka_SRE"
        )

        await self.reconcile()

        self.sso.register_cluster_client.assert_awaited_once_with(
            "ocm-1",
            "https://oauth-openshift.apps.c1.example.com/oauth2callback/Kafka_SRE"
        )
        cluster_id, created = self.ocm.create_identity_provider.await_args.args
        self.assertEqual(cluster_id, "ocm-1")
        self.assertEqual(created.name, "Kafka_SRE")
        self.assertEqual(created.open_id["client_id"], "ocm-1")
        self.assertEqual(created.open_id["client_secret"], "s3cret")
        self.assertEqual(created.open_id["issuer"], "https://sso.example.com/auth/realms/rhoas")
        self.assertEqual(self.cluster.status.identity_provider_id, "idp-1")
        self.store.update.assert_awaited_once_with(self.cluster)

    async def test_existing_identity_provider_is_adopted(self):
        self.ocm.create_identity_provider.side_effect = IdentityProviderExistsError(
            409,
            "identity provider already exists"
        )
        self.ocm.get_identity_provider_list.return_value = [
            IdentityProvider(id="idp-0", name="other"),
            IdentityProvider(id="idp-2", name="Kafka_SRE"),
        ]

        await self.reconcile()

        self.assertEqual(self.cluster.status.identity_provider_id, "idp-2")
        self.store.update.assert_awaited_once_with(self.cluster)

    async def test_existing_identity_provider_not_listed(self):
        self.ocm.create_identity_provider.side_effect = IdentityProviderExistsError(
            409,
            "identity provider already exists"
        )
        self.ocm.get_identity_provider_list.return_value = []

        with self.assertRaises(IdentityProviderNotFoundError):
            await self.reconcile()

        self.store.update.assert_not_awaited()

    async def test_create_error(self):
        self.ocm.create_identity_provider.side_effect = ClusterManagementError(500, "boom")

        with self.assertRaises(ClusterManagementError):
            await self.reconcile()

        self.ocm.get_identity_provider_list.assert_not_awaited()
        self.store.update.assert_not_awaited()

    async def test_sso_register_error(self):
        self.sso.register_cluster_client.side_effect = SSOError(500, "boom")

        with self.assertRaises(SSOError):
            await self.reconcile()

        self.ocm.create_identity_provider.assert_not_awaited()

    async def test_dns_error(self):
        self.cluster = make_cluster(cluster_id="ocm-1")
        self.ocm.get_cluster_dns.side_effect = ClusterManagementError(500, "boom")

        with self.assertRaises(ClusterManagementError):
            await self.reconcile()

        self.sso.register_cluster_client.assert_not_awaited()
