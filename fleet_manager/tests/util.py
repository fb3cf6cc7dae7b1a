from unittest import mock

from fleet_manager import config
from fleet_manager.models import v1alpha1 as api


def make_cluster(
    name = "c1",
    phase = None,
    cluster_id = None,
    cloud_provider = "aws",
    region = "us-east-1",
    **status
):
    return api.ManagedCluster(
        apiVersion="fleetmanager.bf2.org/v1alpha1",
        kind="ManagedCluster",
        metadata=dict(name=name, resourceVersion="1"),
        spec=dict(cloudProvider=cloud_provider, region=region, multiAz=True),
        status=dict(phase=phase, clusterId=cluster_id, **status),
    )


def make_settings(**data_plane):
    settings = config.settings.model_copy(deep=True)
    settings.providers = [
        config.CloudProvider(
            name="aws",
            default=True,
            regions=[config.Region(name="us-east-1"), config.Region(name="eu-west-1")],
        ),
    ]
    settings.data_plane = config.DataPlaneConfig(**data_plane)
    settings.sso = config.SSOConfig(
        base_url="https://sso.example.com/auth",
        realm="rhoas",
        identity_provider_name="Kafka_SRE",
    )
    return settings


def make_store():
    """
    Returns a mock store whose writes succeed.
    """
    store = mock.AsyncMock()
    store.list_all.return_value = []
    store.update_status.return_value = True
    store.find_tenant_instance_count.return_value = {}
    store.list_group_by_provider_and_region.return_value = []
    return store
