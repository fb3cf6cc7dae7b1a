import datetime as dt

from kube_custom_resource import CustomResource, Scope, schema
from pydantic import Field


class ClusterPhase(str, schema.Enum):
    """
    The lifecycle phase of a managed cluster.
    """

    ACCEPTED = "Accepted"
    PROVISIONING = "Provisioning"
    PROVISIONED = "Provisioned"
    WAITING_FOR_FLEETSHARD_OPERATOR = "WaitingForFleetshardOperator"
    READY = "Ready"
    DEPROVISIONING = "Deprovisioning"
    CLEANUP = "Cleanup"
    FAILED = "Failed"
    DELETED = "Deleted"


#: The phases that count towards the capacity of a provider and region
ACTIVE_PHASES = (
    ClusterPhase.ACCEPTED,
    ClusterPhase.PROVISIONING,
    ClusterPhase.PROVISIONED,
    ClusterPhase.WAITING_FOR_FLEETSHARD_OPERATOR,
    ClusterPhase.READY,
)


class ManagedClusterSpec(schema.BaseModel):
    """
    The placement of a managed cluster.
    """

    cloud_provider: schema.constr(min_length=1) = Field(
        ..., description="The cloud provider that the cluster is placed in."
    )
    region: schema.constr(min_length=1) = Field(
        ..., description="The region of the cloud provider that the cluster is in."
    )
    multi_az: bool = Field(
        True, description="Indicates if the cluster spans multiple availability zones."
    )


class ManagedClusterStatus(schema.BaseModel, extra="allow"):
    """
    The status of a managed cluster.
    """

    phase: schema.Optional[ClusterPhase] = Field(
        None, description="The lifecycle phase of the cluster."
    )
    cluster_id: schema.Optional[str] = Field(
        None, description="The ID of the cluster in the cluster management API."
    )
    external_id: schema.Optional[str] = Field(
        None, description="The external ID of the cluster, assigned once it is ready."
    )
    cluster_dns: schema.Optional[str] = Field(
        None, description="The DNS suffix for applications on the cluster."
    )
    identity_provider_id: schema.Optional[str] = Field(
        None, description="The ID of the identity provider on the cluster."
    )
    schedulable: bool = Field(
        True, description="Indicates if tenant instances can be placed on the cluster."
    )
    deleted_at: schema.Optional[dt.datetime] = Field(
        None, description="The time at which the cluster record was deleted."
    )


class ManagedCluster(
    CustomResource,
    scope=Scope.CLUSTER,
    subresources={"status": {}},
    printer_columns=[
        {
            "name": "Provider",
            "type": "string",
            "jsonPath": ".spec.cloudProvider",
        },
        {
            "name": "Region",
            "type": "string",
            "jsonPath": ".spec.region",
        },
        {
            "name": "Cluster ID",
            "type": "string",
            "jsonPath": ".status.clusterId",
        },
        {
            "name": "Phase",
            "type": "string",
            "jsonPath": ".status.phase",
        },
        {
            "name": "Schedulable",
            "type": "boolean",
            "jsonPath": ".status.schedulable",
            "priority": 1,
        },
        {
            "name": "DNS",
            "type": "string",
            "jsonPath": ".status.clusterDns",
            "priority": 1,
        },
    ],
):
    """
    A data plane cluster managed by the fleet manager.
    """

    spec: ManagedClusterSpec
    status: ManagedClusterStatus = Field(default_factory=ManagedClusterStatus)
