import enum
import typing as t

from configomatic import (
    Configuration as BaseConfiguration,
)
from configomatic import (
    LoggingConfiguration,
    Section,
)
from pydantic import (
    AfterValidator,
    Field,
    TypeAdapter,
    ValidationInfo,
    conint,
    constr,
    field_validator,
    model_validator,
)
from pydantic import (
    AnyHttpUrl as PyAnyHttpUrl,
)

#: Type for a string that validates as a URL
AnyHttpUrl = t.Annotated[
    str, AfterValidator(lambda v: str(TypeAdapter(PyAnyHttpUrl).validate_python(v)))
]


class ScalingMode(str, enum.Enum):
    """
    Enumeration of the supported capacity scaling modes.
    """

    AUTO = "auto"
    MANUAL = "manual"


class Region(Section):
    """
    Configuration for a supported region of a cloud provider.
    """

    #: The name of the region
    name: constr(min_length=1)


class CloudProvider(Section):
    """
    Configuration for a supported cloud provider.
    """

    #: The name of the provider
    name: constr(min_length=1)
    #: Indicates if this is the default provider
    default: bool = False
    #: The regions of the provider that clusters can be placed in
    regions: list[Region] = Field(default_factory=list)


class ManualCluster(Section):
    """
    Configuration for a statically assigned data plane cluster.
    """

    #: The external ID of the cluster in the cluster management API
    cluster_id: constr(min_length=1)
    #: The placement of the cluster
    cloud_provider: constr(min_length=1) = "aws"
    region: constr(min_length=1) = "us-east-1"
    multi_az: bool = True
    #: Indicates whether new tenant instances can be placed on the cluster
    schedulable: bool = True
    #: The maximum number of tenant instances that the cluster can hold
    tenant_instance_limit: conint(ge=0)


class DataPlaneConfig(Section):
    """
    Configuration for the data plane clusters.
    """

    #: The scaling mode to use
    scaling_mode: ScalingMode = ScalingMode.AUTO
    #: The statically assigned clusters, used in manual scaling mode
    manual_clusters: list[ManualCluster] = Field(default_factory=list)

    #: The prefix to use for the names of new clusters
    cluster_name_prefix: constr(min_length=1) = "mk"
    #: The OpenShift version to request for new clusters
    #: If not given, the cluster management API picks its default
    openshift_version: constr(min_length=1) | None = None
    #: The machine type and number of compute nodes for new clusters
    compute_machine_type: constr(min_length=1) = "m5.4xlarge"
    compute_nodes: conint(ge=3) = 9

    #: The number of replicas for the sharded ingress controller
    ingress_controller_replicas: conint(gt=0) = 9
    #: The default ingress prefix that appears in the cluster DNS
    default_ingress_prefix: constr(min_length=1) = "apps"
    #: The ingress prefix to use for tenant traffic
    ingress_prefix: constr(min_length=1) = "kas"

    #: The storage class parameters
    storage_class_type: constr(min_length=1) = "gp2"
    storage_class_encrypted: bool = False

    #: The docker config to use for pulling images, as a JSON string
    #: If not given, no image pull secrets are added to clusters
    image_pull_docker_config: constr(min_length=1) | None = None
    #: The name of the image pull secret
    image_pull_secret_name: constr(min_length=1) = "rhoas-image-pull-secret"

    #: The ID of the base streaming operator addon
    strimzi_operator_addon_id: constr(min_length=1) = "managed-kafka"
    #: The namespace that the base streaming operator addon is installed into
    strimzi_operator_namespace: constr(min_length=1) = "redhat-managed-kafka-operator"
    #: The ID of the fleetshard operator addon
    fleetshard_operator_addon_id: constr(min_length=1) = "kas-fleetshard-operator"
    #: The namespace that the fleetshard operator addon is installed into
    fleetshard_operator_namespace: constr(min_length=1) = (
        "redhat-kas-fleetshard-operator"
    )

    @field_validator("manual_clusters")
    @classmethod
    def validate_manual_clusters(cls, v):
        """
        Ensures that each manually configured cluster appears only once.
        """
        seen = set()
        for cluster in v:
            if cluster.cluster_id in seen:
                raise ValueError(f"duplicate cluster id '{cluster.cluster_id}'")
            seen.add(cluster.cluster_id)
        return v

    @property
    def manual_scaling(self):
        """
        Indicates if manual scaling is enabled.
        """
        return self.scaling_mode == ScalingMode.MANUAL


class ObservabilityConfig(Section):
    """
    Configuration for the observability stack that is installed on each cluster.
    """

    #: The namespace for the observability operator
    namespace: constr(min_length=1) = "managed-application-services-observability"
    #: The credentials for the observability dex proxy
    dex_username: str = "admin@example.com"
    dex_password: str = "password"
    dex_secret: str = "secret"
    #: The catalog image and subscription for the observability operator
    catalog_image: constr(min_length=1) = (
        "quay.io/integreatly/observability-operator-index:v3.0.1"
    )
    subscription_channel: constr(min_length=1) = "alpha"
    subscription_starting_csv: constr(min_length=1) = "observability-operator.v3.0.1"
    subscription_package: constr(min_length=1) = "observability-operator"


class ClusterManagementConfig(Section):
    """
    Configuration for the cluster management API.
    """

    #: The base URL of the cluster management API
    base_url: AnyHttpUrl = "https://api.openshift.com"
    #: The token URL and client credentials for the cluster management API
    token_url: AnyHttpUrl = (
        "https://sso.redhat.com/auth/realms/redhat-external/protocol/openid-connect/token"
    )
    client_id: str = ""
    client_secret: str = ""
    #: The timeout for requests to the API
    timeout: conint(gt=0) = 30


class SSOConfig(Section):
    """
    Configuration for the SSO backend.
    """

    #: The base URL of the SSO server
    #: For older Keycloak releases, this should include the /auth prefix
    base_url: AnyHttpUrl = "https://sso.example.com/auth"
    #: The realm that cluster clients are registered in
    realm: constr(min_length=1) = "rhoas"
    #: The realm that agent service accounts are registered in
    #: By default, this is the same as the realm
    agent_realm: constr(min_length=1) | None = Field(None, validate_default=True)
    #: The admin client credentials
    client_id: str = ""
    client_secret: str = ""
    #: The name of the identity provider that is created on each cluster
    identity_provider_name: constr(min_length=1) = "Kafka_SRE"
    #: The timeout for requests to the SSO server
    timeout: conint(gt=0) = 30

    @field_validator("agent_realm")
    @classmethod
    def default_agent_realm(cls, v, info: ValidationInfo):
        """
        Sets the default realm for agent service accounts.
        """
        return v or info.data.get("realm")


class TenantInstanceConfig(Section):
    """
    Configuration for counting the tenant instances placed on each cluster.
    """

    #: The API version and resource of the tenant instances
    api_version: constr(pattern=r"^[a-z0-9.-]+/[a-z0-9]+$") = (
        "managedkafka.bf2.org/v1alpha1"
    )
    resource: constr(min_length=1) = "managedkafkas"
    #: The label that holds the ID of the cluster that an instance is placed on
    cluster_id_label: constr(min_length=1) = "bf2.org/cluster-id"


class MetricsConfig(Section):
    """
    Configuration for the metrics server.
    """

    #: Indicates whether the metrics server should be started
    enabled: bool = True
    #: The port to run the metrics server on
    port: conint(ge=1000) = 8080


class Configuration(
    BaseConfiguration,
    default_path="/etc/fleet-manager/config.yaml",
    path_env_var="FLEET_MANAGER_CONFIG",
    env_prefix="FLEET_MANAGER",
):
    """
    Top-level configuration model.
    """

    #: The logging configuration
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)

    #: The API group of the cluster CRDs
    api_group: constr(min_length=1) = "fleetmanager.bf2.org"
    #: A list of categories to place CRDs into
    crd_categories: list[constr(min_length=1)] = Field(
        default_factory=lambda: ["fleetmanager"]
    )

    #: The number of seconds to wait between reconciliation passes
    timer_interval: conint(gt=0) = 30

    #: The field manager name to use for server-side apply
    easykube_field_manager: constr(min_length=1) = "fleet-manager"

    #: The endpoint that fleetshard agents use to reach the fleet manager
    fleet_manager_endpoint: AnyHttpUrl = "http://kas-fleet-manager:8000"

    #: The supported cloud providers and regions
    providers: list[CloudProvider] = Field(
        default_factory=lambda: [
            CloudProvider(
                name="aws", default=True, regions=[Region(name="us-east-1")]
            ),
        ]
    )

    #: Configuration for the data plane clusters
    data_plane: DataPlaneConfig = Field(default_factory=DataPlaneConfig)

    #: Configuration for the observability stack
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    #: Configuration for the cluster management API
    cluster_management: ClusterManagementConfig = Field(
        default_factory=ClusterManagementConfig
    )

    #: Configuration for the SSO backend
    sso: SSOConfig = Field(default_factory=SSOConfig)

    #: Configuration for counting tenant instances
    tenant_instances: TenantInstanceConfig = Field(
        default_factory=TenantInstanceConfig
    )

    #: Configuration for the metrics server
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="after")
    def validate_providers(self):
        """
        Ensures that at most one provider is marked as the default.
        """
        defaults = [p.name for p in self.providers if p.default]
        if len(defaults) > 1:
            raise ValueError(
                "at most one provider can be the default, got " + ", ".join(defaults)
            )
        return self


settings = Configuration()
