import base64
import logging

from . import resources
from .dns import ingress_dns, reconcile_cluster_dns
from .ocm import Syncset

logger = logging.getLogger(__name__)


#: The ID of the syncset that is maintained on each cluster
SYNCSET_ID = "ext-managedkafka-cluster-syncset"

STORAGE_CLASS_NAME = "mk-storageclass"
INGRESS_CONTROLLER_NAME = "sharded-nlb"
INGRESS_OPERATOR_NAMESPACE = "openshift-ingress-operator"
#: The label that routes must have to be served by the sharded ingress controller
INGRESS_ROUTE_LABEL = ("ingressType", "sharded")
WORKER_NODE_LABEL = "node-role.kubernetes.io/worker"

OBSERVABILITY_DEX_CREDENTIALS = "observatorium-dex-credentials"
OBSERVABILITY_CATALOG_SOURCE = "observability-operator-manifests"
OBSERVABILITY_OPERATOR_GROUP = "observability-operator-group-name"
OBSERVABILITY_SUBSCRIPTION = "observability-operator"

READONLY_GROUP = "mk-readonly-access"
READONLY_CLUSTER_ROLE = "dedicated-readers"

DOCKER_CONFIG_KEY = ".dockercfg"


def build_syncset(data_plane, observability, ingress_domain):
    """
    Returns the ordered list of resources that should exist on a cluster whose
    tenant ingress uses the given domain.
    """
    desired = [
        resources.StorageClass(
            metadata=resources.ObjectMeta(name=STORAGE_CLASS_NAME),
            provisioner="kubernetes.io/aws-ebs",
            parameters={
                "encrypted": str(data_plane.storage_class_encrypted).lower(),
                "type": data_plane.storage_class_type,
            },
            reclaim_policy="Delete",
            allow_volume_expansion=True,
            volume_binding_mode="WaitForFirstConsumer",
        ),
        resources.IngressController(
            metadata=resources.ObjectMeta(
                name=INGRESS_CONTROLLER_NAME,
                namespace=INGRESS_OPERATOR_NAMESPACE,
            ),
            spec=resources.IngressControllerSpec(
                domain=ingress_domain,
                route_selector=resources.LabelSelector(
                    match_labels=dict([INGRESS_ROUTE_LABEL])
                ),
                endpoint_publishing_strategy=resources.EndpointPublishingStrategy(
                    load_balancer=resources.LoadBalancerStrategy(
                        provider_parameters=resources.ProviderLoadBalancerParameters(
                            aws=resources.AWSLoadBalancerParameters()
                        ),
                    ),
                ),
                replicas=data_plane.ingress_controller_replicas,
                node_placement=resources.NodePlacement(
                    node_selector=resources.LabelSelector(
                        match_labels={WORKER_NODE_LABEL: ""}
                    ),
                ),
            ),
        ),
        resources.Project(
            metadata=resources.ObjectMeta(name=observability.namespace),
        ),
        resources.Secret(
            metadata=resources.ObjectMeta(
                name=OBSERVABILITY_DEX_CREDENTIALS,
                namespace=observability.namespace,
            ),
            type="Opaque",
            string_data={
                "password": observability.dex_password,
                "secret": observability.dex_secret,
                "username": observability.dex_username,
            },
        ),
        resources.CatalogSource(
            metadata=resources.ObjectMeta(
                name=OBSERVABILITY_CATALOG_SOURCE,
                namespace=observability.namespace,
            ),
            spec=resources.CatalogSourceSpec(image=observability.catalog_image),
        ),
        resources.OperatorGroup(
            metadata=resources.ObjectMeta(
                name=OBSERVABILITY_OPERATOR_GROUP,
                namespace=observability.namespace,
            ),
            spec=resources.OperatorGroupSpec(
                target_namespaces=[observability.namespace]
            ),
        ),
        resources.Subscription(
            metadata=resources.ObjectMeta(
                name=OBSERVABILITY_SUBSCRIPTION,
                namespace=observability.namespace,
            ),
            spec=resources.SubscriptionSpec(
                channel=observability.subscription_channel,
                name=observability.subscription_package,
                source=OBSERVABILITY_CATALOG_SOURCE,
                source_namespace=observability.namespace,
                starting_csv=observability.subscription_starting_csv,
            ),
        ),
        resources.Group(
            metadata=resources.ObjectMeta(name=READONLY_GROUP),
        ),
        resources.ClusterRoleBinding(
            metadata=resources.ObjectMeta(name=READONLY_GROUP),
            subjects=[
                resources.Subject(
                    kind="Group",
                    api_group="rbac.authorization.k8s.io",
                    name=READONLY_GROUP,
                ),
            ],
            role_ref=resources.RoleRef(kind="ClusterRole", name=READONLY_CLUSTER_ROLE),
        ),
    ]
    if data_plane.image_pull_docker_config:
        docker_config = base64.b64encode(
            data_plane.image_pull_docker_config.encode()
        ).decode()
        for namespace in (
            data_plane.strimzi_operator_namespace,
            data_plane.fleetshard_operator_namespace,
        ):
            desired.append(
                resources.Secret(
                    metadata=resources.ObjectMeta(
                        name=data_plane.image_pull_secret_name,
                        namespace=namespace,
                    ),
                    type="kubernetes.io/dockercfg",
                    data={DOCKER_CONFIG_KEY: docker_config},
                )
            )
    return desired


def resources_changed(existing, desired, registry = resources.registry):
    """
    Returns True if the existing resources differ from the desired resources.

    Resources are compared in order after converting both sides to their generic
    form. An existing resource that cannot be converted counts as a change.
    """
    if len(existing) != len(desired):
        return True
    for current, wanted in zip(existing, desired):
        current_generic = registry.normalize(current)
        if current_generic is None:
            return True
        if current_generic != registry.normalize(wanted):
            return True
    return False


async def reconcile_syncset(cluster, store, ocm, settings):
    """
    Ensures that the syncset for the cluster matches the desired resources.

    Returns the syncset that was written, or None if no write was required.
    """
    cluster_dns = await reconcile_cluster_dns(cluster, store, ocm)
    desired = build_syncset(
        settings.data_plane,
        settings.observability,
        ingress_dns(cluster_dns, settings.data_plane)
    )
    cluster_id = cluster.status.cluster_id
    existing = await ocm.get_syncset(cluster_id, SYNCSET_ID)
    syncset = Syncset(id=SYNCSET_ID, resources=[r.to_generic() for r in desired])
    if existing is None:
        logger.info("creating syncset for cluster %s", cluster.metadata.name)
        return await ocm.create_syncset(cluster_id, syncset)
    elif resources_changed(existing.resources, desired):
        logger.info("updating syncset for cluster %s", cluster.metadata.name)
        return await ocm.update_syncset(cluster_id, SYNCSET_ID, syncset)
    else:
        logger.debug("syncset for cluster %s is up to date", cluster.metadata.name)
        return None
