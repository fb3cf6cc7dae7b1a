"""
Typed definitions for the resources that are synchronised to managed clusters.

Resources read back from the cluster management API arrive as plain dicts, so each
supported kind registers a converter that normalises either form into the same
generic representation. Resources of a kind without a converter cannot be compared.
"""

import logging
import typing as t

import pydantic
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class Model(BaseModel):
    """
    Base model for resource definitions, using camelCase for the generic form.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ObjectMeta(Model):
    name: str
    namespace: t.Optional[str] = None
    labels: t.Optional[dict[str, str]] = None


class LabelSelector(Model):
    match_labels: dict[str, str] = Field(default_factory=dict)


class Resource(Model):
    """
    Base class for a typed resource definition.
    """

    api_version: str
    kind: str
    metadata: ObjectMeta

    def to_generic(self):
        """
        Returns the generic form of the resource.
        """
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ConverterRegistry:
    """
    Registry of functions that convert resources into their generic form,
    indexed by (apiVersion, kind).
    """
    def __init__(self):
        self._converters = {}

    def register_converter(self, api_version, kind, converter):
        self._converters[(api_version, kind)] = converter

    def register(self, model):
        """
        Class decorator that registers a converter for the given resource model.
        """
        api_version = model.model_fields["api_version"].default
        kind = model.model_fields["kind"].default
        self.register_converter(
            api_version,
            kind,
            lambda obj: model.model_validate(obj).to_generic()
        )
        return model

    def __contains__(self, key):
        return key in self._converters

    def normalize(self, resource):
        """
        Returns the generic form of the given resource, or None if it cannot be converted.
        """
        if isinstance(resource, Resource):
            return resource.to_generic()
        if not isinstance(resource, dict):
            return None
        key = (resource.get("apiVersion"), resource.get("kind"))
        converter = self._converters.get(key)
        if not converter:
            logger.debug("no converter for resource of kind %s/%s", *key)
            return None
        try:
            return converter(resource)
        except pydantic.ValidationError:
            logger.debug("resource of kind %s/%s is not valid", *key)
            return None


#: The default registry, populated with the resources defined in this module
registry = ConverterRegistry()


@registry.register
class StorageClass(Resource):
    api_version: t.Literal["storage.k8s.io/v1"] = "storage.k8s.io/v1"
    kind: t.Literal["StorageClass"] = "StorageClass"
    provisioner: str
    parameters: dict[str, str] = Field(default_factory=dict)
    reclaim_policy: t.Optional[str] = None
    allow_volume_expansion: t.Optional[bool] = None
    volume_binding_mode: t.Optional[str] = None


class AWSLoadBalancerParameters(Model):
    type: str = "NLB"


class ProviderLoadBalancerParameters(Model):
    type: str = "AWS"
    aws: t.Optional[AWSLoadBalancerParameters] = None


class LoadBalancerStrategy(Model):
    scope: str = "External"
    provider_parameters: t.Optional[ProviderLoadBalancerParameters] = None


class EndpointPublishingStrategy(Model):
    type: str = "LoadBalancerService"
    load_balancer: t.Optional[LoadBalancerStrategy] = None


class NodePlacement(Model):
    node_selector: LabelSelector


class IngressControllerSpec(Model):
    domain: str
    route_selector: t.Optional[LabelSelector] = None
    endpoint_publishing_strategy: t.Optional[EndpointPublishingStrategy] = None
    replicas: t.Optional[int] = None
    node_placement: t.Optional[NodePlacement] = None


@registry.register
class IngressController(Resource):
    api_version: t.Literal["operator.openshift.io/v1"] = "operator.openshift.io/v1"
    kind: t.Literal["IngressController"] = "IngressController"
    spec: IngressControllerSpec


@registry.register
class Project(Resource):
    api_version: t.Literal["project.openshift.io/v1"] = "project.openshift.io/v1"
    kind: t.Literal["Project"] = "Project"


@registry.register
class Secret(Resource):
    api_version: t.Literal["v1"] = "v1"
    kind: t.Literal["Secret"] = "Secret"
    type: str = "Opaque"
    data: t.Optional[dict[str, str]] = None
    string_data: t.Optional[dict[str, str]] = None


class CatalogSourceSpec(Model):
    source_type: str = "grpc"
    image: str


@registry.register
class CatalogSource(Resource):
    api_version: t.Literal["operators.coreos.com/v1alpha1"] = "operators.coreos.com/v1alpha1"
    kind: t.Literal["CatalogSource"] = "CatalogSource"
    spec: CatalogSourceSpec


class OperatorGroupSpec(Model):
    target_namespaces: list[str] = Field(default_factory=list)


@registry.register
class OperatorGroup(Resource):
    api_version: t.Literal["operators.coreos.com/v1"] = "operators.coreos.com/v1"
    kind: t.Literal["OperatorGroup"] = "OperatorGroup"
    spec: OperatorGroupSpec


class SubscriptionSpec(Model):
    channel: str
    install_plan_approval: str = "Automatic"
    name: str
    source: str
    source_namespace: str
    starting_csv: t.Optional[str] = Field(None, alias="startingCSV")


@registry.register
class Subscription(Resource):
    api_version: t.Literal["operators.coreos.com/v1alpha1"] = "operators.coreos.com/v1alpha1"
    kind: t.Literal["Subscription"] = "Subscription"
    spec: SubscriptionSpec


@registry.register
class Group(Resource):
    api_version: t.Literal["user.openshift.io/v1"] = "user.openshift.io/v1"
    kind: t.Literal["Group"] = "Group"
    users: list[str] = Field(default_factory=list)


class Subject(Model):
    kind: str
    api_group: t.Optional[str] = None
    name: str
    namespace: t.Optional[str] = None


class RoleRef(Model):
    kind: str
    api_group: str = "rbac.authorization.k8s.io"
    name: str


@registry.register
class ClusterRoleBinding(Resource):
    api_version: t.Literal["rbac.authorization.k8s.io/v1"] = "rbac.authorization.k8s.io/v1"
    kind: t.Literal["ClusterRoleBinding"] = "ClusterRoleBinding"
    subjects: list[Subject] = Field(default_factory=list)
    role_ref: RoleRef
