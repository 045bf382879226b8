"""Configuration model and manifest transformers specific to the serving component."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Protocol

from knoperator.unstructured import NotFoundError, Resource

logger = logging.getLogger(__name__)

Transformer = Callable[[Resource], None]

LOCAL_GATEWAY_SERVICE_NAME = "knative-local-gateway"
DEFAULT_ISTIO_NAMESPACE = "istio-system"


@dataclass
class GatewayOverride:
    """Overrides for an Istio gateway's selector and servers."""

    selector: dict[str, str] = field(default_factory=dict)
    servers: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class IstioIngress:
    """Settings of the Istio ingress."""

    enabled: bool = False
    knative_ingress_gateway: Optional[GatewayOverride] = None
    knative_local_gateway: Optional[GatewayOverride] = None


@dataclass
class KourierIngress:
    """Settings of the Kourier ingress."""

    enabled: bool = False
    service_type: str = ""


@dataclass
class ContourIngress:
    """Settings of the Contour ingress."""

    enabled: bool = False


@dataclass
class IngressConfigs:
    """The set of ingresses configured for serving."""

    istio: IstioIngress = field(default_factory=IstioIngress)
    kourier: KourierIngress = field(default_factory=KourierIngress)
    contour: ContourIngress = field(default_factory=ContourIngress)


@dataclass
class KnativeServing:
    """The parts of a KnativeServing custom resource the transformers read."""

    name: str = ""
    namespace: str = ""
    version: str = ""
    config: dict[str, dict[str, str]] = field(default_factory=dict)
    ingress: Optional[IngressConfigs] = None


class ResourceGetter(Protocol):
    def get(self, resource: Resource) -> Resource:
        """Return the live copy of the resource or raise NotFoundError."""


def _metadata(resource: Resource) -> dict[str, Any]:
    metadata = resource.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
        resource["metadata"] = metadata
    return metadata


def _name(resource: Mapping[str, Any]) -> str:
    return (resource.get("metadata") or {}).get("name", "")


def _set_namespace(resource: Resource, namespace: str) -> None:
    metadata = _metadata(resource)
    if namespace:
        metadata["namespace"] = namespace
    else:
        metadata.pop("namespace", None)


def aggregation_rule_transform(client: ResourceGetter) -> Transformer:
    """Copy the live rules into aggregated ClusterRoles.

    The controller manager fills in the rules of an aggregated ClusterRole, so
    applying ours unchanged would always trigger an unnecessary update.
    """

    def transform(resource: Resource) -> None:
        if resource.get("kind") != "ClusterRole" or resource.get("aggregationRule") is None:
            return
        try:
            current = client.get(resource)
        except NotFoundError:
            return
        if "rules" not in current:
            return
        rules = current["rules"]
        if not isinstance(rules, list):
            raise ValueError(
                f".rules accessor error: {rules!r} is of the type "
                f"{type(rules).__name__}, expected a list"
            )
        resource["rules"] = copy.deepcopy(rules)

    return transform


def ingress_service_transform(instance: KnativeServing) -> Transformer:
    """Pin the local gateway Service to the Istio namespace and drop its owner references.

    The owner would live in another namespace, which Kubernetes rejects.
    """

    def transform(resource: Resource) -> None:
        if (
            resource.get("apiVersion") != "v1"
            or resource.get("kind") != "Service"
            or _name(resource) != LOCAL_GATEWAY_SERVICE_NAME
        ):
            return
        _set_namespace(resource, DEFAULT_ISTIO_NAMESPACE)
        _metadata(resource).pop("ownerReferences", None)
        # The "config-" prefix is optional; the prefixed entry wins.
        for key in ("istio", "config-istio"):
            data = instance.config.get(key)
            if data is not None:
                update_namespace(resource, data, instance.namespace)

    return transform


def update_namespace(resource: Resource, data: Mapping[str, str], ns: str) -> None:
    """Move the local gateway Service into the Istio namespace named in the config data.

    The value has the form knative-local-gateway.<istio-namespace>.svc.cluster.local.
    """
    value = data.get(f"local-gateway.{ns}.{LOCAL_GATEWAY_SERVICE_NAME}")
    if value is None:
        return
    fields = value.split(".")
    if len(fields) >= 2:
        _set_namespace(resource, fields[1])