"""Filters and transformers for the ingresses that serving can be installed with."""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Mapping, Optional

from knoperator.serving import GatewayOverride, KnativeServing
from knoperator.unstructured import Resource, labels_of

logger = logging.getLogger(__name__)

Transformer = Callable[[Resource], None]
Predicate = Callable[[Mapping[str, Any]], bool]

PROVIDER_LABEL = "networking.knative.dev/ingress-provider"

ISTIO_GATEWAY_API_VERSION = "networking.istio.io/v1alpha3"
KNATIVE_INGRESS_GATEWAY_NAME = "knative-ingress-gateway"
LOCAL_GATEWAY_NAMES = frozenset({"cluster-local-gateway", "knative-local-gateway"})

KOURIER_GATEWAY_NS_ENV_VAR_KEY = "KOURIER_GATEWAY_NAMESPACE"
KOURIER_GATEWAY_SERVICE_NAME = "kourier"
KOURIER_CONTROLLER_DEPLOYMENT_NAMES = frozenset(
    {"3scale-kourier-control", "net-kourier-controller"}
)

SUPPORTED_SERVICE_TYPES = frozenset({"ClusterIP", "NodePort", "LoadBalancer"})
UNSUPPORTED_SERVICE_TYPES = frozenset({"ExternalName"})

# Contour is installed as shipped: no transformer factories are registered for it.
_CONTOUR_TRANSFORMER_FACTORIES: tuple[Callable[[KnativeServing], Transformer], ...] = ()


def _name(resource: Mapping[str, Any]) -> str:
    return (resource.get("metadata") or {}).get("name", "")


def _namespace(resource: Mapping[str, Any]) -> str:
    return (resource.get("metadata") or {}).get("namespace", "")


def _containers(resource: Mapping[str, Any]) -> list[dict[str, Any]]:
    spec = resource.get("spec") or {}
    template = spec.get("template") or {}
    pod_spec = template.get("spec") or {}
    return pod_spec.get("containers") or []


def ingress_filter(name: str) -> Predicate:
    """Keep resources without a provider label and those labelled for ``name``."""

    def predicate(resource: Mapping[str, Any]) -> bool:
        labels = labels_of(resource)
        if PROVIDER_LABEL not in labels:
            return True
        return labels[PROVIDER_LABEL] == name

    return predicate


def none_filter(resource: Mapping[str, Any]) -> bool:
    """Drop every ingress resource but keep everything else."""
    return not has_provider_label(resource)


def has_provider_label(resource: Mapping[str, Any]) -> bool:
    """Tell whether the resource carries the ingress provider label."""
    return PROVIDER_LABEL in labels_of(resource)


istio_filter = ingress_filter("istio")
kourier_filter = ingress_filter("kourier")
contour_filter = ingress_filter("contour")


def filters(instance: KnativeServing) -> Predicate:
    """Return a predicate that removes the resources of disabled ingresses."""
    ingress = instance.ingress
    if ingress is None:
        return istio_filter
    enabled: list[Predicate] = []
    if ingress.istio.enabled:
        enabled.append(istio_filter)
    if ingress.kourier.enabled:
        enabled.append(kourier_filter)
    if ingress.contour.enabled:
        enabled.append(contour_filter)
    if not enabled:
        return none_filter

    def any_enabled(resource: Mapping[str, Any]) -> bool:
        return any(predicate(resource) for predicate in enabled)

    return any_enabled


def transformers(instance: KnativeServing) -> list[Transformer]:
    """Return the transformers for the enabled ingresses, Istio by default."""
    ingress = instance.ingress
    if ingress is None:
        return istio_transformers(instance)
    result: list[Transformer] = []
    if ingress.istio.enabled:
        result.extend(istio_transformers(instance))
    if ingress.kourier.enabled:
        result.extend(kourier_transformers(instance))
    if ingress.contour.enabled:
        result.extend(contour_transformers(instance))
    return result


def contour_transformers(instance: KnativeServing) -> list[Transformer]:
    """Return the transformers registered for the Contour ingress."""
    return [factory(instance) for factory in _CONTOUR_TRANSFORMER_FACTORIES]


def istio_transformers(instance: KnativeServing) -> list[Transformer]:
    """Return the transformers for the Istio ingress."""
    return [gateway_transform(instance)]


def _ingress_gateway(instance: KnativeServing) -> Optional[GatewayOverride]:
    if instance.ingress is not None:
        return instance.ingress.istio.knative_ingress_gateway
    return None


def _local_gateway(instance: KnativeServing) -> Optional[GatewayOverride]:
    if instance.ingress is not None:
        return instance.ingress.istio.knative_local_gateway
    return None


def _update_istio_gateway(override: Optional[GatewayOverride], gateway: Resource) -> None:
    if override is None:
        return
    if override.selector:
        logger.debug("Updating Gateway %s selector", _name(gateway))
        gateway.setdefault("spec", {})["selector"] = dict(override.selector)
    if override.servers:
        logger.debug("Updating Gateway %s servers", _name(gateway))
        gateway.setdefault("spec", {})["servers"] = copy.deepcopy(override.servers)


def gateway_transform(instance: KnativeServing) -> Transformer:
    """Apply the configured selector and server overrides to the Knative gateways."""

    def transform(resource: Resource) -> None:
        if (
            resource.get("apiVersion") != ISTIO_GATEWAY_API_VERSION
            or resource.get("kind") != "Gateway"
        ):
            return
        name = _name(resource)
        if name == KNATIVE_INGRESS_GATEWAY_NAME:
            _update_istio_gateway(_ingress_gateway(instance), resource)
        if name in LOCAL_GATEWAY_NAMES:
            _update_istio_gateway(_local_gateway(instance), resource)

    return transform


def kourier_transformers(instance: KnativeServing) -> list[Transformer]:
    """Return the transformers for the Kourier ingress."""
    return [replace_gw_namespace(), configure_gw_service_type(instance)]


def replace_gw_namespace() -> Transformer:
    """Point the Kourier gateway namespace env var at the controller's own namespace."""

    def transform(resource: Resource) -> None:
        if (
            resource.get("kind") != "Deployment"
            or _name(resource) not in KOURIER_CONTROLLER_DEPLOYMENT_NAMES
            or not has_provider_label(resource)
        ):
            return
        namespace = _namespace(resource)
        for container in _containers(resource):
            for env in container.get("env") or []:
                if env.get("name") != KOURIER_GATEWAY_NS_ENV_VAR_KEY:
                    continue
                if namespace:
                    env["value"] = namespace
                else:
                    env.pop("value", None)

    return transform


def configure_gw_service_type(instance: KnativeServing) -> Transformer:
    """Set the Kourier gateway Service type when one is configured.

    Raises ValueError for ExternalName and for unknown service types.
    """

    def transform(resource: Resource) -> None:
        if (
            resource.get("kind") != "Service"
            or _name(resource) != KOURIER_GATEWAY_SERVICE_NAME
            or not has_provider_label(resource)
        ):
            return
        service_type = instance.ingress.kourier.service_type if instance.ingress else ""
        if not service_type:
            return
        if service_type in SUPPORTED_SERVICE_TYPES:
            resource.setdefault("spec", {})["type"] = service_type
        elif service_type in UNSUPPORTED_SERVICE_TYPES:
            raise ValueError(f'unsupported service type "{service_type}"')
        else:
            raise ValueError(f'unknown service type "{service_type}"')

    return transform