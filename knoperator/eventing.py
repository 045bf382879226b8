"""Manifest transformers specific to the eventing component."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol

import yaml

from knoperator.unstructured import NotFoundError, Resource

logger = logging.getLogger(__name__)

Transformer = Callable[[Resource], None]

DEFAULTS_CONFIG_NAME = "config-br-defaults"
BROKER_DEFAULTS_KEY = "default-br-config"
MT_CHANNEL_BROKER_CLASS = "MTChannelBasedBroker"
DEFAULT_SINK_BINDING_SELECTION_MODE = "exclusion"
SINK_BINDING_SELECTION_MODE_ENV_VAR_KEY = "SINK_BINDING_SELECTION_MODE"
PINGSOURCE_ADAPTER_NAME = "pingsource-mt-adapter"
EVENTING_WEBHOOK_NAME = "eventing-webhook"

PRESERVED_ENV_VAR_NAMES = frozenset(
    {
        "SYSTEM_NAMESPACE",
        "K_METRICS_CONFIG",
        "K_LOGGING_CONFIG",
        "K_LEADER_ELECTION_CONFIG",
        "K_NO_SHUTDOWN_AFTER",
        "K_SINK_TIMEOUT",
    }
)


@dataclass
class KnativeEventing:
    """The parts of a KnativeEventing custom resource the transformers read."""

    name: str = ""
    namespace: str = ""
    default_broker_class: str = ""
    sink_binding_selection_mode: str = ""
    config: dict[str, dict[str, str]] = field(default_factory=dict)


class ResourceGetter(Protocol):
    def get(self, resource: Resource) -> Resource:
        """Return the live copy of the resource or raise NotFoundError."""


def _name(resource: Mapping[str, Any]) -> str:
    return (resource.get("metadata") or {}).get("name", "")


def _clear_creation_timestamp(resource: Resource) -> None:
    # A zero-value timestamp would cause superfluous updates.
    metadata = resource.get("metadata")
    if isinstance(metadata, dict):
        metadata.pop("creationTimestamp", None)


def _containers(resource: Mapping[str, Any]) -> list[dict[str, Any]]:
    spec = resource.get("spec") or {}
    template = spec.get("template") or {}
    pod_spec = template.get("spec") or {}
    return pod_spec.get("containers") or []


def _defines_broker_class(data: Mapping[str, str]) -> bool:
    value = data.get(BROKER_DEFAULTS_KEY)
    return value is not None and "brokerClass:" in value


def _parse_defaults(raw: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid broker defaults: {exc}") from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError("invalid broker defaults: expected a mapping")
    return parsed


def default_broker_config_map_transform(instance: KnativeEventing) -> Transformer:
    """Set the cluster default broker class in the broker defaults ConfigMap.

    Nothing changes when the instance's own config already names a broker class.
    """

    def transform(resource: Resource) -> None:
        if resource.get("kind") != "ConfigMap" or _name(resource) != DEFAULTS_CONFIG_NAME:
            return
        for key in ("br-defaults", "config-br-defaults"):
            data = instance.config.get(key)
            if data is not None and _defines_broker_class(data):
                return

        data = resource.get("data")
        if not isinstance(data, dict):
            data = {}
            resource["data"] = data
        defaults = _parse_defaults(data.get(BROKER_DEFAULTS_KEY, ""))

        cluster_default = defaults.get("clusterDefault")
        if not isinstance(cluster_default, dict):
            cluster_default = {}
        cluster_default["brokerClass"] = instance.default_broker_class or MT_CHANNEL_BROKER_CLASS
        defaults["clusterDefault"] = cluster_default

        data[BROKER_DEFAULTS_KEY] = yaml.safe_dump(
            defaults, default_flow_style=False, sort_keys=True
        )
        _clear_creation_timestamp(resource)
        logger.debug("Finished updating Broker defaults configMap %s", _name(resource))

    return transform


def replicas_env_vars_transform(client: ResourceGetter) -> Transformer:
    """Keep the live replica count and preserved env vars of the pingsource adapter."""

    def transform(resource: Resource) -> None:
        if resource.get("kind") != "Deployment" or _name(resource) != PINGSOURCE_ADAPTER_NAME:
            return
        try:
            current = client.get(resource)
        except NotFoundError:
            return

        spec = resource.setdefault("spec", {})
        current_spec = current.get("spec") or {}
        if current_spec.get("replicas") is None:
            spec.pop("replicas", None)
        else:
            spec["replicas"] = current_spec["replicas"]

        apply_by_name = {c.get("name"): c for c in reversed(_containers(resource))}
        for current_container in _containers(current):
            apply_container = apply_by_name.get(current_container.get("name"))
            if apply_container is None:
                continue
            merged = [
                copy.deepcopy(env)
                for env in current_container.get("env") or []
                if env.get("name") in PRESERVED_ENV_VAR_NAMES
            ]
            kept = {env.get("name") for env in merged}
            merged.extend(
                env for env in apply_container.get("env") or [] if env.get("name") not in kept
            )
            if merged:
                apply_container["env"] = merged
            else:
                apply_container.pop("env", None)

        _clear_creation_timestamp(resource)

    return transform


def sink_binding_selection_mode_transform(instance: KnativeEventing) -> Transformer:
    """Set the webhook's sink binding selection mode env var in every container."""

    def transform(resource: Resource) -> None:
        if resource.get("kind") != "Deployment" or _name(resource) != EVENTING_WEBHOOK_NAME:
            return
        mode = instance.sink_binding_selection_mode or DEFAULT_SINK_BINDING_SELECTION_MODE
        for container in _containers(resource):
            env = container.get("env")
            if env is None:
                env = []
                container["env"] = env
            match = next(
                (var for var in env if var.get("name") == SINK_BINDING_SELECTION_MODE_ENV_VAR_KEY),
                None,
            )
            if match is None:
                env.append({"name": SINK_BINDING_SELECTION_MODE_ENV_VAR_KEY, "value": mode})
            else:
                match["value"] = mode
        _clear_creation_timestamp(resource)
        logger.debug(
            "Finished updating eventing-webhook deployment for sinkBindingSelectionMode %s",
            _name(resource),
        )

    return transform