"""Helpers for working with unstructured Kubernetes resources held as plain dicts."""

from __future__ import annotations

from typing import Any, Mapping

Resource = dict[str, Any]


class NotFoundError(LookupError):
    """Raised when a requested resource does not exist in the cluster."""


def _set_field(target: dict[str, Any], key: str, value: str) -> None:
    # An empty value removes the field, as unstructured setters do.
    if value:
        target[key] = value
    else:
        target.pop(key, None)


def namespaced_resource(api_version: str, kind: str, ns: str, name: str) -> Resource:
    """Return an unstructured resource with the given apiVersion, kind, namespace and name."""
    resource: Resource = {}
    _set_field(resource, "apiVersion", api_version)
    _set_field(resource, "kind", kind)
    metadata: dict[str, Any] = {}
    _set_field(metadata, "namespace", ns)
    _set_field(metadata, "name", name)
    if metadata:
        resource["metadata"] = metadata
    return resource


def cluster_scoped_resource(api_version: str, kind: str, name: str) -> Resource:
    """Return an unstructured resource with the given apiVersion, kind and name."""
    return namespaced_resource(api_version, kind, "", name)


def labels_of(resource: Mapping[str, Any]) -> dict[str, str]:
    """Return a copy of the resource's labels, empty when it has none."""
    metadata = resource.get("metadata") or {}
    labels = metadata.get("labels") or {}
    return dict(labels)