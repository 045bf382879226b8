# knoperator

Building blocks for preparing Knative Serving and Eventing manifests.
Resources are plain dictionaries shaped like Kubernetes objects
(`apiVersion`, `kind`, `metadata`, `spec`, ...).

- A **transformer** is a callable that takes one resource and changes it in
  place. A transformer only touches the resources it is meant for and leaves
  every other resource alone.
- A **filter** is a predicate that tells whether a resource stays in a
  manifest.
- A **stage** is a step run over a whole manifest.

## Installing

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `knoperator.unstructured`

- `namespaced_resource(api_version, kind, ns, name)` builds a resource dict;
  empty values are left out.
- `cluster_scoped_resource(api_version, kind, name)` does the same without a
  namespace.
- `labels_of(resource)` returns a copy of the resource's labels (empty when
  there are none).
- `NotFoundError` is what a client raises when a resource does not exist in
  the cluster.

### `knoperator.stages`

- `Stages` is a list of stages. `Stages.execute(manifest, instance)` calls
  each stage as `stage(manifest, instance)` in order. A stage that returns a
  value hands that value on as the manifest for the next stage; returning
  `None` keeps the manifest as it was. An exception raised by a stage stops
  the sequence and propagates. `execute` returns the final manifest.
- `no_op(manifest, instance)` returns the manifest unchanged.

### `knoperator.eventing`

`KnativeEventing` is a dataclass with `name`, `namespace`,
`default_broker_class`, `sink_binding_selection_mode` and `config` (a mapping
of ConfigMap name to its data).

- `default_broker_config_map_transform(instance)` acts on the ConfigMap
  `config-br-defaults`. It sets `clusterDefault.brokerClass` inside the
  `default-br-config` YAML to `instance.default_broker_class`, or to
  `MTChannelBasedBroker` when that is empty, and writes the YAML back with
  sorted keys. It changes nothing when the instance's `br-defaults` or
  `config-br-defaults` config already contains `brokerClass:` in its
  `default-br-config`. Invalid YAML raises `ValueError`.
- `sink_binding_selection_mode_transform(instance)` acts on the Deployment
  `eventing-webhook` and sets `SINK_BINDING_SELECTION_MODE` in every container
  to the instance's mode, `exclusion` by default, adding the variable where it
  is missing.
- `replicas_env_vars_transform(client)` acts on the Deployment
  `pingsource-mt-adapter`. It asks `client.get(resource)` for the live copy;
  if that raises `NotFoundError` the resource is left as is. Otherwise it
  takes the live replica count and, for each container present in both,
  keeps the live values of `SYSTEM_NAMESPACE`, `K_METRICS_CONFIG`,
  `K_LOGGING_CONFIG`, `K_LEADER_ELECTION_CONFIG`, `K_NO_SHUTDOWN_AFTER` and
  `K_SINK_TIMEOUT`, followed by the remaining variables of the resource being
  applied.

### `knoperator.serving`

Dataclasses `KnativeServing` (`name`, `namespace`, `version`, `config`,
`ingress`), `IngressConfigs` (`istio`, `kourier`, `contour`), `IstioIngress`
(`enabled`, `knative_ingress_gateway`, `knative_local_gateway`),
`KourierIngress` (`enabled`, `service_type`), `ContourIngress` (`enabled`)
and `GatewayOverride` (`selector`, `servers`).

- `aggregation_rule_transform(client)` acts on ClusterRoles that have an
  `aggregationRule`: it copies the `rules` of the live copy into the resource.
  A missing live copy (`NotFoundError`) or live copy without `rules` leaves the
  resource alone; `rules` that are not a list raise `ValueError`.
- `ingress_service_transform(instance)` acts on the `v1` Service
  `knative-local-gateway`: it moves it to `istio-system`, drops its owner
  references, then applies `update_namespace` with the instance's `istio` and
  `config-istio` config, the latter winning.
- `update_namespace(resource, data, ns)` reads the key
  `local-gateway.<ns>.knative-local-gateway` from `data`; for a value such as
  `knative-local-gateway.<istio-namespace>.svc.cluster.local` it sets the
  resource's namespace to the second dotted field.

### `knoperator.ingress`

Resources belonging to an ingress carry the label
`networking.knative.dev/ingress-provider` (`PROVIDER_LABEL`).

- `ingress_filter(name)` keeps unlabelled resources and those labelled `name`.
- `none_filter(resource)` keeps only unlabelled resources.
- `has_provider_label(resource)` tells whether the label is present.
- `filters(instance)` returns the filter for the enabled ingresses: Istio
  when `instance.ingress` is `None`, `none_filter` when none is enabled,
  otherwise a resource stays if any enabled ingress keeps it.
- `transformers(instance)` returns the transformers of the enabled ingresses,
  the Istio ones when `instance.ingress` is `None`.
- `istio_transformers(instance)` returns `[gateway_transform(instance)]`.
  `gateway_transform` replaces the `selector` and `servers` of the
  `networking.istio.io/v1alpha3` Gateways `knative-ingress-gateway` (from
  `knative_ingress_gateway`) and `knative-local-gateway` /
  `cluster-local-gateway` (from `knative_local_gateway`) where the override
  gives non-empty values.
- `kourier_transformers(instance)` returns `replace_gw_namespace()` and
  `configure_gw_service_type(instance)`. Both act only on labelled resources:
  the first sets `KOURIER_GATEWAY_NAMESPACE` in the `3scale-kourier-control`
  and `net-kourier-controller` Deployments to the Deployment's own namespace;
  the second sets the type of the Service `kourier` to `ClusterIP`,
  `NodePort` or `LoadBalancer`, does nothing when no type is configured, and
  raises `ValueError` for `ExternalName` (unsupported) or any other value
  (unknown).
- `contour_transformers(instance)` returns an empty list.

## Example

```python
from knoperator.ingress import filters, transformers
from knoperator.serving import IngressConfigs, KnativeServing, KourierIngress

serving = KnativeServing(
    namespace="knative-serving",
    ingress=IngressConfigs(kourier=KourierIngress(enabled=True, service_type="ClusterIP")),
)

keep = filters(serving)
resources = [r for r in resources if keep(r)]
for transform in transformers(serving):
    for resource in resources:
        transform(resource)
```

A client passed to `replicas_env_vars_transform` or
`aggregation_rule_transform` needs one method, `get(resource)`, which returns
the live copy of the resource or raises `NotFoundError`.

## What this package does not do

It does not talk to a cluster, read manifests from files or URLs, apply or
delete resources, or run a controller loop. It ships no stages that load
target or installed manifests, and no common transformers such as namespace
or owner injection; the caller supplies the resources, the client and the
stages, and this package only filters and reshapes them.