import copy

import pytest
import yaml

from knoperator.eventing import (
    KnativeEventing,
    default_broker_config_map_transform,
    replicas_env_vars_transform,
    sink_binding_selection_mode_transform,
)
from knoperator.unstructured import NotFoundError

IMAGE = "example.invalid/eventing/cmd/mtping:latest"

CLUSTER_DEFAULT = {
    "brokerClass": "Foo",
    "apiVersion": "v1",
    "kind": "ConfigMap",
    "name": "config-br-default-channel",
    "namespace": "knative-eventing",
}


def make_config_map(name, data):
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name},
        "data": {"default-br-config": yaml.safe_dump(data)},
    }


def with_class(broker_class):
    return {"clusterDefault": {**CLUSTER_DEFAULT, "brokerClass": broker_class}}


SPEC_WITH_CLASS = (
    "|\nclusterDefault:\nbrokerClass: MyCustomerBroker\napiVersion: v1\nkind: ConfigMap\n"
    "name: config-br-default-channel\nnamespace: knative-eventing"
)
SPEC_WITHOUT_CLASS = (
    "|\nclusterDefault:\napiVersion: v1\nkind: ConfigMap\n"
    "name: config-br-default-channel\nnamespace: knative-eventing"
)


@pytest.mark.parametrize(
    "cm_name, instance, expected",
    [
        ("config-br-defaults", KnativeEventing(default_broker_class=""), with_class("MTChannelBasedBroker")),
        (
            "config-br-defaults",
            KnativeEventing(default_broker_class="MyCustomerBroker"),
            with_class("MyCustomerBroker"),
        ),
        (
            "some-other-config-map-foo-bar-baz",
            KnativeEventing(default_broker_class="MyCustomerBroker"),
            with_class("Foo"),
        ),
        (
            "config-br-defaults",
            KnativeEventing(
                default_broker_class="MyCustomerBroker",
                config={"br-defaults": {"default-br-config": SPEC_WITH_CLASS}},
            ),
            with_class("Foo"),
        ),
        (
            "config-br-defaults",
            KnativeEventing(
                default_broker_class="MyCustomerBroker",
                config={"br-defaults": {"default-br-config": SPEC_WITHOUT_CLASS}},
            ),
            with_class("MyCustomerBroker"),
        ),
    ],
    ids=[
        "UsesDefaultWhenNotSpecified",
        "UsesTheSpecifiedValueWhenSpecified",
        "DoesNotTouchOtherConfigMaps",
        "DefaultBrokerClassWithSpecConfig",
        "DefaultBrokerClassWithSpecConfigNoBrokerClass",
    ],
)
def test_default_broker_transform(cm_name, instance, expected):
    resource = make_config_map(cm_name, with_class("Foo"))
    default_broker_config_map_transform(instance)(resource)
    assert yaml.safe_load(resource["data"]["default-br-config"]) == expected


def test_default_broker_config_istio_prefixed_key_is_honoured():
    resource = make_config_map("config-br-defaults", with_class("Foo"))
    original = copy.deepcopy(resource)
    instance = KnativeEventing(
        default_broker_class="Other",
        config={"config-br-defaults": {"default-br-config": SPEC_WITH_CLASS}},
    )
    default_broker_config_map_transform(instance)(resource)
    assert resource == original


def test_default_broker_clears_creation_timestamp():
    resource = make_config_map("config-br-defaults", with_class("Foo"))
    resource["metadata"]["creationTimestamp"] = None
    default_broker_config_map_transform(KnativeEventing())(resource)
    assert "creationTimestamp" not in resource["metadata"]


def test_default_broker_invalid_yaml_raises():
    resource = {
        "kind": "ConfigMap",
        "metadata": {"name": "config-br-defaults"},
        "data": {"default-br-config": "clusterDefault: ["},
    }
    with pytest.raises(ValueError):
        default_broker_config_map_transform(KnativeEventing())(resource)


def test_default_broker_missing_data_creates_defaults():
    resource = {"kind": "ConfigMap", "metadata": {"name": "config-br-defaults"}}
    default_broker_config_map_transform(KnativeEventing())(resource)
    assert yaml.safe_load(resource["data"]["default-br-config"]) == {
        "clusterDefault": {"brokerClass": "MTChannelBasedBroker"}
    }


class MockGetter:
    def __init__(self, existing):
        self.existing = existing

    def get(self, resource):
        if self.existing is None:
            raise NotFoundError("not found")
        return self.existing


def ns_env(api_version="v1"):
    return {
        "name": "SYSTEM_NAMESPACE",
        "valueFrom": {"fieldRef": {"apiVersion": api_version, "fieldPath": "metadata.namespace"}},
    }


def env(name, value):
    return {"name": name, "value": value}


def container(name, envs):
    return {"name": name, "image": IMAGE, "env": envs}


def adapter(replicas, containers):
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "pingsource-mt-adapter", "namespace": "knative-eventing"},
        "spec": {"replicas": replicas, "template": {"spec": {"containers": containers}}},
    }


REPLICA_CASES = [
    (
        "same containers, different env vars and replicas",
        adapter(0, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", ""), env("K_LOGGING_CONFIG", ""),
                                             env("K_LOGGING_CONFIG_1", "overwrite")])]),
        adapter(1, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", "old"), env("K_LOGGING_CONFIG", "old"),
                                             env("K_LOGGING_CONFIG_1", "old")])]),
        adapter(1, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", "old"), env("K_LOGGING_CONFIG", "old"),
                                             env("K_LOGGING_CONFIG_1", "overwrite")])]),
    ),
    (
        "existing has less containers",
        adapter(0, [
            container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", ""), env("K_LOGGING_CONFIG", "")]),
            container("dispatcher1", [ns_env(), env("K_METRICS_CONFIG", ""), env("K_LOGGING_CONFIG", "")]),
        ]),
        adapter(1, [
            container("dispatcher", [ns_env("v2"), env("K_METRICS_CONFIG", "test1"), env("K_LOGGING_CONFIG", "test2")]),
        ]),
        adapter(1, [
            container("dispatcher", [ns_env("v2"), env("K_METRICS_CONFIG", "test1"), env("K_LOGGING_CONFIG", "test2")]),
            container("dispatcher1", [ns_env(), env("K_METRICS_CONFIG", ""), env("K_LOGGING_CONFIG", "")]),
        ]),
    ),
    (
        "existing has more containers",
        adapter(0, [
            container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", ""), env("K_LOGGING_CONFIG", "")]),
        ]),
        adapter(1, [
            container("dispatcher1", [ns_env("v2"), env("K_METRICS_CONFIG", "test1"), env("K_LOGGING_CONFIG", "test2")]),
            container("dispatcher", [ns_env("v2"), env("K_METRICS_CONFIG", "test1"), env("K_LOGGING_CONFIG", "test2")]),
        ]),
        adapter(1, [
            container("dispatcher", [ns_env("v2"), env("K_METRICS_CONFIG", "test1"), env("K_LOGGING_CONFIG", "test2")]),
        ]),
    ),
    (
        "same containers, less env vars",
        adapter(0, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", ""),
                                             env("K_LOGGING_CONFIG", "new-env-var")])]),
        adapter(1, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", "test1")])]),
        adapter(1, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", "test1"),
                                             env("K_LOGGING_CONFIG", "new-env-var")])]),
    ),
    (
        "same containers, more env vars",
        adapter(0, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", "")])]),
        adapter(1, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", "test1"),
                                             env("K_LOGGING_CONFIG", "existing-env-var")])]),
        adapter(1, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", "test1"),
                                             env("K_LOGGING_CONFIG", "existing-env-var")])]),
    ),
    (
        "needs to delete env var",
        adapter(0, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", ""), env("K_LOGGING_CONFIG", "")])]),
        adapter(1, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", "old"), env("K_LOGGING_CONFIG", "old"),
                                             env("K_LOGGING_CONFIG_1", "old")])]),
        adapter(1, [container("dispatcher", [ns_env(), env("K_METRICS_CONFIG", "old"), env("K_LOGGING_CONFIG", "old")])]),
    ),
]


@pytest.mark.parametrize(
    "given, existing, expected", [c[1:] for c in REPLICA_CASES], ids=[c[0] for c in REPLICA_CASES]
)
def test_pingsource_adapter_transform(given, existing, expected):
    replicas_env_vars_transform(MockGetter(existing))(given)
    assert given == expected


def test_pingsource_adapter_not_in_cluster_is_untouched():
    given = adapter(0, [container("dispatcher", [env("K_METRICS_CONFIG", "")])])
    original = copy.deepcopy(given)
    replicas_env_vars_transform(MockGetter(None))(given)
    assert given == original


def test_other_deployment_is_untouched():
    given = adapter(0, [container("dispatcher", [env("K_METRICS_CONFIG", "")])])
    given["metadata"]["name"] = "something-else"
    original = copy.deepcopy(given)
    existing = adapter(5, [container("dispatcher", [env("K_METRICS_CONFIG", "old")])])
    replicas_env_vars_transform(MockGetter(existing))(given)
    assert given == original


def make_deployment(name, containers):
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name},
        "spec": {"template": {"spec": {"containers": containers}}},
    }


MODE = "SINK_BINDING_SELECTION_MODE"


@pytest.mark.parametrize(
    "name, containers, mode, expected_containers",
    [
        ("eventing-webhook", [{"name": "foo", "env": [env(MODE, "toBeOverridden")]}], "",
         [{"name": "foo", "env": [env(MODE, "exclusion")]}]),
        ("eventing-webhook", [{"name": "foo", "env": [env(MODE, "toBeOverridden")]}], "inclusion",
         [{"name": "foo", "env": [env(MODE, "inclusion")]}]),
        ("some-other-webhook", [{"name": "foo", "env": [env(MODE, "notToBeOverridden")]}], "inclusion",
         [{"name": "foo", "env": [env(MODE, "notToBeOverridden")]}]),
        ("eventing-webhook", [{"name": "foo", "env": []}], "inclusion",
         [{"name": "foo", "env": [env(MODE, "inclusion")]}]),
        ("eventing-webhook", [{"name": "container1", "env": []}, {"name": "container2", "env": []}], "inclusion",
         [{"name": "container1", "env": [env(MODE, "inclusion")]},
          {"name": "container2", "env": [env(MODE, "inclusion")]}]),
    ],
    ids=[
        "UsesDefaultWhenNotSpecified",
        "UsesTheSpecifiedValueWhenSpecified",
        "DoesNotTouchOtherDeployments",
        "CreatesTheEnvVarIfMissing",
        "UpdatesAllContainers",
    ],
)
def test_sink_binding_selection_mode_transform(name, containers, mode, expected_containers):
    resource = make_deployment(name, containers)
    instance = KnativeEventing(sink_binding_selection_mode=mode)
    sink_binding_selection_mode_transform(instance)(resource)
    assert resource["spec"] == make_deployment(name, expected_containers)["spec"]


def test_sink_binding_creates_env_when_absent():
    resource = make_deployment("eventing-webhook", [{"name": "foo"}])
    sink_binding_selection_mode_transform(KnativeEventing())(resource)
    assert resource["spec"]["template"]["spec"]["containers"][0]["env"] == [env(MODE, "exclusion")]