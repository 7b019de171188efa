import json
from types import SimpleNamespace as NS

import pytest
from kubernetes.client.rest import ApiException

from nodekeeper.cluster.kube import KubeObjectStore, node_snapshot
from nodekeeper.cluster.models import INTERNAL_IP, NodeAddress
from nodekeeper.cluster.patch import build_add_patch
from nodekeeper.errors import ObjectStoreError


def v1_node(name="win-a", annotations=None, labels=None):
    return NS(
        metadata=NS(name=name, annotations=annotations, labels=labels),
        status=NS(
            addresses=[NS(type=INTERNAL_IP, address="10.0.0.5")],
            volumes_attached=[NS(name="kubernetes.io/vsphere-volume/[ds1] a.vmdk", device_path="")],
        ),
    )


class FakeCoreV1:
    def __init__(self):
        self.calls = []
        self.nodes = {"win-a": v1_node(annotations={"a": "1"})}
        self.fail = None

    def read_node(self, name):
        self.calls.append(("read_node", name))
        if name not in self.nodes:
            raise ApiException(status=404, reason="Not Found")
        return self.nodes[name]

    def list_node(self, label_selector=""):
        self.calls.append(("list_node", label_selector))
        if self.fail:
            raise self.fail
        return NS(items=list(self.nodes.values()))

    def patch_node(self, name, body):
        self.calls.append(("patch_node", name, body))
        if self.fail:
            raise self.fail
        node = self.nodes[name]
        for op in body:
            node.metadata.annotations[op["path"].rsplit("/", 1)[1]] = op["value"]
        return node

    def read_namespaced_config_map(self, name, namespace):
        self.calls.append(("read_cm", namespace, name))
        if name != "ca":
            raise ApiException(status=404, reason="Not Found")
        return NS(data={"ca-bundle.crt": "PEM"})


def test_node_snapshot_copies_fields():
    snap = node_snapshot(v1_node(annotations=None, labels={"kubernetes.io/os": "windows"}))
    assert snap.name == "win-a"
    assert snap.annotations == {}
    assert snap.addresses == [NodeAddress(INTERNAL_IP, "10.0.0.5")]
    assert snap.volumes_attached == ["kubernetes.io/vsphere-volume/[ds1] a.vmdk"]


def test_node_snapshot_without_status():
    snap = node_snapshot(NS(metadata=NS(name="n", annotations=None, labels=None), status=None))
    assert snap.addresses == [] and snap.volumes_attached == []


def test_get_node_missing_is_none():
    store = KubeObjectStore(FakeCoreV1())
    assert store.get_node("nope") is None
    assert store.get_node("win-a").annotations == {"a": "1"}


def test_patch_node_sends_a_json_patch_list():
    api = FakeCoreV1()
    node = KubeObjectStore(api).patch_node("win-a", build_add_patch({"b": "2"}))

    _, name, body = api.calls[-1]
    assert name == "win-a"
    assert isinstance(body, list)
    assert body == json.loads(build_add_patch({"b": "2"}))
    assert node.annotations == {"a": "1", "b": "2"}


def test_api_errors_become_object_store_errors():
    api = FakeCoreV1()
    api.fail = ApiException(status=422, reason="Unprocessable Entity")
    store = KubeObjectStore(api)

    with pytest.raises(ObjectStoreError):
        store.patch_node("win-a", build_add_patch({"b": "2"}))
    with pytest.raises(ObjectStoreError):
        store.list_nodes("kubernetes.io/os=windows")


def test_get_config_map():
    store = KubeObjectStore(FakeCoreV1())
    assert store.get_config_map("ns", "ca") == {"ca-bundle.crt": "PEM"}
    assert store.get_config_map("ns", "other") is None
