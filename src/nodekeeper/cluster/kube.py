# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/cluster/kube.py
from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from nodekeeper.cluster.models import NodeAddress, NodeSnapshot
from nodekeeper.errors import ObjectStoreError

log = logging.getLogger("nodekeeper")


def load_core_api(kube_context: Optional[str] = None, in_cluster: bool = False) -> client.CoreV1Api:
    """
    Build a CoreV1Api from the in-cluster service account or a kubeconfig.

    Args:
        kube_context: optional kube context to load
        in_cluster: use the pod's service account instead of ~/.kube/config
    """
    if in_cluster:
        config.load_incluster_config()
    elif kube_context:
        config.load_kube_config(context=kube_context)
    else:
        config.load_kube_config()
    return client.CoreV1Api()


def node_snapshot(node: client.V1Node) -> NodeSnapshot:
    meta = node.metadata
    status = node.status
    return NodeSnapshot(
        name=meta.name,
        annotations=dict(meta.annotations or {}),
        labels=dict(meta.labels or {}),
        addresses=[
            NodeAddress(type=a.type, address=a.address)
            for a in ((status.addresses if status else None) or [])
        ],
        volumes_attached=[
            v.name for v in ((status.volumes_attached if status else None) or [])
        ],
    )


class KubeObjectStore:
    def __init__(self, api: client.CoreV1Api):
        self.api = api

    def get_node(self, name: str) -> Optional[NodeSnapshot]:
        try:
            return node_snapshot(self.api.read_node(name))
        except ApiException as e:
            if e.status == 404:
                return None
            raise ObjectStoreError(f"error reading node {name}: {e.status} {e.reason}") from e

    def list_nodes(self, label_selector: str = "") -> List[NodeSnapshot]:
        try:
            resp = self.api.list_node(label_selector=label_selector)
        except ApiException as e:
            raise ObjectStoreError(
                f"error listing nodes ({label_selector or 'all'}): {e.status} {e.reason}"
            ) from e
        return [node_snapshot(n) for n in resp.items]

    def patch_node(self, name: str, document: str) -> NodeSnapshot:
        # a list body is sent as application/json-patch+json
        body = json.loads(document)
        try:
            patched = self.api.patch_node(name, body)
        except ApiException as e:
            raise ObjectStoreError(
                f"error patching node {name}: {e.status} {e.reason} {e.body or ''}".strip()
            ) from e
        log.debug("[kube] patched node %s: %s", name, document)
        return node_snapshot(patched)

    def get_config_map(self, namespace: str, name: str) -> Optional[Dict[str, str]]:
        try:
            cm = self.api.read_namespaced_config_map(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise ObjectStoreError(
                f"error reading config map {namespace}/{name}: {e.status} {e.reason}"
            ) from e
        return dict(cm.data or {})
