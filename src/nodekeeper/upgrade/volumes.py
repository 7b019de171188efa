# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/upgrade/volumes.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException

from nodekeeper.errors import ObjectStoreError

log = logging.getLogger("nodekeeper")

# Node.status.volumesAttached names for volumes mounted by the in-tree vSphere plugin
VSPHERE_IN_TREE_PREFIX = "kubernetes.io/vsphere-volume/"


@dataclass(frozen=True)
class VolumeStat:
    """A volume currently mounted by a pod on the node."""
    pvc_name: str
    namespace: str
    # set when the backing PV uses the in-tree vSphere driver
    in_tree_path: Optional[str] = None

    @property
    def attached_name(self) -> Optional[str]:
        if not self.in_tree_path:
            return None
        return VSPHERE_IN_TREE_PREFIX + self.in_tree_path


class VolumeStatsSource(Protocol):
    def volume_stats(self, node_name: str) -> List[VolumeStat]: ...


class KubeletVolumeStatsSource:
    """
    Reads the kubelet summary API through the API server proxy and resolves
    each mounted PVC to its PV to find in-tree volume paths.
    """

    def __init__(self, api: client.CoreV1Api):
        self.api = api

    def _summary(self, node_name: str) -> dict:
        try:
            resp = self.api.connect_get_node_proxy_with_path(
                node_name, "stats/summary", _preload_content=False
            )
        except ApiException as e:
            raise ObjectStoreError(
                f"error reading kubelet stats for node {node_name}: {e.status} {e.reason}"
            ) from e
        return json.loads(resp.data)

    def _in_tree_path(self, namespace: str, pvc_name: str) -> Optional[str]:
        try:
            pvc = self.api.read_namespaced_persistent_volume_claim(pvc_name, namespace)
            pv_name = pvc.spec.volume_name if pvc.spec else None
            if not pv_name:
                return None
            pv = self.api.read_persistent_volume(pv_name)
        except ApiException as e:
            if e.status == 404:
                return None
            raise ObjectStoreError(
                f"error resolving volume for PVC {namespace}/{pvc_name}: {e.status} {e.reason}"
            ) from e
        source = pv.spec.vsphere_volume if pv.spec else None
        return source.volume_path if source else None

    def volume_stats(self, node_name: str) -> List[VolumeStat]:
        summary = self._summary(node_name)
        seen: Dict[Tuple[str, str], VolumeStat] = {}
        for pod in summary.get("pods") or []:
            for vol in pod.get("volume") or []:
                ref = vol.get("pvcRef")
                if not ref:
                    continue
                key = (ref.get("namespace", ""), ref.get("name", ""))
                if key in seen:
                    continue
                seen[key] = VolumeStat(
                    pvc_name=key[1],
                    namespace=key[0],
                    in_tree_path=self._in_tree_path(*key),
                )
        log.debug("[volumes] node %s has %d mounted PVC(s)", node_name, len(seen))
        return list(seen.values())
