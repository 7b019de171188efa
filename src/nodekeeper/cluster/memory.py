# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/cluster/memory.py
from __future__ import annotations

import copy
import json
import threading
from typing import Dict, List, Optional, Tuple

from nodekeeper.cluster.models import NodeSnapshot
from nodekeeper.errors import ObjectStoreError

_FIELDS = ("annotations", "labels")


def _unescape(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def _split_path(path: str) -> Tuple[str, str]:
    parts = path.split("/")
    if len(parts) != 4 or parts[0] != "" or parts[1] != "metadata" or parts[2] not in _FIELDS:
        raise ObjectStoreError(f"unsupported patch path: {path}")
    return parts[2], _unescape(parts[3])


def _selector_matches(labels: Dict[str, str], selector: str) -> bool:
    for term in filter(None, (t.strip() for t in selector.split(","))):
        if "=" in term:
            key, value = term.split("=", 1)
            if labels.get(key.strip()) != value.strip():
                return False
        elif term not in labels:
            return False
    return True


class MemoryObjectStore:
    """
    In-process object store. Applies JSON patches with the same
    all-or-nothing semantics as the API server.
    """

    def __init__(self, nodes: Optional[List[NodeSnapshot]] = None):
        self._lock = threading.Lock()
        self._nodes: Dict[str, NodeSnapshot] = {n.name: n for n in (nodes or [])}
        self._config_maps: Dict[Tuple[str, str], Dict[str, str]] = {}
        self.patches: List[Tuple[str, str]] = []

    def add_node(self, node: NodeSnapshot) -> None:
        with self._lock:
            self._nodes[node.name] = node

    def set_config_map(self, namespace: str, name: str, data: Dict[str, str]) -> None:
        with self._lock:
            self._config_maps[(namespace, name)] = dict(data)

    def get_node(self, name: str) -> Optional[NodeSnapshot]:
        with self._lock:
            node = self._nodes.get(name)
            return copy.deepcopy(node) if node else None

    def list_nodes(self, label_selector: str = "") -> List[NodeSnapshot]:
        with self._lock:
            return [
                copy.deepcopy(n)
                for n in self._nodes.values()
                if _selector_matches(n.labels, label_selector)
            ]

    def patch_node(self, name: str, document: str) -> NodeSnapshot:
        try:
            ops = json.loads(document)
        except json.JSONDecodeError as exc:
            raise ObjectStoreError(f"patch for node {name} is not valid JSON: {exc}") from exc

        with self._lock:
            node = self._nodes.get(name)
            if node is None:
                raise ObjectStoreError(f"node {name} not found")

            # work on a copy so a failing op leaves the stored node untouched
            staged = copy.deepcopy(node)
            for op in ops:
                field, key = _split_path(op.get("path", ""))
                target = getattr(staged, field)
                if op.get("op") == "add":
                    target[key] = op.get("value", "")
                elif op.get("op") == "remove":
                    if key not in target:
                        raise ObjectStoreError(
                            f"cannot remove {field} {key!r} from node {name}: not present"
                        )
                    del target[key]
                else:
                    raise ObjectStoreError(f"unsupported patch operation: {op.get('op')}")

            self._nodes[name] = staged
            self.patches.append((name, document))
            return copy.deepcopy(staged)

    def get_config_map(self, namespace: str, name: str) -> Optional[Dict[str, str]]:
        with self._lock:
            data = self._config_maps.get((namespace, name))
            return dict(data) if data is not None else None
