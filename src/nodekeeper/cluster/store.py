# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/cluster/store.py
from __future__ import annotations

from typing import Dict, List, Optional, Protocol

from nodekeeper.cluster.models import NodeSnapshot


class ObjectStore(Protocol):
    """
    The slice of the cluster API the controller needs. Patches are applied
    atomically: either every operation in the document lands or none do.
    """

    def get_node(self, name: str) -> Optional[NodeSnapshot]: ...

    def list_nodes(self, label_selector: str = "") -> List[NodeSnapshot]: ...

    def patch_node(self, name: str, document: str) -> NodeSnapshot: ...

    def get_config_map(self, namespace: str, name: str) -> Optional[Dict[str, str]]: ...


def find_node_by_address(
    store: ObjectStore, address: str, label_selector: str = ""
) -> Optional[NodeSnapshot]:
    for node in store.list_nodes(label_selector):
        if node.has_address(address):
            return node
    return None
