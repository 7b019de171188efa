# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/instances/discovery.py
from __future__ import annotations

import logging
from typing import Iterable, List, Tuple

from nodekeeper.cluster.addresses import node_address
from nodekeeper.cluster.models import NodeSnapshot
from nodekeeper.config.models import NodekeeperConfig
from nodekeeper.errors import InputError
from nodekeeper.instances.models import InstanceRecord

log = logging.getLogger("nodekeeper")


def instances_from_config(cfg: NodekeeperConfig, nodes: Iterable[NodeSnapshot]) -> List[InstanceRecord]:
    """
    One record per configured host, attached to the Node that reports the
    host's address (if it has joined yet).
    """
    nodes = list(nodes)
    records = []
    for spec in cfg.instances:
        node = next((n for n in nodes if n.has_address(spec.address)), None)
        records.append(
            InstanceRecord(
                address=spec.address,
                username=cfg.username_for(spec),
                desired_hostname=spec.hostname,
                node=node,
            )
        )
    return records


def unmanaged_nodes(cfg: NodekeeperConfig, nodes: Iterable[NodeSnapshot]) -> List[Tuple[NodeSnapshot, str]]:
    """
    Nodes matched by the selector that no configured host accounts for,
    paired with the address they would be reached on.
    """
    configured = {spec.address for spec in cfg.instances}
    found = []
    for node in nodes:
        if any(node.has_address(a) for a in configured):
            continue
        try:
            found.append((node, node_address(node.addresses)))
        except InputError as exc:
            log.warning("[discovery] node %s has no reachable address: %s", node.name, exc)
    return found
