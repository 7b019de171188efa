# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/upgrade/gate.py
"""
Switching a host from the in-tree vSphere driver to CSI while a pod still
holds an in-tree mount would orphan that mount. The gate holds the upgrade
until no in-tree volume is attached to the node.

Only the node being upgraded is inspected; in-tree volumes attached to
other nodes do not block it.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from nodekeeper.cluster.models import NodeSnapshot
from nodekeeper.errors import UpgradeBlockedError
from nodekeeper.metadata import ALLOW_UPGRADE_LABEL, CSI_CONFIGURED_LABEL
from nodekeeper.upgrade.volumes import VolumeStat

log = logging.getLogger("nodekeeper")


def attached_in_tree_volumes(node: NodeSnapshot, volume_stats: Iterable[VolumeStat]) -> List[VolumeStat]:
    attached = set(node.volumes_attached)
    return [v for v in volume_stats if v.attached_name and v.attached_name in attached]


def upgrade_blocked(node: NodeSnapshot, migrating_to_csi: bool, volume_stats: Iterable[VolumeStat]) -> bool:
    if ALLOW_UPGRADE_LABEL in node.labels:
        log.info("[upgrade] node %s carries %s, skipping volume check", node.name, ALLOW_UPGRADE_LABEL)
        return False
    # already migrated, re-running is safe
    if node.labels.get(CSI_CONFIGURED_LABEL) == "true":
        return False
    if not migrating_to_csi:
        return False
    return bool(attached_in_tree_volumes(node, volume_stats))


def ensure_upgrade_allowed(node: NodeSnapshot, migrating_to_csi: bool, volume_stats: Iterable[VolumeStat]) -> None:
    """Raise UpgradeBlockedError naming the in-tree PVCs that hold the upgrade."""
    volume_stats = list(volume_stats)
    if not upgrade_blocked(node, migrating_to_csi, volume_stats):
        return
    pvcs = ", ".join(
        f"{v.namespace}/{v.pvc_name}" for v in attached_in_tree_volumes(node, volume_stats)
    )
    raise UpgradeBlockedError(
        node.name,
        f"in-tree volumes still attached ({pvcs}); drain them before migrating to CSI",
    )
