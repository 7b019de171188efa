# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/instances/models.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from nodekeeper.cluster.models import NodeSnapshot


class LifecycleState(str, enum.Enum):
    NOT_JOINED = "NotJoined"
    PARTIALLY_CONFIGURED = "PartiallyConfigured"
    UP_TO_DATE = "UpToDate"
    UPGRADE_REQUIRED = "UpgradeRequired"


@dataclass
class InstanceRecord:
    """
    A host that is meant to be joined to the cluster.
    """
    address: str                          # IP or DNS used for SSH
    username: str                         # SSH user
    desired_hostname: str = ""            # empty: leave the hostname alone
    node_name: Optional[str] = None       # lookup key of the Node, once joined
    node: Optional[NodeSnapshot] = None   # snapshot for this pass; None means not joined

    def __post_init__(self):
        if self.node is not None and self.node_name is None:
            self.node_name = self.node.name

    @property
    def name(self) -> str:
        return self.node_name or self.address
