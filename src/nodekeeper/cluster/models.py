# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/cluster/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

INTERNAL_IP = "InternalIP"
INTERNAL_DNS = "InternalDNS"
EXTERNAL_IP = "ExternalIP"
HOSTNAME = "Hostname"


@dataclass(frozen=True)
class NodeAddress:
    type: str
    address: str


@dataclass
class NodeSnapshot:
    """
    Read-only copy of the Node fields the controller looks at.
    The object store owns the real Node; this is refreshed every pass.
    """
    name: str
    annotations: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    addresses: List[NodeAddress] = field(default_factory=list)
    # status.volumesAttached[*].name, e.g. "kubernetes.io/vsphere-volume/[ds] vols/x.vmdk"
    volumes_attached: List[str] = field(default_factory=list)

    def annotation(self, key: str) -> Optional[str]:
        return self.annotations.get(key)

    def has_address(self, address: str) -> bool:
        return any(a.address == address for a in self.addresses)
