# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/cluster/addresses.py
from __future__ import annotations

import ipaddress
from typing import Iterable

from nodekeeper.cluster.models import INTERNAL_DNS, INTERNAL_IP, NodeAddress
from nodekeeper.errors import InputError


def _is_ipv4(value: str) -> bool:
    try:
        return isinstance(ipaddress.ip_address(value), ipaddress.IPv4Address)
    except ValueError:
        return False


def node_address(addresses: Iterable[NodeAddress]) -> str:
    """
    Pick the address used to SSH into a Node: an internal DNS name or an
    internal IPv4 address. IPv6 is not supported by the host images.
    """
    for addr in addresses:
        if not addr.address:
            continue
        if addr.type == INTERNAL_DNS:
            return addr.address
        if addr.type == INTERNAL_IP and _is_ipv4(addr.address):
            return addr.address
    raise InputError("no usable internal DNS name or IPv4 address")
