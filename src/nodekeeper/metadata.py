# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/metadata.py
from __future__ import annotations

PREFIX = "nodekeeper.io"

# Controller version that last fully configured the host
VERSION_ANNOTATION = f"{PREFIX}/version"

# sha256 of the merged kubelet CA bundle last observed on the host
CA_HASH_ANNOTATION = f"{PREFIX}/kubelet-ca-hash"

# Set to "true" once the host has been configured for the CSI storage driver
CSI_CONFIGURED_LABEL = f"{PREFIX}/csi-configured"

# Presence lets an operator force an upgrade past the storage gate
ALLOW_UPGRADE_LABEL = f"{PREFIX}/allow-upgrade"

WINDOWS_NODE_SELECTOR = "kubernetes.io/os=windows"
