# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/instances/state.py
"""
Lifecycle state is derived from the Node and its version annotation on
every pass and never stored.
"""

from __future__ import annotations

from typing import Optional

from nodekeeper import version as _version
from nodekeeper.instances.models import InstanceRecord, LifecycleState
from nodekeeper.metadata import VERSION_ANNOTATION


def lifecycle_state(record: InstanceRecord, version: Optional[str] = None) -> LifecycleState:
    current = version if version is not None else _version.get()
    if record.node is None:
        return LifecycleState.NOT_JOINED
    configured_by = record.node.annotations.get(VERSION_ANNOTATION)
    if configured_by is None:
        # Node exists but configuration never completed
        return LifecycleState.PARTIALLY_CONFIGURED
    if configured_by == current:
        return LifecycleState.UP_TO_DATE
    return LifecycleState.UPGRADE_REQUIRED


def is_up_to_date(record: InstanceRecord, version: Optional[str] = None) -> bool:
    return lifecycle_state(record, version) is LifecycleState.UP_TO_DATE


def needs_upgrade(record: InstanceRecord, version: Optional[str] = None) -> bool:
    """
    True only for a joined host configured by another controller version.
    A missing Node or missing annotation takes the first-time configuration path.
    """
    return lifecycle_state(record, version) is LifecycleState.UPGRADE_REQUIRED


def needs_configuration(record: InstanceRecord, version: Optional[str] = None) -> bool:
    return lifecycle_state(record, version) in (
        LifecycleState.NOT_JOINED,
        LifecycleState.PARTIALLY_CONFIGURED,
    )
