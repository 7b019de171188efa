# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str                 # ISO timestamp
    run_id: str             # correlates all events of one controller run
    context: Optional[str]  # kube-context

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(context: Optional[str] = None, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "run_id": run_id or str(uuid.uuid4()),
        "context": context,
    }


def stamp(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of *ctx* with a fresh timestamp."""
    return {**ctx, "ts": datetime.now(timezone.utc).isoformat(timespec="seconds")}


# ---------------------------------------------------------------------
# Instance lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class InstanceConfigured(BaseEvent):
    address: str
    node: Optional[str]
    version: str
    upgraded: bool

@dataclass(frozen=True)
class InstanceUpgradeBlocked(BaseEvent):
    address: str
    node: str
    reason: str

@dataclass(frozen=True)
class InstanceReconcileFailed(BaseEvent):
    address: str
    kind: str
    error: str


# ---------------------------------------------------------------------
# Kubelet CA bundle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BundleRotationDetected(BaseEvent):
    bundle_hash: str
    certificates: int

@dataclass(frozen=True)
class BundleInstalled(BaseEvent):
    address: str
    bundle_hash: str

@dataclass(frozen=True)
class BundleConvergenceFailed(BaseEvent):
    address: str
    error: str

@dataclass(frozen=True)
class BundleConverged(BaseEvent):
    bundle_hash: str
    hosts: List[str]
