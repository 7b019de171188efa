# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/controller/reconciler.py
from __future__ import annotations

import dataclasses
import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from nodekeeper import version as _version
from nodekeeper.cluster.models import NodeSnapshot
from nodekeeper.cluster.patch import LABELS, build_add_patch, build_remove_patch
from nodekeeper.cluster.store import ObjectStore, find_node_by_address
from nodekeeper.controller.configurer import NodeConfigurer
from nodekeeper.errors import (
    ConnectTimeout,
    NodeRegistrationTimeout,
    NodekeeperError,
    ObjectStoreError,
    ReconcileCancelled,
    RemoteExecutionError,
    TransientConnectivityError,
    UpgradeBlockedError,
)
from nodekeeper.instances.models import InstanceRecord, LifecycleState
from nodekeeper.instances.state import lifecycle_state
from nodekeeper.metadata import CSI_CONFIGURED_LABEL, VERSION_ANNOTATION, WINDOWS_NODE_SELECTOR
from nodekeeper.observers.dispatcher import EventBus
from nodekeeper.observers.events import (
    InstanceConfigured,
    InstanceReconcileFailed,
    InstanceUpgradeBlocked,
    new_ctx,
    stamp,
)
from nodekeeper.remote.transport import Session, Transport
from nodekeeper.upgrade.gate import ensure_upgrade_allowed
from nodekeeper.upgrade.volumes import VolumeStatsSource
from nodekeeper.utils.retry import DEFAULT_POLL, SINGLE_ATTEMPT, PollSettings, PollTimeout, poll

log = logging.getLogger("nodekeeper")


class Outcome(str, enum.Enum):
    CONFIGURED = "Configured"
    UP_TO_DATE = "UpToDate"
    UPGRADE_BLOCKED = "UpgradeBlocked"
    FAILED = "Failed"


@dataclass
class ReconcileResult:
    outcome: Outcome
    instance: InstanceRecord
    state: LifecycleState
    error: Optional[BaseException] = None

    @property
    def kind(self) -> Optional[str]:
        """Error class name for FAILED results, e.g. "AuthenticationError"."""
        return type(self.error).__name__ if self.error is not None else None


class InstanceReconciler:
    """
    Brings one host in line with the running controller version per call.

    The scheduler guarantees at most one pass per instance at a time, so
    nothing here locks per-instance state. Distinct instances may be
    reconciled from different threads.
    """

    def __init__(
        self,
        *,
        store: ObjectStore,
        transport: Transport,
        credential: Any,
        configurer: NodeConfigurer,
        volumes: VolumeStatsSource,
        migrate_to_csi: bool = False,
        version: Optional[str] = None,
        node_selector: str = WINDOWS_NODE_SELECTOR,
        poll_settings: PollSettings = DEFAULT_POLL,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict[str, Any]] = None,
    ):
        self.store = store
        self.transport = transport
        self.credential = credential
        self.configurer = configurer
        self.volumes = volumes
        self.migrate_to_csi = migrate_to_csi
        self.version = version or _version.get()
        self.node_selector = node_selector
        self.poll_settings = poll_settings
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx()

    # ------------------ helpers ------------------

    def _resolve(self, record: InstanceRecord) -> InstanceRecord:
        if record.node is not None or not record.node_name:
            return record
        return dataclasses.replace(record, node=self.store.get_node(record.node_name))

    def _check_upgrade_gate(self, node: NodeSnapshot) -> None:
        stats = self.volumes.volume_stats(node.name) if self.migrate_to_csi else []
        ensure_upgrade_allowed(node, self.migrate_to_csi, stats)

    def _connect(
        self,
        record: InstanceRecord,
        cancel: Optional[threading.Event],
        poll_settings: Optional[PollSettings] = None,
    ) -> Session:
        return self.transport.connect(
            record.address, record.username, self.credential,
            cancel=cancel, poll_settings=poll_settings,
        )

    def _reconnect_after_rename(self, record: InstanceRecord, cancel: Optional[threading.Event]) -> Session:
        desired = record.desired_hostname.lower()

        def _renamed() -> Optional[Session]:
            session = self._connect(record, cancel, SINGLE_ATTEMPT)
            try:
                current = self.configurer.current_hostname(session)
            except BaseException:
                session.close()
                raise
            if current.lower() == desired:
                return session
            session.close()
            return None

        try:
            return poll(
                _renamed,
                settings=self.poll_settings,
                retry_on=(TransientConnectivityError, ConnectTimeout, RemoteExecutionError),
                cancel=cancel,
            )
        except PollTimeout as exc:
            raise RemoteExecutionError(
                f"{record.address} did not come back as {record.desired_hostname} "
                f"after {exc.attempts} attempt(s)"
            ) from exc.last_error

    def _wait_for_node(self, record: InstanceRecord, cancel: Optional[threading.Event]) -> NodeSnapshot:
        if record.node is not None:
            return record.node
        try:
            return poll(
                lambda: find_node_by_address(self.store, record.address, self.node_selector),
                settings=self.poll_settings,
                retry_on=(ObjectStoreError,),
                cancel=cancel,
            )
        except PollTimeout as exc:
            raise NodeRegistrationTimeout(
                f"no node with address {record.address} registered within {self.poll_settings.timeout:g}s"
            ) from exc.last_error

    def _configure(self, record: InstanceRecord, upgrading: bool, cancel: Optional[threading.Event]) -> NodeSnapshot:
        session = self._connect(record, cancel)
        try:
            if upgrading:
                self.configurer.deconfigure(session)
                # from here on the node takes the first-time configuration path if we fail
                self.store.patch_node(record.node.name, build_remove_patch([VERSION_ANNOTATION]))
            if self.configurer.ensure_hostname(session, record.desired_hostname):
                session.close()
                session = self._reconnect_after_rename(record, cancel)
            self.configurer.configure(session)
        finally:
            session.close()

        node = self._wait_for_node(record, cancel)
        node = self.store.patch_node(node.name, build_add_patch({VERSION_ANNOTATION: self.version}))
        if self.migrate_to_csi and node.labels.get(CSI_CONFIGURED_LABEL) != "true":
            node = self.store.patch_node(
                node.name, build_add_patch({CSI_CONFIGURED_LABEL: "true"}, field=LABELS)
            )
        return node

    # ------------------ public API ------------------

    def reconcile(self, record: InstanceRecord, cancel: Optional[threading.Event] = None) -> ReconcileResult:
        record = self._resolve(record)
        state = lifecycle_state(record, self.version)
        log.debug("[reconcile] %s: state=%s", record.name, state.value)

        if state is LifecycleState.UP_TO_DATE:
            return ReconcileResult(Outcome.UP_TO_DATE, record, state)

        upgrading = state is LifecycleState.UPGRADE_REQUIRED
        try:
            if upgrading:
                self._check_upgrade_gate(record.node)
                log.info(
                    "[reconcile] %s: upgrading from %s to %s",
                    record.name, record.node.annotations.get(VERSION_ANNOTATION), self.version,
                )
            else:
                log.info("[reconcile] %s: configuring (%s)", record.name, state.value)
            node = self._configure(record, upgrading, cancel)
        except UpgradeBlockedError as exc:
            log.info("[reconcile] %s", exc)
            self.bus.emit(
                InstanceUpgradeBlocked(
                    address=record.address, node=exc.node_name, reason=exc.reason, **stamp(self.run_ctx)
                )
            )
            return ReconcileResult(Outcome.UPGRADE_BLOCKED, record, state, error=exc)
        except ReconcileCancelled:
            raise
        except NodekeeperError as exc:
            log.error("[reconcile] %s: %s: %s", record.name, type(exc).__name__, exc)
            self.bus.emit(
                InstanceReconcileFailed(
                    address=record.address, kind=type(exc).__name__, error=str(exc), **stamp(self.run_ctx)
                )
            )
            return ReconcileResult(Outcome.FAILED, record, state, error=exc)

        configured = dataclasses.replace(record, node_name=node.name, node=node)
        log.info("[reconcile] %s: configured by %s", configured.name, self.version)
        self.bus.emit(
            InstanceConfigured(
                address=record.address,
                node=node.name,
                version=self.version,
                upgraded=upgrading,
                **stamp(self.run_ctx),
            )
        )
        return ReconcileResult(Outcome.CONFIGURED, configured, state)
