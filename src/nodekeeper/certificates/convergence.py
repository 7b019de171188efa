# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/certificates/convergence.py
from __future__ import annotations

import enum
import io
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from nodekeeper.certificates.bundle import CertificateBundle
from nodekeeper.cluster.patch import build_add_patch
from nodekeeper.cluster.store import ObjectStore
from nodekeeper.config.models import CertificatesSpec
from nodekeeper.errors import (
    AuthenticationError,
    ConvergenceTimeoutError,
    NodekeeperError,
    ObjectStoreError,
    ReconcileCancelled,
    RemoteExecutionError,
)
from nodekeeper.instances.models import InstanceRecord
from nodekeeper.instances.state import is_up_to_date
from nodekeeper.metadata import CA_HASH_ANNOTATION
from nodekeeper.observers.dispatcher import EventBus
from nodekeeper.observers.events import (
    BundleConverged,
    BundleConvergenceFailed,
    BundleInstalled,
    BundleRotationDetected,
    new_ctx,
    stamp,
)
from nodekeeper.remote import windows
from nodekeeper.remote.transport import Session, Transport
from nodekeeper.utils.retry import DEFAULT_POLL, SINGLE_ATTEMPT, PollSettings, PollTimeout, poll

log = logging.getLogger("nodekeeper")


class BundleState(str, enum.Enum):
    STABLE = "Stable"
    ROTATION_DETECTED = "RotationDetected"
    PROPAGATING = "Propagating"


@dataclass
class HostConvergence:
    address: str
    node_name: Optional[str]
    converged: bool
    attempts: int = 0
    reinstalled: bool = False
    error: Optional[BaseException] = None


@dataclass
class ConvergenceReport:
    bundle_hash: str
    state: BundleState
    hosts: List[HostConvergence] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return all(h.converged for h in self.hosts)

    @property
    def failed(self) -> List[HostConvergence]:
        return [h for h in self.hosts if not h.converged]


class CertificateConvergence:
    """
    Keeps the kubelet CA bundle on every up-to-date host in line with the
    cluster's bundle.

    observe() is fed by the config map watch; each new bundle is merged
    into what hosts already trust, never replacing it. check_convergence()
    then drives every host to the merged bundle independently.
    """

    def __init__(
        self,
        *,
        store: ObjectStore,
        transport: Transport,
        credential: Any,
        hosts: Callable[[], List[InstanceRecord]],
        settings: Optional[CertificatesSpec] = None,
        poll_settings: PollSettings = DEFAULT_POLL,
        version: Optional[str] = None,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict[str, Any]] = None,
        max_workers: int = 4,
    ):
        self.store = store
        self.transport = transport
        self.credential = credential
        self.hosts = hosts
        self.settings = settings or CertificatesSpec()
        self.poll_settings = poll_settings
        self.version = version
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx()
        self.max_workers = max_workers

        self._lock = threading.Lock()
        self._bundle = CertificateBundle()
        self._state = BundleState.STABLE

    @property
    def bundle(self) -> CertificateBundle:
        with self._lock:
            return self._bundle

    @property
    def state(self) -> BundleState:
        with self._lock:
            return self._state

    # ------------------ rotation detection ------------------

    def observe(self, authoritative: CertificateBundle, now: Optional[datetime] = None) -> bool:
        """
        Record the cluster's current bundle. Returns True when the merged
        bundle changed and a new rotation has to be propagated.
        """
        with self._lock:
            merged = self._bundle.merge(authoritative)
            if self.settings.prune_expired:
                merged = merged.prune_expired(now)
            if merged == self._bundle:
                return False
            self._bundle = merged
            self._state = BundleState.ROTATION_DETECTED

        log.info(
            "[certificates] CA bundle rotation detected: %d certificate(s), sha256=%s",
            len(merged), merged.digest(),
        )
        self.bus.emit(
            BundleRotationDetected(
                bundle_hash=merged.digest(), certificates=len(merged), **stamp(self.run_ctx)
            )
        )
        return True

    def refresh(self) -> bool:
        """Read the bundle config map from the object store and observe it."""
        data = self.store.get_config_map(self.settings.namespace, self.settings.config_map)
        if data is None:
            raise ObjectStoreError(
                f"config map {self.settings.namespace}/{self.settings.config_map} not found"
            )
        content = data.get(self.settings.key)
        if not content:
            raise ObjectStoreError(
                f"config map {self.settings.namespace}/{self.settings.config_map} "
                f"has no {self.settings.key} entry"
            )
        return self.observe(CertificateBundle.from_pem(content))

    # ------------------ per host ------------------

    def _bundle_path(self) -> str:
        return windows.remote_path(self.settings.bundle_dir, self.settings.bundle_filename)

    def installed_bundle(self, session: Session) -> str:
        try:
            return session.run(windows.get_content(self._bundle_path()))
        except RemoteExecutionError as exc:
            # missing file: nothing installed yet
            log.debug("[certificates] %s: unable to read CA bundle: %s", session.address, exc)
            return ""

    def install_bundle(self, session: Session, bundle: Optional[CertificateBundle] = None) -> bool:
        """
        Copy the bundle to the host unless it is already there.
        Returns True when a transfer happened.

        Certificates the host already trusts stay in the written file, even
        when the merged bundle no longer lists them; only expired ones are
        dropped, and only when pruning is on.
        """
        bundle = bundle if bundle is not None else self.bundle
        if not bundle:
            return False
        installed = CertificateBundle.from_pem(self.installed_bundle(session))
        if bundle.is_satisfied_by(installed.pem()):
            return False

        kept = CertificateBundle(tuple(b for b in installed.blocks if b not in bundle.blocks))
        if kept and self.settings.prune_expired:
            kept = kept.prune_expired()
        content = bundle.merge(kept)
        session.transfer(
            io.BytesIO(content.pem().encode("utf-8")),
            self.settings.bundle_filename,
            self.settings.bundle_dir,
        )
        log.info(
            "[certificates] %s: installed CA bundle sha256=%s (kept %d prior certificate(s))",
            session.address, bundle.digest(), len(kept),
        )
        self.bus.emit(
            BundleInstalled(address=session.address, bundle_hash=bundle.digest(), **stamp(self.run_ctx))
        )
        return True

    def _record_verified(self, record: InstanceRecord, bundle: CertificateBundle) -> None:
        node = record.node
        digest = bundle.digest()
        if node is None or node.annotations.get(CA_HASH_ANNOTATION) == digest:
            return
        self.store.patch_node(node.name, build_add_patch({CA_HASH_ANNOTATION: digest}))

    def _converge_host(
        self,
        record: InstanceRecord,
        bundle: CertificateBundle,
        cancel: Optional[threading.Event],
    ) -> HostConvergence:
        result = HostConvergence(address=record.address, node_name=record.node_name, converged=False)

        def _attempt() -> Optional[bool]:
            result.attempts += 1
            # one dial per attempt; this loop owns the timeout
            with self.transport.connect(
                record.address, record.username, self.credential,
                cancel=cancel, poll_settings=SINGLE_ATTEMPT,
            ) as session:
                if self.install_bundle(session, bundle):
                    result.reinstalled = True
                # verify what actually landed on disk
                if bundle.is_satisfied_by(self.installed_bundle(session)):
                    return True
            log.info(
                "[certificates] %s: CA bundle not present yet, retrying in %gs",
                record.address, self.poll_settings.interval,
            )
            return None

        try:
            poll(
                _attempt,
                settings=self.poll_settings,
                retry_on=(NodekeeperError,),
                give_up=lambda exc: isinstance(exc, (AuthenticationError, ReconcileCancelled)),
                cancel=cancel,
            )
        except AuthenticationError as exc:
            result.error = exc
        except PollTimeout as exc:
            result.error = ConvergenceTimeoutError(
                record.address, self.poll_settings.timeout, exc.last_error
            )
        else:
            result.converged = True
            try:
                self._record_verified(record, bundle)
            except ObjectStoreError as exc:
                log.warning(
                    "[certificates] %s: converged but unable to record bundle hash: %s",
                    record.address, exc,
                )
                result.error = exc

        if not result.converged:
            log.error("[certificates] %s: %s", record.address, result.error)
            self.bus.emit(
                BundleConvergenceFailed(
                    address=record.address, error=str(result.error), **stamp(self.run_ctx)
                )
            )
        return result

    # ------------------ public API ------------------

    def check_convergence(self, cancel: Optional[threading.Event] = None) -> ConvergenceReport:
        """
        Verify (and re-install where needed) the merged bundle on every
        up-to-date host. A host that times out is reported as failed and
        does not stop the others.
        """
        with self._lock:
            bundle = self._bundle
            if not bundle:
                return ConvergenceReport(bundle_hash="", state=self._state)
            if self._state is BundleState.ROTATION_DETECTED:
                self._state = BundleState.PROPAGATING

        targets = [r for r in self.hosts() if is_up_to_date(r, self.version)]
        log.info(
            "[certificates] checking CA bundle sha256=%s on %d host(s)",
            bundle.digest(), len(targets),
        )

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(self._converge_host, r, bundle, cancel) for r in targets]
            hosts = [f.result() for f in futures]

        converged = all(h.converged for h in hosts)
        with self._lock:
            # leave the state alone if a newer rotation arrived meanwhile
            if self._bundle == bundle:
                self._state = BundleState.STABLE if converged else BundleState.PROPAGATING
            state = self._state

        if converged:
            self.bus.emit(
                BundleConverged(
                    bundle_hash=bundle.digest(),
                    hosts=[h.address for h in hosts],
                    **stamp(self.run_ctx),
                )
            )
        return ConvergenceReport(bundle_hash=bundle.digest(), state=state, hosts=hosts)
