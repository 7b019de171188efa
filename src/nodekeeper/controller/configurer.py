# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/controller/configurer.py
from __future__ import annotations

import logging
from typing import Optional

from nodekeeper.certificates.convergence import CertificateConvergence
from nodekeeper.config.models import ConfigurationSpec
from nodekeeper.errors import InputError
from nodekeeper.remote import windows
from nodekeeper.remote.transport import Session

log = logging.getLogger("nodekeeper")


class NodeConfigurer:
    """
    The remote steps that turn a bare host into a cluster member, and the
    steps that undo them before an upgrade. Every step is safe to repeat.
    """

    def __init__(
        self,
        spec: ConfigurationSpec,
        certificates: Optional[CertificateConvergence] = None,
    ):
        self.spec = spec
        self.certificates = certificates

    def _command(self, cmd: str) -> str:
        return windows.powershell(cmd) if self.spec.use_powershell else cmd

    # ------------------ hostname ------------------

    def current_hostname(self, session: Session) -> str:
        return session.run(windows.hostname()).strip()

    def ensure_hostname(self, session: Session, desired: str) -> bool:
        """
        Rename the host if asked to. Returns True when a reboot was
        scheduled and the session is about to drop.
        """
        if not desired:
            return False
        current = self.current_hostname(session)
        if current.lower() == desired.lower():
            return False
        log.info("[configure] %s: renaming %s -> %s", session.address, current, desired)
        session.run(windows.rename_computer(desired))
        session.run(windows.delayed_restart())
        return True

    # ------------------ roles ------------------

    def transfer_payload(self, session: Session) -> None:
        for item in self.spec.payload:
            remote_dir = item.remote_dir or self.spec.remote_dir
            filename = item.filename or item.source.name
            try:
                f = open(item.source, "rb")
            except OSError as exc:
                raise InputError(f"unable to read payload file {item.source}: {exc}") from exc
            with f:
                session.transfer(f, filename, remote_dir)
            log.debug("[configure] %s: copied %s to %s", session.address, item.source, remote_dir)

    def configure(self, session: Session) -> None:
        log.info("[configure] %s: copying %d payload file(s)", session.address, len(self.spec.payload))
        self.transfer_payload(session)
        if self.certificates is not None:
            self.certificates.install_bundle(session)
        for cmd in self.spec.configure_commands:
            log.debug("[configure] %s: $ %s", session.address, cmd)
            session.run(self._command(cmd))

    def deconfigure(self, session: Session) -> None:
        log.info("[configure] %s: removing previous configuration", session.address)
        for cmd in self.spec.deconfigure_commands:
            log.debug("[configure] %s: $ %s", session.address, cmd)
            session.run(self._command(cmd))
