# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/errors.py
from __future__ import annotations

from typing import Optional


class NodekeeperError(RuntimeError):
    """Base class for failures surfaced to the reconciliation caller."""


class AuthenticationError(NodekeeperError):
    """The remote host rejected our credentials. Never retried."""

    def __init__(self, address: str, reason: str):
        super().__init__(f"SSH authentication failed for {address}: {reason}")
        self.address = address
        self.reason = reason


class TransientConnectivityError(NodekeeperError):
    """Connection refused, reset or timed out. Retried until the poll timeout."""


class ConnectTimeout(NodekeeperError):
    """Gave up connecting after the poll timeout elapsed."""


class RemoteExecutionError(NodekeeperError):
    """A remote command exited non-zero, or a file transfer failed mid-copy."""

    def __init__(self, message: str, *, output: str = "", exit_code: Optional[int] = None):
        super().__init__(message)
        self.output = output
        self.exit_code = exit_code

    def __str__(self) -> str:
        msg = super().__str__()
        if self.output:
            return f"{msg}\n{self.output.strip()}"
        return msg


class InputError(NodekeeperError, ValueError):
    """Caller supplied malformed or empty input."""


class UpgradeBlockedError(NodekeeperError):
    """Upgrade is not yet safe. Not a failure; the pass is a deliberate no-op."""

    def __init__(self, node_name: str, reason: str):
        super().__init__(f"upgrade of node {node_name} blocked: {reason}")
        self.node_name = node_name
        self.reason = reason


class ConvergenceTimeoutError(NodekeeperError):
    """A single host did not converge on the trust bundle within the timeout."""

    def __init__(self, address: str, timeout: float, last_error: Optional[BaseException] = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            f"host {address} did not converge on the CA bundle within {timeout:g}s{detail}"
        )
        self.address = address
        self.timeout = timeout
        self.last_error = last_error


class ReconcileCancelled(NodekeeperError):
    """The caller cancelled the pass while a bounded loop was waiting."""


class ObjectStoreError(NodekeeperError):
    """The cluster object store rejected a read or a patch."""


class NodeRegistrationTimeout(NodekeeperError):
    """The host was configured but its Node never showed up in the cluster."""
