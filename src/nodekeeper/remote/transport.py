# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/remote/transport.py
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Optional

from nodekeeper.errors import (
    AuthenticationError,
    ConnectTimeout,
    InputError,
    TransientConnectivityError,
)
from nodekeeper.utils.retry import DEFAULT_POLL, PollSettings, PollTimeout, poll

log = logging.getLogger("nodekeeper")


class Session(ABC):
    """
    An established remote channel to one host.

    A session is owned by exactly one reconciliation pass and must be
    closed on every exit path; use it as a context manager.
    """

    address: str = ""

    @abstractmethod
    def run(self, command: str) -> str:
        """
        Run *command* and return its combined stdout/stderr.
        Raises RemoteExecutionError on a non-zero exit.
        """

    @abstractmethod
    def transfer(self, reader: BinaryIO, filename: str, remote_dir: str) -> str:
        """
        Copy *reader* into remote_dir/filename, creating remote_dir if needed.
        The remote file is flushed and closed before this returns.
        Returns the remote path written.
        """

    @abstractmethod
    def close(self) -> None:
        """Best-effort cleanup; failures are logged, never raised."""

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class Transport(ABC):
    """
    Opens sessions to remote hosts.

    connect() retries _dial() on a fixed interval because a freshly
    provisioned host may still be running its boot-time user data.
    Credential rejection cannot resolve itself and stops the loop at once.
    """

    def __init__(self, poll_settings: PollSettings = DEFAULT_POLL):
        self.poll_settings = poll_settings

    @abstractmethod
    def _dial(self, address: str, username: str, credential: Any) -> Session:
        """
        Make one connection attempt.

        Must raise AuthenticationError when the credential is rejected and
        TransientConnectivityError for anything worth retrying.
        """

    def connect(
        self,
        address: str,
        username: str,
        credential: Any,
        *,
        cancel: Optional[threading.Event] = None,
        poll_settings: Optional[PollSettings] = None,
    ) -> Session:
        """
        poll_settings overrides the transport default, e.g. SINGLE_ATTEMPT
        when the caller already runs its own bounded loop.
        """
        if not address or not username or credential is None:
            raise InputError(
                f"incomplete connection information: address={address!r} username={username!r}"
            )

        def _attempt() -> Session:
            return self._dial(address, username, credential)

        def _on_retry(attempt: int, exc: Optional[BaseException]) -> None:
            log.debug("[transport] dial %s attempt %d failed: %s", address, attempt, exc)

        try:
            return poll(
                _attempt,
                settings=poll_settings or self.poll_settings,
                retry_on=(TransientConnectivityError, AuthenticationError),
                give_up=lambda exc: isinstance(exc, AuthenticationError),
                cancel=cancel,
                on_retry=_on_retry,
            )
        except PollTimeout as exc:
            raise ConnectTimeout(
                f"unable to connect to {address} as {username} "
                f"after {exc.attempts} attempt(s): {exc.last_error}"
            ) from exc.last_error
