# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/remote/ssh.py
from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import BinaryIO, Optional

import paramiko

from nodekeeper.errors import (
    AuthenticationError,
    InputError,
    RemoteExecutionError,
    TransientConnectivityError,
)
from nodekeeper.remote import windows
from nodekeeper.remote.transport import Session, Transport
from nodekeeper.utils.retry import DEFAULT_POLL, PollSettings

log = logging.getLogger("nodekeeper")

_COPY_CHUNK = 32768


def load_signer(path: str | Path) -> paramiko.PKey:
    """
    Load the private key used to authenticate against every managed host.
    """
    key_path = str(path)
    for key_cls in (
        paramiko.Ed25519Key,
        paramiko.RSAKey,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(key_path)
        except paramiko.SSHException:
            continue
    raise InputError(f"unsupported or unreadable private key: {key_path}")


class SshSession(Session):
    def __init__(
        self,
        client: paramiko.SSHClient,
        address: str,
        *,
        command_timeout: Optional[float] = None,
        separator: str = windows.REMOTE_SEPARATOR,
    ):
        self.client = client
        self.address = address
        self.command_timeout = command_timeout
        self.separator = separator

    def run(self, command: str) -> str:
        try:
            _, stdout, stderr = self.client.exec_command(command, timeout=self.command_timeout)
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            rc = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as exc:
            raise RemoteExecutionError(f"error running command on {self.address}: {exc}") from exc

        combined = out + err
        if rc != 0:
            raise RemoteExecutionError(
                f"command on {self.address} exited with status {rc}",
                output=combined,
                exit_code=rc,
            )
        return combined

    def _join(self, directory: str, name: str) -> str:
        return directory.rstrip("\\/") + self.separator + name

    def _mkdir_p(self, sftp: paramiko.SFTPClient, remote_dir: str) -> None:
        parts = re.split(r"[\\/]", remote_dir)
        current = ""
        for i, part in enumerate(parts):
            if not part:
                if i == 0:
                    current = self.separator
                continue
            if not current:
                current = part
            elif current.endswith(self.separator):
                current += part
            else:
                current = current + self.separator + part
            # drive letters such as "C:" cannot be stat'ed over SFTP
            if i == 0 and part.endswith(":"):
                continue
            try:
                sftp.stat(current)
            except IOError:
                sftp.mkdir(current)

    def transfer(self, reader: BinaryIO, filename: str, remote_dir: str) -> str:
        try:
            sftp = self.client.open_sftp()
        except (paramiko.SSHException, OSError) as exc:
            raise RemoteExecutionError(f"error opening SFTP channel to {self.address}: {exc}") from exc

        remote_file = self._join(remote_dir, filename)
        try:
            try:
                self._mkdir_p(sftp, remote_dir)
            except (paramiko.SSHException, OSError) as exc:
                raise RemoteExecutionError(
                    f"error creating remote directory {remote_dir} on {self.address}: {exc}"
                ) from exc

            try:
                dst = sftp.open(remote_file, "wb")
            except (paramiko.SSHException, OSError) as exc:
                raise RemoteExecutionError(
                    f"error initializing {remote_file} on {self.address}: {exc}"
                ) from exc

            try:
                shutil.copyfileobj(reader, dst, _COPY_CHUNK)
                dst.flush()
            except (paramiko.SSHException, OSError) as exc:
                self._close_quietly(dst, f"remote file {remote_file}")
                raise RemoteExecutionError(
                    f"error copying {filename} to {self.address}: {exc}"
                ) from exc

            # callers may execute the file next, so it has to be closed for real
            try:
                dst.close()
            except (paramiko.SSHException, OSError) as exc:
                raise RemoteExecutionError(
                    f"error closing remote file {remote_file} on {self.address}: {exc}"
                ) from exc
        finally:
            self._close_quietly(sftp, "SFTP connection")

        log.debug("[ssh] %s: transferred %s", self.address, remote_file)
        return remote_file

    def _close_quietly(self, handle, what: str) -> None:
        try:
            handle.close()
        except Exception as exc:
            log.warning("[ssh] %s: error closing %s: %s", self.address, what, exc)

    def close(self) -> None:
        self._close_quietly(self.client, "SSH session")


class SshTransport(Transport):
    """
    Key-based SSH transport. Host keys are not pinned: hosts are freshly
    provisioned and re-imaged, so their keys are unknown ahead of time.
    """

    def __init__(
        self,
        *,
        port: int = 22,
        connect_timeout: float = 30.0,
        command_timeout: Optional[float] = None,
        poll_settings: PollSettings = DEFAULT_POLL,
    ):
        super().__init__(poll_settings)
        self.port = port
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout

    def _dial(self, address: str, username: str, credential: paramiko.PKey) -> SshSession:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=address,
                port=self.port,
                username=username,
                pkey=credential,
                password=None,
                look_for_keys=False,
                allow_agent=False,
                timeout=self.connect_timeout,
            )
        except paramiko.AuthenticationException as exc:
            client.close()
            raise AuthenticationError(address, str(exc)) from exc
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise TransientConnectivityError(
                f"SSH dial {address}:{self.port} failed ({type(exc).__name__}: {exc})"
            ) from exc

        log.debug("[ssh] connected to %s as %s", address, username)
        return SshSession(client, address, command_timeout=self.command_timeout)
