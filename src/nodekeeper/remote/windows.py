# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/remote/windows.py
"""
Paths and PowerShell command builders for Windows hosts reached over
OpenSSH. The default OpenSSH shell on Windows is cmd.exe, so every
PowerShell snippet is wrapped in a powershell.exe invocation.
"""

from __future__ import annotations

# Directory holding kubelet, its config and the CA bundle on every host
K8S_DIR = "C:\\k"
KUBELET_CA_FILENAME = "kubelet-ca.crt"
REMOTE_SEPARATOR = "\\"


def remote_path(directory: str, filename: str) -> str:
    return directory.rstrip("\\/") + REMOTE_SEPARATOR + filename


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def powershell(script: str) -> str:
    escaped = script.replace('"', '\\"')
    return f'powershell.exe -NonInteractive -ExecutionPolicy Bypass -Command "{escaped}"'


def get_content(path: str) -> str:
    return powershell(f"Get-Content -Raw -Path {_ps_quote(path)}")


def hostname() -> str:
    return powershell("[System.Net.Dns]::GetHostName()")


def rename_computer(new_name: str) -> str:
    return powershell(f"Rename-Computer -NewName {_ps_quote(new_name)} -Force")


def delayed_restart(seconds: int = 10) -> str:
    """Schedule a reboot so the command returns before the SSH session drops."""
    return f"shutdown.exe /r /t {seconds} /f"
