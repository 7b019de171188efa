# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/config/models.py

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, FilePath

from nodekeeper.metadata import WINDOWS_NODE_SELECTOR
from nodekeeper.remote import windows
from nodekeeper.utils.retry import PollSettings


class RetryConfig(BaseModel):
    """Poll interval/timeout shared by every bounded loop in the process."""
    interval_seconds: float = Field(default=60.0, ge=0)
    timeout_seconds: float = Field(default=600.0, ge=0)

    def poll_settings(self) -> PollSettings:
        return PollSettings(interval=self.interval_seconds, timeout=self.timeout_seconds)


class SshConfig(BaseModel):
    port: int = 22
    connect_timeout_seconds: float = 30.0
    command_timeout_seconds: Optional[float] = None
    private_key_path: Optional[Path] = None


class InstanceSpec(BaseModel):
    address: str                   # IP or DNS to connect
    username: Optional[str] = None # falls back to NodekeeperConfig.default_username
    hostname: str = ""             # rename the host to this; empty is a no-op


class PayloadFile(BaseModel):
    source: FilePath                   # local file, must exist at load time
    remote_dir: Optional[str] = None   # defaults to configuration.remote_dir
    filename: Optional[str] = None     # defaults to source.name


class ConfigurationSpec(BaseModel):
    """Files and commands that turn a bare host into a cluster member."""
    remote_dir: str = windows.K8S_DIR
    payload: List[PayloadFile] = Field(default_factory=list)
    configure_commands: List[str] = Field(default_factory=list)
    deconfigure_commands: List[str] = Field(default_factory=list)
    # wrap commands in powershell.exe; the default OpenSSH shell on Windows is cmd.exe
    use_powershell: bool = True


class StorageSpec(BaseModel):
    # True while switching hosts from the in-tree vSphere driver to CSI
    migrate_to_csi: bool = False


class CertificatesSpec(BaseModel):
    namespace: str = "openshift-kube-apiserver-operator"
    config_map: str = "kube-apiserver-to-kubelet-client-ca"
    key: str = "ca-bundle.crt"
    bundle_dir: str = windows.K8S_DIR
    bundle_filename: str = windows.KUBELET_CA_FILENAME
    # drop certificates from the merged bundle once they have expired
    prune_expired: bool = True


class NodekeeperConfig(BaseModel):
    version: Optional[str] = None          # overrides the package version
    context: Optional[str] = None          # kube context to use
    in_cluster: bool = False
    node_selector: str = WINDOWS_NODE_SELECTOR
    default_username: str = "Administrator"
    max_workers: int = Field(default=4, ge=1)

    retry: RetryConfig = RetryConfig()
    ssh: SshConfig = SshConfig()
    instances: List[InstanceSpec] = Field(default_factory=list)
    configuration: ConfigurationSpec = ConfigurationSpec()
    storage: StorageSpec = StorageSpec()
    certificates: CertificatesSpec = CertificatesSpec()

    def username_for(self, spec: InstanceSpec) -> str:
        return spec.username or self.default_username
