# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/cli/app.py
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer

from nodekeeper import version as _version
from nodekeeper.certificates.convergence import CertificateConvergence
from nodekeeper.cluster.kube import KubeObjectStore, load_core_api
from nodekeeper.config.loader import load_config
from nodekeeper.config.models import NodekeeperConfig
from nodekeeper.controller.configurer import NodeConfigurer
from nodekeeper.controller.reconciler import InstanceReconciler, Outcome
from nodekeeper.errors import InputError, NodekeeperError
from nodekeeper.instances.discovery import instances_from_config, unmanaged_nodes
from nodekeeper.instances.models import InstanceRecord
from nodekeeper.instances.state import lifecycle_state
from nodekeeper.logging.log import init_logging
from nodekeeper.observers.dispatcher import EventBus
from nodekeeper.observers.events import new_ctx
from nodekeeper.observers.jsonfile import JsonFileObserver
from nodekeeper.observers.logger import LoggerObserver
from nodekeeper.remote.ssh import SshTransport, load_signer
from nodekeeper.upgrade.volumes import KubeletVolumeStatsSource

app = typer.Typer(help="Bring Windows hosts under cluster management")


# ------------------------------------------------------------------------------
# Wiring
# ------------------------------------------------------------------------------

@dataclass
class Controller:
    cfg: NodekeeperConfig
    store: KubeObjectStore
    reconciler: InstanceReconciler
    certificates: CertificateConvergence

    def records(self, only: Optional[List[str]] = None) -> List[InstanceRecord]:
        nodes = self.store.list_nodes(self.cfg.node_selector)
        records = instances_from_config(self.cfg, nodes)
        if only:
            records = [r for r in records if r.address in only]
        return records


def _load(config: Path, *, require_key: bool = False) -> NodekeeperConfig:
    try:
        return load_config(config, require_key=require_key)
    except InputError as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc


def build_controller(config: Path, context: Optional[str], verbose: bool) -> Controller:
    cfg = _load(config, require_key=True)
    logger, run_id, log_path = init_logging(verbose=verbose)

    bus = EventBus(
        observers=[
            LoggerObserver(logger),
            JsonFileObserver(log_path.with_suffix(".jsonl")),
        ]
    )
    kube_context = context or cfg.context
    run_ctx = new_ctx(context=kube_context, run_id=run_id)

    api = load_core_api(kube_context, in_cluster=cfg.in_cluster)
    store = KubeObjectStore(api)
    poll_settings = cfg.retry.poll_settings()
    transport = SshTransport(
        port=cfg.ssh.port,
        connect_timeout=cfg.ssh.connect_timeout_seconds,
        command_timeout=cfg.ssh.command_timeout_seconds,
        poll_settings=poll_settings,
    )
    signer = load_signer(cfg.ssh.private_key_path)
    running_version = cfg.version or _version.get()

    certificates = CertificateConvergence(
        store=store,
        transport=transport,
        credential=signer,
        hosts=lambda: instances_from_config(cfg, store.list_nodes(cfg.node_selector)),
        settings=cfg.certificates,
        poll_settings=poll_settings,
        version=running_version,
        bus=bus,
        run_ctx=run_ctx,
        max_workers=cfg.max_workers,
    )
    reconciler = InstanceReconciler(
        store=store,
        transport=transport,
        credential=signer,
        configurer=NodeConfigurer(cfg.configuration, certificates=certificates),
        volumes=KubeletVolumeStatsSource(api),
        migrate_to_csi=cfg.storage.migrate_to_csi,
        version=running_version,
        node_selector=cfg.node_selector,
        poll_settings=poll_settings,
        bus=bus,
        run_ctx=run_ctx,
    )
    return Controller(cfg=cfg, store=store, reconciler=reconciler, certificates=certificates)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

ConfigOpt = typer.Option(..., "--config", "-f", help="nodekeeper YAML config")
ContextOpt = typer.Option(None, "--context", "-c", help="kube-context (overrides the config)")
VerboseOpt = typer.Option(False, "--verbose", "-v", help="DEBUG output on the console")


@app.command()
def status(config: Path = ConfigOpt, context: Optional[str] = ContextOpt) -> None:
    """
    Show the lifecycle state of every configured host, then any selected
    node no configured host accounts for. No SSH.
    """
    cfg = _load(config)
    store = KubeObjectStore(load_core_api(context or cfg.context, in_cluster=cfg.in_cluster))
    running_version = cfg.version or _version.get()
    nodes = store.list_nodes(cfg.node_selector)
    for r in instances_from_config(cfg, nodes):
        typer.echo(f"{r.address:<24} {r.node_name or '-':<32} {lifecycle_state(r, running_version).value}")
    for node, address in unmanaged_nodes(cfg, nodes):
        typer.echo(f"{address:<24} {node.name:<32} Unmanaged")


@app.command()
def reconcile(
    config: Path = ConfigOpt,
    context: Optional[str] = ContextOpt,
    verbose: bool = VerboseOpt,
    instance: Optional[List[str]] = typer.Option(
        None, "--instance", "-i", help="Only reconcile these addresses (repeatable)"
    ),
) -> None:
    """
    Configure, upgrade or leave alone every configured host, one pass each.
    """
    controller = build_controller(config, context, verbose)
    try:
        controller.certificates.refresh()
    except NodekeeperError as exc:
        typer.echo(f"warning: CA bundle not available, hosts are configured without it: {exc}", err=True)

    records = controller.records(instance)
    with ThreadPoolExecutor(max_workers=controller.cfg.max_workers) as pool:
        results = list(pool.map(controller.reconciler.reconcile, records))

    failed = 0
    for res in results:
        line = f"{res.instance.address:<24} {res.outcome.value}"
        if res.outcome is Outcome.FAILED:
            failed += 1
            line += f" ({res.kind}: {res.error})"
        elif res.outcome is Outcome.UPGRADE_BLOCKED:
            line += f" ({res.error})"
        typer.echo(line)

    if failed:
        raise typer.Exit(code=1)


@app.command("check-certs")
def check_certs(
    config: Path = ConfigOpt,
    context: Optional[str] = ContextOpt,
    verbose: bool = VerboseOpt,
) -> None:
    """
    Verify the kubelet CA bundle on every up-to-date host, re-installing it where it is missing.
    """
    controller = build_controller(config, context, verbose)
    try:
        controller.certificates.refresh()
    except NodekeeperError as exc:
        typer.echo(f"error: CA bundle not available: {exc}", err=True)
        raise typer.Exit(code=1)
    report = controller.certificates.check_convergence()

    typer.echo(f"bundle sha256={report.bundle_hash} state={report.state.value}")
    for h in report.hosts:
        mark = "ok" if h.converged else f"FAILED ({h.error})"
        extra = " (reinstalled)" if h.reinstalled else ""
        typer.echo(f"  {h.address:<24} {mark}{extra}")

    if not report.converged:
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
