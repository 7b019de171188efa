import textwrap
from types import SimpleNamespace as NS

from typer.testing import CliRunner

import nodekeeper.cli.app as app_mod
from nodekeeper.certificates.bundle import CertificateBundle
from nodekeeper.certificates.convergence import CertificateConvergence
from nodekeeper.cluster.memory import MemoryObjectStore
from nodekeeper.cluster.models import INTERNAL_IP, NodeAddress, NodeSnapshot
from nodekeeper.config.loader import load_config
from nodekeeper.config.models import CertificatesSpec, ConfigurationSpec
from nodekeeper.controller.configurer import NodeConfigurer
from nodekeeper.controller.reconciler import InstanceReconciler
from nodekeeper.errors import AuthenticationError
from nodekeeper.instances.discovery import instances_from_config
from nodekeeper.metadata import VERSION_ANNOTATION
from nodekeeper.remote import windows

runner = CliRunner()

CONFIG = """
    version: v2.0.0
    instances:
      - address: 10.0.0.5
      - address: 10.0.0.6
"""


def _config(tmp_path, monkeypatch):
    monkeypatch.delenv("NODEKEEPER_SECRETS_FILE", raising=False)
    f = tmp_path / "nodekeeper.yaml"
    f.write_text(textwrap.dedent(CONFIG))
    return f


def _v1(name, address, annotations=None):
    return NS(
        metadata=NS(name=name, annotations=annotations, labels={"kubernetes.io/os": "windows"}),
        status=NS(addresses=[NS(type=INTERNAL_IP, address=address)], volumes_attached=None),
    )


def test_status_lists_configured_and_unmanaged_nodes(tmp_path, monkeypatch):
    f = _config(tmp_path, monkeypatch)
    api = NS(list_node=lambda label_selector="": NS(items=[
        _v1("win-a", "10.0.0.5", {VERSION_ANNOTATION: "v2.0.0"}),
        _v1("win-x", "10.0.0.50"),
    ]))
    monkeypatch.setattr(app_mod, "load_core_api", lambda ctx=None, in_cluster=False: api)

    result = runner.invoke(app_mod.app, ["status", "-f", str(f)])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0].split() == ["10.0.0.5", "win-a", "UpToDate"]
    assert lines[1].split() == ["10.0.0.6", "-", "NotJoined"]
    assert lines[2].split() == ["10.0.0.50", "win-x", "Unmanaged"]


def test_reconcile_reports_failures(tmp_path, monkeypatch, transport, add_host):
    f = _config(tmp_path, monkeypatch)
    cfg = load_config(f)
    add_host("10.0.0.5")
    add_host("10.0.0.6").dial_errors = [AuthenticationError("10.0.0.6", "unable to authenticate")]
    store = MemoryObjectStore([
        NodeSnapshot(name="win-a", annotations={VERSION_ANNOTATION: "v2.0.0"},
                     labels={"kubernetes.io/os": "windows"},
                     addresses=[NodeAddress(INTERNAL_IP, "10.0.0.5")]),
    ])
    certificates = CertificateConvergence(
        store=store, transport=transport, credential="KEY", hosts=list, version="v2.0.0",
    )
    reconciler = InstanceReconciler(
        store=store,
        transport=transport,
        credential="KEY",
        configurer=NodeConfigurer(ConfigurationSpec(), certificates=certificates),
        volumes=NS(volume_stats=lambda name: []),
        version="v2.0.0",
        poll_settings=transport.poll_settings,
    )
    controller = app_mod.Controller(cfg=cfg, store=store, reconciler=reconciler, certificates=certificates)
    monkeypatch.setattr(app_mod, "build_controller", lambda config, context, verbose: controller)

    result = runner.invoke(app_mod.app, ["reconcile", "-f", str(f)])

    assert result.exit_code == 1
    lines = {l.split()[0]: l for l in result.output.splitlines() if l.startswith("10.")}
    assert lines["10.0.0.5"].split()[1] == "UpToDate"
    assert "Failed (AuthenticationError" in lines["10.0.0.6"]



def _windows_node(name, address):
    return NodeSnapshot(
        name=name,
        annotations={VERSION_ANNOTATION: "v2.0.0"},
        labels={"kubernetes.io/os": "windows"},
        addresses=[NodeAddress(INTERNAL_IP, address)],
    )


def _cert_controller(tmp_path, monkeypatch, transport):
    """A freshly started controller over two up-to-date hosts."""
    cfg = load_config(_config(tmp_path, monkeypatch))
    store = MemoryObjectStore([_windows_node("win-a", "10.0.0.5"), _windows_node("win-b", "10.0.0.6")])
    certificates = CertificateConvergence(
        store=store,
        transport=transport,
        credential="KEY",
        hosts=lambda: instances_from_config(cfg, store.list_nodes(cfg.node_selector)),
        poll_settings=transport.poll_settings,
        version="v2.0.0",
    )
    controller = app_mod.Controller(cfg=cfg, store=store, reconciler=None, certificates=certificates)
    monkeypatch.setattr(app_mod, "build_controller", lambda config, context, verbose: controller)
    return controller


def test_check_certs_keeps_host_certificates_missing_from_the_cluster_bundle(
    tmp_path, monkeypatch, transport, add_host, make_cert
):
    ca_path = windows.remote_path("C:\\k", "kubelet-ca.crt")
    old, new = make_cert("ca-old"), make_cert("ca-new")
    for address in ("10.0.0.5", "10.0.0.6"):
        add_host(address).files[ca_path] = old
    controller = _cert_controller(tmp_path, monkeypatch, transport)
    spec = CertificatesSpec()
    controller.store.set_config_map(spec.namespace, spec.config_map, {spec.key: new})

    result = runner.invoke(app_mod.app, ["check-certs", "-f", str(tmp_path / "nodekeeper.yaml")])

    assert result.exit_code == 0, result.output
    digest = CertificateBundle.from_pem(new).digest()
    assert result.output.splitlines()[0] == f"bundle sha256={digest} state=Stable"
    assert "10.0.0.5" in result.output and "(reinstalled)" in result.output
    for host in ("10.0.0.5", "10.0.0.6"):
        on_host = CertificateBundle.from_pem(transport.hosts[host].files[ca_path])
        assert on_host == CertificateBundle.from_pem(new + old)


def test_check_certs_fails_when_a_host_does_not_converge(tmp_path, monkeypatch, transport, add_host, make_cert):
    add_host("10.0.0.5")
    add_host("10.0.0.6").drop_transfers = True
    controller = _cert_controller(tmp_path, monkeypatch, transport)
    spec = CertificatesSpec()
    controller.store.set_config_map(spec.namespace, spec.config_map, {spec.key: make_cert("ca-new")})

    result = runner.invoke(app_mod.app, ["check-certs", "-f", str(tmp_path / "nodekeeper.yaml")])

    assert result.exit_code == 1
    lines = {l.split()[0]: l for l in result.output.splitlines() if l.strip().startswith("10.")}
    assert lines["10.0.0.5"].split()[1] == "ok"
    assert "FAILED" in lines["10.0.0.6"]


def test_check_certs_without_a_bundle_exits_non_zero(tmp_path, monkeypatch, transport, add_host):
    add_host("10.0.0.5")
    add_host("10.0.0.6")
    _cert_controller(tmp_path, monkeypatch, transport)

    result = runner.invoke(app_mod.app, ["check-certs", "-f", str(tmp_path / "nodekeeper.yaml")])

    assert result.exit_code == 1
    assert all(h.dials == 0 for h in transport.hosts.values())


def test_missing_key_is_a_usage_error(tmp_path, monkeypatch):
    f = _config(tmp_path, monkeypatch)

    result = runner.invoke(app_mod.app, ["check-certs", "-f", str(f)])

    assert result.exit_code == 2
    assert "private_key_path" in result.output
