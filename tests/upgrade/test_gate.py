import pytest

from nodekeeper.cluster.models import NodeSnapshot
from nodekeeper.errors import UpgradeBlockedError
from nodekeeper.metadata import ALLOW_UPGRADE_LABEL, CSI_CONFIGURED_LABEL
from nodekeeper.upgrade.gate import ensure_upgrade_allowed, upgrade_blocked
from nodekeeper.upgrade.volumes import VSPHERE_IN_TREE_PREFIX, VolumeStat

IN_TREE = VolumeStat(pvc_name="data", namespace="app", in_tree_path="[ds1] kubevols/data.vmdk")
CSI = VolumeStat(pvc_name="logs", namespace="app")


def _node(labels=None, attached=()):
    return NodeSnapshot(name="win-a", labels=labels or {}, volumes_attached=list(attached))


ATTACHED = VSPHERE_IN_TREE_PREFIX + "[ds1] kubevols/data.vmdk"


@pytest.mark.parametrize(
    "node,migrating,stats,expected",
    [
        # not migrating: nothing to protect
        (_node(attached=[ATTACHED]), False, [IN_TREE], False),
        # migrating, no pods with volumes
        (_node(), True, [], False),
        # migrating, only CSI-backed volumes
        (_node(attached=["csi-123"]), True, [CSI], False),
        # migrating, in-tree PVC mounted but already detached from the node
        (_node(), True, [IN_TREE], False),
        # migrating, in-tree volume attached
        (_node(attached=[ATTACHED]), True, [IN_TREE, CSI], True),
        # already configured for CSI
        (_node({CSI_CONFIGURED_LABEL: "true"}, [ATTACHED]), True, [IN_TREE], False),
        # operator override
        (_node({ALLOW_UPGRADE_LABEL: ""}, [ATTACHED]), True, [IN_TREE], False),
    ],
)
def test_upgrade_blocked(node, migrating, stats, expected):
    assert upgrade_blocked(node, migrating, stats) is expected


def test_csi_label_must_be_true():
    node = _node({CSI_CONFIGURED_LABEL: "false"}, [ATTACHED])
    assert upgrade_blocked(node, True, [IN_TREE])


def test_ensure_upgrade_allowed_names_the_pvcs():
    with pytest.raises(UpgradeBlockedError) as ei:
        ensure_upgrade_allowed(_node(attached=[ATTACHED]), True, iter([IN_TREE, CSI]))
    assert ei.value.node_name == "win-a"
    assert "app/data" in ei.value.reason
    assert "app/logs" not in ei.value.reason


def test_ensure_upgrade_allowed_passes():
    ensure_upgrade_allowed(_node(), True, [IN_TREE])
