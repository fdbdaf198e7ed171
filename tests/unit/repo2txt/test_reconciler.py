import pytest

from repo2txt.ignore import IgnoreMatcher
from repo2txt.models import FileNode, UIState
from repo2txt.reconciler import SelectionReconciler
from repo2txt.snapshot import SnapshotEntry


def entry(path: str, *, selected: bool, expanded: bool = False, is_directory: bool = False) -> SnapshotEntry:
    return SnapshotEntry(
        name=path.rsplit("/", 1)[-1],
        path=path,
        is_directory=is_directory,
        selected=selected,
        expanded=expanded,
    )


@pytest.mark.unit
def test_sync_children_defaults_from_ignore_rules() -> None:
    reconciler = SelectionReconciler(IgnoreMatcher.compile("*.log"))
    children = [
        FileNode(name="app.py", path="app.py", is_directory=False),
        FileNode(name="debug.log", path="debug.log", is_directory=False),
    ]

    reconciler.sync_children(children)

    assert reconciler.states["app.py"] == UIState(selected=True, expanded=False)
    assert reconciler.states["debug.log"] == UIState(selected=False, expanded=False)


@pytest.mark.unit
def test_sync_children_adopts_pending_once() -> None:
    reconciler = SelectionReconciler(IgnoreMatcher())
    reconciler.pending["src/a.py"] = entry("src/a.py", selected=False, expanded=True)

    reconciler.sync_children([FileNode(name="a.py", path="src/a.py", is_directory=False)])

    assert reconciler.states["src/a.py"] == UIState(selected=False, expanded=True)
    assert "src/a.py" not in reconciler.pending


@pytest.mark.unit
def test_sync_children_keeps_existing_expanded_flag() -> None:
    reconciler = SelectionReconciler(IgnoreMatcher())
    reconciler.states["src"] = UIState(selected=False, expanded=True)

    reconciler.sync_children([FileNode(name="src", path="src", is_directory=True)])

    assert reconciler.states["src"] == UIState(selected=True, expanded=True)


@pytest.mark.unit
def test_sync_children_descends_into_attached_subtrees() -> None:
    reconciler = SelectionReconciler(IgnoreMatcher())
    leaf = FileNode(name="b.py", path="src/b.py", is_directory=False)
    directory = FileNode(name="src", path="src", is_directory=True, children=[leaf])
    reconciler.pending["src"] = entry("src", selected=False, is_directory=True)

    reconciler.sync_children([directory])

    assert reconciler.states["src"].selected is False
    assert reconciler.states["src/b.py"].selected is True


@pytest.mark.unit
def test_load_snapshot_splits_live_and_pending() -> None:
    reconciler = SelectionReconciler(IgnoreMatcher())
    live = FileNode(name="a.py", path="a.py", is_directory=False)
    stateless = FileNode(name="b.py", path="b.py", is_directory=False)
    reconciler.states["a.py"] = UIState(selected=True)

    reconciler.load_snapshot(
        {
            "a.py": entry("a.py", selected=False),
            "b.py": entry("b.py", selected=False, expanded=True),
            "src/c.py": entry("src/c.py", selected=False),
        },
        [live, stateless],
    )

    assert reconciler.states["a.py"] == UIState(selected=False)
    assert reconciler.states["b.py"] == UIState(selected=False, expanded=True)
    assert list(reconciler.pending) == ["src/c.py"]


@pytest.mark.unit
def test_merged_state_prefers_live_entries() -> None:
    reconciler = SelectionReconciler(IgnoreMatcher())
    reconciler.states["a.py"] = UIState(selected=True)
    reconciler.pending["a.py"] = entry("a.py", selected=False)
    reconciler.pending["src/c.py"] = entry("src/c.py", selected=False)

    merged = reconciler.merged_state()

    assert merged["a.py"].selected is True
    assert merged["src/c.py"].selected is False


@pytest.mark.unit
def test_fill_missing_only_touches_stateless_nodes() -> None:
    reconciler = SelectionReconciler(IgnoreMatcher.compile("*.log"))
    reconciler.states["a.py"] = UIState(selected=False)
    nodes = [
        FileNode(name="a.py", path="a.py", is_directory=False),
        FileNode(name="x.log", path="x.log", is_directory=False),
    ]

    filled = reconciler.fill_missing(nodes)

    assert filled == ["x.log"]
    assert reconciler.states["a.py"].selected is False
    assert reconciler.states["x.log"].selected is False
