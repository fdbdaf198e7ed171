from __future__ import annotations

import json
from pathlib import Path

import pytest

from repo2txt.exceptions import SnapshotFormatError
from repo2txt.models import FileNode, UIState
from repo2txt.snapshot import (
    SnapshotEntry,
    SnapshotFile,
    decode_snapshot,
    dump_snapshot,
    encode_snapshot,
)
from repo2txt.tree_store import TreeStore

NESTED = {
    "version": "1.0",
    "nodes": [
        {
            "name": "src",
            "path": "src",
            "isDirectory": True,
            "selected": True,
            "expanded": True,
            "children": [
                {"name": "a.py", "path": "src/a.py", "isDirectory": False, "selected": False, "expanded": False},
            ],
        },
        {"name": "README.md", "path": "README.md", "isDirectory": False, "selected": True, "expanded": False},
    ],
}


@pytest.mark.unit
def test_decode_flattens_nested_nodes() -> None:
    entries = decode_snapshot(json.dumps(NESTED))

    assert list(entries) == ["src", "src/a.py", "README.md"]
    assert entries["src"].state == UIState(selected=True, expanded=True)
    assert entries["src/a.py"].is_directory is False


@pytest.mark.unit
def test_decode_rejects_nested_node_without_is_directory() -> None:
    data = json.loads(json.dumps(NESTED))
    del data["nodes"][0]["children"][0]["isDirectory"]

    with pytest.raises(SnapshotFormatError) as exc_info:
        decode_snapshot(json.dumps(data))

    assert exc_info.value.obsolete is True


@pytest.mark.unit
def test_decode_treats_legacy_flat_state_as_obsolete() -> None:
    legacy = {"version": "1.0", "state": [{"path": "a.py", "selected": True, "expanded": False}]}

    with pytest.raises(SnapshotFormatError) as exc_info:
        decode_snapshot(json.dumps(legacy))

    assert exc_info.value.obsolete is True


@pytest.mark.unit
@pytest.mark.parametrize("text", ["{not json", "[]", '{"nodes": [{"name": "a", "path": "a", "isDirectory": true}]}'])
def test_decode_corrupt_documents_are_not_obsolete(text: str) -> None:
    with pytest.raises(SnapshotFormatError) as exc_info:
        decode_snapshot(text)

    assert exc_info.value.obsolete is False


@pytest.mark.unit
def test_encode_nests_pending_entries_under_their_parent() -> None:
    src = FileNode(name="src", path="src", is_directory=True)
    readme = FileNode(name="README.md", path="README.md", is_directory=False)
    states = {"src": UIState(selected=True, expanded=False), "README.md": UIState(selected=False)}
    pending = {
        "src/lib/x.py": SnapshotEntry(name="x.py", path="src/lib/x.py", is_directory=False, selected=False),
        "src/lib": SnapshotEntry(name="lib", path="src/lib", is_directory=True, selected=True, expanded=True),
        "gone/y.py": SnapshotEntry(name="y.py", path="gone/y.py", is_directory=False, selected=True),
    }

    doc = json.loads(dump_snapshot(encode_snapshot([src, readme], states, pending)))

    assert doc["version"] == "1.0"
    assert [n["path"] for n in doc["nodes"]] == ["src", "README.md"]
    assert "children" not in doc["nodes"][1]
    lib = doc["nodes"][0]["children"][0]
    assert lib == {
        "name": "lib",
        "path": "src/lib",
        "isDirectory": True,
        "selected": True,
        "expanded": True,
        "children": [
            {"name": "x.py", "path": "src/lib/x.py", "isDirectory": False, "selected": False, "expanded": False},
        ],
    }
    assert set(decode_snapshot(json.dumps(doc))) == {"src", "src/lib", "src/lib/x.py", "README.md"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_snapshot_file_deletes_obsolete_but_keeps_corrupt(tmp_path: Path) -> None:
    path = tmp_path / ".r2x"
    snapshot_file = SnapshotFile(path)

    path.write_text('{"version": "1.0", "nodes": [{"name": "a", "path": "a", "selected": true}]}', encoding="utf-8")
    assert await snapshot_file.read() is None
    assert not path.exists()

    path.write_text("{broken", encoding="utf-8")
    assert await snapshot_file.read() is None
    assert path.exists()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_save_failure_is_not_raised(tmp_path: Path) -> None:
    store = TreeStore(tmp_path)
    store.snapshot_file = SnapshotFile(tmp_path / "missing-dir" / ".r2x")

    assert await store.save() is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_round_trip_through_a_fresh_store(make_tree) -> None:
    root = make_tree({"src/a.py": "a", "src/lib/b.py": "b", "docs/guide.md": "g", "README.md": "r"})
    first = TreeStore(root)
    await first.initialize()
    await first.scan_all_directories()
    first.set_expanded(first.find_by_path("src"), True)
    first.toggle_selection(first.find_by_path("src/lib"))
    first.toggle_selection(first.find_by_path("docs"))
    first.set_expanded(first.find_by_path("docs"), True)
    saved = first.get_state()
    assert await first.save() is True

    second = TreeStore(root)
    assert await second.load() is True
    await second.scan_all_directories()

    restored = second.get_state()
    for path, state in saved.items():
        assert restored[path] == state, path
    assert second.pending_paths() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_load_without_snapshot_returns_false(tmp_path: Path) -> None:
    store = TreeStore(tmp_path)

    assert await store.load() is False
    assert store.nodes == []
