"""Persistence codec for the selection/expansion state (the ``.r2x`` file)."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import aiofiles
import aiofiles.os
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from repo2txt.exceptions import SnapshotFormatError
from repo2txt.logging import logger
from repo2txt.models import ROOT_PATH, UIState, parent_path, sort_key

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from repo2txt.models import FileNode

SNAPSHOT_VERSION = "1.0"


class SnapshotNode(BaseModel):
    """One node of the nested snapshot document."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    path: str
    is_directory: bool = Field(alias="isDirectory")
    selected: bool
    expanded: bool = False
    children: list[SnapshotNode] | None = None


class Snapshot(BaseModel):
    """The whole snapshot document."""

    model_config = ConfigDict(extra="ignore")

    version: str = SNAPSHOT_VERSION
    nodes: list[SnapshotNode]


class SnapshotEntry(BaseModel):
    """Flattened saved state of one path."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    is_directory: bool
    selected: bool
    expanded: bool = False

    @property
    def state(self) -> UIState:
        return UIState(selected=self.selected, expanded=self.expanded)


def _has_obsolete_node(raw_nodes: list[Any]) -> bool:
    stack = list(raw_nodes)
    while stack:
        item = stack.pop()
        if not isinstance(item, dict):
            continue
        if "isDirectory" not in item:
            return True
        children = item.get("children")
        if isinstance(children, list):
            stack.extend(children)
    return False


def decode_snapshot(text: str, source: Path | None = None) -> dict[str, SnapshotEntry]:
    """Parse snapshot text into a flat ``path -> SnapshotEntry`` map.

    Args:
        text (str): the JSON document
        source (Path | None): file the text came from, for error reporting

    Raises:
        SnapshotFormatError: if the document is not valid JSON or does not match the
            schema. ``obsolete`` is set when any node lacks ``isDirectory`` or the
            document uses the legacy flat ``state`` list.

    Returns:
        dict[str, SnapshotEntry]: saved state keyed by root-relative path, in
            document pre-order
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SnapshotFormatError(path=source, reason=f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SnapshotFormatError(path=source, reason="top level is not an object")

    raw_nodes = data.get("nodes")
    if raw_nodes is None and isinstance(data.get("state"), list):
        raise SnapshotFormatError(path=source, reason="legacy flat state format", obsolete=True)
    if not isinstance(raw_nodes, list):
        raise SnapshotFormatError(path=source, reason="missing 'nodes' list")
    if _has_obsolete_node(raw_nodes):
        raise SnapshotFormatError(path=source, reason="node without 'isDirectory'", obsolete=True)

    try:
        snapshot = Snapshot.model_validate(data)
    except ValidationError as e:
        raise SnapshotFormatError(path=source, reason=str(e)) from e

    entries: dict[str, SnapshotEntry] = {}
    stack = list(reversed(snapshot.nodes))
    while stack:
        node = stack.pop()
        entries[node.path] = SnapshotEntry(
            name=node.name,
            path=node.path,
            is_directory=node.is_directory,
            selected=node.selected,
            expanded=node.expanded,
        )
        if node.children:
            stack.extend(reversed(node.children))
    return entries


def encode_snapshot(
    nodes: list[FileNode],
    states: Mapping[str, UIState],
    pending: Mapping[str, SnapshotEntry] | None = None,
) -> Snapshot:
    """Build the nested snapshot of a forest and its state.

    Pending entries (saved state of paths not scanned in this session) are nested
    under their parent, whether that parent is a live node or another pending
    entry, so their state survives the next save/load cycle. Pending entries
    whose parent is unknown are dropped.

    Args:
        nodes (list[FileNode]): the live top-level nodes
        states (Mapping[str, UIState]): live state by path
        pending (Mapping[str, SnapshotEntry] | None): not-yet-scanned saved state

    Returns:
        Snapshot: the document ready to be serialized
    """
    by_path: dict[str, SnapshotNode] = {}
    roots: list[SnapshotNode] = []

    def make(path: str, name: str, is_directory: bool, state: UIState) -> SnapshotNode:
        snap = SnapshotNode(
            name=name,
            path=path,
            is_directory=is_directory,
            selected=state.selected,
            expanded=state.expanded,
        )
        by_path[path] = snap
        return snap

    stack: list[tuple[FileNode, list[SnapshotNode]]] = [(n, roots) for n in reversed(nodes)]
    while stack:
        node, siblings = stack.pop()
        snap = make(node.path, node.name, node.is_directory, states.get(node.path, UIState()))
        siblings.append(snap)
        if node.children:
            snap.children = []
            stack.extend((child, snap.children) for child in reversed(node.children))

    for entry in sorted((pending or {}).values(), key=lambda e: e.path.count("/")):
        if entry.path in by_path:
            continue
        parent_key = parent_path(entry.path)
        snap = make(entry.path, entry.name, entry.is_directory, entry.state)
        if parent_key == ROOT_PATH:
            roots.append(snap)
            continue
        parent = by_path.get(parent_key)
        if parent is None:
            logger.info("snapshot_orphan_dropped", path=entry.path)
            del by_path[entry.path]
            continue
        parent.children = sorted([*(parent.children or []), snap], key=_snap_sort_key)

    roots.sort(key=_snap_sort_key)
    return Snapshot(version=SNAPSHOT_VERSION, nodes=roots)


def _snap_sort_key(node: SnapshotNode) -> tuple[bool, str]:
    return (not node.is_directory, node.name)


def dump_snapshot(snapshot: Snapshot) -> str:
    """Serialize a snapshot using the on-disk field names."""
    return snapshot.model_dump_json(by_alias=True, exclude_none=True, indent=2)


class SnapshotFile:
    """Reads, writes and deletes the snapshot file of one scan root."""

    def __init__(self, path: Path) -> None:
        self.path = path

    async def exists(self) -> bool:
        return await aiofiles.os.path.isfile(self.path)

    async def read(self) -> dict[str, SnapshotEntry] | None:
        """Load the saved state, or None when there is no usable snapshot.

        An obsolete snapshot is deleted so that it is not retried.
        """
        if not await self.exists():
            return None
        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                text = await f.read()
            return decode_snapshot(text, source=self.path)
        except SnapshotFormatError as e:
            logger.info("snapshot_rejected", path=str(self.path), reason=e.reason, obsolete=e.obsolete)
            if e.obsolete:
                await self.delete()
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("snapshot_unreadable", path=str(self.path), error=str(e))
            return None

    async def write(self, snapshot: Snapshot) -> bool:
        """Write the snapshot. Failures are logged and reported as False."""
        try:
            async with aiofiles.open(self.path, "w", encoding="utf-8") as f:
                await f.write(dump_snapshot(snapshot))
        except OSError as e:
            logger.warning("snapshot_save_failed", path=str(self.path), error=str(e))
            return False
        return True

    async def delete(self) -> None:
        try:
            await aiofiles.os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("snapshot_delete_failed", path=str(self.path), error=str(e))
