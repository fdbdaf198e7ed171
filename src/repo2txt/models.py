from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from collections.abc import Iterator

ROOT_PATH = "."


class FileNode(BaseModel):
    """One filesystem entry discovered during a scan.

    Attributes:
        name: Base name of the entry.
        path: Path relative to the scan root, ``/`` separated.
        is_directory: Whether the entry is a directory. Never changes.
        children: Child nodes, directories first then by name. Empty until scanned.
        size: File size in bytes, files only.
        mtime: Modification time, files only.
    """

    model_config = ConfigDict(frozen=False)

    name: str
    path: str
    is_directory: bool
    children: list[FileNode] = Field(default_factory=list)
    size: int | None = None
    mtime: datetime | None = None


class UIState(BaseModel):
    """Selection and expansion flags of one path.

    Instances are immutable so that copies handed to callers cannot bypass the store.
    """

    model_config = ConfigDict(frozen=True)

    selected: bool = False
    expanded: bool = False


class StoreEvent(StrEnum):
    """Notifications emitted by the tree store to its subscribers."""

    STATE_CHANGED = "state-changed"
    NODES_SCANNED = "nodes-scanned"


def sort_key(node: FileNode) -> tuple[bool, str]:
    """Directories first, then case-sensitive by name."""
    return (not node.is_directory, node.name)


def join_path(parent: str, name: str) -> str:
    """Join a child name onto a root-relative path."""
    if not parent or parent == ROOT_PATH:
        return name
    return f"{parent}/{name}"


def parent_path(path: str) -> str:
    """Return the root-relative parent of ``path`` (``.`` for top-level entries)."""
    head, sep, _ = path.rpartition("/")
    return head if sep else ROOT_PATH


def iter_nodes(nodes: list[FileNode]) -> Iterator[FileNode]:
    """Yield every node of a forest in depth-first pre-order, without recursion."""
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        yield node
        if node.children:
            stack.extend(reversed(node.children))


class SelectionStats(BaseModel):
    """Files and bytes currently selected for export, from cached scan sizes."""

    model_config = ConfigDict(frozen=True)

    files: int = 0
    size: int = 0
