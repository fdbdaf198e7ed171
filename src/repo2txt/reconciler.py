"""Reconciles live selection state with saved snapshots and ignore defaults."""

from __future__ import annotations

from typing import TYPE_CHECKING

from repo2txt.models import UIState, iter_nodes

if TYPE_CHECKING:
    from collections.abc import Mapping

    from repo2txt.ignore import IgnoreMatcher
    from repo2txt.models import FileNode
    from repo2txt.snapshot import SnapshotEntry


class SelectionReconciler:
    """Owns the live ``UIState`` map and the pending (not yet scanned) map.

    A path has at most one authoritative state: a live entry once its node has
    been discovered, a pending entry before that. Pending entries move to the
    live map exactly once, when a scan discovers their path.
    """

    def __init__(self, matcher: IgnoreMatcher) -> None:
        self.matcher = matcher
        self.states: dict[str, UIState] = {}
        self.pending: dict[str, SnapshotEntry] = {}

    def default_state(self, node: FileNode) -> UIState:
        """Selected unless ignored, collapsed."""
        return UIState(selected=not self.matcher.is_ignored(node.path, node.is_directory))

    def sync_children(self, children: list[FileNode]) -> None:
        """Assign state to freshly attached children, descending into attached subtrees.

        For each node: adopt and drop a pending entry when there is one, otherwise
        select unless ignored while keeping any ``expanded`` flag already recorded
        for the path.
        """
        for node in iter_nodes(children):
            saved = self.pending.pop(node.path, None)
            if saved is not None:
                self.states[node.path] = saved.state
                continue
            existing = self.states.get(node.path)
            self.states[node.path] = UIState(
                selected=not self.matcher.is_ignored(node.path, node.is_directory),
                expanded=existing.expanded if existing is not None else False,
            )

    def fill_missing(self, nodes: list[FileNode]) -> list[str]:
        """Assign a state to every node of the forest that has none yet.

        Returns:
            list[str]: the paths that received a state
        """
        filled: list[str] = []
        for node in iter_nodes(nodes):
            if node.path in self.states:
                continue
            saved = self.pending.pop(node.path, None)
            self.states[node.path] = saved.state if saved is not None else self.default_state(node)
            filled.append(node.path)
        return filled

    def load_snapshot(self, saved: Mapping[str, SnapshotEntry], nodes: list[FileNode]) -> None:
        """Merge saved state into the live tree.

        Paths present in the live tree take the saved flags immediately, even if
        they had no live entry yet. Paths not discovered yet wait in the pending
        map until a scan reaches them.
        """
        live = {node.path for node in iter_nodes(nodes)}
        for path, entry in saved.items():
            if path in live:
                self.states[path] = entry.state
                self.pending.pop(path, None)
            else:
                self.pending[path] = entry

    def merged_state(self) -> dict[str, UIState]:
        """Live state plus pending state for paths without a live entry."""
        merged = dict(self.states)
        for path, entry in self.pending.items():
            merged.setdefault(path, entry.state)
        return merged
