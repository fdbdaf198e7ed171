"""Lazily discovered file tree with per-path selection and expansion state."""

from __future__ import annotations

import asyncio
import errno
from pathlib import Path
from typing import TYPE_CHECKING

from repo2txt.config import SNAPSHOT_FILENAME, SYSTEM_EXCLUDES, is_binary_file, is_private_file
from repo2txt.exceptions import ScanError
from repo2txt.filesystem import DirectoryLister
from repo2txt.ignore import IgnoreMatcher
from repo2txt.logging import logger
from repo2txt.models import (
    ROOT_PATH,
    FileNode,
    SelectionStats,
    StoreEvent,
    UIState,
    iter_nodes,
    join_path,
    sort_key,
)
from repo2txt.reconciler import SelectionReconciler
from repo2txt.snapshot import SnapshotFile, encode_snapshot

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from repo2txt.snapshot import SnapshotEntry

    Listener = Callable[[StoreEvent, str | None], None]

SELECTED_MARK = "[✓]"
UNSELECTED_MARK = "[ ]"

_PERMISSION_ERRNOS = frozenset({errno.EACCES, errno.EPERM})


def is_permission_error(error: OSError) -> bool:
    return isinstance(error, PermissionError) or error.errno in _PERMISSION_ERRNOS


class TreeStore:
    """Owns the node forest of one scan root and its selection state.

    Directories are listed on demand. Every discovered node gets a state right
    away: the saved one if a snapshot mentioned its path, otherwise selected
    unless the ignore rules match it.

    Args:
        root: the directory to scan
        matcher: compiled ignore rules, or None for no rules
        lister: directory listing collaborator; a private one is created if omitted
    """

    def __init__(
        self,
        root: str | Path,
        matcher: IgnoreMatcher | None = None,
        lister: DirectoryLister | None = None,
    ) -> None:
        self.root = Path(root)
        self.matcher = matcher or IgnoreMatcher()
        self.lister = lister or DirectoryLister()
        self.nodes: list[FileNode] = []
        self.snapshot_file = SnapshotFile(self.root / SNAPSHOT_FILENAME)
        self._reconciler = SelectionReconciler(self.matcher)
        self._index: dict[str, FileNode] = {}
        self._scanned: set[str] = set()
        self._in_flight: dict[str, asyncio.Future[None]] = {}
        self._listeners: list[Listener] = []
        self._initialized = False

    # ------------------------------------------------------------------ events

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: StoreEvent, path: str | None = None) -> None:
        for listener in list(self._listeners):
            listener(event, path)

    # ---------------------------------------------------------------- scanning

    async def initialize(self) -> None:
        """Scan the first level of the root and assign default state.

        A second call is a no-op.

        Raises:
            ScanError: if the root directory cannot be listed
        """
        if self._initialized:
            return
        try:
            names = await self.lister.list_names(self.root)
        except OSError as e:
            raise ScanError(path=self.root, reason=e.strerror or str(e)) from e
        self.nodes = await self._build_children(self.root, ROOT_PATH, names)
        self._index.update((n.path, n) for n in self.nodes)
        self._scanned.add(ROOT_PATH)
        self._reconciler.sync_children(self.nodes)
        self._initialized = True
        self._emit(StoreEvent.NODES_SCANNED)

    async def scan_directory(self, node: FileNode) -> None:
        """List an unscanned directory, attach its children and reconcile their state.

        No-op for files and for directories that were already scanned.
        """
        if not node.is_directory or node.children or node.path in self._scanned:
            return
        in_flight = self._in_flight.get(node.path)
        if in_flight is not None:
            await in_flight
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._in_flight[node.path] = future
        try:
            children = await self._list_children(node)
            node.children = children
            self._index.update((c.path, c) for c in children)
            self._scanned.add(node.path)
            self._reconciler.sync_children(children)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except BaseException as e:
            node.children = []
            self._scanned.discard(node.path)
            future.set_exception(e)
            # mark retrieved; waiters still receive the exception
            future.exception()
            raise
        else:
            future.set_result(None)
        finally:
            del self._in_flight[node.path]
        self._emit(StoreEvent.NODES_SCANNED)

    async def scan_all_directories(self) -> None:
        """Scan every directory of the forest, depth-first pre-order, ignoring expansion."""
        stack = list(reversed(self.nodes))
        while stack:
            node = stack.pop()
            if not node.is_directory:
                continue
            await self.scan_directory(node)
            stack.extend(reversed(node.children))

    async def scan_selected_directories(self) -> None:
        """Scan every selected directory and its selected sub-directories."""
        stack = list(reversed(self.nodes))
        while stack:
            node = stack.pop()
            if not node.is_directory or not self.is_selected(node.path):
                continue
            await self.scan_directory(node)
            stack.extend(reversed(node.children))

    async def _list_children(self, node: FileNode) -> list[FileNode]:
        directory = self.root / node.path
        try:
            names = await self.lister.list_names(directory)
        except OSError as e:
            if not is_permission_error(e):
                logger.warning("directory_scan_failed", path=str(directory), error=str(e))
            return []
        return await self._build_children(directory, node.path, names)

    async def _build_children(self, directory: Path, rel_dir: str, names: list[str]) -> list[FileNode]:
        children: list[FileNode] = []
        for name in names:
            if name in SYSTEM_EXCLUDES:
                continue
            full_path = directory / name
            try:
                st = await self.lister.stat(full_path)
            except OSError as e:
                if not is_permission_error(e):
                    logger.warning("entry_stat_failed", path=str(full_path), error=str(e))
                continue
            rel_path = join_path(rel_dir, name)
            if st.is_directory and st.is_symlink:
                # directory symlinks are never followed
                logger.debug("directory_symlink_skipped", path=str(full_path))
                continue
            if st.is_directory:
                children.append(FileNode(name=name, path=rel_path, is_directory=True))
                continue
            if is_binary_file(name) or is_private_file(name):
                continue
            children.append(
                FileNode(name=name, path=rel_path, is_directory=False, size=st.size, mtime=st.mtime),
            )
        children.sort(key=sort_key)
        return children

    def is_scanned(self, node: FileNode) -> bool:
        return not node.is_directory or node.path in self._scanned

    # ------------------------------------------------------------------- state

    def is_selected(self, path: str) -> bool:
        state = self._reconciler.states.get(path)
        return state.selected if state is not None else False

    def is_expanded(self, path: str) -> bool:
        state = self._reconciler.states.get(path)
        return state.expanded if state is not None else False

    def get_node_state(self, path: str) -> UIState | None:
        return self._reconciler.states.get(path)

    def get_state(self) -> dict[str, UIState]:
        """Copy of the live state merged with pending state (live wins)."""
        return self._reconciler.merged_state()

    def pending_paths(self) -> list[str]:
        return list(self._reconciler.pending)

    def toggle_selection(self, node: FileNode) -> bool:
        """Flip the selection of ``node`` and cascade the new value to its materialized subtree.

        The cascade overwrites: descendants do not remember a previous mixed state.
        Descendants discovered later get their own default or saved state.

        Returns:
            bool: the new selection value
        """
        current = self._reconciler.states.get(node.path, UIState())
        selected = not current.selected
        states = self._reconciler.states
        for item in iter_nodes([node]):
            previous = states.get(item.path, UIState())
            states[item.path] = previous.model_copy(update={"selected": selected})
        self._emit(StoreEvent.STATE_CHANGED, node.path)
        return selected

    def set_expanded(self, node: FileNode, expanded: bool) -> None:
        """Set the expansion flag. Scanning the directory is the caller's job."""
        previous = self._reconciler.states.get(node.path, UIState())
        self._reconciler.states[node.path] = previous.model_copy(update={"expanded": expanded})
        self._emit(StoreEvent.STATE_CHANGED, node.path)

    def select_all(self) -> None:
        """Select every discovered node, directories included, so nothing gates export."""
        self._set_all_selected(True)

    def deselect_all(self) -> None:
        self._set_all_selected(False)

    def _set_all_selected(self, selected: bool) -> None:
        states = self._reconciler.states
        for node in iter_nodes(self.nodes):
            previous = states.get(node.path, UIState())
            states[node.path] = previous.model_copy(update={"selected": selected})
        self._emit(StoreEvent.STATE_CHANGED)

    def load_snapshot(self, saved: Mapping[str, SnapshotEntry]) -> None:
        """Apply saved state to live nodes and keep the rest pending."""
        self._reconciler.load_snapshot(saved, self.nodes)
        self._emit(StoreEvent.STATE_CHANGED)

    def fill_missing_state(self) -> list[str]:
        """Give a state to any node that has none; returns the affected paths."""
        return self._reconciler.fill_missing(self.nodes)

    # ----------------------------------------------------------------- queries

    def find_by_path(self, path: str) -> FileNode | None:
        return self._index.get(path)

    def get_selected_files(self) -> list[str]:
        """Selected files in tree order.

        Unselected directories are not descended into, even when a file below them
        is selected.
        """
        files: list[str] = []
        stack = list(reversed(self.nodes))
        while stack:
            node = stack.pop()
            if not self.is_selected(node.path):
                continue
            if node.is_directory:
                stack.extend(reversed(node.children))
            else:
                files.append(node.path)
        return files

    def search_nodes(self, query: str) -> list[str]:
        """Paths of discovered nodes whose name contains ``query``, case-insensitively, in tree order."""
        needle = query.lower()
        return [node.path for node in iter_nodes(self.nodes) if needle in node.name.lower()]

    def get_selection_stats(self) -> SelectionStats:
        """Count the files ``get_selected_files`` would export and their cached sizes."""
        files = self.get_selected_files()
        size = sum(self._index[path].size or 0 for path in files)
        return SelectionStats(files=len(files), size=size)

    def _visible_paths(self) -> set[str]:
        # post-order: a directory is visible when selected or when any child is visible
        visible: set[str] = set()
        order = list(iter_nodes(self.nodes))
        for node in reversed(order):
            if self.is_selected(node.path) or (
                node.is_directory and any(c.path in visible for c in node.children)
            ):
                visible.add(node.path)
        return visible

    def get_tree_diagram(self) -> str:
        """Render selected nodes, and directories holding selected descendants, as a tree.

        Siblings are filtered before the last one is picked, so the corner connector
        always lands on the last visible entry.
        """
        visible = self._visible_paths()
        lines: list[str] = []
        top = [n for n in self.nodes if n.path in visible]
        stack: list[tuple[FileNode, str, bool]] = [
            (n, "", i == len(top) - 1) for i, n in reversed(list(enumerate(top)))
        ]
        while stack:
            node, prefix, last = stack.pop()
            branch = "└── " if last else "├── "
            mark = SELECTED_MARK if self.is_selected(node.path) else UNSELECTED_MARK
            suffix = "/" if node.is_directory else ""
            lines.append(f"{prefix}{branch}{mark} {node.name}{suffix}")
            if not node.children:
                continue
            shown = [c for c in node.children if c.path in visible]
            child_prefix = prefix + ("    " if last else "│   ")
            stack.extend((c, child_prefix, i == len(shown) - 1) for i, c in reversed(list(enumerate(shown))))
        return "\n".join(lines)

    # ------------------------------------------------------------- persistence

    async def load(self) -> bool:
        """Restore saved state from the snapshot file.

        Returns False when there is no usable snapshot. Otherwise the root is
        scanned if needed, the saved state applied, and every restored expanded
        directory scanned so that its saved children are adopted right away.
        """
        saved = await self.snapshot_file.read()
        if saved is None:
            return False
        await self.initialize()
        self.load_snapshot(saved)
        stack = list(reversed(self.nodes))
        while stack:
            node = stack.pop()
            if not node.is_directory or not self.is_expanded(node.path):
                continue
            await self.scan_directory(node)
            stack.extend(reversed(node.children))
        return True

    async def save(self) -> bool:
        """Persist the current state. Failures are logged, never raised."""
        snapshot = encode_snapshot(self.nodes, self._reconciler.states, self._reconciler.pending)
        return await self.snapshot_file.write(snapshot)

    async def clear_snapshot(self) -> None:
        await self.snapshot_file.delete()
