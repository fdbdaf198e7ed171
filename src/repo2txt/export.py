"""Turns the selection of a tree store into one markdown document, streamed to a sink."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from repo2txt.config import file_language
from repo2txt.exceptions import FileReadError, ScanError, SinkError
from repo2txt.filesystem import fresh_stat, read_text
from repo2txt.logging import logger
from repo2txt.sinks import FileSink, MemorySink

if TYPE_CHECKING:
    from collections.abc import Callable

    from repo2txt.sinks import ExportSink
    from repo2txt.tokens import Tokenizer
    from repo2txt.tree_store import TreeStore

    ProgressFn = Callable[[int, int, str], None]

DOCUMENT_HEADING = "# Collected Files\n\n"
STRUCTURE_HEADING = "## File Structure\n\n"
SEPARATOR = "---\n\n"
READ_ERROR_PLACEHOLDER = "*Error reading file*\n\n"


class ExportPhase(StrEnum):
    """States of one export run."""

    IDLE = "idle"
    SCANNING_ALL = "scanning-all"
    RECONCILING = "reconciling"
    RENDERING = "rendering"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


class ExportData(BaseModel):
    """What gets exported: the selected files and the diagram of the selection."""

    model_config = ConfigDict(frozen=True)

    selected_files: list[str]
    tree_diagram: str


class ExportStats(BaseModel):
    """Statistics over the files that were read successfully."""

    files: int = 0
    size: int = 0
    tokens: int = 0


class ExportResult(BaseModel):
    """Outcome of ``generate_markdown``. ``content`` is None when written to a file."""

    model_config = ConfigDict(frozen=True)

    content: str | None
    stats: ExportStats


def render_header(tree_diagram: str) -> str:
    return f"{DOCUMENT_HEADING}{STRUCTURE_HEADING}```\n{tree_diagram}\n```\n\n{SEPARATOR}"


def render_file_section(rel_path: str, content: str) -> list[str]:
    """Chunks of one file section: subheading, fenced content, separator."""
    language = file_language(rel_path)
    fence = f"```{language}" if language else "```"
    return [f"## {rel_path}\n\n", f"{fence}\n", content, "\n```\n\n", SEPARATOR]


def render_error_section(rel_path: str) -> list[str]:
    return [f"## {rel_path}\n\n", READ_ERROR_PLACEHOLDER, SEPARATOR]


class ExportPipeline:
    """Scans everything, reconciles, renders, then streams the selected files.

    ``Idle -> ScanningAll -> Reconciling -> Rendering -> Streaming -> Done``; a root
    that cannot be scanned or a failing sink moves the pipeline to ``Failed``.
    Files are read one at a time so that statistics and progress are deterministic.

    Args:
        store: the tree store holding the forest and its selection
        tokenizer: ``text -> token count``
        progress: optional ``(index, total, path)`` callback, called before each file
    """

    def __init__(
        self,
        store: TreeStore,
        tokenizer: Tokenizer,
        progress: ProgressFn | None = None,
    ) -> None:
        self.store = store
        self.tokenizer = tokenizer
        self.progress = progress
        self.phase = ExportPhase.IDLE

    def _enter(self, phase: ExportPhase) -> None:
        logger.debug("export_phase", previous=self.phase.value, phase=phase.value)
        self.phase = phase

    async def prepare(self) -> ExportData:
        """Force a full scan and compute the selected files and the tree diagram.

        Raises:
            ScanError: if the root cannot be listed
        """
        self._enter(ExportPhase.SCANNING_ALL)
        try:
            await self.store.initialize()
            await self.store.scan_all_directories()
        except ScanError:
            self._enter(ExportPhase.FAILED)
            raise

        self._enter(ExportPhase.RECONCILING)
        filled = self.store.fill_missing_state()
        if filled:
            logger.debug("export_state_filled", count=len(filled))

        self._enter(ExportPhase.RENDERING)
        return ExportData(
            selected_files=self.store.get_selected_files(),
            tree_diagram=self.store.get_tree_diagram(),
        )

    async def write(self, data: ExportData, sink: ExportSink) -> ExportStats:
        """Stream the document into ``sink`` and close it.

        Unreadable files get a placeholder section and are left out of the
        statistics. Any failure while streaming, including one raised by the
        tokenizer or the progress callback, discards the partial output and
        leaves the pipeline in ``FAILED``.

        Raises:
            SinkError: if the sink fails or is aborted
        """
        self._enter(ExportPhase.STREAMING)
        stats = ExportStats()
        try:
            await sink.write(render_header(data.tree_diagram))
            total = len(data.selected_files)
            for index, rel_path in enumerate(data.selected_files, start=1):
                if self.progress is not None:
                    self.progress(index, total, rel_path)
                try:
                    content, size = await self._read_file(rel_path)
                except FileReadError as e:
                    logger.warning("export_file_unreadable", path=rel_path, reason=e.reason)
                    for chunk in render_error_section(rel_path):
                        await sink.write(chunk)
                    continue
                stats.files += 1
                stats.size += size
                stats.tokens += self.tokenizer(content)
                for chunk in render_file_section(rel_path, content):
                    await sink.write(chunk)
            await sink.close()
        except BaseException as e:
            self._enter(ExportPhase.FAILED)
            logger.error("export_failed", error_type=type(e).__name__, reason=str(e))
            await sink.discard()
            raise
        self._enter(ExportPhase.DONE)
        logger.info("export_done", files=stats.files, size=stats.size, tokens=stats.tokens)
        return stats

    async def run(self, sink: ExportSink) -> ExportStats:
        data = await self.prepare()
        return await self.write(data, sink)

    async def _read_file(self, rel_path: str) -> tuple[str, int]:
        full_path = self.store.root / rel_path
        try:
            content = await read_text(full_path)
            st = await fresh_stat(full_path)
        except (OSError, UnicodeDecodeError) as e:
            raise FileReadError(path=full_path, reason=str(e)) from e
        return content, st.size


async def generate_markdown(
    store: TreeStore,
    output_path: str | Path | None,
    tokenizer: Tokenizer,
    progress: ProgressFn | None = None,
) -> ExportResult:
    """Export the selection of ``store`` to a file, or to a returned string.

    Args:
        store (TreeStore): the tree store to export
        output_path (str | Path | None): destination file, or None to only return the text
        tokenizer (Tokenizer): token counter
        progress (ProgressFn | None): per-file progress callback

    Raises:
        ScanError: if the root cannot be listed
        SinkError: if the destination cannot be opened or written

    Returns:
        ExportResult: the text (None for file output) and the statistics
    """
    pipeline = ExportPipeline(store, tokenizer=tokenizer, progress=progress)
    data = await pipeline.prepare()
    if output_path is None:
        memory = MemorySink()
        stats = await pipeline.write(data, memory)
        return ExportResult(content=memory.getvalue(), stats=stats)
    try:
        sink = await FileSink(Path(output_path)).open()
    except SinkError:
        pipeline.phase = ExportPhase.FAILED
        raise
    stats = await pipeline.write(data, sink)
    return ExportResult(content=None, stats=stats)


async def estimate_selection(store: TreeStore, tokenizer: Tokenizer) -> ExportStats:
    """Statistics of the current selection, without scanning further or writing anything.

    Only discovered nodes count and sizes come from the scan cache. Unreadable
    files are left out as they would be in an export.
    """
    stats = ExportStats()
    for rel_path in store.get_selected_files():
        try:
            content = await read_text(store.root / rel_path)
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("estimate_file_unreadable", path=rel_path, error=str(e))
            continue
        node = store.find_by_path(rel_path)
        stats.files += 1
        if node is not None and node.size:
            stats.size += node.size
        stats.tokens += tokenizer(content)
    return stats
