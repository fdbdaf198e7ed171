"""Destinations for the streamed export document."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, Protocol

import aiofiles
import aiofiles.os

from repo2txt.exceptions import SinkError
from repo2txt.logging import logger

if TYPE_CHECKING:
    from pathlib import Path

    from aiofiles.threadpool.text import AsyncTextIOWrapper

DEFAULT_HIGH_WATER_MARK = 64 * 1024


class ExportSink(Protocol):
    """Where the export pipeline writes its chunks.

    ``write`` may suspend until the destination can take more data; awaiting it
    is the backpressure point. A sink that failed or was aborted raises
    ``SinkError`` from ``write`` and ``close``.
    """

    async def write(self, chunk: str) -> None: ...

    async def close(self) -> None: ...

    def abort(self, reason: str) -> None: ...

    async def discard(self) -> None: ...


class MemorySink:
    """Accumulates the document in memory. Never applies backpressure."""

    def __init__(self) -> None:
        self._buffer = io.StringIO()
        self._aborted: str | None = None
        self.closed = False

    async def write(self, chunk: str) -> None:
        if self._aborted is not None:
            raise SinkError(reason=self._aborted)
        if self.closed:
            raise SinkError(reason="write after close")
        self._buffer.write(chunk)

    async def close(self) -> None:
        if self._aborted is not None:
            raise SinkError(reason=self._aborted)
        self.closed = True

    def abort(self, reason: str) -> None:
        self._aborted = reason

    async def discard(self) -> None:
        self._buffer = io.StringIO()
        self.closed = True

    def getvalue(self) -> str:
        return self._buffer.getvalue()


class FileSink:
    """Writes the document to a file, holding at most ``high_water_mark`` characters.

    Once the pending buffer reaches the mark, ``write`` waits for the buffer to
    be written and flushed before it returns, so a slow disk slows the producer
    down instead of letting the buffer grow.
    """

    def __init__(self, path: Path, high_water_mark: int = DEFAULT_HIGH_WATER_MARK) -> None:
        self.path = path
        self.high_water_mark = high_water_mark
        self._file: AsyncTextIOWrapper | None = None
        self._pending: list[str] = []
        self._pending_size = 0
        self._error: str | None = None
        self.closed = False

    async def open(self) -> FileSink:
        """Open the destination file for writing.

        Raises:
            SinkError: if the file cannot be created
        """
        try:
            self._file = await aiofiles.open(self.path, "w", encoding="utf-8")
        except OSError as e:
            raise SinkError(reason=f"cannot open {self.path}: {e}") from e
        return self

    async def write(self, chunk: str) -> None:
        self._check()
        self._pending.append(chunk)
        self._pending_size += len(chunk)
        if self._pending_size >= self.high_water_mark:
            await self.drain()

    async def drain(self) -> None:
        """Write and flush everything buffered so far."""
        self._check()
        if self._file is None:
            raise SinkError(reason=f"{self.path} is not open")
        data = "".join(self._pending)
        self._pending.clear()
        self._pending_size = 0
        try:
            await self._file.write(data)
            await self._file.flush()
        except OSError as e:
            self._error = f"write to {self.path} failed: {e}"
            raise SinkError(reason=self._error) from e
        self._check()

    async def close(self) -> None:
        if self.closed:
            return
        await self.drain()
        try:
            await self._file.close()  # type: ignore[union-attr]
        except OSError as e:
            self._error = f"close of {self.path} failed: {e}"
            raise SinkError(reason=self._error) from e
        self.closed = True

    def abort(self, reason: str) -> None:
        """Make the next write fail, aborting the export that owns this sink."""
        self._error = reason

    async def discard(self) -> None:
        """Close the file without flushing and remove the partial output."""
        self._pending.clear()
        self._pending_size = 0
        if self._file is not None and not self.closed:
            try:
                await self._file.close()
            except OSError as e:
                logger.warning("sink_close_failed", path=str(self.path), error=str(e))
        self.closed = True
        try:
            await aiofiles.os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("partial_output_not_removed", path=str(self.path), error=str(e))

    def _check(self) -> None:
        if self._error is not None:
            raise SinkError(reason=self._error)
        if self.closed:
            raise SinkError(reason=f"{self.path} is closed")
