"""Async directory listing and stat collaborator used by the tree store."""

from __future__ import annotations

import stat as stat_mod
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import aiofiles
import aiofiles.os
from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    import os
    from pathlib import Path


class StatResult(BaseModel):
    """The subset of ``os.stat_result`` the tree needs."""

    model_config = ConfigDict(frozen=True)

    is_directory: bool
    size: int
    mtime: datetime
    is_symlink: bool = False


def to_stat_result(st: os.stat_result, *, is_symlink: bool = False) -> StatResult:
    return StatResult(
        is_directory=stat_mod.S_ISDIR(st.st_mode),
        is_symlink=is_symlink,
        size=int(st.st_size),
        mtime=datetime.fromtimestamp(st.st_mtime, tz=UTC),
    )


class DirectoryLister:
    """Lists directories and stats entries, caching stat results per instance.

    One lister belongs to one tree store, so separate sessions in the same
    process never share cached entries. Cached entries are never invalidated:
    the export is a point-in-time snapshot.
    """

    def __init__(self) -> None:
        self._stat_cache: dict[Path, StatResult] = {}

    async def list_names(self, directory: Path) -> list[str]:
        """Return the entry names of ``directory``. OS errors propagate."""
        return list(await aiofiles.os.listdir(directory))

    async def stat(self, path: Path) -> StatResult:
        """Return the cached stat of ``path``, calling ``stat`` on first use.

        The link itself is inspected first. A symlink is reported with its target's
        type and size and ``is_symlink`` set; a dangling link raises ``OSError``.
        """
        cached = self._stat_cache.get(path)
        if cached is not None:
            return cached
        st = await aiofiles.os.stat(path, follow_symlinks=False)
        if stat_mod.S_ISLNK(st.st_mode):
            result = to_stat_result(await aiofiles.os.stat(path), is_symlink=True)
        else:
            result = to_stat_result(st)
        self._stat_cache[path] = result
        return result

    def cache_size(self) -> int:
        return len(self._stat_cache)


async def fresh_stat(path: Path) -> StatResult:
    """Stat ``path`` bypassing any cache."""
    return to_stat_result(await aiofiles.os.stat(path))


async def read_text(path: Path) -> str:
    """Read a whole file as strict UTF-8.

    Raises:
        OSError: if the file cannot be opened or read
        UnicodeDecodeError: if the content is not valid UTF-8
    """
    async with aiofiles.open(path, encoding="utf-8") as f:
        return await f.read()
