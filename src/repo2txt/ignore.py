"""Gitignore-style matching over paths relative to the scan root."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pathspec

from repo2txt.config import GITIGNORE_FILENAME, IGNORE_FILENAME
from repo2txt.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path


class IgnoreMatcher:
    """Compiled ignore rules answering ``is_ignored`` queries.

    Rules follow ``.gitignore`` precedence: the last matching pattern wins and
    ``!pattern`` re-includes. The matcher is read-only once built.
    """

    def __init__(self, pattern_text: str = "") -> None:
        self.pattern_text = pattern_text
        self._spec = pathspec.GitIgnoreSpec.from_lines(pattern_text.splitlines())

    @classmethod
    def compile(cls, pattern_text: str) -> IgnoreMatcher:
        return cls(pattern_text)

    def is_ignored(self, relative_path: str, is_directory: bool | None = None) -> bool:
        """Check a root-relative POSIX path against the rules.

        Directory patterns (``build/``) only match the trailing-slash form, so a
        directory is checked both as ``path`` and ``path/``. When the caller does
        not know whether the path is a directory, both forms are checked too.

        Args:
            relative_path (str): path relative to the scan root, ``/`` separated
            is_directory (bool | None): whether the path is a directory, if known

        Returns:
            bool: True if the path is ignored
        """
        path = relative_path.removeprefix("./").strip("/")
        if not path or path == ".":
            return False
        if self._spec.match_file(path):
            return True
        if is_directory is False:
            return False
        return self._spec.match_file(path + "/")


def build_ignore_text(
    root: Path,
    *,
    use_gitignore: bool = True,
    extra_patterns: Sequence[str] = (),
) -> str:
    """Concatenate the ignore sources of a scan root.

    Order (later wins on conflict): ``.gitignore``, ``.r2x_ignore``, then the
    ad-hoc patterns supplied by the caller (preset excludes, CLI flags).

    Args:
        root (Path): the scan root
        use_gitignore (bool): read ``.gitignore`` when True
        extra_patterns (Sequence[str]): additional patterns, one per entry

    Returns:
        str: the newline-joined pattern text
    """
    blocks: list[str] = []
    sources = [IGNORE_FILENAME]
    if use_gitignore:
        sources.insert(0, GITIGNORE_FILENAME)
    for name in sources:
        candidate = root / name
        if not candidate.is_file():
            continue
        try:
            content = candidate.read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            logger.warning("ignore_file_unreadable", path=str(candidate), error=str(e))
            continue
        if content:
            blocks.append(content.rstrip("\n"))
    extras = [p.strip() for p in extra_patterns if p and p.strip()]
    if extras:
        blocks.append("\n".join(extras))
    return "\n".join(blocks)
