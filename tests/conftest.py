from __future__ import annotations

from pathlib import Path

import pytest


def write_tree(root: Path, files: dict[str, str | bytes | None]) -> Path:
    """Create files under ``root``; a ``None`` value creates a directory."""
    for rel, content in files.items():
        target = root / rel
        if content is None:
            target.mkdir(parents=True, exist_ok=True)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content, encoding="utf-8")
    return root


def word_count(text: str) -> int:
    return len(text.split())


@pytest.fixture
def make_tree(tmp_path: Path):  # noqa: ANN201
    def factory(files: dict[str, str | bytes | None]) -> Path:
        return write_tree(tmp_path, files)

    return factory
