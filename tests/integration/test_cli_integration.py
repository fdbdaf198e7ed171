from __future__ import annotations

from pathlib import Path

import pytest

from repo2txt.export import generate_markdown
from repo2txt.ignore import IgnoreMatcher, build_ignore_text
from repo2txt.tree_store import TreeStore


def word_count(text: str) -> int:
    return len(text.split())


def build_project(root: Path) -> Path:
    files = {
        ".gitignore": "*.log\nbuild-out/\n",
        ".r2x_ignore": "docs/\n!docs/keep.md\n",
        "README.md": "# demo",
        "app.log": "noise",
        "src/main.py": "print('main')",
        "src/util/helpers.py": "def helper(): pass",
        "docs/guide.md": "guide",
        "docs/keep.md": "keep",
        "build-out/bundle.js": "bundle",
        "assets/logo.png": "not really a png",
        ".env": "SECRET=1",
    }
    for rel, content in files.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return root


@pytest.mark.integration
@pytest.mark.asyncio
async def test_export_honours_every_ignore_source(tmp_path: Path) -> None:
    root = build_project(tmp_path / "proj")
    matcher = IgnoreMatcher.compile(build_ignore_text(root))
    store = TreeStore(root, matcher=matcher)

    result = await generate_markdown(store, None, tokenizer=word_count)

    content = result.content or ""
    assert "## src/main.py\n\n```python\nprint('main')\n```" in content
    assert "## src/util/helpers.py" in content
    assert "## README.md" in content
    assert "## docs/keep.md" not in content
    for absent in ("app.log", "bundle.js", "logo.png", ".env", "guide.md"):
        assert f"## {absent}" not in content
        assert absent not in content.split("---", 1)[0]
    assert result.stats.files == 4


@pytest.mark.integration
@pytest.mark.asyncio
async def test_saved_selection_survives_a_new_session(tmp_path: Path) -> None:
    root = build_project(tmp_path / "proj")
    matcher = IgnoreMatcher.compile(build_ignore_text(root))
    first = TreeStore(root, matcher=matcher)
    await first.initialize()
    src = first.find_by_path("src")
    await first.scan_directory(src)
    first.set_expanded(src, True)
    first.toggle_selection(first.find_by_path("src/main.py"))
    assert await first.save() is True

    second = TreeStore(root, matcher=matcher)
    assert await second.load() is True
    assert second.find_by_path("src/main.py") is not None
    result = await generate_markdown(second, None, tokenizer=word_count)

    content = result.content or ""
    assert "## src/main.py" not in content
    assert "## src/util/helpers.py" in content
    assert "[ ] main.py" not in content
    assert second.is_expanded("src") is True
