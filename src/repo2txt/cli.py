"""repo2txt: export selected project files, with a tree diagram, as one markdown document.

The selection starts from the ignore rules (``.gitignore``, ``.r2x_ignore``,
preset and ``--exclude`` patterns) or from the state saved in ``.r2x`` by an
earlier run. Every directory is scanned before export, so files in folders
that were never expanded are included too.

Usage
-----
    repo2txt -d path/to/project -o export.md
    repo2txt --preset backend --exclude "docs/" --stdout
    repo2txt --clean --save-state --log-file export.log
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from repo2txt import __version__
from repo2txt.config import load_preset
from repo2txt.exceptions import PresetError, ScanError, SinkError
from repo2txt.export import generate_markdown
from repo2txt.ignore import IgnoreMatcher, build_ignore_text
from repo2txt.logging import logger, setup_logging
from repo2txt.settings import Settings
from repo2txt.tokens import format_file_size, format_token_count, get_tokenizer
from repo2txt.tree_store import TreeStore

if TYPE_CHECKING:
    from collections.abc import Sequence

    from repo2txt.export import ExportResult


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    p = argparse.ArgumentParser(
        prog="repo2txt",
        description="Export selected project files and their tree as markdown for LLMs.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-d", "--directory", type=str, default=".", help="Target directory to scan.")
    p.add_argument("-o", "--output", type=str, default="output.md", help="Output file path.")
    p.add_argument(
        "--stdout",
        action="store_true",
        help="Print the document to stdout instead of writing a file.",
    )
    p.add_argument(
        "-i",
        "--ignore-gitignore",
        action="store_true",
        help="Do not read .gitignore.",
    )
    p.add_argument(
        "-e",
        "--exclude",
        action="append",
        default=[],
        help="Additional exclusion pattern (repeatable).",
    )
    p.add_argument("-p", "--preset", type=str, default="", help="Use a preset from .repo2txtrc.json.")
    p.add_argument(
        "--clean",
        action="store_true",
        help="Delete the saved .r2x selection before running.",
    )
    p.add_argument(
        "--save-state",
        action="store_true",
        help="Save the selection to .r2x after the export.",
    )
    p.add_argument("--log-file", type=str, default="", help="Log file path.")
    p.add_argument("--encoding", type=str, default=None, help="tiktoken encoding for token counts.")
    args = vars(p.parse_args(argv))
    if args["encoding"] is None:
        del args["encoding"]
    return Settings(**args)


def build_store(settings: Settings, root: Path) -> TreeStore:
    """Create the tree store of ``root`` with the ignore rules the settings ask for.

    Raises:
        PresetError: if the requested preset cannot be resolved
    """
    extra: list[str] = []
    use_gitignore = not settings.ignore_gitignore
    if settings.preset:
        preset = load_preset(root, settings.preset)
        extra.extend(preset.exclude)
        use_gitignore = use_gitignore and not preset.ignore_gitignore
    extra.extend(settings.exclude)
    text = build_ignore_text(root, use_gitignore=use_gitignore, extra_patterns=extra)
    return TreeStore(root, matcher=IgnoreMatcher.compile(text))


async def run(settings: Settings, root: Path) -> ExportResult:
    store = build_store(settings, root)
    if settings.clean:
        await store.clear_snapshot()
    if await store.load():
        logger.info("selection_restored", root=str(root))
    else:
        await store.initialize()

    def progress(index: int, total: int, rel_path: str) -> None:
        logger.info("processing", index=index, total=total, path=rel_path)

    output = None if settings.stdout else settings.output
    result = await generate_markdown(
        store,
        output,
        tokenizer=get_tokenizer(settings.encoding),
        progress=progress,
    )
    if settings.save_state:
        await store.save()
    return result


def print_stats(result: ExportResult, destination: str) -> None:
    out = sys.stderr if destination == "-" else sys.stdout
    print("Statistics:", file=out)
    print(f"   Files: {result.stats.files}", file=out)
    print(f"   Size: {format_file_size(result.stats.size)}", file=out)
    print(f"   Tokens: {format_token_count(result.stats.tokens)}", file=out)
    if destination != "-":
        print(f"Done! File saved: {destination}", file=out)


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    if settings.log_file:
        setup_logging(settings.log_file)

    root = Path(settings.directory).resolve()
    if not root.is_dir():
        print(f"Error: {root} is not a directory", file=sys.stderr)
        return 1
    if not settings.stdout:
        settings.output = Path(settings.output).resolve()

    try:
        result = asyncio.run(run(settings, root))
    except (PresetError, ScanError, SinkError) as e:
        logger.error("run_failed", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if settings.stdout:
        sys.stdout.write(result.content or "")
        print_stats(result, "-")
    else:
        print_stats(result, str(settings.output))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
