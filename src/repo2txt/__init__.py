"""repo2txt: select files from a project tree and export them as one markdown document."""

from repo2txt.export import ExportPipeline, ExportResult, ExportStats, estimate_selection, generate_markdown
from repo2txt.ignore import IgnoreMatcher, build_ignore_text
from repo2txt.models import FileNode, UIState
from repo2txt.tree_store import TreeStore

__version__ = "1.0.0"

__all__ = [
    "ExportPipeline",
    "ExportResult",
    "ExportStats",
    "FileNode",
    "IgnoreMatcher",
    "TreeStore",
    "UIState",
    "__version__",
    "build_ignore_text",
    "estimate_selection",
    "generate_markdown",
]
