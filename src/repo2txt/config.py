from __future__ import annotations

import re
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from repo2txt.exceptions import PresetError

SNAPSHOT_FILENAME = ".r2x"
IGNORE_FILENAME = ".r2x_ignore"
GITIGNORE_FILENAME = ".gitignore"
PRESET_FILENAMES = (".repo2txtrc.json", ".repo2txtrc.yaml", ".repo2txtrc.yml")

SYSTEM_EXCLUDES = frozenset(
    {
        ".git",
        ".svn",
        ".hg",
        ".DS_Store",
        "Thumbs.db",
        "node_modules",
        "dist",
        "build",
        ".next",
        ".cache",
        ".vite",
        ".turbo",
        "coverage",
        ".nyc_output",
        "__pycache__",
        ".mypy_cache",
        ".ruff_cache",
        ".pytest_cache",
        ".venv",
        ".idea",
        ".vscode",
        ".vs",
        SNAPSHOT_FILENAME,
        IGNORE_FILENAME,
    },
)

BINARY_EXTENSIONS = frozenset(
    {
        # images
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".svg", ".webp", ".ico", ".tiff", ".tif",
        ".psd", ".ai", ".eps", ".raw", ".cr2", ".nef", ".orf", ".sr2", ".heic", ".heif", ".avif",
        # video
        ".mp4", ".avi", ".mov", ".wmv", ".flv", ".webm", ".mkv", ".m4v", ".3gp", ".mpg", ".mpeg",
        ".vob", ".ogv", ".mts", ".m2ts",
        # audio
        ".mp3", ".wav", ".flac", ".aac", ".ogg", ".wma", ".m4a", ".opus", ".amr", ".aiff",
        # archives and executables
        ".zip", ".rar", ".7z", ".tar", ".gz", ".bz2", ".xz", ".cab", ".deb", ".rpm", ".dmg",
        ".iso", ".apk", ".exe", ".msi",
        # fonts
        ".ttf", ".otf", ".woff", ".woff2", ".eot",
        # documents
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".odt", ".ods", ".odp",
    },
)  # fmt: skip

PRIVATE_FILE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        r"^\.env$",
        r"^\.env\.",
        r"\.secret$",
        r"\.key$",
        r"\.pem$",
        r"\.p12$",
        r"\.pfx$",
        r"\.crt$",
        r"\.cer$",
        r"\.der$",
        r"\.jks$",
        r"\.keystore$",
        r"\.private$",
        r"\.credentials$",
        r"id_rsa$",
        r"id_dsa$",
        r"id_ecdsa$",
        r"id_ed25519$",
        r"config\.local",
        r"secrets",
    )
)

SPECIAL_FILES: dict[str, str] = {
    "Dockerfile": "dockerfile",
    "Makefile": "makefile",
    "LICENSE": "text",
    "README": "markdown",
    "CHANGELOG": "markdown",
    ".gitignore": "gitignore",
    ".gitattributes": "gitattributes",
    ".env": "dotenv",
    ".env.example": "dotenv",
    "docker-compose.yml": "yaml",
    "docker-compose.yaml": "yaml",
}

EXT2LANG: dict[str, str] = {
    ".ts": "typescript",
    ".js": "javascript",
    ".tsx": "tsx",
    ".jsx": "jsx",
    ".json": "json",
    ".md": "markdown",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".xml": "xml",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".sass": "sass",
    ".less": "less",
    ".py": "python",
    ".java": "java",
    ".cpp": "cpp",
    ".c": "c",
    ".h": "c",
    ".hpp": "cpp",
    ".rs": "rust",
    ".go": "go",
    ".php": "php",
    ".rb": "ruby",
    ".sh": "bash",
    ".bash": "bash",
    ".zsh": "bash",
    ".sql": "sql",
    ".vue": "vue",
    ".svelte": "svelte",
    ".toml": "toml",
    ".ini": "ini",
    ".conf": "conf",
    ".config": "conf",
}

DEFAULT_LANGUAGE = "text"


def file_language(path: str | Path) -> str:
    """Heuristically determine a file's language tag for the fenced code block.

    Special file names (``Dockerfile``, ``.env``, ``docker-compose.yml`` ...) are
    matched first, then the lower-cased extension.

    Args:
        path (str | Path): the file path, relative or absolute

    Returns:
        str: a language tag such as "python", or "text" when unknown
    """
    p = Path(path)
    special = SPECIAL_FILES.get(p.name)
    if special:
        return special
    return EXT2LANG.get(p.suffix.lower(), DEFAULT_LANGUAGE)


def is_binary_file(name: str) -> bool:
    """Check whether a file name carries one of the fixed binary extensions."""
    return Path(name).suffix.lower() in BINARY_EXTENSIONS


def is_private_file(name: str) -> bool:
    """Check whether a file name looks like a credential or key file."""
    low = name.lower()
    return any(p.search(low) for p in PRIVATE_FILE_PATTERNS)


class Preset(BaseModel):
    """A named set of exclusions stored in ``.repo2txtrc``."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    exclude: list[str] = Field(default_factory=list)
    ignore_gitignore: bool = Field(default=False, alias="ignoreGitignore")


class PresetFile(BaseModel):
    """Top-level layout of a ``.repo2txtrc`` file."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    presets: dict[str, Preset] = Field(default_factory=dict)


def find_preset_file(root: Path) -> Path | None:
    """Return the first ``.repo2txtrc`` variant present in ``root``."""
    for name in PRESET_FILENAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


def load_preset(root: Path, name: str) -> Preset:
    """Load the preset ``name`` from the rc file in ``root``.

    The rc file is parsed with ``yaml.safe_load``, which also reads the JSON variant.

    Args:
        root (Path): the scan root holding the rc file
        name (str): the preset to resolve

    Raises:
        PresetError: if the rc file is missing, unparsable, or has no such preset

    Returns:
        Preset: the resolved preset
    """
    rc = find_preset_file(root)
    if rc is None:
        raise PresetError(name=name, reason=f"no {PRESET_FILENAMES[0]} found in {root}")
    try:
        data = yaml.safe_load(rc.read_text(encoding="utf-8")) or {}
        parsed = PresetFile.model_validate(data)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise PresetError(name=name, reason=f"cannot read {rc.name}: {e}") from e
    preset = parsed.presets.get(name)
    if preset is None:
        raise PresetError(name=name, reason=f"not found in {rc.name}")
    return preset
