from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_FILE = find_dotenv(usecwd=True)
if ENV_FILE:
    load_dotenv(ENV_FILE, override=False)

DEFAULT_ENCODING = "o200k_base"


def default_encoding() -> str:
    """Tokenizer encoding from ``REPO2TXT_ENCODING``, falling back to ``o200k_base``."""
    return os.environ.get("REPO2TXT_ENCODING", "").strip() or DEFAULT_ENCODING


class Settings(BaseModel):
    """Configuration settings for a repo2txt run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    directory: Path = Field(default_factory=Path.cwd, description="Target directory to scan.")
    output: Path = Field(default=Path("output.md"), description="Output markdown file.")
    stdout: bool = Field(default=False, description="Print the export instead of writing a file.")
    ignore_gitignore: bool = Field(default=False, description="Do not read .gitignore.")
    exclude: list[str] = Field(default_factory=list, description="Extra ignore patterns.")
    preset: str = Field(default="", description="Preset name from .repo2txtrc.")
    clean: bool = Field(default=False, description="Delete the saved selection before running.")
    save_state: bool = Field(default=False, description="Persist the selection after export.")
    log_file: str = Field(default="", description="Log file path.")
    encoding: str = Field(default_factory=default_encoding, description="tiktoken encoding name.")
