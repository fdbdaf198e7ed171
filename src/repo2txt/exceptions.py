from dataclasses import dataclass
from pathlib import Path


@dataclass(eq=False)
class Repo2TxtError(Exception):
    """Base exception for errors in the repo2txt package."""


@dataclass(eq=False)
class ScanError(Repo2TxtError):
    """Raised when the scan root itself cannot be listed."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"Cannot scan {self.path}: {self.reason}"


@dataclass(eq=False)
class SnapshotFormatError(Repo2TxtError):
    """Raised when a saved selection snapshot is corrupt or uses an obsolete format.

    An obsolete snapshot must be deleted so that it is not retried on the next run.
    """

    path: Path | None
    reason: str
    obsolete: bool = False

    def __str__(self) -> str:
        return f"Invalid snapshot {self.path}: {self.reason}"


@dataclass(eq=False)
class FileReadError(Repo2TxtError):
    """Raised when a selected file cannot be read as text during export."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"Cannot read {self.path}: {self.reason}"


@dataclass(eq=False)
class SinkError(Repo2TxtError):
    """Raised when the export sink cannot be opened, written or was aborted."""

    reason: str

    def __str__(self) -> str:
        return f"Export sink failed: {self.reason}"


@dataclass(eq=False)
class PresetError(Repo2TxtError):
    """Raised when a named preset cannot be resolved."""

    name: str
    reason: str

    def __str__(self) -> str:
        return f"Preset {self.name!r}: {self.reason}"
