"""Exception hierarchy and process exit codes."""
from __future__ import annotations

from typing import Dict, List, Optional


EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_COLLISION = 2
EXIT_DECLINED = 3
EXIT_DEPENDENCY_MISSING = 4
EXIT_IO_FAILED = 5
EXIT_INVALID_SOURCE = 6


class MirrorError(Exception):
    """Base class for all encoded-mirror failures."""


class ConfigError(MirrorError):
    """Configuration file missing or unusable."""


class DependencyError(MirrorError):
    """An external tool (ffmpeg, rclone) is not available."""


class MissingExtensionError(MirrorError, ValueError):
    """A source path has no file extension, so no output name can be derived."""

    def __init__(self, rel_path: str) -> None:
        super().__init__(f"File has no extension: {rel_path}")
        self.rel_path = rel_path


class NameCollisionError(MirrorError):
    """Several source files would produce the same destination file."""

    def __init__(self, collisions: Dict[str, List[str]]) -> None:
        super().__init__(
            f"{len(collisions)} destination name(s) produced by more than one source file"
        )
        self.collisions = collisions


class RecordError(MirrorError):
    """The record file could not be read or written."""


class TreeOperationError(MirrorError):
    """A list/copy/rename/delete/mkdir operation on a tree failed."""


class TranscodeError(MirrorError):
    """ffmpeg exited with an error."""


class MetadataError(MirrorError):
    """Tags of an audio file could not be read or written."""


class ActionError(MirrorError):
    """A planned action failed; carries the phase and path for manual recovery."""

    def __init__(self, phase: str, path: str, cause: Optional[BaseException] = None) -> None:
        msg = f"{phase} failed for {path}"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)
        self.phase = phase
        self.path = path
