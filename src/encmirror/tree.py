"""Tree handles and the file operations the executor needs on them.

A tree root is either a local path or an rclone ``remote:path`` pair. Both
expose the same operations; local paths use the standard library, remote
ones shell out to rclone. Callers never branch on the variant.
"""
from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Set

from loguru import logger

from .errors import TreeOperationError
from .logging import truncate

# rclone: "Directory not found"
RCLONE_EXIT_DIR_NOT_FOUND = 3


@dataclass(frozen=True)
class TreePath:
    """A path on the local filesystem (remote=None) or on an rclone remote."""

    path: str
    remote: Optional[str] = None

    @classmethod
    def local(cls, path: str) -> "TreePath":
        return cls(path=path)

    @classmethod
    def parse(cls, value: Any) -> "TreePath":
        """Build from ``"remote:path"`` / ``"path"`` or a ``{remote, path}`` mapping.

        An empty or missing remote means a local path.
        """
        if isinstance(value, TreePath):
            return value
        if isinstance(value, Mapping):
            remote = value.get("remote") or None
            return cls(path=str(value.get("path") or ""), remote=remote)
        if isinstance(value, str):
            remote, sep, path = value.partition(":")
            if not sep or not remote:
                return cls(path=value)
            # Windows drive letters are not remotes
            if os.name == "nt" and len(remote) == 1:
                return cls(path=value)
            return cls(path=path, remote=remote)
        raise TypeError(f"Cannot interpret {value!r} as a tree path")

    @property
    def is_remote(self) -> bool:
        return self.remote is not None

    def with_path(self, path: str) -> "TreePath":
        return TreePath(path=path, remote=self.remote)

    def child(self, rel_path: str) -> "TreePath":
        if not self.path:
            return self.with_path(rel_path)
        return self.with_path(f"{self.path.rstrip('/')}/{rel_path}")

    def __str__(self) -> str:
        if self.remote is None:
            return self.path
        return f"{self.remote}:{self.path}"


def _rclone(args: List[str], *, what: str, ok_codes: tuple = (0,)) -> subprocess.CompletedProcess:
    cmd = ["rclone", *args]
    logger.debug("Running rclone: {}", " ".join(shlex.quote(p) for p in cmd))
    try:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except OSError as e:
        raise TreeOperationError(f"{what}: cannot run rclone: {e}") from e
    if proc.returncode not in ok_codes:
        raise TreeOperationError(
            f"{what}: rclone exited with {proc.returncode}: {truncate(proc.stderr or '')}"
        )
    return proc


def _raise(err: OSError) -> None:
    raise err


def list_files_recursively(root: TreePath, *, missing_ok: bool = False) -> Set[str]:
    """Return every file under ``root`` as a forward-slash path relative to it.

    Directories are not listed. A missing root is an error unless
    ``missing_ok``, in which case it lists as empty.
    """
    if root.is_remote:
        proc = _rclone(
            ["lsf", "-R", "--files-only", str(root)],
            what=f"list {root}",
            ok_codes=(0, RCLONE_EXIT_DIR_NOT_FOUND) if missing_ok else (0,),
        )
        if proc.returncode == RCLONE_EXIT_DIR_NOT_FOUND:
            return set()
        return {line for line in proc.stdout.splitlines() if line}

    base = root.path or "."
    if not os.path.isdir(base):
        if missing_ok and not os.path.exists(base):
            return set()
        raise TreeOperationError(f"list {root}: not a directory")
    files: Set[str] = set()
    try:
        for dirpath, _dirnames, filenames in os.walk(base, onerror=_raise):
            for name in filenames:
                rel = os.path.relpath(os.path.join(dirpath, name), base)
                files.add(rel.replace(os.sep, "/"))
    except OSError as e:
        raise TreeOperationError(f"list {root}: {e}") from e
    return files


def copy(src: TreePath, dst: TreePath) -> None:
    if src.is_remote or dst.is_remote:
        _rclone(["copyto", str(src), str(dst)], what=f"copy {src} -> {dst}")
        return
    try:
        shutil.copy2(src.path, dst.path)
    except OSError as e:
        raise TreeOperationError(f"copy {src} -> {dst}: {e}") from e


def rename(src: TreePath, dst: TreePath) -> None:
    if src.is_remote or dst.is_remote:
        _rclone(["moveto", str(src), str(dst)], what=f"rename {src} -> {dst}")
        return
    try:
        parent = os.path.dirname(dst.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        os.replace(src.path, dst.path)
    except OSError as e:
        raise TreeOperationError(f"rename {src} -> {dst}: {e}") from e


def remove_file(path: TreePath) -> None:
    if path.is_remote:
        _rclone(["deletefile", str(path)], what=f"delete {path}")
        return
    try:
        os.remove(path.path)
    except OSError as e:
        raise TreeOperationError(f"delete {path}: {e}") from e


def create_dir_all(path: TreePath) -> None:
    if path.is_remote:
        _rclone(["mkdir", str(path)], what=f"mkdir {path}")
        return
    try:
        os.makedirs(path.path or ".", exist_ok=True)
    except OSError as e:
        raise TreeOperationError(f"mkdir {path}: {e}") from e


def remove_empty_dirs(root: TreePath) -> int:
    """Remove empty directories below ``root``; the root itself is kept.

    Returns the number of directories removed (always 0 for remotes, where
    rclone does not report it).
    """
    if root.is_remote:
        _rclone(["rmdirs", "--leave-root", str(root)], what=f"remove empty dirs {root}")
        return 0
    base = root.path or "."
    if not os.path.isdir(base):
        return 0
    removed = 0
    try:
        for dirpath, _dirnames, _filenames in os.walk(base, topdown=False):
            if os.path.samefile(dirpath, base):
                continue
            if not os.listdir(dirpath):
                os.rmdir(dirpath)
                removed += 1
    except OSError as e:
        raise TreeOperationError(f"remove empty dirs {root}: {e}") from e
    return removed


__all__ = [
    "TreePath",
    "copy",
    "create_dir_all",
    "list_files_recursively",
    "remove_empty_dirs",
    "remove_file",
    "rename",
]
