"""ffmpeg invocation for the files that need transcoding.

The user supplies the codec parameters; they go between ``-i <input>`` and
the output path. Output is written to a temporary file next to the final
path and renamed on success so truncated files are never left under the
final name.
"""
from __future__ import annotations

import os
import shlex
import subprocess
import uuid
from pathlib import Path
from typing import List

from loguru import logger

from .errors import TranscodeError
from .logging import truncate
from .metadata import copy_pictures


def split_params(params: str) -> List[str]:
    return shlex.split(params)


def build_ffmpeg_cmd(src: Path, out: Path, params: List[str]) -> List[str]:
    return ["ffmpeg", "-i", str(src), *params, str(out)]


def cmd_to_string(cmd: List[str]) -> str:
    return " ".join(shlex.quote(p) for p in cmd)


def run_ffmpeg(cmd: List[str], *, quiet: bool = False) -> tuple[int, str]:
    """Run ffmpeg and return (exit code, stderr).

    With quiet=False ffmpeg writes straight to the console and stderr is "".
    """
    if quiet:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        return proc.returncode, proc.stderr or ""
    proc = subprocess.run(cmd)
    return proc.returncode, ""


def _temp_out_path(final_path: Path) -> Path:
    """Unique temp path beside final_path, keeping the suffix so ffmpeg picks the muxer."""
    tag = f".part-{os.getpid()}-{uuid.uuid4().hex[:8]}"
    return final_path.with_name(final_path.stem + tag + final_path.suffix)


def _discard(path: Path) -> None:
    try:
        if path.exists():
            path.unlink()
    except OSError:
        pass


def transcode(
    src: Path,
    dest: Path,
    params: str,
    *,
    quiet: bool = False,
    copy_covers: bool = False,
) -> None:
    """Encode ``src`` to ``dest``; optionally append the source's pictures to the output."""
    out_tmp = _temp_out_path(dest)
    cmd = build_ffmpeg_cmd(src, out_tmp, split_params(params))
    logger.debug("Running ffmpeg: {}", cmd_to_string(cmd))
    try:
        rc, err = run_ffmpeg(cmd, quiet=quiet)
    except OSError as e:
        _discard(out_tmp)
        raise TranscodeError(f"Cannot run ffmpeg for {src}: {e}") from e
    if rc != 0:
        _discard(out_tmp)
        detail = f": {truncate(err)}" if err else ""
        raise TranscodeError(f"ffmpeg exited with {rc} for {src}{detail}")
    try:
        if copy_covers:
            logger.debug(f"Copying cover art {src} -> {dest}")
            copy_pictures(src, out_tmp)
        os.replace(out_tmp, dest)
    except OSError as e:
        _discard(out_tmp)
        raise TranscodeError(f"Rename failed for {dest}: {e}") from e
    except Exception:
        _discard(out_tmp)
        raise


__all__ = ["build_ffmpeg_cmd", "cmd_to_string", "run_ffmpeg", "split_params", "transcode"]
