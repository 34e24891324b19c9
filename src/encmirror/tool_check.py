"""Preflight checks for the external tools: ffmpeg always, rclone for remote trees."""
from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional


@dataclass
class ToolStatus:
    available: bool
    path: Optional[str] = None
    version: Optional[str] = None
    error: Optional[str] = None


def _run(cmd: list[str]) -> tuple[int, str, str]:
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
            text=True,
        )
        return proc.returncode, proc.stdout, proc.stderr
    except OSError as exc:
        return 1, "", str(exc)


def _probe(binary: str, version_arg: str) -> ToolStatus:
    path = shutil.which(binary)
    if not path:
        return ToolStatus(available=False, error=f"{binary} not found in PATH")
    rc, out, err = _run([path, version_arg])
    version = out.splitlines()[0].strip() if out else None
    return ToolStatus(
        available=(rc == 0),
        path=path,
        version=version,
        error=None if rc == 0 else (err or f"{binary} {version_arg} failed"),
    )


def probe_ffmpeg() -> ToolStatus:
    return _probe("ffmpeg", "-version")


def probe_rclone() -> ToolStatus:
    return _probe("rclone", "version")


if __name__ == "__main__":
    print(probe_ffmpeg())
    print(probe_rclone())
