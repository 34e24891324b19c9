"""Persisted record: which destination file each source file produced.

Stored as a flat JSON object ``{source_rel: dest_rel}``. A missing file is an
empty record. Writes replace the file wholesale through a temporary file in
the same directory, so a crash never leaves a half-written record behind.
"""
from __future__ import annotations

import json
import os
import uuid
from pathlib import Path
from typing import Dict, Mapping

from loguru import logger

from .errors import RecordError


def load_record(path: Path) -> Dict[str, str]:
    if not path.exists():
        logger.debug(f"No record at {path}; starting empty")
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise RecordError(f"Cannot read record {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise RecordError(f"Invalid record data in {path}: {e}") from e
    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise RecordError(f"Record {path} must be a JSON object of strings to strings")
    return data


def save_record(path: Path, record: Mapping[str, str]) -> Path:
    """Write ``record`` to ``path`` atomically and return the path."""
    tmp = path.with_name(f"{path.name}.part-{os.getpid()}-{uuid.uuid4().hex[:8]}")
    try:
        if path.parent and not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(
            json.dumps(dict(record), indent=2, sort_keys=True, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        os.replace(tmp, path)
    except OSError as e:
        try:
            if tmp.exists():
                tmp.unlink()
        except OSError:
            pass
        raise RecordError(f"Cannot write record {path}: {e}") from e
    logger.debug(f"Record written: {path} ({len(record)} entries)")
    return path


__all__ = ["load_record", "save_record"]
