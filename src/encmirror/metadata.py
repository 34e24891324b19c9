"""Cover art copying with mutagen.

After ffmpeg produced an output file, the pictures embedded in the source's
primary tag set are appended to the output's tags. Pictures already present in
the output are kept.

Supported containers on both sides: FLAC picture blocks, Vorbis comments
(``METADATA_BLOCK_PICTURE`` in Ogg Vorbis/Opus), ID3 ``APIC`` frames (MP3,
AIFF, WAVE) and MP4 ``covr`` atoms.
"""
from __future__ import annotations

import base64
from pathlib import Path
from typing import List

from loguru import logger

from .errors import MetadataError

_MBP_KEY = "METADATA_BLOCK_PICTURE"
_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def _open(path: Path):
    import mutagen

    try:
        f = mutagen.File(str(path))
    except mutagen.MutagenError as e:
        raise MetadataError(f"Cannot read tags of {path}: {e}") from e
    if f is None:
        raise MetadataError(f"Unsupported audio file: {path}")
    return f


def _is_ogg(f) -> bool:
    """Ogg containers keep pictures in Vorbis comments."""
    from mutagen.oggflac import OggFLAC
    from mutagen.oggopus import OggOpus
    from mutagen.oggvorbis import OggVorbis

    return isinstance(f, (OggVorbis, OggOpus, OggFLAC))


def _guess_mime(data: bytes) -> str:
    if data.startswith(_PNG_MAGIC):
        return "image/png"
    return "image/jpeg"


def read_pictures(path: Path) -> list:
    """Return the pictures of ``path`` as ``mutagen.flac.Picture`` objects."""
    from mutagen.flac import FLAC, Picture
    from mutagen.id3 import ID3
    from mutagen.mp4 import MP4Cover, MP4Tags

    f = _open(path)
    if isinstance(f, FLAC):
        return list(f.pictures)

    tags = f.tags
    pictures: List[Picture] = []
    if tags is None:
        return pictures
    if _is_ogg(f):
        for value in tags.get(_MBP_KEY, []):
            try:
                pictures.append(Picture(base64.b64decode(value)))
            except Exception as e:
                logger.warning(f"Skipping unreadable picture in {path}: {e}")
    elif isinstance(tags, ID3):
        for frame in tags.getall("APIC"):
            pic = Picture()
            pic.type = int(frame.type)
            pic.mime = frame.mime or _guess_mime(frame.data)
            pic.desc = frame.desc or ""
            pic.data = frame.data
            pictures.append(pic)
    elif isinstance(tags, MP4Tags):
        for cover in tags.get("covr", []):
            pic = Picture()
            pic.type = 3
            pic.mime = "image/png" if cover.imageformat == MP4Cover.FORMAT_PNG else "image/jpeg"
            pic.data = bytes(cover)
            pictures.append(pic)
    return pictures


def _append_id3(tags, pictures: list) -> None:
    from mutagen.id3 import APIC

    used = {frame.desc for frame in tags.getall("APIC")}
    for pic in pictures:
        desc = pic.desc or ""
        n = 1
        while desc in used:
            desc = f"{pic.desc or 'cover'} ({n})"
            n += 1
        used.add(desc)
        tags.add(APIC(encoding=3, mime=pic.mime, type=pic.type, desc=desc, data=pic.data))


def append_pictures(path: Path, pictures: list) -> None:
    """Append ``pictures`` to the tags of ``path`` and save it."""
    from mutagen.flac import FLAC
    from mutagen.id3 import ID3
    from mutagen.mp4 import MP4Cover, MP4Tags

    f = _open(path)
    if isinstance(f, FLAC):
        for pic in pictures:
            f.add_picture(pic)
    else:
        if f.tags is None:
            f.add_tags()
        tags = f.tags
        if _is_ogg(f):
            existing = list(tags.get(_MBP_KEY, []))
            encoded = [base64.b64encode(pic.write()).decode("ascii") for pic in pictures]
            tags[_MBP_KEY] = existing + encoded
        elif isinstance(tags, ID3):
            _append_id3(tags, pictures)
        elif isinstance(tags, MP4Tags):
            covers = list(tags.get("covr", []))
            for pic in pictures:
                fmt = MP4Cover.FORMAT_PNG if pic.mime == "image/png" else MP4Cover.FORMAT_JPEG
                covers.append(MP4Cover(pic.data, imageformat=fmt))
            tags["covr"] = covers
        else:
            raise MetadataError(f"Cannot store pictures in {path}: unsupported tag format")
    try:
        f.save()
    except Exception as e:
        raise MetadataError(f"Cannot save tags of {path}: {e}") from e


def copy_pictures(src: Path, dest: Path) -> int:
    """Copy every picture of ``src`` onto ``dest``; returns how many were copied."""
    pictures = read_pictures(src)
    if not pictures:
        logger.debug(f"No embedded pictures in {src}")
        return 0
    append_pictures(dest, pictures)
    return len(pictures)


__all__ = ["append_pictures", "copy_pictures", "read_pictures"]
