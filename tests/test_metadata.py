import base64
import struct
from unittest.mock import MagicMock, patch

import pytest
from mutagen.flac import FLAC, Picture
from mutagen.id3 import ID3
from mutagen.oggopus import OggOpus
from mutagen.oggvorbis import OggVorbis

from encmirror.errors import MetadataError
from encmirror.metadata import _append_id3, copy_pictures, read_pictures


def _write_flac(path):
    """Smallest file mutagen accepts as FLAC: marker plus a final STREAMINFO block."""
    packed = (44100 << 44) | (1 << 41) | (15 << 36)
    streaminfo = b"\x10\x00\x10\x00" + b"\x00" * 6 + struct.pack(">Q", packed) + b"\x00" * 16
    assert len(streaminfo) == 34
    path.write_bytes(b"fLaC" + b"\x80\x00\x00\x22" + streaminfo)
    return path


def _picture(data: bytes, desc: str = "") -> Picture:
    pic = Picture()
    pic.type = 3
    pic.mime = "image/jpeg"
    pic.desc = desc
    pic.data = data
    return pic


def test_flac_without_pictures(tmp_path):
    src = _write_flac(tmp_path / "a.flac")
    assert read_pictures(src) == []
    assert copy_pictures(src, _write_flac(tmp_path / "b.flac")) == 0


def test_copy_flac_pictures(tmp_path):
    src = _write_flac(tmp_path / "a.flac")
    f = FLAC(str(src))
    f.add_picture(_picture(b"front-cover"))
    f.save()
    dest = _write_flac(tmp_path / "b.flac")

    assert copy_pictures(src, dest) == 1
    pics = FLAC(str(dest)).pictures
    assert [p.data for p in pics] == [b"front-cover"]
    assert pics[0].type == 3


def test_existing_pictures_are_kept(tmp_path):
    src = _write_flac(tmp_path / "a.flac")
    f = FLAC(str(src))
    f.add_picture(_picture(b"from-source"))
    f.save()
    dest = _write_flac(tmp_path / "b.flac")
    g = FLAC(str(dest))
    g.add_picture(_picture(b"already-there"))
    g.save()

    copy_pictures(src, dest)
    assert [p.data for p in FLAC(str(dest)).pictures] == [b"already-there", b"from-source"]


def test_non_audio_file_raises(tmp_path):
    junk = tmp_path / "notes.txt"
    junk.write_text("not audio")
    with pytest.raises(MetadataError):
        read_pictures(junk)


def test_id3_descriptions_are_made_unique():
    tags = ID3()
    _append_id3(tags, [_picture(b"one"), _picture(b"two")])
    frames = tags.getall("APIC")
    assert len(frames) == 2
    assert sorted(fr.desc for fr in frames) == ["", "cover (1)"]
    assert {fr.data for fr in frames} == {b"one", b"two"}


def test_ogg_pictures_round_trip_through_vorbis_comments(tmp_path):
    src_file = MagicMock(spec=OggVorbis)
    src_file.tags = {"METADATA_BLOCK_PICTURE": [base64.b64encode(_picture(b"ogg-cover").write()).decode("ascii")]}
    dest_file = MagicMock(spec=OggOpus)
    dest_file.tags = {"METADATA_BLOCK_PICTURE": ["kept"]}

    with patch("encmirror.metadata._open", side_effect=[src_file, dest_file]):
        assert copy_pictures(tmp_path / "a.ogg", tmp_path / "b.opus") == 1

    stored = dest_file.tags["METADATA_BLOCK_PICTURE"]
    assert stored[0] == "kept"
    assert Picture(base64.b64decode(stored[1])).data == b"ogg-cover"
    dest_file.save.assert_called_once_with()
