import json

import pytest

from encmirror.errors import RecordError
from encmirror.record import load_record, save_record


def test_missing_record_is_empty(tmp_path):
    assert load_record(tmp_path / "encoded.json") == {}


def test_save_replaces_wholesale(tmp_path):
    path = tmp_path / "encoded.json"
    save_record(path, {"a.flac": "a.ogg", "b.flac": "b.ogg"})
    save_record(path, {"c.flac": "c.ogg"})
    assert load_record(path) == {"c.flac": "c.ogg"}
    # No temp files left behind
    assert [p.name for p in tmp_path.iterdir()] == ["encoded.json"]


def test_save_creates_parent_and_keeps_unicode(tmp_path):
    path = tmp_path / "state" / "encoded.json"
    save_record(path, {"Björk/Jóga.flac": "Björk/Jóga.ogg"})
    assert "Björk" in path.read_text(encoding="utf-8")
    assert load_record(path) == {"Björk/Jóga.flac": "Björk/Jóga.ogg"}


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", json.dumps({"a.flac": 3})])
def test_invalid_record(tmp_path, content):
    path = tmp_path / "encoded.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(RecordError):
        load_record(path)
