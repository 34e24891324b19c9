import tomllib
from typing import Dict

import pytest

from encmirror.config import MirrorSettings
from encmirror.errors import ConfigError
from encmirror.tree import TreePath

CONFIG = """
input_directory = "/music/flac"
temp_directory = "/tmp/encmirror"
extensions_to_encode = [".flac", "wav"]
encoded_extension = ".opus"
ffmpeg_params = "-c:a libopus -b:a 128k"
remove_square_brackets = true

[output_directory]
remote = "gdrive"
path = "Music/opus"
"""


def test_load_toml_with_local_and_remote_trees(tmp_path):
    cfg_path = tmp_path / "config.toml"
    cfg_path.write_text(CONFIG)
    cfg = MirrorSettings.load(config_path=cfg_path)

    assert cfg.input_directory == TreePath("/music/flac")
    assert cfg.output_directory == TreePath("Music/opus", remote="gdrive")
    assert cfg.extensions_to_encode == ["flac", "wav"]
    assert cfg.encoded_extension == "opus"
    assert cfg.remove_square_brackets is True
    assert cfg.remove_round_brackets is False
    assert cfg.copy_covers is False
    assert cfg.config_path == cfg_path


def test_remote_string_form(tmp_path):
    cfg_path = tmp_path / "config.toml"
    cfg_path.write_text('input_directory = "nas:library"\noutput_directory = "out"\n')
    cfg = MirrorSettings.load(config_path=cfg_path)
    assert cfg.input_directory == TreePath("library", remote="nas")
    assert not cfg.output_directory.is_remote


def test_missing_file_is_a_config_error(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        MirrorSettings.load(config_path=tmp_path / "absent.toml")


def test_missing_file_allowed_when_not_required(tmp_path):
    cfg = MirrorSettings.load(config_path=tmp_path / "absent.toml", require_file=False)
    assert cfg.input_directory is None
    assert cfg.encoded_extension == "ogg"


def test_broken_toml_is_a_config_error(tmp_path):
    cfg_path = tmp_path / "config.toml"
    cfg_path.write_text("input_directory = \n")
    with pytest.raises(ConfigError):
        MirrorSettings.load(config_path=cfg_path)


def test_empty_encoded_extension_rejected(tmp_path):
    cfg_path = tmp_path / "config.toml"
    cfg_path.write_text('encoded_extension = "."\n')
    with pytest.raises(ConfigError, match="encoded_extension"):
        MirrorSettings.load(config_path=cfg_path)


def test_overrides_win_and_none_is_ignored(tmp_path):
    cfg_path = tmp_path / "config.toml"
    cfg_path.write_text('log_level = "WARNING"\n')
    cfg = MirrorSettings.load(config_path=cfg_path, overrides={"log_level": "DEBUG", "log_json": None})
    assert cfg.log_level == "DEBUG"
    assert cfg.log_json is None


def test_env_is_below_file(tmp_path, monkeypatch):
    monkeypatch.setenv("ENCMIRROR_ENCODED_EXTENSION", "mp3")
    monkeypatch.setenv("ENCMIRROR_FFMPEG_PARAMS", "-b:a 192k")
    cfg_path = tmp_path / "config.toml"
    cfg_path.write_text('encoded_extension = "m4a"\n')
    cfg = MirrorSettings.load(config_path=cfg_path)
    assert cfg.encoded_extension == "m4a"
    assert cfg.ffmpeg_params == "-b:a 192k"


def test_write_round_trip(tmp_path):
    cfg_path = tmp_path / "config.toml"
    cfg_path.write_text(CONFIG)
    cfg = MirrorSettings.load(config_path=cfg_path)

    out = cfg.write(tmp_path / "nested" / "written.toml")
    data = tomllib.loads(out.read_text())
    assert data["input_directory"] == "/music/flac"
    assert data["output_directory"] == {"remote": "gdrive", "path": "Music/opus"}
    assert "config_path" not in data
    assert "log_json" not in data

    again = MirrorSettings.load(config_path=out)
    assert again.output_directory == cfg.output_directory
    assert again.extensions_to_encode == cfg.extensions_to_encode


def test_env_comma_separated_extensions_and_remote_tree(tmp_path, monkeypatch):
    monkeypatch.setenv("ENCMIRROR_EXTENSIONS_TO_ENCODE", "flac, .wav")
    monkeypatch.setenv("ENCMIRROR_INPUT_DIRECTORY", "nas:library")
    cfg_path = tmp_path / "config.toml"
    cfg_path.write_text('output_directory = "out"\n')
    cfg = MirrorSettings.load(config_path=cfg_path)
    assert cfg.extensions_to_encode == ["flac", "wav"]
    assert cfg.input_directory == TreePath("library", remote="nas")


class _WithMapping(MirrorSettings):
    tag_map: Dict[str, str] = {}


def test_undecodable_env_value_is_a_config_error(tmp_path, monkeypatch):
    monkeypatch.setenv("ENCMIRROR_TAG_MAP", "not json")
    cfg_path = tmp_path / "config.toml"
    cfg_path.write_text('encoded_extension = "ogg"\n')
    with pytest.raises(ConfigError):
        _WithMapping.load(config_path=cfg_path)
