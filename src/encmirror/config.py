from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional

from pydantic import Field, field_serializer, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict, SettingsError
from tomlkit import dumps as toml_dumps

from .errors import ConfigError
from .tree import TreePath


DEFAULT_CONFIG_PATH = Path("config.toml")
DEFAULT_RECORD_PATH = Path("encoded.json")
ENV_PREFIX = "ENCMIRROR_"


class MirrorSettings(BaseSettings):
    """Settings for encoded-mirror.

    Priority (lowest -> highest):
    - Class defaults below
    - Environment variables with prefix ENCMIRROR_
    - TOML file at `config_path` (default: ./config.toml)
    - CLI overrides passed to `load(overrides=...)`
    """

    # Trees: "path", "remote:path" or a {remote = "...", path = "..."} table.
    # NoDecode: env values reach the validators as plain strings, not JSON.
    input_directory: Annotated[Optional[TreePath], NoDecode] = Field(default=None, description="Source library root")
    output_directory: Annotated[Optional[TreePath], NoDecode] = Field(default=None, description="Encoded library root")
    temp_directory: str = Field(
        default="temp", description="Local scratch directory used when a tree is remote"
    )

    # Naming and encoding
    extensions_to_encode: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["flac"], description="Source extensions that are transcoded"
    )
    encoded_extension: str = Field(default="ogg", description="Extension of transcoded files")
    ffmpeg_params: str = Field(
        default="-c:a libvorbis -q:a 6", description="ffmpeg arguments between input and output"
    )
    copy_covers: bool = Field(default=False, description="Copy embedded pictures onto encoded files")
    remove_round_brackets: bool = Field(default=False, description="Strip (...) from output names")
    remove_square_brackets: bool = Field(default=False, description="Strip [...] from output names")
    remove_curly_brackets: bool = Field(default=False, description="Strip {...} from output names")
    remove_angle_brackets: bool = Field(default=False, description="Strip <...> from output names")
    skip_extensionless: bool = Field(
        default=False, description="Skip source files without extension instead of aborting"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Console log level")
    log_json: Optional[str] = Field(default=None, description="Path for structured JSON log file")

    # Config source/path (not persisted as part of effective config when writing)
    config_path: Path = Field(default=DEFAULT_CONFIG_PATH, exclude=True)

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    @field_validator("input_directory", "output_directory", mode="before")
    @classmethod
    def _parse_tree(cls, value: Any) -> Any:
        if value is None or isinstance(value, TreePath):
            return value
        try:
            return TreePath.parse(value)
        except TypeError as e:
            raise ValueError(str(e)) from e

    @field_validator("extensions_to_encode", mode="before")
    @classmethod
    def _split_extensions(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value

    @field_validator("extensions_to_encode")
    @classmethod
    def _strip_dots(cls, value: List[str]) -> List[str]:
        return [v.lstrip(".") for v in value]

    @field_validator("encoded_extension")
    @classmethod
    def _strip_dot(cls, value: str) -> str:
        value = value.lstrip(".")
        if not value:
            raise ValueError("encoded_extension must not be empty")
        return value

    @field_serializer("input_directory", "output_directory")
    def _dump_tree(self, value: Optional[TreePath]) -> Any:
        if value is None:
            return None
        if value.remote is None:
            return value.path
        return {"remote": value.remote, "path": value.path}

    @classmethod
    def _toml_file_source(cls, config_path: Path) -> Dict[str, Any]:
        """Read settings from a TOML file; unknown keys are ignored by pydantic."""
        try:
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {config_path}") from e
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Cannot read config {config_path}: {e}") from e
        return data

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
        require_file: bool = True,
    ) -> "MirrorSettings":
        """Load settings from defaults + env + TOML + CLI overrides.

        - config_path: path to TOML config; defaults to ./config.toml
        - overrides: dict of CLI values (None values are ignored)
        - require_file: raise ConfigError when the file does not exist
        """
        from pydantic import ValidationError

        cp = config_path or DEFAULT_CONFIG_PATH
        if cp.exists() or require_file:
            file_values = cls._toml_file_source(cp)
        else:
            file_values = {}
        non_none = {k: v for k, v in (overrides or {}).items() if v is not None}
        try:
            settings = cls(**{**file_values, **non_none})
        except (ValidationError, SettingsError) as e:
            raise ConfigError(f"Invalid configuration in {cp}:\n{e}") from e
        settings.config_path = cp
        return settings

    def to_toml(self) -> str:
        """Serialize effective settings (excluding ephemeral fields) to TOML string."""
        data = self.model_dump(exclude={"config_path"}, exclude_none=True)
        return toml_dumps(data)

    def write(self, path: Optional[Path] = None) -> Path:
        """Write effective config to TOML at `path` (or the loaded path). Creates parent dirs."""
        target = path or self.config_path or DEFAULT_CONFIG_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_toml(), encoding="utf-8")
        return target


def cli_overrides_from_args(args: Any) -> Dict[str, Any]:
    """Extract known settings keys from an argparse Namespace into an overrides dict."""
    keys = {
        "log_level",
        "log_json",
    }
    result: Dict[str, Any] = {}
    for k in keys:
        if hasattr(args, k):
            result[k] = getattr(args, k)
    return result
