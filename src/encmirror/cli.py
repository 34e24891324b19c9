from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger

from . import __version__
from .config import DEFAULT_CONFIG_PATH, DEFAULT_RECORD_PATH, MirrorSettings, cli_overrides_from_args
from .errors import EXIT_CONFIG_ERROR, EXIT_OK, ConfigError
from .logging import bind_run, setup_console, setup_json
from .runner import cmd_sync


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="encoded-mirror",
        description=(
            "Create an encoded copy of your music library and keep it updated "
            "with as few ffmpeg runs as possible. Requires ffmpeg in PATH "
            "(and rclone for remote directories)."
        ),
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument(
        "-c",
        "--config",
        dest="config_path",
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to TOML config (default: ./config.toml)",
    )
    p.add_argument(
        "-e",
        "--encoded",
        dest="record_path",
        default=str(DEFAULT_RECORD_PATH),
        help="File storing which songs are already encoded (default: ./encoded.json)",
    )
    p.add_argument("--color", action="store_true", help="Force colors to be enabled")
    p.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help='Always assume "yes" as the answer to all prompts and run non-interactively',
    )
    p.add_argument("-q", "--quiet", action="store_true", help="Suppress ffmpeg output")
    p.add_argument("--dry-run", action="store_true", help="Do a trial run with no actual changes")
    p.add_argument(
        "--log-level",
        default=None,
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    )
    p.add_argument(
        "--log-json",
        dest="log_json",
        default=None,
        help="Path to write JSON lines log (structured events)",
    )
    p.add_argument(
        "--write-config",
        action="store_true",
        help="Write current effective settings to the config file and exit",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_console("INFO", colorize=True if args.color else None)

    config_path = Path(args.config_path).expanduser()
    try:
        cfg = MirrorSettings.load(
            config_path=config_path,
            overrides=cli_overrides_from_args(args),
            require_file=not args.write_config,
        )
    except ConfigError as e:
        logger.error(str(e))
        return EXIT_CONFIG_ERROR

    if args.write_config:
        written = cfg.write(config_path)
        print(f"Config written to: {written}")
        return EXIT_OK

    setup_console(cfg.log_level, colorize=True if args.color else None)
    if cfg.log_json:
        setup_json(cfg.log_json)
    bind_run()

    exit_code, _ = cmd_sync(
        cfg,
        Path(args.record_path).expanduser(),
        dry_run=args.dry_run,
        assume_yes=args.yes,
        quiet=args.quiet,
    )
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
