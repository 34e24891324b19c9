"""One synchronization run: list, reconcile, confirm, execute, persist."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Dict, Set, Tuple

from loguru import logger

from . import tree
from .config import MirrorSettings
from .errors import (
    EXIT_COLLISION,
    EXIT_CONFIG_ERROR,
    EXIT_DECLINED,
    EXIT_DEPENDENCY_MISSING,
    EXIT_INVALID_SOURCE,
    EXIT_IO_FAILED,
    EXIT_OK,
    DependencyError,
    MirrorError,
    NameCollisionError,
)
from .executor import execute_plan
from .naming import NamingRule, has_extension
from .reconciler import reconcile
from .record import load_record, save_record
from .tool_check import probe_ffmpeg, probe_rclone


def prompt_yes_no(prompt: str) -> bool:
    """Ask on stdin; anything but y/yes (or no stdin at all) is a no."""
    try:
        resp = input(f"{prompt} [y/N]: ")
    except EOFError:
        return False
    return str(resp).strip().lower() in {"y", "yes"}


def check_dependencies(cfg: MirrorSettings) -> None:
    """Raise DependencyError when ffmpeg (or rclone, for remote trees) is unusable."""
    st = probe_ffmpeg()
    if not st.available:
        raise DependencyError(st.error or "ffmpeg not found")
    logger.debug(f"ffmpeg: {st.path} ({st.version})")
    if cfg.input_directory.is_remote or cfg.output_directory.is_remote:
        st_rc = probe_rclone()
        if not st_rc.available:
            raise DependencyError(st_rc.error or "rclone not found")
        logger.debug(f"rclone: {st_rc.path} ({st_rc.version})")


def _split_extensionless(source: Set[str]) -> Tuple[Set[str], Set[str]]:
    bad = {s for s in source if not has_extension(s)}
    return source - bad, bad


def log_collisions(err: NameCollisionError) -> None:
    logger.opt(colors=True).error("<red><bold>Found a name collision with the current settings, aborting</bold></red>")
    for dest_name, sources in err.collisions.items():
        lines = "\n".join(f" - {s}" for s in sources)
        logger.error(f"{dest_name} is the resulting file name for:\n{lines}")


def cmd_sync(
    cfg: MirrorSettings,
    record_path: Path,
    *,
    dry_run: bool = False,
    assume_yes: bool = False,
    quiet: bool = False,
    confirm: Callable[[str], bool] = prompt_yes_no,
    check_tools: bool = True,
) -> Tuple[int, Dict[str, Any]]:
    """Bring the output tree in line with the input tree.

    Args:
        cfg: effective settings
        record_path: JSON record of previously produced files
        dry_run: reconcile and report, but change nothing on disk
        assume_yes: do not ask before executing
        quiet: capture ffmpeg output instead of showing it
        confirm: yes/no prompt used when not assume_yes
        check_tools: probe ffmpeg/rclone before starting

    Returns (exit code, summary).
    """
    summary: Dict[str, Any] = {"dry_run": dry_run}
    if cfg.input_directory is None or cfg.output_directory is None:
        logger.error("input_directory and output_directory must both be configured")
        return EXIT_CONFIG_ERROR, summary

    if check_tools:
        try:
            check_dependencies(cfg)
        except DependencyError as e:
            logger.error(str(e))
            return EXIT_DEPENDENCY_MISSING, summary

    rule = NamingRule.from_settings(cfg)
    t_start = time.time()

    try:
        logger.info(f"Listing source {cfg.input_directory}")
        source = tree.list_files_recursively(cfg.input_directory)
        logger.info(f"Listing destination {cfg.output_directory}")
        dest = tree.list_files_recursively(cfg.output_directory, missing_ok=True)
        record = load_record(record_path)
    except MirrorError as e:
        logger.error(str(e))
        return EXIT_IO_FAILED, summary
    summary.update({"source_files": len(source), "dest_files": len(dest), "recorded": len(record)})

    source, extensionless = _split_extensionless(source)
    if extensionless:
        listing = "\n".join(f" - {s}" for s in sorted(extensionless))
        if not cfg.skip_extensionless:
            logger.error(
                f"{len(extensionless)} source file(s) have no extension; "
                f"rename them or set skip_extensionless:\n{listing}"
            )
            return EXIT_INVALID_SOURCE, summary
        logger.warning(f"Skipping {len(extensionless)} source file(s) without extension:\n{listing}")
        summary["skipped_extensionless"] = len(extensionless)

    try:
        plan = reconcile(source, dest, record, rule)
    except NameCollisionError as e:
        log_collisions(e)
        summary["collisions"] = e.collisions
        return EXIT_COLLISION, summary
    summary["planned"] = plan.counts()

    logger.opt(colors=True).info(
        "<green><bold>{} songs to encode/copy, {} to rename and {} to delete</bold></green>",
        len(plan.to_encode_or_copy),
        len(plan.to_rename),
        len(plan.to_delete),
    )

    if not dry_run and not assume_yes and not plan.is_empty():
        if not confirm("Do you want to continue?"):
            logger.warning("Aborting")
            return EXIT_DECLINED, summary

    try:
        summary["done"] = execute_plan(plan, cfg, rule, dry_run=dry_run, quiet=quiet)
        if dry_run:
            logger.info("Skipping save of the record as --dry-run is set")
        else:
            save_record(record_path, plan.record)
    except MirrorError as e:
        logger.error(str(e))
        logger.error("Run aborted; destination and record are left as they are")
        return EXIT_IO_FAILED, summary

    summary["total_time_s"] = round(time.time() - t_start, 3)
    logger.opt(colors=True).info("<green><bold>Done processing files</bold></green>")
    return EXIT_OK, summary
