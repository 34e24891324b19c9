"""Carry out a ReconcilePlan against the destination tree.

Phases run strictly in this order so that no action overwrites a file
another action still needs:

    directories -> delete -> rename -> encode/copy -> empty-dir cleanup

A rename may target a name freed by a delete, and an encode may target a
name freed by a rename. The first failure aborts the run with an
ActionError naming the phase and path; nothing is retried or rolled back.
"""
from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Any, Dict, List, Tuple

from loguru import logger

from . import tree
from .config import MirrorSettings
from .encoder import transcode
from .errors import ActionError, MirrorError
from .logging import log_event
from .naming import NamingRule, name_for
from .reconciler import ReconcilePlan
from .tree import TreePath

PHASE_MKDIR = "mkdir"
PHASE_DELETE = "delete"
PHASE_RENAME = "rename"
PHASE_ENCODE = "encode"
PHASE_COPY = "copy"
PHASE_CLEANUP = "cleanup"


def _parent(rel_path: str) -> str:
    return rel_path.rpartition("/")[0]


def _staging_name(rel_path: str) -> str:
    """Unique temp name for a fetched input, distinct from the output encoded beside it."""
    folder, _, name = rel_path.rpartition("/")
    stem, dot, ext = name.rpartition(".")
    tag = f"src-{uuid.uuid4().hex[:8]}"
    staged = f"{stem}.{tag}.{ext}" if dot else f"{name}.{tag}"
    return f"{folder}/{staged}" if folder else staged


def order_renames(to_rename: Dict[str, str]) -> List[Tuple[str, str]]:
    """Return rename steps that never overwrite a file still waiting to be moved.

    Renames whose target is itself a pending rename source (swaps, chains)
    first move to a unique temporary name, then to the final one.
    """
    sources = set(to_rename)
    direct: List[Tuple[str, str]] = []
    staged: List[Tuple[str, str]] = []
    finals: List[Tuple[str, str]] = []
    for old, new in sorted(to_rename.items()):
        if new in sources:
            folder, _, name = old.rpartition("/")
            tmp_name = f".{name}.rename-{uuid.uuid4().hex[:8]}"
            tmp = f"{folder}/{tmp_name}" if folder else tmp_name
            staged.append((old, tmp))
            finals.append((tmp, new))
        else:
            direct.append((old, new))
    return staged + direct + finals


class PlanExecutor:
    """Applies one plan; holds the counters reported back to the runner."""

    def __init__(self, cfg: MirrorSettings, rule: NamingRule, *, dry_run: bool = False, quiet: bool = False) -> None:
        if cfg.input_directory is None or cfg.output_directory is None:
            raise ValueError("input_directory and output_directory must be set")
        self.cfg = cfg
        self.rule = rule
        self.dry_run = dry_run
        self.quiet = quiet
        self.input_root: TreePath = cfg.input_directory
        self.output_root: TreePath = cfg.output_directory
        self.temp_root = TreePath.local(cfg.temp_directory)
        self.uses_remote = self.input_root.is_remote or self.output_root.is_remote
        self.counts: Dict[str, int] = {
            "deleted": 0,
            "renamed": 0,
            "encoded": 0,
            "copied": 0,
            "removed_dirs": 0,
        }

    def _skip(self, what: str) -> bool:
        if self.dry_run:
            logger.debug(f"Skipping {what} as --dry-run is set")
        return self.dry_run

    def create_directories(self, plan: ReconcilePlan) -> None:
        folders = sorted({_parent(name_for(s, self.rule)) for s in plan.to_encode_or_copy} - {""})
        targets: List[TreePath] = []
        if self.uses_remote:
            targets.append(self.temp_root)
            targets.extend(self.temp_root.child(f) for f in folders)
        targets.append(self.output_root)
        targets.extend(self.output_root.child(f) for f in folders)
        for target in targets:
            if self._skip(f"creation of directory {target}"):
                continue
            logger.debug(f"Creating directory {target}")
            try:
                tree.create_dir_all(target)
            except MirrorError as e:
                raise ActionError(PHASE_MKDIR, str(target), e) from e

    def delete(self, rel_path: str) -> None:
        logger.info(f"DELETE   {rel_path}")
        if self._skip("delete"):
            return
        try:
            tree.remove_file(self.output_root.child(rel_path))
        except MirrorError as e:
            raise ActionError(PHASE_DELETE, rel_path, e) from e
        self.counts["deleted"] += 1
        log_event("delete", level="DEBUG", path=rel_path)

    def rename(self, old: str, new: str) -> None:
        logger.info(f"RENAME   {old} -> {new}")
        if self._skip("rename"):
            return
        try:
            tree.rename(self.output_root.child(old), self.output_root.child(new))
        except MirrorError as e:
            raise ActionError(PHASE_RENAME, old, e) from e
        log_event("rename", level="DEBUG", path=old, target=new)

    def encode(self, src_rel: str, dest_rel: str) -> None:
        logger.info(f"ENCODE   {src_rel} -> {dest_rel} | ffmpeg {self.cfg.ffmpeg_params}")
        if self._skip("encode"):
            return
        try:
            self._encode(src_rel, dest_rel)
        except MirrorError as e:
            raise ActionError(PHASE_ENCODE, src_rel, e) from e
        self.counts["encoded"] += 1
        log_event("encode", level="DEBUG", path=src_rel, target=dest_rel)

    def _encode(self, src_rel: str, dest_rel: str) -> None:
        # ffmpeg only works on local files; remote trees go through temp_directory
        if self.input_root.is_remote:
            local_in = self.temp_root.child(_staging_name(src_rel))
            logger.debug(f"Fetching {src_rel} to {local_in} before encoding")
            tree.copy(self.input_root.child(src_rel), local_in)
        else:
            local_in = self.input_root.child(src_rel)
        if self.output_root.is_remote:
            local_out = self.temp_root.child(dest_rel)
        else:
            local_out = self.output_root.child(dest_rel)

        in_path = Path(os.path.abspath(local_in.path))
        out_path = Path(os.path.abspath(local_out.path))
        transcode(
            in_path,
            out_path,
            self.cfg.ffmpeg_params,
            quiet=self.quiet,
            copy_covers=self.cfg.copy_covers,
        )
        if self.input_root.is_remote:
            tree.remove_file(local_in)
        if self.output_root.is_remote:
            tree.rename(local_out, self.output_root.child(dest_rel))

    def copy(self, src_rel: str, dest_rel: str) -> None:
        logger.info(f"COPY     {src_rel} -> {dest_rel}")
        if self._skip("copy"):
            return
        try:
            tree.copy(self.input_root.child(src_rel), self.output_root.child(dest_rel))
        except MirrorError as e:
            raise ActionError(PHASE_COPY, src_rel, e) from e
        self.counts["copied"] += 1
        log_event("copy", level="DEBUG", path=src_rel, target=dest_rel)

    def cleanup(self) -> None:
        if self._skip("removal of empty output and temp directories"):
            return
        try:
            self.counts["removed_dirs"] += tree.remove_empty_dirs(self.output_root)
            if self.uses_remote:
                self.counts["removed_dirs"] += tree.remove_empty_dirs(self.temp_root)
        except MirrorError as e:
            raise ActionError(PHASE_CLEANUP, str(self.output_root), e) from e

    def run(self, plan: ReconcilePlan) -> Dict[str, int]:
        self.create_directories(plan)

        for rel_path in sorted(plan.to_delete):
            self.delete(rel_path)

        steps = order_renames(plan.to_rename)
        for old, new in steps:
            self.rename(old, new)
        if not self.dry_run:
            self.counts["renamed"] = len(plan.to_rename)

        for src_rel in sorted(plan.to_encode_or_copy):
            dest_rel = name_for(src_rel, self.rule)
            if self.rule.should_encode(src_rel):
                self.encode(src_rel, dest_rel)
            else:
                self.copy(src_rel, dest_rel)

        self.cleanup()
        return dict(self.counts)


def execute_plan(
    plan: ReconcilePlan,
    cfg: MirrorSettings,
    rule: NamingRule,
    *,
    dry_run: bool = False,
    quiet: bool = False,
) -> Dict[str, Any]:
    """Run every action of ``plan``; raises ActionError on the first failure."""
    return PlanExecutor(cfg, rule, dry_run=dry_run, quiet=quiet).run(plan)


__all__ = ["PlanExecutor", "execute_plan", "order_renames"]
