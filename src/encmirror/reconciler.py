"""Reconciliation of source tree, destination tree and the persisted record.

Given the files currently in the source and destination trees and the record
of what each source file produced last time, decide which destination files
to delete, which to rename in place and which sources to encode or copy.

The record is repaired in memory first so that out-of-band changes are
accounted for:

- outputs deleted or renamed by hand no longer vouch for their source,
- outputs present under the expected name but missing from the record are
  adopted without re-encoding,
- outputs produced under an older target extension are re-encoded,
- outputs whose expected name changed (naming rule edits) are renamed.

Re-running on a converged state yields an empty plan.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import AbstractSet, Dict, List, Mapping, Set

from loguru import logger

from .errors import NameCollisionError
from .naming import NamingRule, extension_of, name_for


@dataclass
class ReconcilePlan:
    to_encode_or_copy: Set[str] = field(default_factory=set)
    to_rename: Dict[str, str] = field(default_factory=dict)  # old dest -> new dest
    to_delete: Set[str] = field(default_factory=set)
    # Canonical record to persist after a successful run
    record: Dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.to_encode_or_copy or self.to_rename or self.to_delete)

    def counts(self) -> Dict[str, int]:
        return {
            "encode_or_copy": len(self.to_encode_or_copy),
            "rename": len(self.to_rename),
            "delete": len(self.to_delete),
        }


def build_record(source: AbstractSet[str], rule: NamingRule) -> Dict[str, str]:
    return {s: name_for(s, rule) for s in source}


def find_collisions(source: AbstractSet[str], rule: NamingRule) -> Dict[str, List[str]]:
    """Return {dest_name: [source paths]} for names produced more than once."""
    groups: Dict[str, List[str]] = {}
    for s in source:
        groups.setdefault(name_for(s, rule), []).append(s)
    return {name: sorted(srcs) for name, srcs in sorted(groups.items()) if len(srcs) > 1}


def _drop_removed(
    encoded: Dict[str, str], source: AbstractSet[str], dest: AbstractSet[str]
) -> None:
    for s, d in list(encoded.items()):
        if d not in dest:
            logger.debug(f"Output missing, will reprocess: {d} (from {s})")
            del encoded[s]
        elif s not in source:
            logger.debug(f"Source gone, releasing output: {d} (from {s})")
            del encoded[s]


def _drop_shared_outputs(encoded: Dict[str, str], rule: NamingRule) -> None:
    """An output claimed by several sources stays only with the one it is named after."""
    claims: Dict[str, List[str]] = {}
    for s, d in encoded.items():
        claims.setdefault(d, []).append(s)
    for d, srcs in claims.items():
        if len(srcs) < 2:
            continue
        for s in srcs:
            if name_for(s, rule) != d:
                logger.debug(f"Output claimed by several sources, releasing: {d} (from {s})")
                del encoded[s]


def _adopt_untracked(
    encoded: Dict[str, str],
    recorded_outputs: AbstractSet[str],
    source: AbstractSet[str],
    dest: AbstractSet[str],
    rule: NamingRule,
) -> None:
    untracked = dest - recorded_outputs
    if not untracked:
        return
    for s in source:
        expected = name_for(s, rule)
        if expected in untracked:
            logger.debug(f"Adopting existing output: {expected} (from {s})")
            encoded[s] = expected


def _drop_stale(encoded: Dict[str, str], rule: NamingRule) -> None:
    for s, d in list(encoded.items()):
        src_ext = extension_of(s)
        want = rule.encoded_extension if src_ext in rule.extensions_to_encode else src_ext
        if extension_of(d) != want:
            logger.debug(f"Output has stale extension, will reprocess: {d} (from {s})")
            del encoded[s]


def reconcile(
    source: AbstractSet[str],
    dest: AbstractSet[str],
    record: Mapping[str, str],
    rule: NamingRule,
) -> ReconcilePlan:
    """Compute the action plan; raises NameCollisionError before touching anything.

    Inputs are not modified. Every source path must have an extension.
    """
    collisions = find_collisions(source, rule)
    if collisions:
        raise NameCollisionError(collisions)

    encoded: Dict[str, str] = dict(record)
    recorded_outputs = set(encoded.values())

    _drop_removed(encoded, source, dest)
    _drop_shared_outputs(encoded, rule)
    _adopt_untracked(encoded, recorded_outputs, source, dest, rule)
    _drop_stale(encoded, rule)

    to_rename: Dict[str, str] = {}
    for s, d in encoded.items():
        new_d = name_for(s, rule)
        if new_d != d:
            to_rename[d] = new_d

    plan = ReconcilePlan(
        to_encode_or_copy=set(source) - set(encoded),
        to_rename=to_rename,
        to_delete=set(dest) - set(encoded.values()),
        record=build_record(source, rule),
    )
    logger.debug(f"Reconciled: {plan.counts()}")
    return plan


__all__ = ["ReconcilePlan", "build_record", "find_collisions", "reconcile"]
