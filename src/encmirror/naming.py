"""Destination naming rule.

Maps a source-relative path to the destination-relative path it produces.
Only the file name is rewritten; the folder part is carried over verbatim.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterable, Pattern, Tuple

from .errors import MissingExtensionError


# Applied in this order.
BRACKET_PAIRS: Tuple[Tuple[str, str], ...] = (
    ("(", ")"),
    ("[", "]"),
    ("{", "}"),
    ("<", ">"),
)


@dataclass(frozen=True)
class NamingRule:
    extensions_to_encode: frozenset
    encoded_extension: str
    remove_round_brackets: bool = False
    remove_square_brackets: bool = False
    remove_curly_brackets: bool = False
    remove_angle_brackets: bool = False

    @classmethod
    def create(cls, extensions_to_encode: Iterable[str], encoded_extension: str, **flags: bool) -> "NamingRule":
        return cls(
            extensions_to_encode=frozenset(extensions_to_encode),
            encoded_extension=encoded_extension,
            **flags,
        )

    @classmethod
    def from_settings(cls, cfg: Any) -> "NamingRule":
        return cls.create(
            cfg.extensions_to_encode,
            cfg.encoded_extension,
            remove_round_brackets=bool(cfg.remove_round_brackets),
            remove_square_brackets=bool(cfg.remove_square_brackets),
            remove_curly_brackets=bool(cfg.remove_curly_brackets),
            remove_angle_brackets=bool(cfg.remove_angle_brackets),
        )

    def enabled_brackets(self) -> Tuple[Tuple[str, str], ...]:
        flags = (
            self.remove_round_brackets,
            self.remove_square_brackets,
            self.remove_curly_brackets,
            self.remove_angle_brackets,
        )
        return tuple(pair for pair, on in zip(BRACKET_PAIRS, flags) if on)

    def should_encode(self, rel_path: str) -> bool:
        _, _, ext = split_name(rel_path)
        return ext in self.extensions_to_encode


def split_name(rel_path: str) -> Tuple[str, str, str]:
    """Split ``rel_path`` into (folder, stem, extension).

    Raises MissingExtensionError for names without an extension, including
    dot-files such as ``.hidden`` and names ending in a dot.
    """
    folder, _, name = rel_path.rpartition("/")
    dot = name.rfind(".")
    if dot <= 0 or dot == len(name) - 1:
        raise MissingExtensionError(rel_path)
    return folder, name[:dot], name[dot + 1:]


def has_extension(rel_path: str) -> bool:
    try:
        split_name(rel_path)
    except MissingExtensionError:
        return False
    return True


def extension_of(rel_path: str) -> str:
    """Return the extension of ``rel_path``, or "" when it has none."""
    try:
        return split_name(rel_path)[2]
    except MissingExtensionError:
        return ""


@lru_cache(maxsize=None)
def _bracket_patterns(open_: str, close: str) -> Tuple[Pattern[str], Pattern[str], Pattern[str]]:
    o, c = re.escape(open_), re.escape(close)
    return (
        re.compile(rf" {o}.*?{c}"),
        re.compile(rf"{o}.*?{c} "),
        re.compile(rf"{o}.*?{c}"),
    )


def strip_brackets(name: str, open_: str, close: str) -> str:
    """Remove every ``open_ ... close`` group from ``name``.

    Groups with a leading space go first, then groups with a trailing space,
    then bare groups, so no doubled or dangling separator spaces are left.
    """
    for pattern in _bracket_patterns(open_, close):
        name = pattern.sub("", name)
    return name


def name_for(rel_path: str, rule: NamingRule) -> str:
    folder, stem, ext = split_name(rel_path)
    out_ext = rule.encoded_extension if ext in rule.extensions_to_encode else ext
    new_name = f"{stem}.{out_ext}"
    for open_, close in rule.enabled_brackets():
        new_name = strip_brackets(new_name, open_, close)
    if folder:
        new_name = f"{folder}/{new_name}"
    return new_name


__all__ = [
    "BRACKET_PAIRS",
    "NamingRule",
    "extension_of",
    "has_extension",
    "name_for",
    "split_name",
    "strip_brackets",
]
