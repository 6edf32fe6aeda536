"""
REFLINKER Pattern Compiler & Cache

One compiled pattern per (reference instance, pattern kind). The cache is
owned by the engine and keyed by reference identity; reference models are
never written to.

Every message pattern exposes the same named groups:
  lead  - the boundary character consumed before the prefix (may be empty)
  label - prefix + token, i.e. the visible link text
  num   - the token (the autolink id)
Branch patterns expose `prefix` and `num`.
"""

from __future__ import annotations

import re
import weakref
from enum import Enum
from typing import Any

from loguru import logger

from reflinker.formatting import encode_html_weak, escape_markdown
from reflinker.models import AutolinkReference


class PatternKind(str, Enum):
    MESSAGE = "message"
    BRANCH = "branch"
    MARKDOWN = "markdown"
    HTML = "html"


_LEAD = r"(?P<lead>^|\s|\(|\[|\{)"
_BRANCH_LEAD = r"(?:^|\-|_|\.|/)"
_BRANCH_TAIL = r"(?=$|\-|_|\.|/)"


def _token(ref: AutolinkReference) -> str:
    return r"\w+" if ref.alphanumeric else r"\d+"


def _alternatives(*prefixes: str) -> str:
    # longest first so an escaped prefix wins over its raw form
    unique = sorted(set(prefixes), key=len, reverse=True)
    return "|".join(re.escape(p) for p in unique)


def _message_pattern(prefix_re: str, ref: AutolinkReference) -> re.Pattern:
    flags = re.ASCII | (re.IGNORECASE if ref.ignore_case else 0)
    return re.compile(
        rf"{_LEAD}(?P<label>(?:{prefix_re})(?P<num>{_token(ref)}))\b",
        flags,
    )


def compile_pattern(ref: AutolinkReference, kind: PatternKind) -> re.Pattern:
    """Build the pattern for `ref` in the given kind. No caching here."""
    if kind is PatternKind.MESSAGE:
        return _message_pattern(re.escape(ref.prefix), ref)

    if kind is PatternKind.MARKDOWN:
        # Text handed to the markdown renderer is usually escaped already,
        # but raw text is accepted too.
        return _message_pattern(
            _alternatives(encode_html_weak(escape_markdown(ref.prefix)), encode_html_weak(ref.prefix)),
            ref,
        )

    if kind is PatternKind.HTML:
        return _message_pattern(_alternatives(encode_html_weak(ref.prefix), ref.prefix), ref)

    # Branch names always match case-insensitively, whatever ref.ignore_case says.
    return re.compile(
        rf"{_BRANCH_LEAD}(?P<prefix>{re.escape(ref.prefix)})(?P<num>{_token(ref)}){_BRANCH_TAIL}",
        re.ASCII | re.IGNORECASE,
    )


def forget_when_collected(ref: object, entries: dict[int, Any]) -> None:
    """Drop `entries[id(ref)]` once `ref` is garbage collected."""
    finalizer = weakref.finalize(ref, entries.pop, id(ref), None)
    finalizer.atexit = False


class PatternCache:
    """
    Compiled patterns keyed by (reference identity, kind).

    Entries live as long as their reference: the cache holds no strong
    reference to it, and an id can't be reused before its entries are gone.
    """

    def __init__(self):
        # id(ref) -> {kind: pattern}
        self._patterns: dict[int, dict[PatternKind, re.Pattern]] = {}
        self.compile_count = 0

    def get(self, ref: AutolinkReference, kind: PatternKind) -> re.Pattern:
        patterns = self._patterns.get(id(ref))
        if patterns is None:
            patterns = self._patterns[id(ref)] = {}
            forget_when_collected(ref, self._patterns)
        elif kind in patterns:
            return patterns[kind]

        pattern = patterns[kind] = compile_pattern(ref, kind)
        self.compile_count += 1
        logger.debug(f"[PATTERNS] compiled {kind.value} pattern for prefix={ref.prefix!r}")
        return pattern

    def contains(self, ref: AutolinkReference, kind: PatternKind) -> bool:
        return kind in self._patterns.get(id(ref), {})

    def clear(self) -> None:
        self._patterns.clear()

    def __len__(self) -> int:
        return sum(len(patterns) for patterns in list(self._patterns.values()))


def format_pattern_kind(output_format: str) -> PatternKind:
    """Pattern kind used when rendering text in `output_format`."""
    if output_format == "markdown":
        return PatternKind.MARKDOWN
    if output_format == "html":
        return PatternKind.HTML
    return PatternKind.MESSAGE
