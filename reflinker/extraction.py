"""
REFLINKER Extraction Engine

Scans commit messages and branch names against an ordered list of refsets.

Message scans merge by id, last write wins in refset order.
Branch scans merge by resolved url, earliest position wins, and the result
is ranked (see `rank_key`).
"""

from __future__ import annotations

import sys
from typing import Sequence

from loguru import logger

from reflinker.formatting import substitute_num
from reflinker.models import (
    Autolink,
    AutolinkReference,
    AutolinkType,
    DynamicReference,
    RefSet,
    ReferenceScope,
)
from reflinker.patterns import PatternCache, PatternKind


def _autolink(ref: AutolinkReference, refset: RefSet, num: str, index: int, url: str) -> Autolink:
    return Autolink(
        provider=refset.provider,
        id=num,
        index=index,
        prefix=ref.prefix,
        url=url,
        alphanumeric=ref.alphanumeric,
        ignore_case=ref.ignore_case,
        title=substitute_num(ref.title, num),
        type=ref.type,
        description=substitute_num(ref.description, num),
        descriptor=ref.descriptor,
        reference=ref,
    )


def get_autolinks(message: str, refsets: Sequence[RefSet], cache: PatternCache) -> dict[str, Autolink]:
    """Scan a commit message. Keyed by id; later refsets overwrite earlier ones."""
    autolinks: dict[str, Autolink] = {}

    for refset in refsets:
        for ref in refset.references:
            if isinstance(ref, DynamicReference):
                # Not isolated: a failing parser aborts the whole scan.
                ref.parse(message, autolinks)
                continue
            if not ref.is_cacheable:
                continue
            if ref.reference_type is not None and ref.reference_type is not ReferenceScope.COMMIT:
                continue

            pattern = cache.get(ref, PatternKind.MESSAGE)
            for match in pattern.finditer(message):
                num = match.group("num")
                autolinks[num] = _autolink(
                    ref, refset, num, match.start("label"), substitute_num(ref.url, num)
                )

    logger.debug(f"[EXTRACT] message scan: {len(autolinks)} autolinks from {len(refsets)} refsets")
    return autolinks


def rank_key(autolink: Autolink) -> tuple[bool, int, int, int]:
    """
    Sort key for branch matches, most relevant first:
      1. a match at position 0
      2. longer prefix
      3. longer id
      4. earlier position
    """
    # matches without a position rank after every positioned one
    index = autolink.index if autolink.index is not None else sys.maxsize
    return (index != 0, -len(autolink.prefix), -len(autolink.id), index)


def rank_autolinks(autolinks: dict[str, Autolink]) -> dict[str, Autolink]:
    return dict(sorted(autolinks.items(), key=lambda item: rank_key(item[1])))


def get_branch_autolinks(branch_name: str, refsets: Sequence[RefSet], cache: PatternCache) -> dict[str, Autolink]:
    """Scan a branch name. Keyed by resolved url, ordered by `rank_key`."""
    autolinks: dict[str, Autolink] = {}

    for refset in refsets:
        for ref in refset.references:
            if isinstance(ref, DynamicReference):
                ref.parse_branch_name(branch_name, autolinks)
                continue
            if not ref.is_cacheable or ref.type is AutolinkType.PULL_REQUEST:
                continue
            if ref.reference_type is not None and ref.reference_type is not ReferenceScope.BRANCH:
                continue

            pattern = cache.get(ref, PatternKind.BRANCH)
            for match in pattern.finditer(branch_name):
                num = match.group("num")
                index = match.start("prefix")
                url = substitute_num(ref.url, num)
                # the same url reached twice: keep the earliest occurrence

                existing = autolinks.get(url)
                if existing is not None and existing.index is not None and existing.index <= index:
                    continue

                autolinks[url] = _autolink(ref, refset, num, index, url)

    logger.debug(f"[EXTRACT] branch scan: {len(autolinks)} autolinks from {len(refsets)} refsets")
    return rank_autolinks(autolinks)
