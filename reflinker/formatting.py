"""Text helpers shared by the pattern compiler and the linkifier."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from urllib.parse import quote

import humanize

NUM_PLACEHOLDER = "<num>"

DASH = "\u2014"
DOT = "\u2022"
SPACE = "\u00a0"

_MARKDOWN_ESCAPE_RE = re.compile(r"([\\`*_{}\[\]()#+\-.!])")
_MARKDOWN_HEADER_RE = re.compile(r"^===", re.MULTILINE)
_HTML_WEAK = {"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&#39;"}
_HTML_WEAK_RE = re.compile(r"[&<>\"']")

# Same reserved set as JavaScript's encodeURI
_URL_SAFE = ";,/?:@&=+$-_.!~*'()#[]%"

_SUPERSCRIPTS = str.maketrans("0123456789", "⁰¹²³⁴⁵⁶⁷⁸⁹")


def substitute_num(template: str | None, num: str) -> str | None:
    """Replace every `<num>` in `template` with the literal id."""
    if template is None:
        return None
    return template.replace(NUM_PLACEHOLDER, num)


def escape_markdown(s: str) -> str:
    s = _MARKDOWN_ESCAPE_RE.sub(r"\\\1", s)
    return _MARKDOWN_HEADER_RE.sub("\u200b===", s)


def encode_html_weak(s: str) -> str:
    return _HTML_WEAK_RE.sub(lambda m: _HTML_WEAK[m.group(0)], s)


def encode_url(url: str) -> str:
    return quote(url, safe=_URL_SAFE)


def superscript(n: int) -> str:
    return str(n).translate(_SUPERSCRIPTS)


def capitalize(s: str) -> str:
    return s[:1].upper() + s[1:]


def from_now(when: datetime, now: datetime | None = None) -> str:
    """Relative date, e.g. "3 days ago"."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return humanize.naturaltime(now - when)
