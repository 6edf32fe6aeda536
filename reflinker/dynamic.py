"""
Project-key references (``ABC-123``).

Trackers like Jira key issues by project, so the "prefix" varies per match.
This is a dynamic reference: it scans text itself instead of going through
the prefix + token pattern compiler.
"""

from __future__ import annotations

import re
from typing import Iterable

from reflinker.formatting import encode_url, substitute_num
from reflinker.linkify import RenderPass, render_link
from reflinker.models import (
    Autolink,
    AutolinkType,
    DynamicReference,
    OutputFormat,
    ProviderReference,
    ResourceDescriptor,
)

ANY_PROJECT_KEY = r"[A-Z][A-Z0-9]+"


class ProjectKeyReference(DynamicReference):
    """
    Matches ``KEY-<digits>`` for the given project keys (any uppercase key
    when none are given). `url` / `title` templates get the full key,
    e.g. ``https://acme.atlassian.net/browse/<num>``.
    """

    def __init__(
        self,
        url: str,
        keys: Iterable[str] | None = None,
        provider: ProviderReference | None = None,
        title: str | None = None,
        description: str | None = None,
        descriptor: ResourceDescriptor | None = None,
    ):
        self.url = url
        self.keys = sorted(set(keys or []), key=len, reverse=True)
        self.provider = provider
        self.title = title
        self.description = description
        self.descriptor = descriptor

        key_re = "|".join(re.escape(k) for k in self.keys) if self.keys else ANY_PROJECT_KEY
        self._regex = _key_pattern(key_re, "-")
        # markdown-escaped text writes the dash as "\-"
        self._markdown_regex = _key_pattern(key_re, r"\\?-")

    def parse(self, text: str, autolinks: dict[str, Autolink]) -> None:
        for match in self._regex.finditer(text):
            issue_key = match.group("label")
            if issue_key in autolinks:
                continue
            autolinks[issue_key] = Autolink(
                provider=self.provider,
                id=issue_key,
                index=match.start(),
                url=substitute_num(self.url, issue_key),
                title=substitute_num(self.title, issue_key),
                description=substitute_num(self.description, issue_key),
                type=AutolinkType.ISSUE,
                descriptor=self.descriptor,
                reference=self,
            )

    def tokenize(self, text: str, render: RenderPass) -> str:
        regex = self._markdown_regex if render.output_format is OutputFormat.MARKDOWN else self._regex

        def replace(match: re.Match) -> str:
            # snapshots are keyed by the unescaped id
            issue_key = f"{match.group('key')}-{match.group('num')}"
            return render.add_token(
                render_link(
                    render,
                    match.group("label"),
                    issue_key,
                    url=encode_url(substitute_num(self.url, issue_key)),
                    title=substitute_num(self.title, issue_key),
                    name=substitute_num(self.description, issue_key) or issue_key,
                    fallback_title=issue_key,
                )
            )

        return regex.sub(replace, text)

    def __repr__(self) -> str:
        return f"ProjectKeyReference(url={self.url!r}, keys={self.keys!r})"


def _key_pattern(key_re: str, dash_re: str) -> re.Pattern:
    return re.compile(rf"(?<![\w-])(?P<label>(?P<key>{key_re}){dash_re}(?P<num>\d+))\b", re.ASCII)
