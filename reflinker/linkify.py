"""
REFLINKER Tokenizing Linkifier

Rewrites text in two phases:
  1. every reference scans the *current* text and swaps each match for a
     placeholder token, recording the rendered markup in a side mapping
  2. one final substitution turns every token back into its markup

Tokens hide consumed spans from later references, so no span bookkeeping
is needed across references. The token delimiter is chosen per call from
characters absent in the input, so tokens never collide with source text.
"""

from __future__ import annotations

import re
import weakref
from typing import Callable, Iterable, Mapping, MutableMapping, Optional, Sequence
from urllib.parse import urlsplit

from loguru import logger

from reflinker.formatting import (
    DASH,
    DOT,
    SPACE,
    capitalize,
    encode_html_weak,
    encode_url,
    escape_markdown,
    from_now,
    substitute_num,
    superscript,
)
from reflinker.integrations import GitRemote
from reflinker.models import (
    AutolinkReference,
    DynamicReference,
    IssueOrPullRequest,
    MaybeEnrichedAutolink,
    OutputFormat,
    Pending,
    Ready,
    Reference,
    Snapshot,
)
from reflinker.patterns import PatternCache, forget_when_collected, format_pattern_kind

TOKEN_DELIMITERS = ("\x00",) + tuple(chr(cp) for cp in range(0xE000, 0xE100))

LOADING = "Loading..."

Tokenizer = Callable[[str, "RenderPass"], str]


class ReferenceTemplateError(ValueError):
    """A reference's url template can't produce a usable link."""


class TokenDelimiterError(RuntimeError):
    """Every candidate token delimiter already occurs in the text."""


def choose_delimiter(text: str) -> str:
    for delimiter in TOKEN_DELIMITERS:
        if delimiter not in text:
            return delimiter
    raise TokenDelimiterError("No free token delimiter for this text")


class RenderPass:
    """
    State for a single linkify call: tokens, enrichment snapshots, footnotes.

    Never shared across calls.
    """

    def __init__(
        self,
        text: str,
        output_format: OutputFormat,
        enriched: Mapping[str, MaybeEnrichedAutolink] | None = None,
        footnoted_ids: Iterable[str] | None = None,
        footnotes: MutableMapping[int, str] | None = None,
    ):
        self.output_format = output_format
        self.enriched = enriched or {}
        self.footnotes = footnotes
        self.token_mapping: dict[str, str] = {}
        self._delimiter = choose_delimiter(text)
        self._token_re = re.compile(rf"{re.escape(self._delimiter)}\d+{re.escape(self._delimiter)}")
        self._excluded_ids = frozenset(footnoted_ids or ())
        self._footnote_indexes: dict[str, int] = {}

    def add_token(self, value: str) -> str:
        token = f"{self._delimiter}{len(self.token_mapping)}{self._delimiter}"
        self.token_mapping[token] = value
        return token

    def snapshot(self, num: str) -> Snapshot | None:
        """Snapshot for `num`; a lookup that found nothing counts as none."""
        entry = self.enriched.get(num)
        if entry is None:
            return None
        snapshot = entry[0]
        if isinstance(snapshot, Ready) and snapshot.value is None:
            return None
        return snapshot

    def add_footnote(self, num: str, footnote: str) -> int | None:
        """
        Record a footnote for `num` once per call. Returns its index, or None
        when there is no sink or the caller already footnoted this id.
        """
        if self.footnotes is None or num in self._excluded_ids:
            return None
        index = self._footnote_indexes.get(num)
        if index is None:
            index = max(self.footnotes, default=0) + 1
            self.footnotes[index] = footnote
            self._footnote_indexes[num] = index
        return index

    def resolve(self, text: str) -> str:
        if not self.token_mapping:
            return text
        return self._token_re.sub(lambda m: self.token_mapping.get(m.group(0), m.group(0)), text)


def _issue_detail(issue: IssueOrPullRequest) -> tuple[str, str]:
    return capitalize(issue.state), from_now(issue.closed_date or issue.created_date)


def render_link(
    render: RenderPass,
    label: str,
    num: str,
    url: str,
    title: str | None = None,
    name: str | None = None,
    fallback_title: str | None = None,
) -> str:
    """
    Markup for one matched `label` in the pass's output format.

    The enrichment snapshot for `num` is folded into the tooltip and the
    footnotes. `url` must already be substituted and encoded. `title` is the
    configured tooltip; `fallback_title` (default: the label) stands in for
    it once a snapshot exists. `name` labels provisional footnotes.
    """
    snapshot = render.snapshot(num)
    tooltip = title
    if tooltip is None and snapshot is not None:
        tooltip = fallback_title or label

    if render.output_format is OutputFormat.MARKDOWN:
        return _markdown(render, label, num, url, tooltip, name or label, snapshot)
    if render.output_format is OutputFormat.HTML:
        return _html(render, label, num, url, tooltip, name or label, snapshot)
    return _plaintext(render, label, num, snapshot)


def _markdown(
    render: RenderPass, label: str, num: str, url: str, tooltip: str | None, name: str, snapshot: Snapshot | None
) -> str:
    if tooltip is None:
        return f"[{label}]({url})"

    tooltip = tooltip.replace('"', '\\"')
    link_title = f' "{tooltip}"'
    if isinstance(snapshot, Pending):
        render.add_footnote(num, f"[{name}]({url}{link_title}) {LOADING}")
        tooltip += f"\n{DASH * 2}\n{LOADING}"
    elif isinstance(snapshot, Ready):
        issue = snapshot.value
        state, when = _issue_detail(issue)
        issue_title = escape_markdown(issue.title.strip())
        quoted_title = issue_title.replace('"', '\\"')
        render.add_footnote(
            num,
            f"[**{issue_title}**]({url}{link_title})\\\n{SPACE * 5}{label} {issue.state} {when}",
        )
        tooltip += f"\n{DASH * 2}\n{quoted_title}\n{state}, {when}"

    return f'[{label}]({url} "{tooltip}")'


def _html(
    render: RenderPass, label: str, num: str, url: str, tooltip: str | None, name: str, snapshot: Snapshot | None
) -> str:
    if tooltip is None:
        return f'<a href="{url}">{label}</a>'

    tooltip = encode_html_weak(tooltip)
    link_title = f'title="{tooltip}"'
    if isinstance(snapshot, Pending):
        render.add_footnote(num, f'<a href="{url}" {link_title}>{name}</a> {LOADING}')
        tooltip += f"\n{DASH * 2}\n{LOADING}"
    elif isinstance(snapshot, Ready):
        issue = snapshot.value
        state, when = _issue_detail(issue)
        issue_title = encode_html_weak(issue.title.strip())
        render.add_footnote(
            num,
            f'<a href="{url}" {link_title}><b>{issue_title}</b></a><br />'
            f"<span>{SPACE * 5}{label} {issue.state} {when}</span>",
        )
        tooltip += f"\n{DASH * 2}\n{issue_title}\n{state}, {when}"

    return f'<a href="{url}" title="{tooltip}">{label}</a>'


def _plaintext(render: RenderPass, label: str, num: str, snapshot: Snapshot | None) -> str:
    if isinstance(snapshot, Pending):
        # pending details only show up in the footnote
        render.add_footnote(num, f"{label}: {LOADING}")
        return label
    if isinstance(snapshot, Ready):
        issue = snapshot.value
        state, when = _issue_detail(issue)
        index = render.add_footnote(num, f"{label}: {issue.title}  {DOT}  {state}, {when}")
        if index is not None:
            return f"{label}{superscript(index)}"
    return label


class ReferenceRenderer:
    """Render closure for one cacheable reference, in every output format."""

    def __init__(self, ref: AutolinkReference, cache: PatternCache):
        try:
            urlsplit(substitute_num(ref.url, "0"))
        except ValueError as e:
            raise ReferenceTemplateError(f"Invalid url template {ref.url!r}: {e}") from e
        # weak, so a cached renderer doesn't keep its reference alive
        self._ref = weakref.ref(ref)
        self.cache = cache

    @property
    def ref(self) -> AutolinkReference | None:
        return self._ref()

    def __call__(self, text: str, render: RenderPass) -> str:
        ref = self.ref
        if ref is None:
            return text
        pattern = self.cache.get(ref, format_pattern_kind(render.output_format.value))
        return pattern.sub(
            lambda m: m.group("lead") + render.add_token(self._render(ref, m.group("label"), m.group("num"), render)),
            text,
        )

    @staticmethod
    def _render(ref: AutolinkReference, label: str, num: str, render: RenderPass) -> str:
        return render_link(
            render,
            label,
            num,
            url=encode_url(substitute_num(ref.url, num)),
            title=substitute_num(ref.title, num),
            name=substitute_num(ref.description, num) or f"Custom Autolink {ref.prefix}{num}",
            fallback_title=f"{ref.prefix}{num}",
        )


class Linkifier:
    """Owns the pattern cache and the per-reference render closures."""

    def __init__(self, cache: PatternCache | None = None):
        self.cache = cache or PatternCache()
        # id(ref) -> renderer, or None when the reference can't render
        self._renderers: dict[int, Optional[Tokenizer]] = {}

    def renderer_for(self, ref: Reference | None) -> Tokenizer | None:
        """Render closure for `ref`, built once. None when it can't render."""
        if ref is None:
            return None
        if isinstance(ref, DynamicReference):
            return ref.tokenize
        if not ref.is_cacheable:
            return None

        if id(ref) in self._renderers:
            return self._renderers[id(ref)]

        renderer: Tokenizer | None
        try:
            renderer = ReferenceRenderer(ref, self.cache)
        except ReferenceTemplateError as e:
            logger.error(
                f"[LINKIFY] Failed to create autolink renderer: prefix={ref.prefix}, "
                f"url={ref.url}, title={ref.title}: {e}"
            )
            renderer = None
        self._renderers[id(ref)] = renderer
        forget_when_collected(ref, self._renderers)
        return renderer

    def clear(self) -> None:
        self._renderers.clear()
        self.cache.clear()

    def __len__(self) -> int:
        return len(self._renderers)

    def linkify(
        self,
        text: str,
        output_format: OutputFormat | str,
        custom_references: Sequence[AutolinkReference] = (),
        remotes: Sequence[GitRemote] | None = None,
        enriched: Mapping[str, MaybeEnrichedAutolink] | None = None,
        footnoted_ids: Iterable[str] | None = None,
        footnotes: MutableMapping[int, str] | None = None,
    ) -> str:
        output_format = OutputFormat(output_format)
        include_footnotes = output_format is OutputFormat.PLAINTEXT and footnotes is None
        if include_footnotes:
            footnotes = {}

        render = RenderPass(text, output_format, enriched, footnoted_ids, footnotes)

        for ref in self._references_for(custom_references, remotes, enriched):
            renderer = self.renderer_for(ref)
            if renderer is not None:
                text = renderer(text, render)

        text = render.resolve(text)

        if include_footnotes and footnotes:
            trailer = "\n".join(f"{superscript(i)} {note}" for i, note in sorted(footnotes.items()))
            text += f"\n{DASH * 2}\n{trailer}"

        return text

    @staticmethod
    def _references_for(
        custom_references: Sequence[AutolinkReference],
        remotes: Sequence[GitRemote] | None,
        enriched: Mapping[str, MaybeEnrichedAutolink] | None,
    ) -> list[Reference]:
        if enriched:
            seen: set[int] = set()
            references: list[Reference] = []
            for _, link in enriched.values():
                ref = link.reference
                if ref is None or id(ref) in seen:
                    continue
                seen.add(id(ref))
                references.append(ref)
            return references

        references = list(custom_references)
        if remotes:
            # remotes with a connected integration first; sorted() is stable
            ordered = sorted(remotes, key=lambda r: not getattr(r, "maybe_integration_connected", False))
            for remote in ordered:
                if remote.provider is None:
                    continue
                references.extend(remote.provider.autolinks)
        return references
