"""
REFLINKER Reference Model

Static shapes (reference patterns, reference-sets) and per-pass shapes
(autolinks, enrichment snapshots). Reference patterns are frozen: compiled
patterns and render closures are cached by the engine, never on the model.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from reflinker.linkify import RenderPass


class OutputFormat(str, Enum):
    PLAINTEXT = "plaintext"
    MARKDOWN = "markdown"
    HTML = "html"


class AutolinkType(str, Enum):
    ISSUE = "issue"
    PULL_REQUEST = "pullrequest"


class ReferenceScope(str, Enum):
    COMMIT = "commit"
    BRANCH = "branch"


# ---------------------------------------------------------------------------
# Origins
# ---------------------------------------------------------------------------

class ProviderReference(BaseModel):
    """Identity of whoever contributed a reference-set (integration or remote)."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    domain: str = ""
    icon: str = ""


class ResourceDescriptor(BaseModel):
    """Where a lookup should go: an organization, project or repository."""
    model_config = ConfigDict(frozen=True, extra="allow")

    key: str
    owner: str | None = None
    name: str | None = None


class IssueOrPullRequest(BaseModel):
    id: str
    title: str
    state: str = "opened"
    url: str = ""
    type: AutolinkType = AutolinkType.ISSUE
    created_date: datetime
    closed_date: datetime | None = None
    provider: ProviderReference | None = None


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------

class AutolinkReference(BaseModel):
    """
    A prefix + token pattern and the templates used to render its matches.

    `url`, `title` and `description` may contain `<num>`, substituted with
    the matched id at match time.
    """
    model_config = ConfigDict(frozen=True)

    prefix: str = ""
    url: str = ""
    alphanumeric: bool = False
    ignore_case: bool = False
    title: str | None = None

    type: AutolinkType | None = None
    reference_type: ReferenceScope | None = None
    description: str | None = None
    descriptor: ResourceDescriptor | None = None

    @property
    def kind(self) -> Literal["pattern"]:
        return "pattern"

    @property
    def is_cacheable(self) -> bool:
        return bool(self.prefix) and bool(self.url)

    @classmethod
    def from_config(cls, entry: Any) -> AutolinkReference:
        """Build a fresh reference from a config entry (model or mapping)."""
        if isinstance(entry, BaseModel):
            entry = entry.model_dump()
        return cls(
            prefix=entry.get("prefix") or "",
            url=entry.get("url") or "",
            alphanumeric=bool(entry.get("alphanumeric", False)),
            ignore_case=bool(entry.get("ignore_case", entry.get("ignoreCase", False))),
            title=entry.get("title") or None,
        )


class DynamicReference(ABC):
    """
    A reference whose grammar can't be expressed as prefix + token.

    Subclasses own their extraction: `parse` writes straight into the
    result collection and is responsible for its own dedup.
    """

    provider: ProviderReference | None = None

    @property
    def kind(self) -> Literal["dynamic"]:
        return "dynamic"

    @abstractmethod
    def parse(self, text: str, autolinks: dict[str, Autolink]) -> None:
        ...

    def parse_branch_name(self, branch_name: str, autolinks: dict[str, Autolink]) -> None:
        """Branch names are not scanned by dynamic references unless overridden."""
        return None

    def tokenize(self, text: str, render: RenderPass) -> str:
        """Replace matches in `text` with tokens from `render`. Default: no-op."""
        return text


Reference = Union[AutolinkReference, DynamicReference]


class RefSet(NamedTuple):
    provider: Optional[ProviderReference]
    references: list[Reference]


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

class Autolink(BaseModel):
    """One concrete match of a reference against source text."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    provider: ProviderReference | None = None
    id: str
    index: int | None = None

    prefix: str = ""
    url: str = ""
    alphanumeric: bool = False
    ignore_case: bool = False
    title: str | None = None
    type: AutolinkType | None = None
    description: str | None = None
    descriptor: ResourceDescriptor | None = None

    # owning reference, used to find its render closure
    reference: Any = Field(default=None, exclude=True, repr=False)

    def serialize(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


def get_autolink_enrichable_id(autolink: Autolink) -> dict[str, str]:
    return {"id": autolink.id, "key": f"{autolink.prefix}{autolink.id}"}


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Ready:
    """A lookup that settled before rendering. `value` is None for "no data"."""
    value: IssueOrPullRequest | None


@dataclass(frozen=True)
class Pending:
    """A lookup still running at render time. Await `task` to re-render."""
    task: asyncio.Future


Snapshot = Union[Ready, Pending]

# id -> (lookup or None, autolink)
EnrichedAutolink = tuple[Optional[asyncio.Future], Autolink]
# id -> (snapshot or None, autolink)
MaybeEnrichedAutolink = tuple[Optional[Snapshot], Autolink]
