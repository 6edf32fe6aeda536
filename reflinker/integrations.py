"""
Collaborator contracts.

Issue trackers, remote providers and git remotes live outside REFLINKER.
These protocols describe only what the autolink engine calls on them.
"""

from __future__ import annotations

from typing import Any, Awaitable, Optional, Protocol, Sequence, Union, runtime_checkable

from reflinker.models import (
    AutolinkType,
    IssueOrPullRequest,
    ProviderReference,
    Reference,
    ResourceDescriptor,
)

References = Sequence[Reference]


@runtime_checkable
class IssueIntegration(Protocol):
    """An issue / PR tracking service (Jira, GitHub, ...)."""

    id: str
    name: str
    domain: str
    # None means "unknown yet", resolve with is_connected()
    maybe_connected: Optional[bool]

    def autolinks(self) -> Union[References, Awaitable[References]]:
        ...

    async def is_connected(self) -> bool:
        ...

    async def get_linked_issue_or_pull_request(
        self,
        descriptor: ResourceDescriptor | None,
        enrichable_id: dict[str, str],
        type: AutolinkType | None = None,
    ) -> IssueOrPullRequest | None:
        ...


class IntegrationRegistry(Protocol):
    """Looks up integrations by id."""

    async def get(self, integration_id: str) -> IssueIntegration | None:
        ...


class RemoteProvider(Protocol):
    """The hosting provider behind a git remote (GitHub, GitLab, ...)."""

    id: str
    name: str
    domain: str
    autolinks: References
    repo_desc: ResourceDescriptor | None


class GitRemote(Protocol):
    remote_key: str
    provider: RemoteProvider | None
    maybe_integration_connected: Optional[bool]

    async def get_integration(self) -> IssueIntegration | None:
        ...


def provider_reference(source: Any) -> ProviderReference | None:
    """Attribution for a refset contributed by an integration or remote provider."""
    if source is None:
        return None
    if isinstance(source, ProviderReference):
        return source
    return ProviderReference(
        id=source.id,
        name=getattr(source, "name", "") or "",
        domain=getattr(source, "domain", "") or "",
        icon=getattr(source, "icon", "") or "",
    )
