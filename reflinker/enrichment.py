"""
REFLINKER Enrichment Coordinator

Attaches issue / PR detail lookups to recognized autolinks.

Lookups start immediately as asyncio tasks and never raise: failures are
retried, logged, and settle to None ("no data"). Rendering doesn't wait for
them. `resolve_enriched_autolinks` races the batch against a timeout and
hands back Ready / Pending snapshots; re-rendering once a Pending task
finishes is the caller's job.
"""

from __future__ import annotations

import asyncio
from typing import Mapping

from loguru import logger
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from reflinker.integrations import GitRemote, IntegrationRegistry, IssueIntegration
from reflinker.models import (
    Autolink,
    EnrichedAutolink,
    IssueOrPullRequest,
    MaybeEnrichedAutolink,
    Pending,
    Ready,
    ResourceDescriptor,
    get_autolink_enrichable_id,
)


async def is_connected(integration: IssueIntegration | None) -> bool:
    if integration is None:
        return False
    connected = getattr(integration, "maybe_connected", None)
    if connected is None:
        connected = await integration.is_connected()
    return bool(connected)


class EnrichmentCoordinator:
    def __init__(
        self,
        registry: IntegrationRegistry | None = None,
        lookup_attempts: int = 1,
        retry_wait_max: float = 2.0,
    ):
        self.registry = registry
        self.lookup_attempts = max(1, lookup_attempts)
        self.retry_wait_max = retry_wait_max

    async def get_enriched_autolinks(
        self,
        autolinks: Mapping[str, Autolink],
        remote: GitRemote | None = None,
    ) -> dict[str, EnrichedAutolink] | None:
        """
        Map id -> (lookup task or None, autolink).

        The lookup comes from the remote's own integration when it is the
        same service (id and domain) as the autolink's origin and the
        autolink doesn't point at another resource; otherwise from the
        integration named by the autolink's origin, if connected.
        """
        if not autolinks:
            return None

        contextual: IssueIntegration | None = None
        if remote is not None and remote.provider is not None:
            contextual = await remote.get_integration()
            if not await is_connected(contextual):
                contextual = None

        enriched: dict[str, EnrichedAutolink] = {}
        for autolink_id, link in autolinks.items():
            own = await self._integration_for(link)

            lookup = None
            if contextual is not None and self._matches_contextual(link, contextual, remote):
                descriptor = link.descriptor or remote.provider.repo_desc
                lookup = asyncio.ensure_future(self._lookup(contextual, descriptor, link))
            elif own is not None and link.descriptor is not None:
                lookup = asyncio.ensure_future(self._lookup(own, link.descriptor, link))

            enriched[autolink_id] = (lookup, link)

        pending = sum(1 for lookup, _ in enriched.values() if lookup is not None)
        logger.debug(f"[ENRICH] {pending}/{len(enriched)} autolinks have a lookup")
        return enriched

    @staticmethod
    def _matches_contextual(link: Autolink, integration: IssueIntegration, remote: GitRemote) -> bool:
        if link.provider is None:
            return False
        if link.provider.id != integration.id or link.provider.domain != integration.domain:
            return False
        repo_desc = remote.provider.repo_desc
        return link.descriptor is None or repo_desc is None or link.descriptor == repo_desc

    async def _integration_for(self, link: Autolink) -> IssueIntegration | None:
        if link.provider is None or self.registry is None:
            return None
        try:
            integration = await self.registry.get(link.provider.id)
        except Exception as e:
            logger.error(f"[ENRICH] Failed to get integration for {link.provider.id}: {e}")
            return None
        if not await is_connected(integration):
            return None
        return integration

    async def _lookup(
        self,
        integration: IssueIntegration,
        descriptor: ResourceDescriptor | None,
        link: Autolink,
    ) -> IssueOrPullRequest | None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.lookup_attempts),
                wait=wait_exponential(max=self.retry_wait_max),
                reraise=True,
            ):
                with attempt:
                    return await integration.get_linked_issue_or_pull_request(
                        descriptor, get_autolink_enrichable_id(link), type=link.type
                    )
        except Exception as e:
            logger.error(f"[ENRICH] Lookup failed for {link.prefix}{link.id} via {integration.id}: {e}")
        return None


async def resolve_enriched_autolinks(
    enriched: Mapping[str, EnrichedAutolink] | None,
    timeout: float | None = None,
) -> dict[str, MaybeEnrichedAutolink]:
    """
    Wait up to `timeout` seconds for the lookups, then snapshot them.

    Settled lookups become Ready(value); the rest become Pending(task) and
    keep running in the background. Entries without a lookup map to None.
    """
    if not enriched:
        return {}

    lookups = {lookup for lookup, _ in enriched.values() if lookup is not None}
    if lookups:
        await asyncio.wait(lookups, timeout=timeout)

    snapshots: dict[str, MaybeEnrichedAutolink] = {}
    for autolink_id, (lookup, link) in enriched.items():
        if lookup is None:
            snapshots[autolink_id] = (None, link)
        elif lookup.done():
            snapshots[autolink_id] = (Ready(_settled_value(lookup)), link)
        else:
            snapshots[autolink_id] = (Pending(lookup), link)

    paused = sum(1 for snapshot, _ in snapshots.values() if isinstance(snapshot, Pending))
    if paused:
        logger.debug(f"[ENRICH] {paused} lookups still pending after {timeout}s")
    return snapshots


def _settled_value(lookup: asyncio.Future) -> IssueOrPullRequest | None:
    if lookup.cancelled():
        return None
    error = lookup.exception()
    if error is not None:
        logger.error(f"[ENRICH] Lookup failed: {error}")
        return None
    return lookup.result()
