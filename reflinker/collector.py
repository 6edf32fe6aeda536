"""
REFLINKER Reference-Set Collector

Gathers refsets in fixed precedence order:
  1. connected (or maybe-connected) issue integrations, fetched concurrently
  2. the remote provider's own references
  3. custom references from configuration

Extraction applies refsets in this order, so for message scans later
refsets win ties on the same id.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Sequence

from loguru import logger

from reflinker.integrations import GitRemote, IntegrationRegistry, IssueIntegration, provider_reference
from reflinker.models import AutolinkReference, DynamicReference, RefSet, ReferenceScope

DEFAULT_SUPPORTED_INTEGRATIONS = ("jira",)
DEFAULT_REFSET_TTL = 60 * 60.0


class RefSetCollector:
    def __init__(
        self,
        registry: IntegrationRegistry | None = None,
        custom_references: Sequence[AutolinkReference] = (),
        supported_integrations: Sequence[str] = DEFAULT_SUPPORTED_INTEGRATIONS,
        ttl_seconds: float = DEFAULT_REFSET_TTL,
    ):
        self.registry = registry
        self.supported_integrations = list(supported_integrations)
        self.ttl_seconds = ttl_seconds
        self._custom_references = list(custom_references)
        self._cache: dict[str, tuple[float, list[RefSet]]] = {}

    @property
    def custom_references(self) -> list[AutolinkReference]:
        return self._custom_references

    def set_custom_references(self, references: Sequence[AutolinkReference]) -> None:
        self._custom_references = list(references)
        self.clear_cache()

    def clear_cache(self) -> None:
        self._cache.clear()

    async def get_refsets(
        self,
        remote: GitRemote | None = None,
        for_branch: bool = False,
        exclude_custom: bool = False,
    ) -> list[RefSet]:
        key = f"{getattr(remote, 'remote_key', None)}{':branch' if for_branch else ''}{':nocustom' if exclude_custom else ''}"
        now = time.monotonic()
        cached = self._cache.get(key)
        if cached is not None and cached[0] > now:
            self._cache[key] = (now + self.ttl_seconds, cached[1])
            return cached[1]

        refsets: list[RefSet] = []
        # the contextual remote integration only matters for message scans
        await self._collect_integration_autolinks(None if for_branch else remote, refsets)
        self._collect_remote_autolinks(remote, refsets, for_branch)
        self._collect_custom_autolinks(remote, refsets, exclude_custom)

        logger.debug(f"[COLLECT] {len(refsets)} refsets for {key}")
        self._cache[key] = (now + self.ttl_seconds, refsets)
        return refsets

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def _collect_integration_autolinks(self, remote: GitRemote | None, refsets: list[RefSet]) -> None:
        lookups: list[Any] = []
        if self.registry is not None:
            lookups.extend(self.registry.get(integration_id) for integration_id in self.supported_integrations)
        if remote is not None and remote.provider is not None:
            lookups.append(remote.get_integration())
        if not lookups:
            return

        integrations: list[IssueIntegration] = []
        seen: set[str] = set()
        for result in await asyncio.gather(*lookups, return_exceptions=True):
            if isinstance(result, BaseException):
                logger.warning(f"[COLLECT] Integration lookup failed: {result}")
                continue
            if result is None or getattr(result, "maybe_connected", None) is False:
                continue
            if result.id in seen:
                continue
            seen.add(result.id)
            integrations.append(result)

        results = await asyncio.gather(
            *(self._fetch_references(integration) for integration in integrations),
            return_exceptions=True,
        )
        for integration, references in zip(integrations, results):
            if isinstance(references, BaseException):
                logger.warning(f"[COLLECT] Dropping {integration.id} autolinks: {references}")
                continue
            if references:
                refsets.append(RefSet(provider_reference(integration), list(references)))

    @staticmethod
    async def _fetch_references(integration: IssueIntegration):
        references = integration.autolinks()
        if inspect.isawaitable(references):
            references = await references
        return references

    def _collect_remote_autolinks(self, remote: GitRemote | None, refsets: list[RefSet], for_branch: bool) -> None:
        if remote is None or remote.provider is None or not remote.provider.autolinks:
            return

        references = list(remote.provider.autolinks)
        if for_branch:
            references = [
                ref for ref in references
                if not isinstance(ref, DynamicReference) and ref.reference_type is ReferenceScope.BRANCH
            ]
        if references:
            refsets.append(RefSet(provider_reference(remote.provider), references))

    def _collect_custom_autolinks(self, remote: GitRemote | None, refsets: list[RefSet], exclude_custom: bool) -> None:
        if not self._custom_references:
            return
        has_provider = remote is not None and remote.provider is not None
        if has_provider and exclude_custom:
            return
        refsets.append(RefSet(None, list(self._custom_references)))
