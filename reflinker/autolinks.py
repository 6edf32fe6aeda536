"""
REFLINKER Autolinks - the public entry point.

Wires configuration, the refset collector, extraction, enrichment and the
linkifier together:

    autolinks = Autolinks(load_config(repo), registry)
    links = await autolinks.get_autolinks(message, remote)
    enriched = await autolinks.get_enriched_snapshots(links, remote)
    text = autolinks.linkify(message, "markdown", enriched=enriched)
"""

from __future__ import annotations

from typing import Iterable, Mapping, MutableMapping, Sequence

from loguru import logger

from reflinker.collector import RefSetCollector
from reflinker.config_loader import ReflinkerConfig
from reflinker.enrichment import EnrichmentCoordinator, resolve_enriched_autolinks
from reflinker.extraction import get_autolinks, get_branch_autolinks
from reflinker.integrations import GitRemote, IntegrationRegistry
from reflinker.linkify import Linkifier
from reflinker.models import (
    Autolink,
    AutolinkReference,
    EnrichedAutolink,
    MaybeEnrichedAutolink,
    OutputFormat,
)
from reflinker.patterns import PatternCache


class Autolinks:
    def __init__(self, config: ReflinkerConfig | None = None, registry: IntegrationRegistry | None = None):
        self.config = config or ReflinkerConfig()
        self.registry = registry
        self.patterns = PatternCache()
        self.linkifier = Linkifier(self.patterns)
        self.collector = RefSetCollector(
            registry=registry,
            custom_references=self.config.references(),
            supported_integrations=self.config.integrations.supported,
            ttl_seconds=self.config.cache.refset_ttl_seconds,
        )
        self.enrichment = EnrichmentCoordinator(
            registry=registry,
            lookup_attempts=self.config.enrichment.lookup_attempts,
            retry_wait_max=self.config.enrichment.retry_wait_max,
        )

    @property
    def references(self) -> list[AutolinkReference]:
        """Custom references from configuration."""
        return self.collector.custom_references

    def reload_config(self, config: ReflinkerConfig) -> None:
        self.config = config
        self.collector.supported_integrations = list(config.integrations.supported)
        self.collector.ttl_seconds = config.cache.refset_ttl_seconds
        self.collector.set_custom_references(config.references())
        self.enrichment.lookup_attempts = max(1, config.enrichment.lookup_attempts)
        self.enrichment.retry_wait_max = config.enrichment.retry_wait_max
        self.linkifier.clear()
        logger.debug(f"[AUTOLINKS] Reloaded config: {len(self.references)} custom references")

    def on_integrations_changed(self) -> None:
        self.collector.clear_cache()

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    async def get_autolinks(
        self,
        message: str,
        remote: GitRemote | None = None,
        exclude_custom: bool = False,
    ) -> dict[str, Autolink]:
        refsets = await self.collector.get_refsets(remote, exclude_custom=exclude_custom)
        if not refsets:
            return {}
        return get_autolinks(message, refsets, self.patterns)

    async def get_branch_autolinks(
        self,
        branch_name: str,
        remote: GitRemote | None = None,
        exclude_custom: bool = False,
    ) -> dict[str, Autolink]:
        """Ranked matches in `branch_name`; the first entry is the most relevant."""
        refsets = await self.collector.get_refsets(remote, for_branch=True, exclude_custom=exclude_custom)
        if not refsets:
            return {}
        return get_branch_autolinks(branch_name, refsets, self.patterns)

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    async def get_enriched_autolinks(
        self,
        message_or_autolinks: str | Mapping[str, Autolink],
        remote: GitRemote | None = None,
    ) -> dict[str, EnrichedAutolink] | None:
        if isinstance(message_or_autolinks, str):
            message_or_autolinks = await self.get_autolinks(message_or_autolinks, remote)
        return await self.enrichment.get_enriched_autolinks(message_or_autolinks, remote)

    async def get_enriched_snapshots(
        self,
        message_or_autolinks: str | Mapping[str, Autolink],
        remote: GitRemote | None = None,
        timeout: float | None = None,
    ) -> dict[str, MaybeEnrichedAutolink]:
        """Enrich, then give lookups up to `timeout` seconds before snapshotting."""
        enriched = await self.get_enriched_autolinks(message_or_autolinks, remote)
        if timeout is None:
            timeout = self.config.enrichment.timeout_seconds
        return await resolve_enriched_autolinks(enriched, timeout)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def linkify(
        self,
        text: str,
        output_format: OutputFormat | str,
        remotes: Sequence[GitRemote] | None = None,
        enriched: Mapping[str, MaybeEnrichedAutolink] | None = None,
        footnoted_ids: Iterable[str] | None = None,
        footnotes: MutableMapping[int, str] | None = None,
    ) -> str:
        return self.linkifier.linkify(
            text,
            output_format,
            custom_references=self.references,
            remotes=remotes,
            enriched=enriched,
            footnoted_ids=footnoted_ids,
            footnotes=footnotes,
        )
