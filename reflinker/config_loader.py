"""
Configuration loader for REFLINKER.
Merges defaults with per-repo .reflinker/config.yaml overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from reflinker.models import AutolinkReference


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class AutolinkConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prefix: str | None = None
    url: str | None = None
    alphanumeric: bool = False
    ignore_case: bool = Field(default=False, alias="ignoreCase")
    title: str | None = None


class IntegrationsConfig(BaseModel):
    supported: list[str] = Field(default_factory=lambda: ["jira"])


class EnrichmentConfig(BaseModel):
    timeout_seconds: float = 0.25
    lookup_attempts: int = 2
    retry_wait_max: float = 2.0


class CacheConfig(BaseModel):
    refset_ttl_seconds: float = 3600.0


class ReflinkerConfig(BaseModel):
    autolinks: list[AutolinkConfig] = Field(default_factory=list)
    integrations: IntegrationsConfig = Field(default_factory=IntegrationsConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    def references(self) -> list[AutolinkReference]:
        """
        Fresh references for every usable entry. Entries missing a prefix or
        url are skipped. The engine never holds on to the config objects.
        """
        return [
            AutolinkReference.from_config(entry)
            for entry in self.autolinks
            if entry.prefix and entry.url
        ]


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"
CONFIG_ENV_VAR = "REFLINKER_CONFIG"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(repo_path: Path | None = None) -> ReflinkerConfig:
    """
    Load config by merging:
      1. Built-in defaults (reflinker/config.yaml)
      2. Repo-level overrides (<repo>/.reflinker/config.yaml)
      3. The file named by $REFLINKER_CONFIG
    """
    # 1. Built-in defaults
    base = _read_yaml(_DEFAULT_CONFIG_PATH)

    # 2. Repo overrides
    if repo_path:
        repo_config = repo_path / ".reflinker" / "config.yaml"
        if repo_config.exists():
            base = _deep_merge(base, _read_yaml(repo_config))

    # 3. Env override
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        env_config = Path(env_path).expanduser()
        if env_config.exists():
            base = _deep_merge(base, _read_yaml(env_config))

    return ReflinkerConfig(**base)
