"""
Registry metadata resolution.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests
from tqdm import tqdm

from . import npm_semver
from .interfaces import RegistryClient
from .models import Dependencies, PackageMetadata, PolicyConfig


logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "https://registry.npmjs.org"
DEFAULT_MAX_WORKERS = 8
DEFAULT_TIMEOUT = 30
BASELINE_SPEC = "^0.0.0"


class ResolutionError(RuntimeError):
    """Raised when the metadata batch cannot be completed."""


@dataclass
class RegistryCache:
    """Shared in-memory cache for registry requests."""

    metadata_cache: Dict[str, PackageMetadata] = field(default_factory=dict)
    session: requests.Session = field(default_factory=requests.Session)


def escape_name(name: str) -> str:
    """Registry path segment for a package name (``@scope/pkg`` -> ``@scope%2Fpkg``)."""
    return quote(name, safe="@")


class NpmRegistryClient(RegistryClient):
    """Registry client for the npm registry API."""

    ecosystem = "npm"

    def __init__(
        self,
        registry_url: str = DEFAULT_REGISTRY,
        cache: Optional[RegistryCache] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.registry_url = registry_url.rstrip("/")
        self.cache = cache or RegistryCache()
        self.timeout = timeout

    def fetch_metadata(self, name: str, spec: str = "*") -> PackageMetadata:
        if name in self.cache.metadata_cache:
            logger.debug("Cache hit: metadata %s", name)
            return self.cache.metadata_cache[name]

        url = f"{self.registry_url}/{escape_name(name)}"
        logger.debug("Fetching metadata for %s@%s", name, spec)
        with self.cache.session.get(
            url, headers={"Accept": "application/json"}, timeout=self.timeout
        ) as response:
            response.raise_for_status()
            data = response.json()

        metadata = PackageMetadata.from_packument(data, name)
        self.cache.metadata_cache[name] = metadata
        return metadata


def _patterns_to_regex(patterns: Optional[List[str]]) -> Optional["re.Pattern[str]"]:
    if not patterns:
        return None
    return re.compile("|".join(pattern.replace("/*", "\\/.*") for pattern in patterns))


def name_filter(
    include: Optional[List[str]] = None, exclude: Optional[List[str]] = None
) -> Callable[[str], bool]:
    """Build a predicate accepting names matched by ``include`` and not by ``exclude``.

    ``@scope/*`` matches every package of the scope.
    """
    included = _patterns_to_regex(include)
    excluded = _patterns_to_regex(exclude)

    def accepts(name: str) -> bool:
        if included is not None and included.search(name) is None:
            return False
        return excluded is None or excluded.search(name) is None

    return accepts


def choose_request_spec(specs: Iterable[str]) -> str:
    """Pick the spec with the greatest minimum version (first one wins on ties)."""
    chosen = BASELINE_SPEC
    for spec in sorted(specs):
        spec_version = npm_semver.min_version(spec)
        chosen_version = npm_semver.min_version(chosen)
        if spec_version is None or chosen_version is None:
            continue
        if spec_version > chosen_version:
            chosen = spec
    return chosen


def plan_requests(dependencies: Dependencies, config: PolicyConfig) -> Dict[str, str]:
    """Map every package that passes the name filter to the spec to request."""
    accepts = name_filter(config.include, config.exclude)
    plan: Dict[str, str] = {}
    for name, record in dependencies.items():
        if not accepts(name):
            logger.debug("Skipping %s: filtered by name", name)
            continue
        plan[name] = choose_request_spec(record.specs)
    return plan


def resolve_metadata(
    dependencies: Dependencies,
    config: PolicyConfig,
    client: RegistryClient,
    max_workers: int = DEFAULT_MAX_WORKERS,
    progress: bool = False,
) -> Dict[str, PackageMetadata]:
    """Fetch metadata for every package concurrently.

    All requests are issued at once and awaited together. A single failure
    fails the whole batch with ResolutionError.
    """
    plan = plan_requests(dependencies, config)
    if not plan:
        return {}

    results: Dict[str, PackageMetadata] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(client.fetch_metadata, name, spec): name for name, spec in plan.items()}
        completed = tqdm(
            as_completed(futures),
            total=len(futures),
            desc="Retrieving metadata",
            unit="pkg",
            disable=not progress,
        )
        for future in completed:
            name = futures[future]
            try:
                results[name] = future.result()
            except Exception as e:
                for pending in futures:
                    pending.cancel()
                raise ResolutionError(f"Error while retrieving metadata for {name}: {e}") from e

    return {name: results[name] for name in plan}
