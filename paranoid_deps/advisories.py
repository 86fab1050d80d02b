"""
Security advisories from the npm bulk advisory endpoint.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import requests

from . import npm_semver
from .interfaces import AdvisorySource
from .models import SEVERITIES, Advisory, Dependencies, PackageMetadata, Vulnerabilities
from .resolvers import DEFAULT_REGISTRY, DEFAULT_TIMEOUT


logger = logging.getLogger(__name__)

BULK_ADVISORY_PATH = "/-/npm/v1/security/advisories/bulk"

_SEVERITY_ALIASES = {"moderate": "medium"}


def normalize_severity(value: Optional[str]) -> str:
    severity = (value or "info").lower()
    severity = _SEVERITY_ALIASES.get(severity, severity)
    return severity if severity in SEVERITIES else "info"


def build_query(metadata: Dict[str, PackageMetadata], dependencies: Dependencies) -> Dict[str, List[str]]:
    """Versions worth checking per package: installed ones plus the best match of each spec."""
    query: Dict[str, List[str]] = {}
    for name, package in metadata.items():
        candidates = set()
        record = dependencies.get(name)
        if record is not None:
            candidates |= record.versions
            for spec in record.specs:
                best = npm_semver.max_satisfying(package.versions, spec)
                if best is not None:
                    candidates.add(best)
        if candidates:
            query[name] = sorted(candidates, key=lambda v: npm_semver.npm_semver_key(v) or ())
    return query


def calculate_advisory(name: str, entry: Dict, metadata: Optional[PackageMetadata]) -> Advisory:
    """Expand a raw advisory against the package's full version history."""
    vulnerable_range = entry.get("vulnerable_versions") or entry.get("range")
    versions = metadata.versions if metadata is not None else []
    vulnerable = [
        version for version in versions
        if vulnerable_range is not None and npm_semver.satisfies(version, vulnerable_range)
    ]
    return Advisory(
        dependency=entry.get("name") or name,
        title=entry.get("title") or "",
        severity=normalize_severity(entry.get("severity")),
        range=vulnerable_range,
        url=entry.get("url"),
        versions=versions,
        vulnerable_versions=vulnerable,
    )


def calculate_advisories(
    raw: Dict[str, List[Dict]], metadata: Dict[str, PackageMetadata]
) -> Vulnerabilities:
    vulnerabilities: Vulnerabilities = {}
    for name, entries in raw.items():
        advisories = [calculate_advisory(name, entry, metadata.get(name)) for entry in entries or []]
        if advisories:
            vulnerabilities[name] = advisories
    return vulnerabilities


class NpmAdvisoryClient(AdvisorySource):
    """Query the registry's bulk advisory endpoint."""

    def __init__(
        self,
        registry_url: str = DEFAULT_REGISTRY,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.registry_url = registry_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_bulk(self, query: Dict[str, List[str]]) -> Dict[str, List[Dict]]:
        url = f"{self.registry_url}{BULK_ADVISORY_PATH}"
        logger.debug("Requesting advisories for %d package(s)", len(query))
        with self.session.post(url, json=query, timeout=self.timeout) as response:
            response.raise_for_status()
            return response.json()

    def fetch_advisories(
        self, metadata: Dict[str, PackageMetadata], dependencies: Dependencies
    ) -> Vulnerabilities:
        query = build_query(metadata, dependencies)
        if not query:
            return {}
        return calculate_advisories(self.fetch_bulk(query), metadata)
