"""
Interfaces for the registry and advisory collaborators.
"""

from __future__ import annotations

from typing import Dict, Protocol

from .models import Dependencies, PackageMetadata, Vulnerabilities


class RegistryClient(Protocol):
    """Fetch version publish times for a package."""

    def fetch_metadata(self, name: str, spec: str) -> PackageMetadata:
        ...


class AdvisorySource(Protocol):
    """Provide advisories applicable to the fetched packages."""

    def fetch_advisories(
        self, metadata: Dict[str, PackageMetadata], dependencies: Dependencies
    ) -> Vulnerabilities:
        ...
