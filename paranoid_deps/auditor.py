"""
Dependency auditor: runs the load -> resolve -> validate pipeline for a project.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from .advisories import NpmAdvisoryClient
from .config import registry_url
from .flattener import flatten
from .interfaces import AdvisorySource, RegistryClient
from .lockfile import load_lockfile
from .models import Dependencies, PackageMetadata, PolicyConfig, Verdicts, Vulnerabilities
from .resolvers import DEFAULT_MAX_WORKERS, NpmRegistryClient, resolve_metadata
from .tree import NODE_MODULES, PACKAGE_LOCK, load_actual_tree, load_virtual_tree
from .validator import all_safe, validate


logger = logging.getLogger(__name__)

YARN_LOCK = "yarn.lock"


class ProjectLoadError(RuntimeError):
    """Raised when the project's manifest or lockfile cannot be read."""


@dataclass
class AuditResult:
    """Verdicts of one audit run."""

    verdicts: Verdicts
    safe: bool
    dependencies: Dependencies = field(default_factory=dict)
    advisories_available: bool = True


class DependencyAuditor:
    """Audit the dependencies of an npm or Yarn project."""

    def __init__(
        self,
        project_dir: Path,
        config: PolicyConfig,
        registry: Optional[RegistryClient] = None,
        advisory_source: Optional[AdvisorySource] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        """Initialize the auditor.

        Args:
            project_dir: Directory holding package.json and its lockfile
            config: Audit policy
            registry: Registry client (defaults to the npm registry)
            advisory_source: Advisory provider (defaults to the npm bulk endpoint)
            max_workers: Concurrent metadata requests
        """
        self.project_dir = Path(project_dir)
        self.config = config
        url = registry_url()
        self.registry = registry or NpmRegistryClient(url)
        self.advisory_source = advisory_source or NpmAdvisoryClient(url)
        self.max_workers = max_workers

    def _progress(self, message: str) -> None:
        if not self.config.json:
            logger.info(message)

    def load_dependencies(self) -> Dependencies:
        """Load the flattened dependency records of the project.

        ``package-lock.json`` wins, then an installed ``node_modules`` (unless
        the project is a Yarn one), then ``yarn.lock``.

        Raises:
            FileNotFoundError: if the project has none of them.
            ProjectLoadError: if a manifest or lockfile cannot be read or decoded.
        """
        has_npm_lockfile = (self.project_dir / PACKAGE_LOCK).is_file()
        has_node_modules = (self.project_dir / NODE_MODULES).is_dir()
        has_yarn_lockfile = (self.project_dir / YARN_LOCK).is_file()

        if not (has_npm_lockfile or has_node_modules or has_yarn_lockfile):
            raise FileNotFoundError(
                f'Cannot find "{PACKAGE_LOCK}" file or "{NODE_MODULES}" folder in {self.project_dir}'
            )

        try:
            if has_npm_lockfile:
                return flatten(load_virtual_tree(self.project_dir), self.config)
            if has_node_modules and not has_yarn_lockfile:
                return flatten(load_actual_tree(self.project_dir), self.config)
            return load_lockfile(self.project_dir / YARN_LOCK, self.config)
        except (OSError, ValueError) as e:
            raise ProjectLoadError(f"Cannot load dependencies of {self.project_dir}: {e}") from e

    def fetch_metadata(self, dependencies: Dependencies) -> Dict[str, PackageMetadata]:
        return resolve_metadata(
            dependencies,
            self.config,
            self.registry,
            max_workers=self.max_workers,
            progress=not self.config.json,
        )

    def fetch_advisories(
        self, metadata: Dict[str, PackageMetadata], dependencies: Dependencies
    ) -> Optional[Vulnerabilities]:
        """Advisories for the fetched packages; None when they could not be retrieved."""
        if not self.config.audit:
            return {}
        try:
            return self.advisory_source.fetch_advisories(metadata, dependencies)
        except Exception as e:
            logger.warning("Cannot retrieve advisories, continuing without them: %s", e)
            return None

    def audit(self, now: Optional[datetime] = None) -> AuditResult:
        """Run the complete audit.

        Raises:
            FileNotFoundError: if no dependency source exists in the project.
            ProjectLoadError: if the dependency source cannot be read.
            ResolutionError: if any registry request fails.
        """
        self._progress("Start loading dependency list...")
        dependencies = self.load_dependencies()
        logger.debug("Found %d dependencies", len(dependencies))

        self._progress("Retrieving packages metadata...")
        metadata = self.fetch_metadata(dependencies)

        vulnerabilities = self.fetch_advisories(metadata, dependencies)

        self._progress("Validate dependencies...")
        verdicts = validate(dependencies, metadata, vulnerabilities, self.config, now=now)

        return AuditResult(
            verdicts=verdicts,
            safe=all_safe(verdicts),
            dependencies=dependencies,
            advisories_available=vulnerabilities is not None,
        )
