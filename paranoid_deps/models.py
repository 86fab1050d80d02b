"""
Core data models for dependency auditing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Dict, List, Optional, Set

from . import npm_semver


RESERVED_TIME_KEYS = ("created", "modified")
SEVERITIES = ("info", "low", "medium", "high", "critical")
DEFAULT_MIN_DAYS = 14


class ExitCode(IntEnum):
    OK = 0
    FAIL = 1
    ERROR = 2


@dataclass(frozen=True)
class Edge:
    """A dependency declared by a node.

    ``to`` is the location of the resolved target inside the graph index,
    None when the dependency is missing from the tree.
    """

    dev: bool
    spec: str
    to: Optional[str] = None


@dataclass
class GraphNode:
    """A package instance in the resolution tree."""

    location: str
    name: str = ""
    version: Optional[str] = None
    children: Dict[str, "GraphNode"] = field(default_factory=dict)
    edges_out: Dict[str, Edge] = field(default_factory=dict)


@dataclass
class DependencyGraph:
    """A resolution tree rooted at the project plus a location index."""

    root: GraphNode
    index: Dict[str, GraphNode] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.index:
            self.index = self._build_index(self.root)

    @staticmethod
    def _build_index(root: GraphNode) -> Dict[str, GraphNode]:
        index: Dict[str, GraphNode] = {}
        stack = [root]
        while stack:
            node = stack.pop()
            if node.location in index:
                continue
            index[node.location] = node
            stack.extend(node.children.values())
        return index

    def resolve(self, edge: Edge) -> Optional[GraphNode]:
        if edge.to is None:
            return None
        return self.index.get(edge.to)


@dataclass
class DependencyRecord:
    """Every spec and installed version seen for one package name."""

    specs: Set[str] = field(default_factory=set)
    versions: Set[str] = field(default_factory=set)

    def merge(self, other: "DependencyRecord") -> None:
        self.specs |= other.specs
        self.versions |= other.versions


Dependencies = Dict[str, DependencyRecord]


@dataclass(frozen=True)
class PackageMetadata:
    """Publish times of every version of a package, as reported by the registry."""

    name: str
    time: Dict[str, str] = field(default_factory=dict)

    @property
    def versions(self) -> List[str]:
        return [version for version in self.time if version not in RESERVED_TIME_KEYS]

    def published(self, version: str) -> Optional[str]:
        return self.time.get(version)

    @classmethod
    def from_packument(cls, packument: Dict, name: Optional[str] = None) -> "PackageMetadata":
        """Build from a registry packument; ``name`` is used when it carries none."""
        return cls(name=packument.get("name") or name or "", time=dict(packument.get("time") or {}))


@dataclass
class Advisory:
    """A security advisory calculated against one package's version history."""

    dependency: str
    title: str
    severity: str
    range: Optional[str] = None
    url: Optional[str] = None
    versions: List[str] = field(default_factory=list)
    vulnerable_versions: List[str] = field(default_factory=list)

    def test_version(self, version: str) -> bool:
        if version in self.vulnerable_versions:
            return True
        return self.range is not None and npm_semver.satisfies(version, self.range)


Vulnerabilities = Dict[str, List[Advisory]]


@dataclass(frozen=True)
class Recommendation:
    dependency: str
    title: str
    severity: str
    range: Optional[str]
    url: Optional[str]
    fixed_version: Optional[str]

    def to_dict(self) -> Dict:
        return {
            "dependency": self.dependency,
            "title": self.title,
            "severity": self.severity,
            "range": self.range,
            "url": self.url,
            "fixedVersion": self.fixed_version,
        }


@dataclass(frozen=True)
class Verdict:
    """Outcome of validating one effective spec of a package."""

    version: str
    days_since_publish: int
    safe: bool
    recommendations: List[Recommendation] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "version": self.version,
            "daysSincePublish": self.days_since_publish,
            "safe": self.safe,
            "recommendations": [item.to_dict() for item in self.recommendations],
        }


Verdicts = Dict[str, List[Verdict]]


@dataclass(frozen=True)
class PolicyConfig:
    """Resolved audit policy."""

    allow: Dict[str, str] = field(default_factory=dict)
    deny: Dict[str, str] = field(default_factory=dict)
    allow_from: Dict[str, datetime] = field(default_factory=dict)
    include: Optional[List[str]] = None
    exclude: Optional[List[str]] = None
    min_days: int = DEFAULT_MIN_DAYS
    production: bool = False
    exclude_dev: bool = False
    json: bool = False
    unsafe: bool = False
    audit: bool = True
