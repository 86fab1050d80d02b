"""
Policy validation of resolved dependency versions.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Dict, List, Optional

from . import npm_semver
from .models import (
    Advisory,
    Dependencies,
    PackageMetadata,
    PolicyConfig,
    Recommendation,
    Verdict,
    Verdicts,
    Vulnerabilities,
)
from .reconciler import effective_specs
from .time_utils import add_days, days_between, ensure_utc, parse_timestamp, utc_now


logger = logging.getLogger(__name__)

# Reported when no published version satisfies a spec.
SENTINEL_VERSION = "0.0.0"


def resolve_version(versions: List[str], spec: str) -> str:
    """Highest published version inside ``spec``, or the sentinel."""
    return npm_semver.max_satisfying(versions, spec) or SENTINEL_VERSION


def is_permitted(name: str, version: str, config: PolicyConfig, now: datetime) -> bool:
    """Apply the allow, deny and grandfather rules to a resolved version.

    A version that fails any configured rule produces no verdict at all.
    """
    allowed_spec = config.allow.get(name)
    if allowed_spec is not None and not npm_semver.satisfies(version, allowed_spec):
        logger.debug("%s@%s does not match allowed range %s", name, version, allowed_spec)
        return False

    # Deny ranges are checked the same way as allow ranges.
    denied_spec = config.deny.get(name)
    if denied_spec is not None and not npm_semver.satisfies(version, denied_spec):
        logger.debug("%s@%s does not match deny range %s", name, version, denied_spec)
        return False

    allowed_from = config.allow_from.get(name)
    if allowed_from is not None and now < add_days(allowed_from, config.min_days):
        logger.debug("%s is grandfathered since %s", name, allowed_from.date())
        return False

    return True


def find_fixed_version(version: str, advisory: Advisory) -> Optional[str]:
    """Lowest known version above ``version`` that the advisory does not flag."""
    if npm_semver.parse_version(version) is None:
        return None

    vulnerable = set(advisory.vulnerable_versions)
    fixed: Optional[str] = None
    for candidate in advisory.versions:
        if candidate in vulnerable or npm_semver.parse_version(candidate) is None:
            continue
        if not npm_semver.gt(candidate, version):
            continue
        if fixed is None or npm_semver.lt(candidate, fixed):
            fixed = candidate
    return fixed


def recommend(version: str, advisories: List[Advisory]) -> List[Recommendation]:
    recommendations: List[Recommendation] = []
    for advisory in advisories:
        if not advisory.test_version(version):
            continue
        recommendations.append(Recommendation(
            dependency=advisory.dependency,
            title=advisory.title,
            severity=advisory.severity,
            range=advisory.range,
            url=advisory.url,
            fixed_version=find_fixed_version(version, advisory),
        ))
    return recommendations


def validate_package(
    name: str,
    package: PackageMetadata,
    specs: List[str],
    advisories: List[Advisory],
    config: PolicyConfig,
    now: datetime,
) -> List[Verdict]:
    versions = sorted(
        package.versions,
        key=lambda version: parse_timestamp(package.published(version) or "") or now,
    )
    verdicts: List[Verdict] = []

    for spec in specs:
        version = resolve_version(versions, spec)
        if not is_permitted(name, version, config, now):
            continue

        published = parse_timestamp(package.published(version) or "") or now
        days = days_between(published, now)

        verdicts.append(Verdict(
            version=version,
            days_since_publish=math.floor(days),
            safe=days >= config.min_days,
            recommendations=recommend(version, advisories),
        ))

    return verdicts


def validate(
    dependencies: Dependencies,
    metadata: Dict[str, PackageMetadata],
    vulnerabilities: Optional[Vulnerabilities],
    config: PolicyConfig,
    now: Optional[datetime] = None,
) -> Verdicts:
    """Produce the verdicts of every fetched package.

    Packages without fetched metadata produce no verdict; fetched packages
    without a dependency record are checked against the wildcard spec.
    """
    now = ensure_utc(now) if now is not None else utc_now()
    vulnerabilities = vulnerabilities or {}
    verdicts: Verdicts = {}

    for name, package in metadata.items():
        specs = effective_specs(dependencies.get(name), config)
        package_verdicts = validate_package(
            name, package, specs, vulnerabilities.get(name, []), config, now
        )
        if package_verdicts:
            verdicts[name] = package_verdicts

    return verdicts


def all_safe(verdicts: Verdicts) -> bool:
    return all(verdict.safe for package in verdicts.values() for verdict in package)
