"""
Reduce the specs recorded for a package to the set worth resolving.
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import List, Optional

from . import npm_semver
from .models import DependencyRecord, PolicyConfig


WILDCARD = "*"


def _subset_first(first: str, second: str) -> int:
    return -1 if npm_semver.subset(first, second) else 1


def _version_order(version: str):
    key = npm_semver.npm_semver_key(version)
    return (key is None, key or (), version)


def reduce_specs(specs) -> List[str]:
    """Drop every spec that is implied by a narrower one.

    Specs are ordered so that a sub-range comes before the ranges containing
    it, then kept left to right unless an already kept spec is a sub-range of
    the candidate. The kept list is returned reversed.
    """
    ordered = sorted(sorted(specs), key=cmp_to_key(_subset_first))

    kept: List[str] = []
    for spec in ordered:
        if any(npm_semver.subset(existing, spec) for existing in kept):
            continue
        # The candidate may be narrower than something kept before it when
        # unrelated specs left the ordering incomplete.
        kept = [existing for existing in kept if not npm_semver.subset(spec, existing)]
        kept.append(spec)

    kept.reverse()
    return kept


def effective_specs(record: Optional[DependencyRecord], config: PolicyConfig) -> List[str]:
    """Specs to resolve for a package.

    In production mode the installed versions are used as exact specs.
    A package without any spec falls back to the wildcard.
    """
    if record is None:
        return [WILDCARD]

    if config.production and record.versions:
        return sorted(record.versions, key=_version_order)

    if not record.specs:
        return [WILDCARD]

    return reduce_specs(record.specs)
