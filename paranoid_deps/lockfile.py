"""
Yarn lockfile adapter.

Reads classic (v1) and Berry (v2+) ``yarn.lock`` files into the same
name -> DependencyRecord shape produced by the tree flattener.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Tuple

import yaml

from . import npm_semver
from .models import Dependencies, DependencyRecord, PolicyConfig


logger = logging.getLogger(__name__)

METADATA_KEY = "__metadata"
REGISTRY_PROTOCOL = "npm:"

_DESCRIPTOR_RE = re.compile(r"^(@?[^@]+)@([^:]+:)?(.+)$")
_CLASSIC_FIELD_RE = re.compile(r'^\s+("?[^"\s]+"?)\s+(.*)$')


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def _parse_classic(text: str) -> Dict[str, Dict[str, str]]:
    """Parse the indented syml format of classic lockfiles (top-level scalars only)."""
    entries: Dict[str, Dict[str, str]] = {}
    current: Optional[Dict[str, str]] = None

    for line in text.splitlines():
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        if not line[0].isspace():
            key = line.rstrip()
            if not key.endswith(":"):
                logger.debug("Skipping malformed lockfile line: %s", line)
                current = None
                continue
            current = entries.setdefault(key[:-1].strip(), {})
            continue
        # Only fields directly below an entry (two spaces) carry the resolved version.
        if current is None or line.startswith("    "):
            continue
        match = _CLASSIC_FIELD_RE.match(line)
        if match is None:
            continue
        current[_unquote(match.group(1))] = _unquote(match.group(2))

    return entries


def _parse_berry(text: str) -> Dict[str, Dict]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning("Cannot parse lockfile as YAML: %s", e)
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(key): value for key, value in data.items() if isinstance(value, dict)}


def parse_syml(text: str) -> Dict[str, Dict]:
    """Parse lockfile text into a mapping of entry key -> fields."""
    if re.search(rf"^{METADATA_KEY}:", text, re.MULTILINE):
        return _parse_berry(text)
    return _parse_classic(text)


def split_descriptors(key: str) -> Iterator[str]:
    """Yield each ``name@range`` descriptor of a (possibly merged) entry key."""
    for part in key.split(","):
        part = _unquote(part)
        if part:
            yield part


def parse_descriptor(descriptor: str) -> Optional[Tuple[str, Optional[str], str]]:
    """Split a descriptor into ``(name, protocol, spec)``; None when it does not match."""
    match = _DESCRIPTOR_RE.match(descriptor)
    if match is None:
        return None
    name, protocol, spec = match.groups()
    return name, protocol, spec


def parse_lockfile(text: str, config: Optional[PolicyConfig] = None) -> Dependencies:
    """Collect specs and resolved versions per package from lockfile text.

    Lockfiles carry no development flag, so ``config.exclude_dev`` does not
    apply here.
    """
    dependencies: Dependencies = {}

    for key, fields in parse_syml(text).items():
        if key == METADATA_KEY:
            continue
        version = fields.get("version")
        for name, spec in _registry_descriptors(split_descriptors(key)):
            record = dependencies.setdefault(name, DependencyRecord())
            record.specs.add(spec)
            if version is not None:
                record.versions.add(str(version))

    return dependencies


def _registry_descriptors(descriptors: Iterable[str]) -> Iterator[Tuple[str, str]]:
    for descriptor in descriptors:
        parsed = parse_descriptor(descriptor)
        if parsed is None:
            logger.debug("Skipping unrecognised descriptor %s", descriptor)
            continue
        name, protocol, spec = parsed
        if protocol is not None and protocol != REGISTRY_PROTOCOL:
            logger.debug("Skipping %s: %s protocol", descriptor, protocol)
            continue
        if npm_semver.valid_range(spec) is None:
            logger.debug("Skipping %s: invalid range %s", descriptor, spec)
            continue
        yield name, spec


def load_lockfile(path: Path, config: Optional[PolicyConfig] = None) -> Dependencies:
    """Read a ``yarn.lock`` file and parse it."""
    content = Path(path).read_text(encoding="utf-8")
    return parse_lockfile(content, config)
