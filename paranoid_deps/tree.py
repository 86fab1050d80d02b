"""
Build the resolution tree of an npm project.

``load_virtual_tree`` reads ``package-lock.json``; ``load_actual_tree``
walks the installed ``node_modules`` directories. Both produce a
DependencyGraph whose nodes are keyed by install location
(``node_modules/a/node_modules/b``).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from .models import DependencyGraph, Edge, GraphNode


logger = logging.getLogger(__name__)

NODE_MODULES = "node_modules"
PACKAGE_LOCK = "package-lock.json"
PACKAGE_JSON = "package.json"

_EDGE_FIELDS = (
    ("dependencies", False),
    ("optionalDependencies", False),
    ("peerDependencies", False),
)
_ROOT_EDGE_FIELDS = _EDGE_FIELDS + (("devDependencies", True),)


def parent_location(location: str) -> str:
    """Location of the node whose ``node_modules`` holds ``location``."""
    index = location.rfind(f"{NODE_MODULES}/")
    if index <= 0:
        return ""
    return location[:index].rstrip("/")


def name_from_location(location: str) -> str:
    index = location.rfind(f"{NODE_MODULES}/")
    if index < 0:
        return location.rsplit("/", 1)[-1]
    return location[index + len(NODE_MODULES) + 1:]


def resolve_location(locations: Dict[str, GraphNode], start: str, name: str) -> Optional[str]:
    """Find where ``name`` required from ``start`` is installed, walking up node_modules."""
    base = start
    while True:
        candidate = f"{base}/{NODE_MODULES}/{name}" if base else f"{NODE_MODULES}/{name}"
        if candidate in locations:
            return candidate
        if not base:
            return None
        base = parent_location(base)


def build_graph(packages: Dict[str, Dict]) -> DependencyGraph:
    """Build a DependencyGraph from a location -> manifest mapping.

    The project itself lives at location ``""``.
    """
    nodes: Dict[str, GraphNode] = {}
    for location, manifest in packages.items():
        version = manifest.get("version")
        nodes[location] = GraphNode(
            location=location,
            name=manifest.get("name") or name_from_location(location),
            version=str(version) if version is not None else None,
        )
    root = nodes.setdefault("", GraphNode(location=""))

    for location in sorted(nodes, key=lambda item: item.count("/")):
        if not location:
            continue
        node = nodes[location]
        parent = nodes.get(parent_location(location), root)
        parent.children[name_from_location(location)] = node

    for location, manifest in packages.items():
        node = nodes[location]
        fields = _ROOT_EDGE_FIELDS if location == "" else _EDGE_FIELDS
        for field_name, dev in fields:
            for name, spec in (manifest.get(field_name) or {}).items():
                if name in node.edges_out:
                    continue
                node.edges_out[name] = Edge(
                    dev=dev,
                    spec=str(spec),
                    to=resolve_location(nodes, location, name),
                )

    return DependencyGraph(root=root, index=nodes)


def _read_json(path: Path) -> Dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _flatten_v1_dependencies(
    dependencies: Dict[str, Dict], prefix: str = ""
) -> Iterator[Tuple[str, Dict]]:
    for name, entry in dependencies.items():
        location = f"{prefix}{NODE_MODULES}/{name}"
        yield location, {
            "name": name,
            "version": entry.get("version"),
            "dependencies": entry.get("requires") or {},
        }
        nested = entry.get("dependencies") or {}
        if nested:
            yield from _flatten_v1_dependencies(nested, f"{location}/")


def load_virtual_tree(project_dir: Path) -> DependencyGraph:
    """Build the tree recorded in ``package-lock.json``."""
    project_dir = Path(project_dir)
    lock = _read_json(project_dir / PACKAGE_LOCK)

    packages = lock.get("packages")
    if packages:
        logger.debug("Reading lockfile v%s packages section", lock.get("lockfileVersion"))
        return build_graph(packages)

    # lockfileVersion 1 keeps nested "dependencies" and no root manifest.
    root_manifest: Dict = {}
    manifest_path = project_dir / PACKAGE_JSON
    if manifest_path.exists():
        root_manifest = _read_json(manifest_path)
    flat = {"": root_manifest}
    flat.update(_flatten_v1_dependencies(lock.get("dependencies") or {}))
    return build_graph(flat)


def _iter_installed(node_modules: Path, prefix: str) -> Iterator[Tuple[str, Dict]]:
    if not node_modules.is_dir():
        return
    for entry in sorted(node_modules.iterdir()):
        if entry.name.startswith("."):
            continue
        if entry.name.startswith("@") and entry.is_dir():
            candidates = sorted(child for child in entry.iterdir() if child.is_dir())
        else:
            candidates = [entry]
        for package_dir in candidates:
            manifest_path = package_dir / PACKAGE_JSON
            if not manifest_path.is_file():
                continue
            relative = package_dir.relative_to(node_modules).as_posix()
            location = f"{prefix}{NODE_MODULES}/{relative}"
            try:
                manifest = _read_json(manifest_path)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Cannot read %s: %s", manifest_path, e)
                continue
            yield location, manifest
            yield from _iter_installed(package_dir / NODE_MODULES, f"{location}/")


def load_actual_tree(project_dir: Path) -> DependencyGraph:
    """Build the tree from the installed ``node_modules`` folders."""
    project_dir = Path(project_dir)
    root_manifest: Dict = {}
    manifest_path = project_dir / PACKAGE_JSON
    if manifest_path.exists():
        root_manifest = _read_json(manifest_path)
    packages = {"": root_manifest}
    packages.update(_iter_installed(project_dir / NODE_MODULES, ""))
    return build_graph(packages)
