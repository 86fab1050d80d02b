"""
Flatten a resolution tree into one record per package name.
"""

from __future__ import annotations

import logging
from typing import Optional, Set

from .models import Dependencies, DependencyGraph, DependencyRecord, GraphNode, PolicyConfig


logger = logging.getLogger(__name__)


def merge_dependencies(target: Dependencies, source: Dependencies) -> Dependencies:
    """Union ``source`` into ``target`` per package name and return ``target``."""
    for name, record in source.items():
        existing = target.get(name)
        if existing is None:
            target[name] = DependencyRecord(set(record.specs), set(record.versions))
        else:
            existing.merge(record)
    return target


def flatten(graph: DependencyGraph, config: PolicyConfig) -> Dependencies:
    """Collect every edge of the tree into a name -> DependencyRecord mapping.

    Development edges are skipped when ``config.exclude_dev`` is set. A node
    reachable twice is only visited once.
    """
    return _flatten_node(graph, graph.root, config, set())


def _flatten_node(
    graph: DependencyGraph,
    node: GraphNode,
    config: PolicyConfig,
    visited: Set[str],
) -> Dependencies:
    dependencies: Dependencies = {}
    if node.location in visited:
        logger.debug("Already visited %s", node.location or "<root>")
        return dependencies
    visited.add(node.location)

    for name, edge in node.edges_out.items():
        if config.exclude_dev and edge.dev:
            continue

        record = dependencies.setdefault(name, DependencyRecord())
        record.specs.add(edge.spec)

        target: Optional[GraphNode] = graph.resolve(edge)
        if target is not None and target.version is not None:
            record.versions.add(target.version)

    for child in node.children.values():
        merge_dependencies(dependencies, _flatten_node(graph, child, config, visited))

    return dependencies

