"""Dependency ordering of workflow nodes."""

from __future__ import annotations

import heapq
import logging
from typing import Dict, List, Sequence, Set

from relayworks_ai.core.errors import ConfigurationError, WorkflowCycleError

from .models import Connection, WorkflowNode

logger = logging.getLogger(__name__)


def _duplicate_ids(nodes: Sequence[WorkflowNode]) -> List[str]:
    seen: Set[str] = set()
    duplicates: List[str] = []
    for node in nodes:
        if node.id in seen and node.id not in duplicates:
            duplicates.append(node.id)
        seen.add(node.id)
    return duplicates


def validate_graph(nodes: Sequence[WorkflowNode], connections: Sequence[Connection]) -> None:
    """Check the structure of a workflow graph before anything runs.

    All problems are collected and reported together: an empty graph,
    duplicate node ids, connections whose ends are not nodes of the graph and
    a graph where every node has an upstream node, leaving nowhere to start.

    Raises:
        ConfigurationError: The graph is malformed; ``context["errors"]``
            lists every problem found.
    """
    errors: List[str] = []
    if not nodes:
        errors.append("workflow has no nodes")

    for node_id in _duplicate_ids(nodes):
        errors.append(f"duplicate node id '{node_id}'")

    known = {node.id for node in nodes}
    targets: Set[str] = set()
    for conn in connections:
        for end, node_id in (("source", conn.from_node_id), ("target", conn.to_node_id)):
            if node_id not in known:
                errors.append(f"connection {conn.from_node_id} -> {conn.to_node_id} has unknown {end} node '{node_id}'")
        if conn.to_node_id in known:
            targets.add(conn.to_node_id)

    if nodes and not known - targets:
        errors.append("workflow has no start node: every node has an incoming connection")

    if errors:
        raise ConfigurationError(
            f"Invalid workflow graph: {'; '.join(errors)}",
            code="invalid_workflow_graph",
            context={"errors": errors},
        )


def topological_sort(nodes: Sequence[WorkflowNode], connections: Sequence[Connection]) -> List[WorkflowNode]:
    """Order ``nodes`` so every node comes after all of its upstream nodes.

    Kahn's algorithm; among nodes that are ready at the same time the one
    listed first wins, so the result is deterministic and graphs without
    connections keep their listed order. Isolated nodes are always included.
    Connections naming unknown node ids are ignored.

    Raises:
        ConfigurationError: Two nodes share an id.
        WorkflowCycleError: The connections contain a cycle.
    """
    duplicates = _duplicate_ids(nodes)
    if duplicates:
        raise ConfigurationError.invalid("nodes", f"duplicate node ids: {', '.join(duplicates)}", node_ids=duplicates)
    if not connections:
        return list(nodes)

    position: Dict[str, int] = {}
    for index, node in enumerate(nodes):
        position[node.id] = index
    by_id = {node.id: node for node in nodes}

    in_degree: Dict[str, int] = {node_id: 0 for node_id in position}
    adjacency: Dict[str, List[str]] = {node_id: [] for node_id in position}
    for conn in connections:
        if conn.from_node_id not in position or conn.to_node_id not in position:
            logger.debug(f"Ignoring connection with unknown node: {conn.from_node_id} -> {conn.to_node_id}")
            continue
        adjacency[conn.from_node_id].append(conn.to_node_id)
        in_degree[conn.to_node_id] += 1

    ready = [(position[node_id], node_id) for node_id, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)
    ordered: List[WorkflowNode] = []
    while ready:
        _, node_id = heapq.heappop(ready)
        ordered.append(by_id[node_id])
        for target in adjacency[node_id]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                heapq.heappush(ready, (position[target], target))

    if len(ordered) != len(position):
        remaining = sorted((n for n, d in in_degree.items() if d > 0), key=position.__getitem__)
        raise WorkflowCycleError(remaining)
    return ordered
