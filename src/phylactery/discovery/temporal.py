"""Temporal proximity between knowledge nodes.

Two nodes are related when they were created or modified close together.
Confidence decays exponentially with the gap and is weighted by content type.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Iterator, Mapping, Sequence

from ..config import TEMPORAL_DECAY_RATE, TEMPORAL_WINDOW_SECONDS, TYPE_WEIGHTS
from ..models import KnowledgeNode, NodeType, TemporalSimilarity, as_utc


class TemporalAnalyzer:
    """Find nodes created or modified within a time window of a target node."""

    def __init__(
        self,
        time_window_seconds: float = TEMPORAL_WINDOW_SECONDS,
        type_weights: Mapping[str, float] = TYPE_WEIGHTS,
    ) -> None:
        self.time_window_seconds = time_window_seconds
        self._type_weights = dict(type_weights)

    @staticmethod
    def time_difference(node_a: KnowledgeNode, node_b: KnowledgeNode) -> float:
        """Seconds between two nodes on whichever axis (created/modified) is closer."""
        created_diff = abs((node_a.created_at - node_b.created_at).total_seconds())
        modified_diff = abs((node_a.modified_at - node_b.modified_at).total_seconds())
        return min(created_diff, modified_diff)

    def calculate_temporal_confidence(
        self,
        time_diff: float,
        time_window: float,
        source_type: NodeType,
        target_type: NodeType,
    ) -> float:
        """Confidence in [0, 1] for two nodes ``time_diff`` apart.

        Args:
            time_diff: Gap between the nodes (same unit as time_window).
            time_window: Maximum gap considered related.
            source_type: Type of the target node.
            target_type: Type of the candidate node.
        """
        base_confidence = math.exp(-TEMPORAL_DECAY_RATE * (time_diff / time_window))
        type_weight = (self._type_weights[source_type] + self._type_weights[target_type]) / 2
        return max(0.0, min(1.0, base_confidence * type_weight))

    def iter_temporal_connections(
        self,
        target_node: KnowledgeNode,
        all_nodes: Sequence[KnowledgeNode],
        time_window_seconds: float | None = None,
    ) -> Iterator[TemporalSimilarity | None]:
        """Walk every other node, yielding a score when it is inside the window.

        Yields None for out-of-window candidates so cooperative callers get a
        chance to suspend on every comparison.
        """
        window = time_window_seconds if time_window_seconds is not None else self.time_window_seconds

        for node in all_nodes:
            if node.id == target_node.id:
                continue

            time_diff = self.time_difference(target_node, node)
            if time_diff > window:
                yield None
                continue

            yield TemporalSimilarity(
                node_id=node.id,
                confidence=self.calculate_temporal_confidence(
                    time_diff, window, target_node.type, node.type
                ),
                time_difference_seconds=time_diff,
            )

    def find_temporal_connections(
        self,
        target_node: KnowledgeNode,
        all_nodes: Sequence[KnowledgeNode],
        time_window_seconds: float | None = None,
    ) -> list[TemporalSimilarity]:
        """Temporally related nodes, highest confidence first."""
        connections = [
            connection
            for connection in self.iter_temporal_connections(target_node, all_nodes, time_window_seconds)
            if connection is not None
        ]
        connections.sort(key=lambda c: c.confidence, reverse=True)
        return connections

    @staticmethod
    def find_nodes_in_time_range(
        start_time: datetime,
        end_time: datetime,
        all_nodes: Sequence[KnowledgeNode],
    ) -> list[KnowledgeNode]:
        """Nodes whose creation time falls within [start_time, end_time]."""
        start_time, end_time = as_utc(start_time), as_utc(end_time)
        return [node for node in all_nodes if start_time <= node.created_at <= end_time]

    def cluster_by_time(
        self,
        all_nodes: Sequence[KnowledgeNode],
        time_window_seconds: float | None = None,
    ) -> list[list[KnowledgeNode]]:
        """Group nodes into runs whose consecutive creation gaps fit the window.

        Greedy single pass over nodes sorted by creation time: a node joins the
        current cluster when it is within the window of the previous member,
        otherwise it starts a new cluster.
        """
        window = time_window_seconds if time_window_seconds is not None else self.time_window_seconds
        clusters: list[list[KnowledgeNode]] = []
        current: list[KnowledgeNode] = []

        for node in sorted(all_nodes, key=lambda n: n.created_at):
            if current and (node.created_at - current[-1].created_at).total_seconds() > window:
                clusters.append(current)
                current = []
            current.append(node)

        if current:
            clusters.append(current)
        return clusters
