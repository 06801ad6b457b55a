"""Score fusion: combine lexical and temporal signals into stored connections.

The analysis is written once as a step generator (``_analysis_steps``) that
suspends after every candidate comparison. ``analyze_node`` drives it to
completion; ``analyze_node_async`` drives it cooperatively so a surrounding
``asyncio.wait_for`` can cancel it mid-corpus.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, datetime
from typing import Generator, Sequence

from ..config import (
    COOPERATIVE_YIELD_EVERY,
    SEMANTIC_SIMILARITY_THRESHOLD,
    SEMANTIC_WEIGHT,
    STRONG_CONNECTION_THRESHOLD,
    TEMPORAL_WEIGHT,
)
from ..models import Connection, ConnectionMetadata, DiscoveredConnection, DiscoveredType, KnowledgeNode
from ..storage.protocols import ConnectionStore
from .semantic import SemanticAnalyzer
from .temporal import TemporalAnalyzer

log = logging.getLogger(__name__)


def is_strong_connection(confidence: float) -> bool:
    """A connection is strong when its confidence is strictly above the threshold."""
    return confidence > STRONG_CONNECTION_THRESHOLD


def semantic_reason(score: float) -> str:
    return f"Semantic similarity: {score * 100:.1f}%"


def temporal_reason(score: float) -> str:
    return f"Temporal proximity: {score * 100:.1f}%"


def calculate_final_score(
    semantic_score: float | None,
    temporal_score: float | None,
) -> tuple[DiscoveredType, float, str]:
    """Resolve one candidate's scores into (type, confidence, reason).

    A single signal is used as-is. With both, confidence is the weighted sum
    and the type follows the larger raw score, ties going to semantic.
    """
    if temporal_score is None:
        semantic = semantic_score or 0.0
        return "semantic", semantic, semantic_reason(semantic)

    if semantic_score is None:
        return "temporal", temporal_score, temporal_reason(temporal_score)

    combined = semantic_score * SEMANTIC_WEIGHT + temporal_score * TEMPORAL_WEIGHT
    connection_type: DiscoveredType = "semantic" if semantic_score >= temporal_score else "temporal"
    reason = (
        f"Combined: semantic {semantic_score * 100:.1f}%, "
        f"temporal {temporal_score * 100:.1f}%"
    )
    return connection_type, max(0.0, min(1.0, combined)), reason


class ConnectionScorer:
    """Discover, score, and store connections for a knowledge node."""

    def __init__(
        self,
        connection_store: ConnectionStore,
        semantic_analyzer: SemanticAnalyzer | None = None,
        temporal_analyzer: TemporalAnalyzer | None = None,
        semantic_threshold: float = SEMANTIC_SIMILARITY_THRESHOLD,
    ) -> None:
        self._connections = connection_store
        self.semantic_analyzer = semantic_analyzer or SemanticAnalyzer()
        self.temporal_analyzer = temporal_analyzer or TemporalAnalyzer()
        self.semantic_threshold = semantic_threshold

    @property
    def strong_connection_threshold(self) -> float:
        return STRONG_CONNECTION_THRESHOLD

    def _analysis_steps(
        self,
        target_node: KnowledgeNode,
        all_nodes: Sequence[KnowledgeNode],
    ) -> Generator[None, None, list[DiscoveredConnection]]:
        semantic_hits = []
        for similarity in self.semantic_analyzer.iter_similarities(target_node, all_nodes):
            if similarity.similarity >= self.semantic_threshold:
                semantic_hits.append(similarity)
            yield

        temporal_hits = []
        for temporal in self.temporal_analyzer.iter_temporal_connections(target_node, all_nodes):
            if temporal is not None:
                temporal_hits.append(temporal)
            yield

        # Best-first insertion keeps equal-confidence results in a stable order
        semantic_hits.sort(key=lambda s: s.similarity, reverse=True)
        temporal_hits.sort(key=lambda t: t.confidence, reverse=True)

        node_scores: dict[str, dict[str, float]] = {}
        for similarity in semantic_hits:
            node_scores[similarity.node_id] = {"semantic": similarity.similarity}
        for temporal in temporal_hits:
            node_scores.setdefault(temporal.node_id, {})["temporal"] = temporal.confidence

        connections = []
        for node_id, scores in node_scores.items():
            connection_type, confidence, reason = calculate_final_score(
                scores.get("semantic"), scores.get("temporal")
            )
            connections.append(
                DiscoveredConnection(
                    source_node_id=target_node.id,
                    target_node_id=node_id,
                    type=connection_type,
                    confidence=confidence,
                    reason=reason,
                )
            )

        connections.sort(key=lambda c: c.confidence, reverse=True)
        return connections

    def analyze_node(
        self,
        target_node: KnowledgeNode,
        all_nodes: Sequence[KnowledgeNode],
    ) -> list[DiscoveredConnection]:
        """Discover connections between the target and every other node, best first."""
        steps = self._analysis_steps(target_node, all_nodes)
        while True:
            try:
                next(steps)
            except StopIteration as done:
                return done.value

    async def analyze_node_async(
        self,
        target_node: KnowledgeNode,
        all_nodes: Sequence[KnowledgeNode],
        yield_every: int = COOPERATIVE_YIELD_EVERY,
    ) -> list[DiscoveredConnection]:
        """Same as analyze_node, suspending every ``yield_every`` comparisons."""
        steps = self._analysis_steps(target_node, all_nodes)
        comparisons = 0
        while True:
            try:
                next(steps)
            except StopIteration as done:
                return done.value
            comparisons += 1
            if comparisons % yield_every == 0:
                await asyncio.sleep(0)

    def store_connections(self, connections: Sequence[DiscoveredConnection]) -> list[Connection]:
        """Upsert discovered connections, keeping one record per unordered pair.

        A stored record is replaced only when the new confidence is strictly
        higher; otherwise it is returned unchanged.
        """
        stored: list[Connection] = []

        for discovered in connections:
            existing = self._connections.find_between_nodes(
                discovered.source_node_id, discovered.target_node_id
            )

            if not existing:
                connection = Connection(
                    id=str(uuid.uuid4()),
                    source_node_id=discovered.source_node_id,
                    target_node_id=discovered.target_node_id,
                    type=discovered.type,
                    confidence=discovered.confidence,
                    metadata=ConnectionMetadata(
                        discovered_at=datetime.now(UTC),
                        reason=discovered.reason,
                    ),
                )
                self._connections.create(connection)
                stored.append(connection)
                continue

            current = existing[0]
            if discovered.confidence <= current.confidence:
                stored.append(current)
                continue

            metadata = current.metadata.model_copy(
                update={"discovered_at": datetime.now(UTC), "reason": discovered.reason}
            )
            self._connections.update(
                current.id,
                {"confidence": discovered.confidence, "metadata": metadata.model_dump()},
            )
            log.debug(
                "Raised connection %s confidence %.3f -> %.3f",
                current.id, current.confidence, discovered.confidence,
            )
            stored.append(
                current.model_copy(update={"confidence": discovered.confidence, "metadata": metadata})
            )

        return stored

    def filter_strong_connections(
        self, connections: Sequence[DiscoveredConnection]
    ) -> list[DiscoveredConnection]:
        return [c for c in connections if is_strong_connection(c.confidence)]

    def is_strong_connection(self, confidence: float) -> bool:
        return is_strong_connection(confidence)

    def calculate_confidence(
        self,
        node1: KnowledgeNode,
        node2: KnowledgeNode,
        all_nodes: Sequence[KnowledgeNode],
    ) -> float:
        """Fused confidence between two specific nodes.

        IDF is computed over node1, node2, and the rest of ``all_nodes``. A
        missing signal counts as 0.0 and both are always fused.
        """
        rest = [n for n in all_nodes if n.id not in (node1.id, node2.id)]
        similarities = self.semantic_analyzer.find_similar_nodes(node1, [node2, *rest], threshold=0)
        semantic_score = next((s.similarity for s in similarities if s.node_id == node2.id), 0.0)

        temporal = self.temporal_analyzer.find_temporal_connections(node1, [node2])
        temporal_score = next((t.confidence for t in temporal if t.node_id == node2.id), 0.0)

        _, confidence, _ = calculate_final_score(semantic_score, temporal_score)
        return confidence
