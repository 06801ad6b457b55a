"""Connection discovery entry point used by ingestion and the API layer.

``ConnectionDiscoverySystem`` owns one scorer and one worker. Build it once in
the application's composition root and pass it to whatever needs it.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Sequence

from ..config import MANUAL_CONNECTION_CONFIDENCE, DiscoverySettings
from ..errors import ConnectionExistsError, ConnectionNotFoundError, InvalidConnectionError, NodeNotFoundError
from ..graph import build_connection_graph, query_connection_graph
from ..models import (
    AnalysisResult,
    Connection,
    ConnectionGraph,
    ConnectionMetadata,
    KnowledgeNode,
    WorkerStatus,
)
from ..storage.protocols import ConnectionStore, NodeStore
from .scoring import ConnectionScorer, semantic_reason, temporal_reason
from .semantic import SemanticAnalyzer
from .temporal import TemporalAnalyzer
from .worker import DiscoveryWorker

log = logging.getLogger(__name__)


class ConnectionDiscoverySystem:
    """Trigger analyses, read stored connections, and inspect the worker."""

    def __init__(
        self,
        node_store: NodeStore,
        connection_store: ConnectionStore,
        settings: DiscoverySettings | None = None,
    ) -> None:
        settings = settings or DiscoverySettings()
        self._nodes = node_store
        self._connections = connection_store

        self.semantic_analyzer = SemanticAnalyzer()
        self.temporal_analyzer = TemporalAnalyzer(time_window_seconds=settings.temporal_window_seconds)
        self.scorer = ConnectionScorer(
            connection_store,
            semantic_analyzer=self.semantic_analyzer,
            temporal_analyzer=self.temporal_analyzer,
            semantic_threshold=settings.semantic_threshold,
        )
        self.worker = DiscoveryWorker(
            node_store,
            self.scorer,
            cache_ttl_seconds=settings.cache_ttl_seconds,
            analysis_timeout_seconds=settings.analysis_timeout_seconds,
            yield_every=settings.yield_every,
        )

    @property
    def node_store(self) -> NodeStore:
        return self._nodes

    @property
    def connection_store(self) -> ConnectionStore:
        return self._connections

    def get_node(self, node_id: str) -> KnowledgeNode:
        node = self._nodes.find_by_id(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    # Analysis triggers

    def analyze_node(self, node_id: str) -> None:
        """Queue a node for background analysis (fire and forget)."""
        self.worker.on_node_ingested(node_id)

    async def analyze_node_sync(self, node_id: str) -> AnalysisResult:
        """Analyze a node now, bypassing the queue."""
        return await self.worker.analyze_node(node_id)

    def reanalyze_node(self, node_id: str) -> None:
        """Invalidate a node's cached analysis and queue it again."""
        self.worker.on_node_updated(node_id)

    async def batch_analyze(self, node_ids: Sequence[str]) -> list[AnalysisResult]:
        return await self.worker.batch_analyze(node_ids)

    # Raw signals (no fusion, nothing stored)

    def find_semantic_connections(
        self, node: KnowledgeNode, all_nodes: Sequence[KnowledgeNode]
    ) -> list[Connection]:
        now = datetime.now(UTC)
        return [
            Connection(
                id="",  # Assigned when stored
                source_node_id=node.id,
                target_node_id=similarity.node_id,
                type="semantic",
                confidence=similarity.similarity,
                metadata=ConnectionMetadata(discovered_at=now, reason=semantic_reason(similarity.similarity)),
            )
            for similarity in self.semantic_analyzer.find_similar_nodes(
                node, all_nodes, self.scorer.semantic_threshold
            )
        ]

    def find_temporal_connections(
        self, node: KnowledgeNode, all_nodes: Sequence[KnowledgeNode]
    ) -> list[Connection]:
        now = datetime.now(UTC)
        return [
            Connection(
                id="",  # Assigned when stored
                source_node_id=node.id,
                target_node_id=temporal.node_id,
                type="temporal",
                confidence=temporal.confidence,
                metadata=ConnectionMetadata(discovered_at=now, reason=temporal_reason(temporal.confidence)),
            )
            for temporal in self.temporal_analyzer.find_temporal_connections(node, all_nodes)
        ]

    def calculate_confidence(self, node1: KnowledgeNode, node2: KnowledgeNode) -> float:
        return self.scorer.calculate_confidence(node1, node2, self._nodes.find_all())

    def is_strong_connection(self, confidence: float) -> bool:
        return self.scorer.is_strong_connection(confidence)

    # Stored connections

    def get_node_connections(self, node_id: str) -> list[Connection]:
        return self._connections.find_by_node_id(node_id)

    def get_strong_connections(self, node_id: str | None = None) -> list[Connection]:
        return self._connections.find_strong_connections(node_id)

    def create_manual_connection(self, source_node_id: str, target_node_id: str) -> Connection:
        """Store a user-made connection at full confidence.

        Raises:
            InvalidConnectionError: If both ids name the same node.
            NodeNotFoundError: If either node does not exist.
            ConnectionExistsError: If the pair is already connected.
        """
        if source_node_id == target_node_id:
            raise InvalidConnectionError(
                "Cannot create connection to the same node", {"node_id": source_node_id}
            )
        for node_id in (source_node_id, target_node_id):
            if self._nodes.find_by_id(node_id) is None:
                raise NodeNotFoundError(node_id)
        if self._connections.find_between_nodes(source_node_id, target_node_id):
            raise ConnectionExistsError(source_node_id, target_node_id)

        connection = Connection(
            id=str(uuid.uuid4()),
            source_node_id=source_node_id,
            target_node_id=target_node_id,
            type="manual",
            confidence=MANUAL_CONNECTION_CONFIDENCE,
            metadata=ConnectionMetadata(
                discovered_at=datetime.now(UTC),
                reason="Manually created by user",
            ),
        )
        self._connections.create(connection)
        log.info("Created manual connection %s -> %s", source_node_id, target_node_id)
        return connection

    def delete_connection(self, connection_id: str) -> None:
        if self._connections.find_by_id(connection_id) is None:
            raise ConnectionNotFoundError(connection_id)
        self._connections.delete(connection_id)

    def get_connection_graph(
        self,
        root: str | None = None,
        depth: int = 1,
        min_confidence: float = 0.0,
    ) -> ConnectionGraph:
        """Graph of stored connections, optionally limited to a root's neighborhood.

        Raises:
            NodeNotFoundError: If root is given but not in the node store.
        """
        graph = build_connection_graph(
            self._nodes.find_all(),
            self._connections.find_all(),
            min_confidence=min_confidence,
        )
        if root is None:
            return graph
        if root not in graph.nodes:
            raise NodeNotFoundError(root)
        return query_connection_graph(root, graph, depth=depth)

    # Worker

    def get_worker_status(self) -> WorkerStatus:
        return WorkerStatus(
            is_processing=self.worker.is_processing,
            queue_size=self.worker.queue_size,
            cache_stats=self.worker.get_cache_stats(),
        )

    def clear_cache(self) -> None:
        self.worker.clear_cache()
