"""Tests for the ConnectionDiscoverySystem facade."""

import pytest

from phylactery.config import DiscoverySettings
from phylactery.discovery import ConnectionDiscoverySystem
from phylactery.errors import (
    ConnectionExistsError,
    ConnectionNotFoundError,
    InvalidConnectionError,
    NodeNotFoundError,
)
from phylactery.models import Connection
from phylactery.storage import InMemoryConnectionStore


class FailingConnectionStore(InMemoryConnectionStore):
    """Connection store whose writes fail for any pair touching ``n1``."""

    def create(self, connection: Connection) -> None:
        if connection.touches("n1"):
            raise RuntimeError("connection store unavailable")
        super().create(connection)


class TestAnalysisTriggers:
    """Tests for queue-backed and direct analysis."""

    def test_analyze_node_enqueues_at_ingest_priority(self, system):
        system.analyze_node("n1")

        assert system.get_worker_status().queue_size == 1
        assert system.worker.queued_jobs()[0].priority == 10

    def test_reanalyze_node_enqueues_at_update_priority(self, system):
        system.reanalyze_node("n1")
        assert system.worker.queued_jobs()[0].priority == 5

    @pytest.mark.asyncio
    async def test_analyze_node_sync(self, system):
        result = await system.analyze_node_sync("n1")

        assert result.node_id == "n1"
        connections = system.get_node_connections("n1")
        assert [c.target_node_id for c in connections] == ["n2"]

    @pytest.mark.asyncio
    async def test_analyze_node_sync_missing(self, system):
        with pytest.raises(NodeNotFoundError):
            await system.analyze_node_sync("missing")

    @pytest.mark.asyncio
    async def test_batch_analyze(self, system):
        results = await system.batch_analyze(["n1", "n2", "n3", "n4"])

        assert len(results) == 4
        assert len(system.get_node_connections("n2")) == 1
        assert len(system.get_node_connections("n4")) == 1

    @pytest.mark.asyncio
    async def test_strong_connections(self, system):
        await system.batch_analyze(["n1", "n3"])

        strong = system.get_strong_connections()
        assert [{c.source_node_id, c.target_node_id} for c in strong] == [{"n1", "n2"}]
        assert system.get_strong_connections("n3") == []


class TestStoreFailures:
    """Tests for connection store errors raised while storing analysis results."""

    @pytest.fixture
    def failing_system(self, node_store) -> ConnectionDiscoverySystem:
        return ConnectionDiscoverySystem(node_store, FailingConnectionStore())

    @pytest.mark.asyncio
    async def test_sync_analysis_reraises(self, failing_system):
        with pytest.raises(RuntimeError, match="connection store unavailable"):
            await failing_system.analyze_node_sync("n1")

        assert failing_system.get_worker_status().cache_stats.size == 0

    @pytest.mark.asyncio
    async def test_batch_continues_past_failed_node(self, failing_system):
        results = await failing_system.batch_analyze(["n1", "n3"])

        assert [r.node_id for r in results] == ["n3"]
        assert failing_system.get_worker_status().cache_stats.entries == ["n3"]
        assert failing_system.connection_store.count() == 1
        assert failing_system.get_node_connections("n1") == []


class TestRawSignals:
    """Tests for unfused, unstored signals."""

    def test_find_semantic_connections(self, system, corpus, connection_store):
        connections = system.find_semantic_connections(corpus[0], corpus)

        assert [(c.target_node_id, c.type) for c in connections] == [("n2", "semantic")]
        assert connections[0].id == ""
        assert connections[0].metadata.reason.startswith("Semantic similarity:")
        assert connection_store.count() == 0

    def test_find_temporal_connections(self, system, corpus):
        connections = system.find_temporal_connections(corpus[2], corpus)

        assert [(c.target_node_id, c.type) for c in connections] == [("n4", "temporal")]
        assert 0.0 < connections[0].confidence < 0.7

    def test_calculate_confidence(self, system, corpus):
        confidence = system.calculate_confidence(corpus[0], corpus[1])

        assert 0.7 < confidence <= 1.0
        assert system.is_strong_connection(confidence)

    def test_get_node(self, system):
        assert system.get_node("n1").searchable_text == "Python asyncio event loop"
        with pytest.raises(NodeNotFoundError):
            system.get_node("missing")


class TestManualConnections:
    """Tests for user-created connections."""

    def test_create(self, system):
        connection = system.create_manual_connection("n1", "n3")

        assert connection.type == "manual"
        assert connection.confidence == 1.0
        assert connection.metadata.reason == "Manually created by user"
        assert system.get_node_connections("n3")[0].id == connection.id

    def test_rejects_self_link(self, system):
        with pytest.raises(InvalidConnectionError):
            system.create_manual_connection("n1", "n1")

    def test_rejects_unknown_node(self, system):
        with pytest.raises(NodeNotFoundError) as exc_info:
            system.create_manual_connection("n1", "ghost")
        assert exc_info.value.node_id == "ghost"

    def test_rejects_existing_pair_either_direction(self, system):
        system.create_manual_connection("n1", "n3")
        with pytest.raises(ConnectionExistsError):
            system.create_manual_connection("n3", "n1")

    @pytest.mark.asyncio
    async def test_survives_reanalysis(self, system):
        manual = system.create_manual_connection("n1", "n2")

        await system.analyze_node_sync("n1")

        stored = system.get_node_connections("n1")
        assert len(stored) == 1
        assert stored[0].id == manual.id
        assert stored[0].type == "manual"
        assert stored[0].confidence == 1.0

    def test_delete(self, system):
        connection = system.create_manual_connection("n1", "n3")
        system.delete_connection(connection.id)
        assert system.get_node_connections("n1") == []

    def test_delete_missing(self, system):
        with pytest.raises(ConnectionNotFoundError):
            system.delete_connection("nope")


class TestConnectionGraph:
    """Tests for the facade's graph view."""

    @pytest.mark.asyncio
    async def test_full_graph(self, system):
        await system.batch_analyze(["n1", "n3"])

        graph = system.get_connection_graph()

        assert set(graph.nodes) == {"n1", "n2", "n3", "n4"}
        assert len(graph.edges) == 2
        assert graph.nodes["n1"].connection_count == 1

    @pytest.mark.asyncio
    async def test_rooted_graph(self, system):
        await system.batch_analyze(["n1", "n3"])

        graph = system.get_connection_graph(root="n3")

        assert set(graph.nodes) == {"n3", "n4"}
        assert [(e.source, e.target) for e in graph.edges] == [("n3", "n4")]

    @pytest.mark.asyncio
    async def test_min_confidence(self, system):
        await system.batch_analyze(["n1", "n3"])

        graph = system.get_connection_graph(min_confidence=0.7)

        assert len(graph.edges) == 1
        assert graph.nodes["n3"].connection_count == 0

    def test_unknown_root(self, system):
        with pytest.raises(NodeNotFoundError):
            system.get_connection_graph(root="ghost")


class TestWorkerStatus:
    """Tests for worker introspection through the facade."""

    @pytest.mark.asyncio
    async def test_status_and_clear_cache(self, system):
        await system.analyze_node_sync("n1")

        status = system.get_worker_status()
        assert status.is_processing is False
        assert status.queue_size == 0
        assert status.cache_stats.entries == ["n1"]

        system.clear_cache()
        assert system.get_worker_status().cache_stats.size == 0


class TestSettings:
    """Tests for wiring settings into the components."""

    def test_settings_applied(self, node_store, connection_store):
        settings = DiscoverySettings(
            semantic_threshold=0.9,
            temporal_window_seconds=600,
            cache_ttl_seconds=10,
            analysis_timeout_seconds=1.5,
            yield_every=7,
        )

        system = ConnectionDiscoverySystem(node_store, connection_store, settings=settings)

        assert system.scorer.semantic_threshold == 0.9
        assert system.temporal_analyzer.time_window_seconds == 600
        assert system.worker.cache_ttl_seconds == 10
        assert system.worker.analysis_timeout_seconds == 1.5

    def test_high_threshold_drops_semantic_signal(self, node_store, connection_store, corpus):
        system = ConnectionDiscoverySystem(
            node_store, connection_store, settings=DiscoverySettings(semantic_threshold=0.95)
        )
        assert system.find_semantic_connections(corpus[0], corpus) == []
