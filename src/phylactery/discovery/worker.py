"""Background connection discovery worker.

Jobs are kept in a priority queue (higher priority first, FIFO among equal
priorities) and drained by a single asyncio task, so at most one analysis runs
at a time per worker. Results are cached per node for a short TTL, and every
analysis is bounded by a wall-clock timeout.

``analyze_node`` can also be awaited directly. Such calls bypass the queue
and may interleave with, or run ahead of, queued work.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Callable, Sequence

from ..config import (
    ANALYSIS_TIMEOUT_SECONDS,
    CACHE_TTL_SECONDS,
    COOPERATIVE_YIELD_EVERY,
    DEFAULT_PRIORITY,
    INGESTED_PRIORITY,
    UPDATED_PRIORITY,
)
from ..errors import AnalysisTimeoutError, NodeNotFoundError
from ..models import AnalysisResult, CacheStats, DiscoveredConnection, KnowledgeNode
from ..storage.protocols import NodeStore
from .scoring import ConnectionScorer

log = logging.getLogger(__name__)


@dataclass
class AnalysisJob:
    """A queued request to analyze one node."""

    node_id: str
    priority: int
    added_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class CacheEntry:
    """Last analysis result for a node."""

    connections: list[DiscoveredConnection]
    analyzed_at: float
    """Clock reading when the analysis finished."""


class DiscoveryWorker:
    """Queue, cache, and run node analyses."""

    def __init__(
        self,
        node_store: NodeStore,
        scorer: ConnectionScorer,
        cache_ttl_seconds: float = CACHE_TTL_SECONDS,
        analysis_timeout_seconds: float = ANALYSIS_TIMEOUT_SECONDS,
        yield_every: int = COOPERATIVE_YIELD_EVERY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._nodes = node_store
        self._scorer = scorer
        self.cache_ttl_seconds = cache_ttl_seconds
        self.analysis_timeout_seconds = analysis_timeout_seconds
        self._yield_every = yield_every
        self._clock = clock

        self._queue: list[AnalysisJob] = []
        self._cache: dict[str, CacheEntry] = {}
        self._processing = False
        self._drain_task: asyncio.Task | None = None

    # ─────────────────────────────────────────────────────────────────────────
    # Queue
    # ─────────────────────────────────────────────────────────────────────────

    def enqueue_analysis(self, node_id: str, priority: int = DEFAULT_PRIORITY) -> None:
        """Queue a node for analysis and start draining if idle.

        A node already in the queue is not added twice; its priority is
        raised to the higher of the two.
        """
        existing = next((job for job in self._queue if job.node_id == node_id), None)
        if existing is not None:
            if priority > existing.priority:
                existing.priority = priority
                self._sort_queue()
                log.debug("Raised queued analysis priority for %s to %d", node_id, priority)
            self._start_draining()
            return

        self._queue.append(AnalysisJob(node_id=node_id, priority=priority))
        self._sort_queue()
        self._start_draining()

    def _sort_queue(self) -> None:
        # list.sort is stable, so equal priorities keep arrival order
        self._queue.sort(key=lambda job: job.priority, reverse=True)

    def _start_draining(self) -> None:
        if self._processing:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running event loop; %d job(s) stay queued", len(self._queue))
            return
        self._processing = True
        self._drain_task = loop.create_task(self._process_queue())

    async def _process_queue(self) -> None:
        try:
            while self._queue:
                job = self._queue.pop(0)
                try:
                    await self.analyze_node(job.node_id)
                except Exception:
                    log.exception("Error analyzing node %s", job.node_id)
        finally:
            self._processing = False
            self._drain_task = None

    async def drain(self) -> None:
        """Process every queued job, or wait for the in-flight drain to finish."""
        if self._drain_task is not None:
            await self._drain_task
            return
        if not self._queue:
            return
        self._processing = True
        self._drain_task = asyncio.get_running_loop().create_task(self._process_queue())
        await self._drain_task

    async def wait_idle(self) -> None:
        """Wait for the current drain task, if any."""
        if self._drain_task is not None:
            await self._drain_task

    def queued_jobs(self) -> list[AnalysisJob]:
        """Snapshot of the queue in processing order."""
        return list(self._queue)

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._processing

    # ─────────────────────────────────────────────────────────────────────────
    # Analysis
    # ─────────────────────────────────────────────────────────────────────────

    async def analyze_node(self, node_id: str) -> AnalysisResult:
        """Analyze one node, store its connections, and return a summary.

        Raises:
            NodeNotFoundError: If the node is not in the store.
            AnalysisTimeoutError: If scoring exceeds the timeout. Nothing is
                cached or stored for the attempt.
        """
        start = time.perf_counter()

        cached = self._get_cached_analysis(node_id)
        if cached is not None:
            log.debug("Using cached analysis for %s", node_id)
            # Re-store in case the connection store was cleared since
            self._scorer.store_connections(cached.connections)
            return self._summarize(node_id, cached.connections, start)

        target_node = self._nodes.find_by_id(node_id)
        if target_node is None:
            raise NodeNotFoundError(node_id)

        all_nodes = self._nodes.find_all()
        connections = await self._analyze_with_timeout(target_node, all_nodes)

        self._scorer.store_connections(connections)
        self._cache[node_id] = CacheEntry(connections=connections, analyzed_at=self._clock())

        return self._summarize(node_id, connections, start)

    async def _analyze_with_timeout(
        self,
        target_node: KnowledgeNode,
        all_nodes: Sequence[KnowledgeNode],
    ) -> list[DiscoveredConnection]:
        try:
            return await asyncio.wait_for(
                self._scorer.analyze_node_async(target_node, all_nodes, self._yield_every),
                timeout=self.analysis_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            log.warning(
                "Analysis of %s timed out after %.1fs", target_node.id, self.analysis_timeout_seconds
            )
            raise AnalysisTimeoutError(target_node.id, self.analysis_timeout_seconds) from e

    def _summarize(
        self,
        node_id: str,
        connections: Sequence[DiscoveredConnection],
        start: float,
    ) -> AnalysisResult:
        return AnalysisResult(
            node_id=node_id,
            connections_found=len(connections),
            strong_connections=len(self._scorer.filter_strong_connections(connections)),
            processing_time_ms=(time.perf_counter() - start) * 1000,
            completed_at=datetime.now(UTC),
        )

    async def batch_analyze(self, node_ids: Sequence[str]) -> list[AnalysisResult]:
        """Analyze nodes one after another, skipping (and logging) failures."""
        results = []
        for node_id in node_ids:
            try:
                results.append(await self.analyze_node(node_id))
            except Exception:
                log.exception("Error analyzing node %s", node_id)
        return results

    # ─────────────────────────────────────────────────────────────────────────
    # Triggers
    # ─────────────────────────────────────────────────────────────────────────

    def on_node_ingested(self, node_id: str) -> None:
        """Queue a newly ingested node at high priority."""
        self.enqueue_analysis(node_id, INGESTED_PRIORITY)

    def on_node_updated(self, node_id: str) -> None:
        """Drop the node's cached result and queue it at medium priority."""
        self.clear_node_cache(node_id)
        self.enqueue_analysis(node_id, UPDATED_PRIORITY)

    # ─────────────────────────────────────────────────────────────────────────
    # Cache
    # ─────────────────────────────────────────────────────────────────────────

    def _get_cached_analysis(self, node_id: str) -> CacheEntry | None:
        cached = self._cache.get(node_id)
        if cached is None:
            return None

        if self._clock() - cached.analyzed_at > self.cache_ttl_seconds:
            del self._cache[node_id]
            return None

        return cached

    def clear_cache(self) -> None:
        self._cache.clear()

    def clear_node_cache(self, node_id: str) -> None:
        self._cache.pop(node_id, None)

    def get_cache_stats(self) -> CacheStats:
        return CacheStats(size=len(self._cache), entries=list(self._cache))
