"""Shared test fixtures for phylactery test suite.

Design:
- make_node: build a KnowledgeNode relative to a fixed base time (T0)
- corpus: four nodes forming two topical/temporal pairs
- node_store / connection_store / scorer / system: wired in-memory engine
- runner + nodes_file: CliRunner and the corpus written as JSONL
- Async helpers: pytest-asyncio, mark each async test with @pytest.mark.asyncio
"""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from click.testing import CliRunner

from phylactery.discovery import ConnectionDiscoverySystem, ConnectionScorer
from phylactery.models import KnowledgeNode
from phylactery.storage import InMemoryConnectionStore, InMemoryNodeStore

T0 = datetime(2024, 1, 15, 10, 0, tzinfo=UTC)


def make_node(
    node_id: str,
    text: str = "",
    type: str = "note",
    minutes: float = 0,
    modified_minutes: float | None = None,
    title: str | None = None,
) -> KnowledgeNode:
    """Create a node ``minutes`` after T0 (modified at creation unless given)."""
    created = T0 + timedelta(minutes=minutes)
    modified = created if modified_minutes is None else T0 + timedelta(minutes=modified_minutes)
    return KnowledgeNode(
        id=node_id,
        type=type,
        searchable_text=text,
        created_at=created,
        modified_at=modified,
        title=title,
    )


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ─────────────────────────────────────────────────────────────────────────────
# Isolation
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep settings discovery away from the developer's environment."""
    monkeypatch.delenv("PHYLACTERY_CONFIG", raising=False)
    monkeypatch.delenv("PHYLACTERY_QUIET", raising=False)
    monkeypatch.chdir(tmp_path)


# ─────────────────────────────────────────────────────────────────────────────
# Engine Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def corpus() -> list[KnowledgeNode]:
    """Two pairs of related nodes, three days apart.

    - n1/n2: notes five minutes apart sharing most of their vocabulary
    - n3/n4: webpage and image ten minutes apart sharing two terms
    """
    return [
        make_node("n1", "Python asyncio event loop", minutes=0),
        make_node("n2", "Python asyncio event loop tasks", minutes=5),
        make_node("n3", "Gardening tomatoes soil compost", type="webpage", minutes=3 * 24 * 60),
        make_node("n4", "Photo of tomatoes in soil", type="image", minutes=3 * 24 * 60 + 10),
    ]


@pytest.fixture
def node_store(corpus: list[KnowledgeNode]) -> InMemoryNodeStore:
    return InMemoryNodeStore(corpus)


@pytest.fixture
def connection_store() -> InMemoryConnectionStore:
    return InMemoryConnectionStore()


@pytest.fixture
def scorer(connection_store: InMemoryConnectionStore) -> ConnectionScorer:
    return ConnectionScorer(connection_store)


@pytest.fixture
def system(
    node_store: InMemoryNodeStore,
    connection_store: InMemoryConnectionStore,
) -> ConnectionDiscoverySystem:
    return ConnectionDiscoverySystem(node_store, connection_store)


# ─────────────────────────────────────────────────────────────────────────────
# CLI Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def nodes_file(tmp_path: Path, corpus: list[KnowledgeNode]) -> Path:
    """The corpus written as JSONL."""
    path = tmp_path / "nodes.jsonl"
    path.write_text(
        "\n".join(json.dumps(node.model_dump(mode="json")) for node in corpus) + "\n"
    )
    return path
