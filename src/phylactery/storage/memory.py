"""In-memory node and connection stores.

Used by the CLI (nodes loaded from a file) and by tests. Both stores keep
insertion order and hand out copies so callers cannot mutate stored records.
"""

from __future__ import annotations

from typing import Any, Iterable

from ..config import STRONG_CONNECTION_THRESHOLD
from ..models import Connection, ConnectionType, KnowledgeNode


class InMemoryNodeStore:
    """Dict-backed NodeStore."""

    def __init__(self, nodes: Iterable[KnowledgeNode] = ()) -> None:
        self._nodes: dict[str, KnowledgeNode] = {}
        for node in nodes:
            self.create(node)

    def create(self, node: KnowledgeNode) -> None:
        if node.id in self._nodes:
            raise ValueError(f"Node {node.id} already exists")
        self._nodes[node.id] = node

    def find_by_id(self, node_id: str) -> KnowledgeNode | None:
        return self._nodes.get(node_id)

    def find_all(self, type: str | None = None) -> list[KnowledgeNode]:
        nodes = list(self._nodes.values())
        if type is not None:
            nodes = [node for node in nodes if node.type == type]
        return nodes

    def update(self, node_id: str, updates: dict[str, Any]) -> KnowledgeNode:
        """Apply field updates to a node and return the new version."""
        existing = self._nodes.get(node_id)
        if existing is None:
            raise KeyError(node_id)
        updated = existing.model_copy(update=updates)
        self._nodes[node_id] = updated
        return updated

    def delete(self, node_id: str) -> None:
        self._nodes.pop(node_id, None)

    def count(self, type: str | None = None) -> int:
        return len(self.find_all(type))


class InMemoryConnectionStore:
    """Dict-backed ConnectionStore keyed by connection id."""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}

    def create(self, connection: Connection) -> None:
        if connection.id in self._connections:
            raise ValueError(f"Connection {connection.id} already exists")
        self._connections[connection.id] = connection.model_copy(deep=True)

    def find_by_id(self, connection_id: str) -> Connection | None:
        connection = self._connections.get(connection_id)
        return connection.model_copy(deep=True) if connection else None

    def find_between_nodes(self, node_a: str, node_b: str) -> list[Connection]:
        return [
            connection.model_copy(deep=True)
            for connection in self._connections.values()
            if connection.joins(node_a, node_b)
        ]

    def find_by_node_id(self, node_id: str) -> list[Connection]:
        matches = [c for c in self._connections.values() if c.touches(node_id)]
        matches.sort(key=lambda c: c.confidence, reverse=True)
        return [c.model_copy(deep=True) for c in matches]

    def find_all(
        self,
        type: ConnectionType | None = None,
        min_confidence: float | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Connection]:
        matches = list(self._connections.values())
        if type is not None:
            matches = [c for c in matches if c.type == type]
        if min_confidence is not None:
            matches = [c for c in matches if c.confidence >= min_confidence]
        matches.sort(key=lambda c: (c.confidence, c.metadata.discovered_at), reverse=True)
        matches = matches[offset:]
        if limit is not None:
            matches = matches[:limit]
        return [c.model_copy(deep=True) for c in matches]

    def find_strong_connections(self, node_id: str | None = None) -> list[Connection]:
        matches = [
            c for c in self._connections.values()
            if c.confidence > STRONG_CONNECTION_THRESHOLD
            and (node_id is None or c.touches(node_id))
        ]
        matches.sort(key=lambda c: c.confidence, reverse=True)
        return [c.model_copy(deep=True) for c in matches]

    def update(self, connection_id: str, updates: dict[str, Any]) -> None:
        existing = self._connections.get(connection_id)
        if existing is None:
            return
        # Revalidate so confidence bounds and metadata shape still hold.
        merged = existing.model_dump()
        merged.update(updates)
        self._connections[connection_id] = Connection.model_validate(merged)

    def delete(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)

    def delete_by_node_id(self, node_id: str) -> int:
        doomed = [cid for cid, c in self._connections.items() if c.touches(node_id)]
        for cid in doomed:
            del self._connections[cid]
        return len(doomed)

    def count(self, type: ConnectionType | None = None) -> int:
        if type is None:
            return len(self._connections)
        return sum(1 for c in self._connections.values() if c.type == type)
