"""Storage interfaces consumed by connection discovery.

Any persistence engine can back the discovery engine as long as it satisfies
these protocols. Stores raise their own exceptions on failure; discovery does
not retry them.
"""

from __future__ import annotations

from typing import Any, Protocol

from ..models import Connection, ConnectionType, KnowledgeNode


class NodeStore(Protocol):
    """Read access to knowledge nodes."""

    def find_by_id(self, node_id: str) -> KnowledgeNode | None: ...

    def find_all(self) -> list[KnowledgeNode]:
        """Return the full corpus (used for scoring and IDF)."""
        ...


class ConnectionStore(Protocol):
    """Read/write access to stored connections."""

    def find_by_id(self, connection_id: str) -> Connection | None: ...

    def find_between_nodes(self, node_a: str, node_b: str) -> list[Connection]:
        """Return stored connections for the unordered pair (a, b)."""
        ...

    def find_by_node_id(self, node_id: str) -> list[Connection]: ...

    def find_strong_connections(self, node_id: str | None = None) -> list[Connection]: ...

    def find_all(
        self,
        type: ConnectionType | None = None,
        min_confidence: float | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Connection]:
        """Return stored connections, highest confidence first."""
        ...

    def create(self, connection: Connection) -> None: ...

    def update(self, connection_id: str, updates: dict[str, Any]) -> None: ...

    def delete(self, connection_id: str) -> None: ...

    def count(self, type: ConnectionType | None = None) -> int: ...
