"""Node and connection stores consumed by connection discovery."""

from .memory import InMemoryConnectionStore, InMemoryNodeStore
from .protocols import ConnectionStore, NodeStore

__all__ = [
    "ConnectionStore",
    "InMemoryConnectionStore",
    "InMemoryNodeStore",
    "NodeStore",
]
