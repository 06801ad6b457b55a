"""Structured errors for connection discovery.

Every error carries a machine-readable code so the CLI can emit
``{"error": {"code": ..., "message": ..., "details": ...}}`` with --json-errors.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes surfaced to programmatic callers."""

    NODE_NOT_FOUND = "NODE_NOT_FOUND"
    CONNECTION_NOT_FOUND = "CONNECTION_NOT_FOUND"
    CONNECTION_EXISTS = "CONNECTION_EXISTS"
    INVALID_CONNECTION = "INVALID_CONNECTION"
    ANALYSIS_TIMEOUT = "ANALYSIS_TIMEOUT"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INVALID_NODE_FILE = "INVALID_NODE_FILE"


class DiscoveryError(Exception):
    """Base exception for connection discovery operations."""

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class NodeNotFoundError(DiscoveryError):
    """Raised when a node id is not present in the node store."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(
            ErrorCode.NODE_NOT_FOUND,
            f"Node {node_id} not found",
            {"node_id": node_id},
        )


class ConnectionNotFoundError(DiscoveryError):
    """Raised when a connection id is not present in the connection store."""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(
            ErrorCode.CONNECTION_NOT_FOUND,
            f"Connection {connection_id} not found",
            {"connection_id": connection_id},
        )


class AnalysisTimeoutError(DiscoveryError):
    """Raised when a node analysis exceeds its wall-clock bound.

    Nothing is cached or persisted for the attempt; callers may re-enqueue.
    """

    def __init__(self, node_id: str, timeout_seconds: float):
        self.node_id = node_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            ErrorCode.ANALYSIS_TIMEOUT,
            f"Analysis timeout after {timeout_seconds * 1000:.0f}ms for node {node_id}",
            {"node_id": node_id, "timeout_seconds": timeout_seconds},
        )


class InvalidConnectionError(DiscoveryError):
    """Raised when a requested connection is malformed (e.g. a self-link)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.INVALID_CONNECTION, message, details)


class ConnectionExistsError(DiscoveryError):
    """Raised when a manual connection duplicates an existing pair."""

    def __init__(self, source_node_id: str, target_node_id: str):
        super().__init__(
            ErrorCode.CONNECTION_EXISTS,
            "Connection already exists between these nodes",
            {"source_node_id": source_node_id, "target_node_id": target_node_id},
        )


class InvalidNodeFileError(DiscoveryError):
    """Raised when a node file cannot be parsed into knowledge nodes."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(
            ErrorCode.INVALID_NODE_FILE,
            f"Invalid node file {path}: {reason}",
            {"path": path},
        )
