"""Pydantic models for connection discovery."""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

NodeType = Literal["note", "image", "webpage"]
DiscoveredType = Literal["semantic", "temporal"]
ConnectionType = Literal["semantic", "temporal", "manual"]


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so gaps can be computed between any two nodes."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class KnowledgeNode(BaseModel):
    """A piece of ingested content (note, image, or web page).

    Only the fields connection discovery reads are modelled. camelCase keys
    are accepted on input so exported node files load unchanged.
    """

    id: str
    type: NodeType
    searchable_text: str = Field(
        default="",
        validation_alias=AliasChoices("searchable_text", "searchableText"),
    )
    created_at: datetime = Field(validation_alias=AliasChoices("created_at", "createdAt"))
    modified_at: datetime = Field(validation_alias=AliasChoices("modified_at", "modifiedAt"))
    title: str | None = None
    tags: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _default_modified_at(cls, data: Any) -> Any:
        if isinstance(data, dict) and "modified_at" not in data and "modifiedAt" not in data:
            created = data.get("created_at", data.get("createdAt"))
            if created is not None:
                data = {**data, "modified_at": created}
        return data

    @field_validator("created_at", "modified_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("searchable_text", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class SemanticSimilarity(BaseModel):
    """Lexical similarity between a target node and one candidate."""

    node_id: str
    similarity: float


class TemporalSimilarity(BaseModel):
    """Temporal proximity between a target node and one candidate."""

    node_id: str
    confidence: float
    time_difference_seconds: float


class DiscoveredConnection(BaseModel):
    """A scored connection produced by analysis, before it is stored."""

    source_node_id: str
    target_node_id: str
    type: DiscoveredType
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str  # Display only, never used for logic


class ConnectionMetadata(BaseModel):
    """Metadata attached to a stored connection."""

    model_config = ConfigDict(extra="allow")

    discovered_at: datetime
    reason: str


class Connection(BaseModel):
    """A stored connection between two knowledge nodes."""

    id: str
    source_node_id: str
    target_node_id: str
    type: ConnectionType
    confidence: float = Field(ge=0.0, le=1.0)
    metadata: ConnectionMetadata

    def joins(self, node_a: str, node_b: str) -> bool:
        """True if this connection links the two nodes in either direction."""
        return {self.source_node_id, self.target_node_id} == {node_a, node_b}

    def touches(self, node_id: str) -> bool:
        return node_id in (self.source_node_id, self.target_node_id)


class AnalysisResult(BaseModel):
    """Summary of one node analysis."""

    node_id: str
    connections_found: int
    strong_connections: int
    processing_time_ms: float
    completed_at: datetime


class CacheStats(BaseModel):
    """Analysis cache introspection."""

    size: int
    entries: list[str] = Field(default_factory=list)


class WorkerStatus(BaseModel):
    """Discovery worker introspection."""

    is_processing: bool
    queue_size: int
    cache_stats: CacheStats


class GraphNode(BaseModel):
    """A node in the connection graph."""

    id: str
    label: str
    type: NodeType
    connection_count: int = 0


class GraphEdge(BaseModel):
    """An edge in the connection graph."""

    source: str
    target: str
    confidence: float
    type: ConnectionType


class ConnectionGraph(BaseModel):
    """Knowledge nodes and the connections between them."""

    nodes: dict[str, GraphNode] = Field(default_factory=dict)
    edges: list[GraphEdge] = Field(default_factory=list)
