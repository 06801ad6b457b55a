"""Connection graph built from knowledge nodes and stored connections."""

from __future__ import annotations

from typing import Iterable

from .models import Connection, ConnectionGraph, GraphEdge, GraphNode, KnowledgeNode

LABEL_MAX_CHARS = 50


def _node_label(node: KnowledgeNode) -> str:
    if node.title:
        return node.title
    text = " ".join(node.searchable_text.split())
    if not text:
        return node.id
    if len(text) > LABEL_MAX_CHARS:
        return text[: LABEL_MAX_CHARS - 3] + "..."
    return text


def build_connection_graph(
    nodes: Iterable[KnowledgeNode],
    connections: Iterable[Connection],
    *,
    min_confidence: float = 0.0,
) -> ConnectionGraph:
    """Build a graph of nodes and the connections between them.

    Connections below ``min_confidence`` or pointing at unknown nodes are
    dropped. Each undirected pair appears at most once.
    """
    graph_nodes = {
        node.id: GraphNode(id=node.id, label=_node_label(node), type=node.type)
        for node in nodes
    }

    edges: list[GraphEdge] = []
    edge_keys: set[frozenset[str]] = set()

    for connection in connections:
        if connection.confidence < min_confidence:
            continue
        if connection.source_node_id not in graph_nodes or connection.target_node_id not in graph_nodes:
            continue
        key = frozenset((connection.source_node_id, connection.target_node_id))
        if key in edge_keys:
            continue
        edge_keys.add(key)
        edges.append(
            GraphEdge(
                source=connection.source_node_id,
                target=connection.target_node_id,
                confidence=connection.confidence,
                type=connection.type,
            )
        )
        graph_nodes[connection.source_node_id].connection_count += 1
        graph_nodes[connection.target_node_id].connection_count += 1

    return ConnectionGraph(nodes=graph_nodes, edges=edges)


def query_connection_graph(root: str, graph: ConnectionGraph, *, depth: int = 1) -> ConnectionGraph:
    """Subgraph reachable from ``root`` within ``depth`` hops (edges are undirected).

    Nodes are carried over unchanged, so ``connection_count`` still counts
    every edge the node has in ``graph``, not only the edges kept here.

    Raises:
        ValueError: If root is not in the graph.
    """
    if root not in graph.nodes:
        raise ValueError(f"Node not found in graph: {root}")

    adjacency: dict[str, list[GraphEdge]] = {}
    for edge in graph.edges:
        adjacency.setdefault(edge.source, []).append(edge)
        adjacency.setdefault(edge.target, []).append(edge)

    visited_nodes: set[str] = {root}
    collected_edges: list[GraphEdge] = []
    collected_edge_keys: set[frozenset[str]] = set()
    queue: list[tuple[str, int]] = [(root, 0)]

    while queue:
        node, current_depth = queue.pop(0)
        if current_depth >= depth:
            continue

        for edge in adjacency.get(node, []):
            neighbor = edge.target if edge.source == node else edge.source
            edge_key = frozenset((edge.source, edge.target))
            if edge_key not in collected_edge_keys:
                collected_edge_keys.add(edge_key)
                collected_edges.append(edge)
            if neighbor not in visited_nodes:
                visited_nodes.add(neighbor)
                queue.append((neighbor, current_depth + 1))

    nodes = {node_id: graph.nodes[node_id] for node_id in visited_nodes}
    return ConnectionGraph(nodes=nodes, edges=collected_edges)
