"""Node file loading and connection export.

Node files are either a JSON array of node objects or JSONL (one node object
per line). Blank lines in JSONL files are skipped.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from ..errors import InvalidNodeFileError
from ..models import Connection, KnowledgeNode

log = logging.getLogger(__name__)


def _parse_records(path: Path, text: str) -> list[dict]:
    stripped = text.lstrip()
    if not stripped:
        return []

    if stripped.startswith("["):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidNodeFileError(str(path), f"malformed JSON: {e}") from e
        if not isinstance(data, list):
            raise InvalidNodeFileError(str(path), "expected a JSON array of nodes")
        return data

    records = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as e:
            raise InvalidNodeFileError(str(path), f"malformed JSON on line {line_no}: {e}") from e
    return records


def load_nodes(path: str | Path) -> list[KnowledgeNode]:
    """Load knowledge nodes from a JSON or JSONL file.

    Raises:
        InvalidNodeFileError: If the file is unreadable, malformed, holds an
            invalid node, or repeats a node id.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidNodeFileError(str(path), str(e)) from e

    nodes: list[KnowledgeNode] = []
    seen: set[str] = set()
    for index, record in enumerate(_parse_records(path, text)):
        try:
            node = KnowledgeNode.model_validate(record)
        except ValidationError as e:
            raise InvalidNodeFileError(str(path), f"node #{index}: {e}") from e
        if node.id in seen:
            raise InvalidNodeFileError(str(path), f"duplicate node id {node.id}")
        seen.add(node.id)
        nodes.append(node)

    log.debug("Loaded %d nodes from %s", len(nodes), path)
    return nodes


def dump_connections(connections: Iterable[Connection], path: str | Path) -> int:
    """Write connections to a JSONL file. Returns the number written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with open(path, "w", encoding="utf-8") as f:
        for connection in connections:
            f.write(connection.model_dump_json() + "\n")
            count += 1
    return count
