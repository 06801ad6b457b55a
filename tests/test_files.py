"""Tests for node file loading and connection export."""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from phylactery.errors import ErrorCode, InvalidNodeFileError
from phylactery.models import Connection, ConnectionMetadata
from phylactery.storage.files import dump_connections, load_nodes


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text)
    return path


class TestLoadNodes:
    def test_jsonl_with_blank_lines(self, tmp_path: Path):
        path = _write(
            tmp_path,
            "nodes.jsonl",
            '{"id": "a", "type": "note", "searchable_text": "alpha", "created_at": "2024-01-15T10:00:00Z"}\n'
            "\n"
            '{"id": "b", "type": "image", "created_at": "2024-01-15T10:05:00Z"}\n',
        )

        nodes = load_nodes(path)

        assert [n.id for n in nodes] == ["a", "b"]
        assert nodes[1].searchable_text == ""

    def test_json_array_with_camel_case(self, tmp_path: Path):
        records = [
            {
                "id": "a",
                "type": "webpage",
                "searchableText": "saved page",
                "createdAt": "2024-01-15T10:00:00+00:00",
                "modifiedAt": "2024-01-16T10:00:00+00:00",
            }
        ]
        path = _write(tmp_path, "nodes.json", json.dumps(records))

        [node] = load_nodes(path)

        assert node.searchable_text == "saved page"
        assert node.modified_at == datetime(2024, 1, 16, 10, tzinfo=UTC)

    def test_modified_defaults_to_created_and_naive_is_utc(self, tmp_path: Path):
        path = _write(
            tmp_path,
            "nodes.jsonl",
            '{"id": "a", "type": "note", "created_at": "2024-01-15T10:00:00"}\n',
        )

        [node] = load_nodes(path)

        assert node.created_at == datetime(2024, 1, 15, 10, tzinfo=UTC)
        assert node.modified_at == node.created_at

    def test_empty_file(self, tmp_path: Path):
        assert load_nodes(_write(tmp_path, "nodes.jsonl", "")) == []

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(InvalidNodeFileError) as exc_info:
            load_nodes(tmp_path / "missing.jsonl")
        assert exc_info.value.code == ErrorCode.INVALID_NODE_FILE

    def test_malformed_line(self, tmp_path: Path):
        path = _write(tmp_path, "nodes.jsonl", '{"id": "a", "type": "note", "created_at": "2024-01-15T10:00:00Z"}\n{oops\n')
        with pytest.raises(InvalidNodeFileError, match="line 2"):
            load_nodes(path)

    def test_malformed_array(self, tmp_path: Path):
        path = _write(tmp_path, "nodes.json", "[1, 2")
        with pytest.raises(InvalidNodeFileError, match="malformed JSON"):
            load_nodes(path)

    def test_invalid_node_type(self, tmp_path: Path):
        path = _write(tmp_path, "nodes.jsonl", '{"id": "a", "type": "video", "created_at": "2024-01-15T10:00:00Z"}\n')
        with pytest.raises(InvalidNodeFileError, match="node #0"):
            load_nodes(path)

    def test_duplicate_id(self, tmp_path: Path):
        line = '{"id": "a", "type": "note", "created_at": "2024-01-15T10:00:00Z"}\n'
        path = _write(tmp_path, "nodes.jsonl", line + line)
        with pytest.raises(InvalidNodeFileError, match="duplicate node id a"):
            load_nodes(path)


class TestDumpConnections:
    def test_writes_jsonl(self, tmp_path: Path):
        connections = [
            Connection(
                id=f"c{i}",
                source_node_id="a",
                target_node_id=f"n{i}",
                type="temporal",
                confidence=0.5,
                metadata=ConnectionMetadata(discovered_at=datetime(2024, 1, 15, tzinfo=UTC), reason="r"),
            )
            for i in range(3)
        ]
        path = tmp_path / "out" / "connections.jsonl"

        assert dump_connections(connections, path) == 3

        lines = path.read_text().splitlines()
        assert [json.loads(line)["id"] for line in lines] == ["c0", "c1", "c2"]
