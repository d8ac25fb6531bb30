"""
Tests for the kgengine command line interface.

Each test runs ``main()`` against a fresh SQLite database in tmp_path.
"""

from __future__ import annotations

import json

import pytest

from kgengine.cli import main


@pytest.fixture
def db(tmp_path):
    payload = [
        {
            "task": {"id": "T1", "description": "Implement parser for config files",
                     "status": "done", "priority": "high"},
            "output": {"type": "code", "content": "def tokenize(): pass"},
        },
        {
            "task": {"id": "T1"},
            "output": {"type": "documentation", "content": "# Architecture"},
        },
    ]
    source = tmp_path / "artifacts.json"
    source.write_text(json.dumps(payload))
    db_path = str(tmp_path / "kg.db")
    main(["ingest", str(source), "--db", db_path])
    return db_path


def _json_out(capsys) -> dict:
    return json.loads(capsys.readouterr().out)


class TestIngest:

    def test_reports_count(self, tmp_path, capsys):
        source = tmp_path / "one.json"
        source.write_text(json.dumps({"task": {"id": 1}, "output": {"type": "code"}}))
        main(["ingest", str(source), "--db", str(tmp_path / "kg.db")])
        assert "Stored 2 node(s) from 1 artifact(s)" in capsys.readouterr().out


class TestQueries:

    def test_knowledge_json(self, db, capsys):
        capsys.readouterr()
        main(["knowledge", "--db", db, "--json"])
        data = _json_out(capsys)
        assert data["statistics"]["total_nodes"] == 3

    def test_knowledge_text(self, db, capsys):
        capsys.readouterr()
        main(["knowledge", "--db", db])
        out = capsys.readouterr().out
        assert "code_T1 -[generated_by 1.00]-> T1" in out

    def test_related(self, db, capsys):
        capsys.readouterr()
        main(["related", "code_T1", "--depth", "1", "--db", db])
        out = capsys.readouterr().out
        assert "code_T1" in out
        assert "doc_T1" not in out

    def test_similarity(self, db, capsys):
        capsys.readouterr()
        main(["similarity", "T1", "T1", "--db", db])
        assert _json_out(capsys)["similarity"] == 1.0

    def test_metrics(self, db, capsys):
        capsys.readouterr()
        main(["metrics", "--db", db])
        assert _json_out(capsys)["density"] == pytest.approx(2 / 3)

    def test_clusters(self, db, capsys):
        capsys.readouterr()
        main(["clusters", "--min-similarity", "0.9", "--db", db])
        assert _json_out(capsys) == {"clusters": []}

    def test_suggest(self, db, capsys):
        capsys.readouterr()
        main(["suggest", "T1", "--max", "3", "--db", db])
        assert _json_out(capsys) == {"suggestions": []}

    def test_health_json(self, db, capsys):
        capsys.readouterr()
        main(["health", "--json", "--db", db])
        data = _json_out(capsys)
        assert data["node_count"] == 3
        assert data["healthy"] is True


class TestWrites:

    def test_connect_then_metrics(self, db, capsys):
        main(["connect", "code_T1", "doc_T1", "--type", "documented_by",
              "--weight", "0.5", "--db", db])
        assert "code_T1 now has 2 connection(s)" in capsys.readouterr().out
        main(["metrics", "--db", db])
        assert _json_out(capsys)["density"] == pytest.approx(1.0)

    def test_evolve(self, db, capsys):
        capsys.readouterr()
        main(["evolve", "--db", db])
        data = _json_out(capsys)
        assert data["completed"] is True
        assert data["new_connections"] == 0


class TestErrors:

    def test_unknown_node_exits_1(self, db, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["related", "ghost", "--db", db])
        assert exc_info.value.code == 1
        assert "Node not found" in capsys.readouterr().err

    def test_invalid_weight_exits_1(self, db):
        with pytest.raises(SystemExit) as exc_info:
            main(["connect", "code_T1", "doc_T1", "--weight", "2", "--db", db])
        assert exc_info.value.code == 1

    def test_no_command_prints_help(self, capsys):
        main([])
        assert "usage" in capsys.readouterr().out.lower()

    def test_missing_ingest_file_exits_1(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["ingest", str(tmp_path / "absent.json"), "--db", str(tmp_path / "kg.db")])
        assert exc_info.value.code == 1
        assert "Error: cannot read" in capsys.readouterr().err

    def test_malformed_ingest_file_exits_1(self, tmp_path, capsys):
        source = tmp_path / "broken.json"
        source.write_text("{not json")
        with pytest.raises(SystemExit) as exc_info:
            main(["ingest", str(source), "--db", str(tmp_path / "kg.db")])
        assert exc_info.value.code == 1
        assert "Error: cannot read" in capsys.readouterr().err
