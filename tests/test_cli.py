"""Tests for the command line, HTTP and MCP entry points in cli/."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

# Ensure src/ and cli/ are importable
_SCRIPT_DIR = Path(__file__).resolve().parent
for _dir in (_SCRIPT_DIR.parent / "src", _SCRIPT_DIR.parent / "cli"):
    if str(_dir) not in sys.path:
        sys.path.insert(0, str(_dir))

import dsl_eval

MATRIX_YAML = """\
config:
  name: CLI smoke
  history_folder: {history}
cases:
  - name: person
    prompt: Write Person
    expected_response: "datatype String entity Person {{ name: String }}"
runners:
  - name: good
    type: static
    response: "datatype String entity Person {{ name: String }}"
  - name: bad
    type: static
    response: "entity Person {{"
evaluators: [analyzer+edit_distance]
"""


class TestDslEvalCli:
    def test_run_then_report(self, tmp_path: Path, capsys):
        history = tmp_path / "history"
        config = tmp_path / "matrix.yaml"
        config.write_text(MATRIX_YAML.format(history=history), encoding="utf-8")

        assert dsl_eval.main(["run", "--matrix-config", str(config)]) == 0
        out = capsys.readouterr().out
        assert "good:" in out
        assert "bad:" in out
        assert "Report saved:" in out

        markdown = tmp_path / "summary.md"
        assert dsl_eval.main(["report", "--history", str(history), "--markdown", str(markdown)]) == 0
        assert "**Runners compared:** 2" in markdown.read_text(encoding="utf-8")

    def test_run_with_bad_config(self, tmp_path: Path, capsys):
        config = tmp_path / "matrix.yaml"
        config.write_text("config:\n  name: x\n", encoding="utf-8")
        assert dsl_eval.main(["run", "--matrix-config", str(config)]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_report_without_history(self, tmp_path: Path, capsys):
        assert dsl_eval.main(["report", "--history", str(tmp_path)]) == 1
        assert "Last file does not exist" in capsys.readouterr().err

    def test_splitter_defaults_to_entities(self, capsys):
        assert dsl_eval.main(["splitter"]) == 0
        assert "3 chunk(s)" in capsys.readouterr().out

    def test_splitter_node_types(self, tmp_path: Path, capsys):
        document = tmp_path / "doc.dmodel"
        document.write_text("// c\ndatatype A entity B {}", encoding="utf-8")
        assert dsl_eval.main(["splitter", str(document), "--node-type", "data_type", "--no-comments"]) == 0
        out = capsys.readouterr().out
        assert "datatype A" in out
        assert "// c" not in out
        assert "1 chunk(s)" in out

    def test_program_map(self, capsys):
        assert dsl_eval.main(["program-map"]) == 0
        assert "entity Employee extends Person" in capsys.readouterr().out

    def test_analyze(self, tmp_path: Path, capsys):
        document = tmp_path / "doc.dmodel"
        document.write_text("package foo.bar {}", encoding="utf-8")
        assert dsl_eval.main(["analyze", str(document), "--exclude", "MANY", "--no-hidden"]) == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats["rule_usage"]["ID"] == 2
        assert "MANY" not in stats["rule_usage"]
        assert "SL_COMMENT" not in stats["rule_usage"]


@pytest.fixture(scope="module")
def client():
    from fastapi.testclient import TestClient
    import server

    return TestClient(server.app)


@pytest.fixture(scope="module")
def tools():
    import mcp_server

    return mcp_server


class TestServer:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_capabilities(self, client):
        assert "analyzer" in client.get("/capabilities").json()["evaluators"]

    def test_evaluate(self, client):
        response = client.post("/evaluate", json={"response": "```\npackage foo.bar {}\n```"})
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["data"]["errors"] == 0
        assert result["metadata"]["syntax_statistics"]["rule_usage"]["ID"] == 2

    def test_evaluate_unknown_evaluator(self, client):
        response = client.post("/evaluate", json={"response": "x", "evaluator": "bleu"})
        assert response.status_code == 400

    def test_evaluate_requires_response(self, client):
        assert client.post("/evaluate", json={}).status_code == 422

    def test_split(self, client):
        response = client.post("/split", json={"document": "datatype A entity B {} entity C {}"})
        assert response.json() == {"chunks": ["entity B {}", "entity C {}"]}

    def test_split_without_node_types(self, client):
        response = client.post("/split", json={"document": "datatype A", "node_type": []})
        assert response.status_code == 400

    def test_program_map(self, client):
        response = client.post("/program-map", json={"document": "entity B { many c: B }"})
        assert response.json() == {"lines": ["entity B", "  many c: B"]}


class TestMcpTools:
    def test_check_syntax_clean(self, tools):
        assert tools.check_syntax("datatype A") == "The provided DomainModel code has no issues."

    def test_check_syntax_reports_positions(self, tools):
        report = tools.check_syntax("datatype A\nentity B { x: Missing }")
        assert report == "Error: Could not resolve reference to Type named 'Missing'. at line 2, column 15"

    def test_split_document(self, tools):
        payload = json.loads(tools.split_document("datatype A entity B {}", ["data_type", "entity"]))
        assert payload == {"count": 2, "chunks": ["datatype A", "entity B {}"]}

    def test_map_program(self, tools):
        assert tools.map_program("datatype A") == "datatype A"
