import json

from typer.testing import CliRunner

from cli import cli_app

runner = CliRunner()

PROJECT = {
    "id": "p1",
    "name": "Demo",
    "nodes": [
        {"id": "doc", "type": "text", "data": {"title": "Doc", "text": "Q4 plan..."}},
        {"id": "web", "type": "web", "data": {"status": "loading", "url": "https://example.com"}},
        {"id": "chat1", "type": "chat", "data": {"messages": []}},
    ],
    "edges": [{"source": "doc", "target": "chat1"}, {"source": "web", "target": "chat1"}],
}


def write_project(tmp_path):
    path = tmp_path / "project.json"
    path.write_text(json.dumps(PROJECT), encoding="utf-8")
    return path


def test_preview_context_lists_ready_sources(tmp_path):
    result = runner.invoke(cli_app, ["preview-context", str(write_project(tmp_path)), "--node-id", "chat1"])

    assert result.exit_code == 0
    assert "2 node(s) wired into chat1" in result.output
    assert "not ready" in result.output
    assert "Q4 plan..." in result.output


def test_preview_context_unknown_node(tmp_path):
    result = runner.invoke(cli_app, ["preview-context", str(write_project(tmp_path)), "--node-id", "nope"])

    assert result.exit_code == 1
