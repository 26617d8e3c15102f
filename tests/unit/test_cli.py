"""Unit tests for the command-line interface."""

import asyncio
import json

import pytest
import yaml
from click.testing import CliRunner

from agent_flow.cli import main
from agent_flow.models import HistoryEntry, OpenAIMessage, Session, StopReason
from agent_flow.session import FileHistoryStore

from conftest import assistant_tool_calls


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def flow_file(tmp_path, flow_data):
    path = tmp_path / "demo.yaml"
    path.write_text(yaml.safe_dump(flow_data), encoding="utf-8")
    return path


class TestFlowCommands:
    """Tests for `agent-flow flow ...`."""

    def test_validate_ok(self, runner, flow_file):
        result = runner.invoke(main, ["flow", "validate", str(flow_file)])

        assert result.exit_code == 0
        assert "✓ Flow is valid (2 nodes, 1 agents)" in result.output

    def test_validate_broken(self, runner, tmp_path, flow_data):
        flow_data["nodes"][1]["agentName"] = "ghost"
        path = tmp_path / "broken.yaml"
        path.write_text(yaml.safe_dump(flow_data), encoding="utf-8")

        result = runner.invoke(main, ["flow", "validate", str(path)])

        assert result.exit_code == 1
        assert "unknown agent 'ghost'" in result.output

    def test_show_table(self, runner, flow_file):
        result = runner.invoke(main, ["flow", "show", str(flow_file)])

        assert result.exit_code == 0
        assert "assistant_node" in result.output
        assert "openai/gpt-4o-mini" in result.output
        assert "Execution path: start -> assistant_node" in result.output

    def test_show_mermaid(self, runner, flow_file):
        result = runner.invoke(main, ["flow", "show", str(flow_file), "--format", "mermaid"])

        assert result.exit_code == 0
        assert "start --> assistant_node" in result.output

    def test_show_json(self, runner, flow_file):
        result = runner.invoke(main, ["flow", "show", str(flow_file), "--format", "json"])

        data = json.loads(result.output)
        assert data["execution_path"] == ["start", "assistant_node"]
        assert data["agents"]["assistant"]["modelId"] == "openai/gpt-4o-mini"


class TestSessionCommands:
    """Tests for `agent-flow sessions` and `agent-flow history`."""

    @pytest.fixture
    def data_dir(self, tmp_path):
        store = FileHistoryStore(tmp_path / "data")

        async def seed():
            await store.create_session(Session(id="s1", created_by="u1", agent_flow_id="demo", title="Greeting"))
            await store.append_history(
                HistoryEntry(
                    id="h1",
                    session_id="s1",
                    content=OpenAIMessage(role="user", content="say hello"),
                    stop_reason=StopReason.USER_INPUT,
                    node="start",
                )
            )
            await store.append_history(
                HistoryEntry(
                    id="h2",
                    session_id="s1",
                    content=assistant_tool_calls(("call_1", "demo--hello_world", {"name": "Ada"})),
                    stop_reason=StopReason.TOOL_CALL,
                    node="assistant_node",
                )
            )

        asyncio.run(seed())
        return tmp_path / "data"

    def test_sessions_table(self, runner, data_dir):
        result = runner.invoke(main, ["--data-dir", str(data_dir), "sessions"])

        assert result.exit_code == 0
        assert "Greeting" in result.output

    def test_sessions_empty(self, runner, tmp_path):
        result = runner.invoke(main, ["--data-dir", str(tmp_path / "empty"), "sessions"])

        assert "No sessions found." in result.output

    def test_history_table(self, runner, data_dir):
        result = runner.invoke(main, ["--data-dir", str(data_dir), "history", "s1"])

        assert result.exit_code == 0
        assert "say hello" in result.output
        assert "demo--hello_world" in result.output
        assert "tool_call" in result.output

    def test_history_json(self, runner, data_dir):
        result = runner.invoke(main, ["--data-dir", str(data_dir), "history", "s1", "--format", "json"])

        entries = json.loads(result.output)
        assert [e["id"] for e in entries] == ["h1", "h2"]

    def test_history_unknown_session(self, runner, data_dir):
        result = runner.invoke(main, ["--data-dir", str(data_dir), "history", "missing"])

        assert result.exit_code == 1
        assert "Session not found: missing" in result.output
