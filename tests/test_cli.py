"""Tests for the promptbench CLI."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from promptbench.cli import app
from promptbench.models import Prompt
from promptbench.store import SQLiteStore

runner = CliRunner()


def _json_tail(output: str):
    """The JSON document the command printed last (log lines may precede it)."""
    lines = output.splitlines()
    start = max(i for i, line in enumerate(lines) if line in ("{", "["))
    return json.loads("\n".join(lines[start:]))


def _mock_litellm_response(content: str) -> MagicMock:
    resp = MagicMock()
    resp.choices = [MagicMock()]
    resp.choices[0].message.content = content
    resp.model = "gpt-4"
    resp.usage.total_tokens = 33
    return resp


@pytest.fixture
def db_path(monkeypatch, tmp_path):
    path = tmp_path / "bench.db"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PROMPTBENCH_DB_PATH", str(path))
    monkeypatch.setenv("PROMPTBENCH_LOG_LEVEL", "warning")
    monkeypatch.setattr("promptbench.cli._init_logging", lambda level: None)
    return path


@pytest.fixture
def saved_prompt(db_path) -> Prompt:
    store = SQLiteStore(db_path)
    prompt = store.insert_prompt(Prompt(id="p-cli", name="ICP", generated_prompt="Analyze this."))
    store.close()
    return prompt


class TestConfigCommand:
    def test_shows_settings_without_key(self, db_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-very-secret")
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert str(db_path) in result.output
        assert "OPENAI_API_KEY set" in result.output
        assert "sk-very-secret" not in result.output


class TestTestCommand:
    def test_json_output(self, saved_prompt, tmp_path):
        data_file = tmp_path / "data.json"
        data_file.write_text('{"orders": 3}')
        mock = AsyncMock(return_value=_mock_litellm_response("- insight one\n- insight two"))
        with patch("litellm.acompletion", new=mock), patch("litellm.completion_cost", return_value=0.0):
            result = runner.invoke(app, ["test", saved_prompt.id, str(data_file), "--json"])

        assert result.exit_code == 0, result.output
        data = _json_tail(result.output)
        assert data["promptId"] == saved_prompt.id
        assert data["jsonData"] == {"orders": 3}
        assert data["result"]["insights"] == ["insight one", "insight two"]

        store = SQLiteStore(tmp_path / "bench.db")
        assert len(store.list_test_results(saved_prompt.id)) == 1
        store.close()

    def test_model_override(self, saved_prompt, tmp_path):
        data_file = tmp_path / "notes.txt"
        data_file.write_text("free text")
        mock = AsyncMock(return_value=_mock_litellm_response("ok"))
        with patch("litellm.acompletion", new=mock), patch("litellm.completion_cost", return_value=0.0):
            result = runner.invoke(app, ["test", saved_prompt.id, str(data_file), "--model", "gpt-4o-mini"])
        assert result.exit_code == 0, result.output
        assert mock.call_args.kwargs["model"] == "gpt-4o-mini"
        assert "```text\nfree text\n```" in mock.call_args.kwargs["messages"][1]["content"]

    def test_unknown_prompt_exits_1(self, db_path, tmp_path):
        data_file = tmp_path / "data.json"
        data_file.write_text("{}")
        result = runner.invoke(app, ["test", "missing", str(data_file)])
        assert result.exit_code == 1
        assert "Prompt not found" in result.output


class TestAnalyticsCommand:
    def test_overall_json(self, saved_prompt):
        result = runner.invoke(app, ["analytics", "--json"])
        assert result.exit_code == 0, result.output
        rows = _json_tail(result.output)
        assert rows[0]["promptId"] == saved_prompt.id
        assert rows[0]["totalTests"] == 0

    def test_per_prompt_table(self, saved_prompt):
        result = runner.invoke(app, ["analytics", "--prompt", saved_prompt.id, "--start", "2026-01-01"])
        assert result.exit_code == 0, result.output
        assert "No test results yet." in result.output
