import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from amana import __version__
from amana.cli.commands import app
from amana.settings import get_settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def offline_settings(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("AMANA_STATE_DIR", str(tmp_path))
    monkeypatch.setenv("AMANA_BACKEND", "dry_run")
    monkeypatch.setenv("AMANA_CLASSIFIER_BACKEND", "keywords")
    monkeypatch.setenv("AMANA_LLM_EXTRACTION", "false")
    monkeypatch.setenv("AMANA_TELEGRAM_TOKEN", "")
    monkeypatch.setenv("AMANA_OPENAI_API_KEY", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_exec_dry_run() -> None:
    result = runner.invoke(app, ["exec", "SAVE_MEMORY", "--data", json.dumps({"title": "t", "content": "c"})])
    assert result.exit_code == 0, result.output
    assert '"ok": true' in result.output


def test_exec_rejects_bad_json() -> None:
    assert runner.invoke(app, ["exec", "SAVE_MEMORY", "--data", "{"]).exit_code == 2
    assert runner.invoke(app, ["exec", "SAVE_MEMORY", "--data", "[]"]).exit_code == 2


def test_exec_failure_exit_code() -> None:
    result = runner.invoke(app, ["exec", "SAVE_MEMORY", "--data", "{}"])
    assert result.exit_code == 1
    assert "input_invalid" in result.output


def test_chat_single_message_then_context(tmp_path: Path) -> None:
    result = runner.invoke(app, ["chat", "-m", "agende uma reunião", "-c", "clitest", "--no-markdown"])
    assert result.exit_code == 0, result.output
    assert "Qual é o título da reunião?" in result.output

    shown = runner.invoke(app, ["context", "show", "clitest"])
    assert '"intent": "CREATE_EVENT"' in shown.output
    assert '"stage": "awaiting_summary"' in shown.output

    assert "clitest" in runner.invoke(app, ["context", "list"]).output
    assert runner.invoke(app, ["context", "reset", "clitest"]).exit_code == 0
    assert "No stored conversations" in runner.invoke(app, ["context", "list"]).output
