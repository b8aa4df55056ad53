"""Tests for the agentherd CLI."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from agentherd.cli import app

runner = CliRunner()

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def _isolated(monkeypatch, tmp_path) -> None:
    for var in ("AGENTHERD_COMMAND", "AGENTHERD_LOG_FILE", "AGENTHERD_MAX_OUTPUT_LINES"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


class TestDetect:
    def test_prompt_found(self) -> None:
        result = runner.invoke(app, ["detect", str(FIXTURES_DIR / "bash_prompt.txt")])
        assert result.exit_code == 0
        assert "Bash" in result.output
        assert "Yes" in result.output

    def test_prompt_json(self) -> None:
        result = runner.invoke(
            app, ["detect", "--json", str(FIXTURES_DIR / "bash_prompt_three_options.txt")]
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["prompt"]["tool"] == "Bash"
        assert [o["number"] for o in data["prompt"]["options"]] == ["1", "2", "3"]
        assert data["bypass_warning"] is False

    def test_no_prompt(self) -> None:
        result = runner.invoke(app, ["detect", str(FIXTURES_DIR / "answered_prompt.txt")])
        assert result.exit_code == 1
        assert "No permission prompt detected" in result.output

    def test_bypass_warning_reported(self) -> None:
        result = runner.invoke(
            app, ["detect", "--json", str(FIXTURES_DIR / "bypass_warning.txt")]
        )
        assert result.exit_code == 1
        assert json.loads(result.output) == {"prompt": None, "bypass_warning": True}

    def test_missing_file(self, tmp_path) -> None:
        result = runner.invoke(app, ["detect", str(tmp_path / "nope.txt")])
        assert result.exit_code == 2


class TestRun:
    def test_streams_output_and_exit_code(self, monkeypatch) -> None:
        monkeypatch.setenv("AGENTHERD_COMMAND", sys.executable)
        script = "import sys; print('hello from agent', flush=True); sys.exit(4)"
        result = runner.invoke(app, ["run", "--no-input", "--", "-c", script])
        assert "hello from agent" in result.output
        assert result.exit_code == 4

    def test_shows_detected_prompt(self, monkeypatch) -> None:
        monkeypatch.setenv("AGENTHERD_COMMAND", sys.executable)
        monkeypatch.setenv("PYTHONIOENCODING", "utf-8")
        script = (
            "import time\n"
            "for line in ['Bash(ls -la)', '', 'Do you want to proceed?', "
            "'\\u276f 1. Yes', '  2. No', 'Esc to cancel']:\n"
            "    print(line, flush=True)\n"
            "time.sleep(0.2)\n"
        )
        result = runner.invoke(app, ["run", "--no-input", "--", "-c", script])
        assert result.exit_code == 0
        assert "Permission requested: Bash" in result.output

    def test_missing_executable(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("AGENTHERD_COMMAND", str(tmp_path / "no-such-agent"))
        result = runner.invoke(app, ["run", "--no-input"])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_missing_cwd(self, tmp_path) -> None:
        result = runner.invoke(app, ["run", "--no-input", "--cwd", str(tmp_path / "gone")])
        assert result.exit_code == 2
