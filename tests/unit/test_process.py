"""Unit tests for the external tool runner, using the interpreter as the tool."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

from nativepack.core.errors import ToolExecutionError
from nativepack.core.process import COMMAND_NOT_FOUND, ToolRunner


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


class TestRun:
    def test_success_collects_merged_output(self):
        runner = ToolRunner()
        result = runner.run(_python(
            "import sys; print('out'); sys.stdout.flush(); print('err', file=sys.stderr)"
        ))
        assert result.succeeded
        assert "out" in result.output
        assert "err" in result.output

    def test_failure_raises_with_code_and_output(self, tmp_path: Path):
        runner = ToolRunner()
        with pytest.raises(ToolExecutionError) as excinfo:
            runner.run(_python("print('broken'); raise SystemExit(3)"), cwd=tmp_path)
        error = excinfo.value
        assert error.exit_code == 3
        assert "broken" in error.output
        assert "Exec failed with code 3" in error.message
        assert str(tmp_path) in error.message

    def test_probe_returns_non_zero_exit(self):
        result = ToolRunner().run(_python("raise SystemExit(1)"), probe_only=True)
        assert result.exit_code == 1
        assert not result.succeeded

    def test_missing_tool_raises_even_when_probing(self, tmp_path: Path):
        with pytest.raises(ToolExecutionError) as excinfo:
            ToolRunner().run([str(tmp_path / "no-such-tool")], probe_only=True)
        assert excinfo.value.exit_code == COMMAND_NOT_FOUND

    def test_timeout_kills_the_tool(self):
        with pytest.raises(ToolExecutionError):
            ToolRunner().run(_python("import time; time.sleep(30)"), timeout=0.5)

    def test_echo_logs_output_at_info(self, caplog):
        runner = ToolRunner(echo=True)
        with caplog.at_level(logging.INFO, logger="nativepack.core.process"):
            runner.run(_python("print('visible line')"))
        assert "visible line" in caplog.text


class TestProcessOutput:
    def test_stdout_lines_are_returned(self):
        code, lines = ToolRunner().process_output(_python("print('a'); print('b')"))
        assert code == 0
        assert lines == ["a", "b"]

    def test_exit_code_is_reported(self):
        code, lines = ToolRunner().process_output(_python("raise SystemExit(2)"))
        assert code == 2
        assert lines == []
