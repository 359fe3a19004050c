"""Tests for the async process runner."""

from __future__ import annotations

import os
import sys

import pytest

from rusty_tools import runner
from rusty_tools.errors import DrainFailed, SpawnFailed, TimedOut
from rusty_tools.runner import run_process


class TestCapture:
	async def test_captures_both_streams(self, tmp_path, script) -> None:
		path = script("""
			import sys
			print("to stdout")
			print("to stderr", file=sys.stderr)
		""")
		result = await run_process(tmp_path, sys.executable, [str(path)])
		assert result.status == 0
		assert result.success
		assert result.stdout.strip() == "to stdout"
		assert result.stderr.strip() == "to stderr"

	async def test_large_output_on_both_streams_does_not_deadlock(self, tmp_path, script) -> None:
		# Far beyond any pipe buffer, written alternately to both pipes
		path = script("""
			import sys
			chunk = "x" * 4096
			for _ in range(512):
				sys.stdout.write(chunk)
				sys.stderr.write(chunk)
			sys.stdout.flush()
			sys.stderr.flush()
		""")
		result = await run_process(tmp_path, sys.executable, [str(path)], timeout=30)
		assert result.status == 0
		assert len(result.stdout) == 4096 * 512
		assert len(result.stderr) == 4096 * 512

	async def test_nonzero_exit_is_not_an_error(self, tmp_path, script) -> None:
		path = script("""
			import sys
			print("boom", file=sys.stderr)
			sys.exit(3)
		""")
		result = await run_process(tmp_path, sys.executable, [str(path)])
		assert result.status == 3
		assert not result.success
		assert "boom" in result.stderr

	async def test_invalid_utf8_is_replaced(self, tmp_path, script) -> None:
		path = script("""
			import sys
			sys.stdout.buffer.write(b"ok \\xff\\xfe end")
		""")
		result = await run_process(tmp_path, sys.executable, [str(path)])
		assert result.stdout.startswith("ok ")
		assert result.stdout.endswith(" end")
		assert "�" in result.stdout

	async def test_cwd_and_env_overrides(self, tmp_path, script) -> None:
		workdir = tmp_path / "work"
		workdir.mkdir()
		path = script("""
			import os
			print(os.getcwd())
			print(os.environ["CARGO_TERM_COLOR"])
			print(os.environ.get("PATH") is not None)
		""")
		result = await run_process(
			workdir, sys.executable, [str(path)], env={"CARGO_TERM_COLOR": "never"},
		)
		cwd, color, has_path = result.stdout.splitlines()
		assert os.path.realpath(cwd) == os.path.realpath(workdir)
		assert color == "never"
		assert has_path == "True"

	async def test_duration_covers_runtime(self, tmp_path, script) -> None:
		path = script("""
			import time
			time.sleep(0.2)
		""")
		result = await run_process(tmp_path, sys.executable, [str(path)])
		assert result.duration_ms >= 200

	async def test_stdin_is_closed(self, tmp_path, script) -> None:
		path = script("""
			import sys
			print(repr(sys.stdin.read()))
		""")
		result = await run_process(tmp_path, sys.executable, [str(path)], timeout=10)
		assert result.stdout.strip() == "''"


class TestFailures:
	async def test_missing_executable_raises_spawn_failed(self, tmp_path) -> None:
		with pytest.raises(SpawnFailed) as exc_info:
			await run_process(tmp_path, str(tmp_path / "no-such-binary"), ["--version"])
		assert "no-such-binary" in exc_info.value.command
		assert exc_info.value.to_dict()["error"] == "SpawnFailed"

	async def test_missing_cwd_raises_spawn_failed(self, tmp_path) -> None:
		with pytest.raises(SpawnFailed):
			await run_process(tmp_path / "missing", sys.executable, ["-c", "pass"])

	async def test_timeout_kills_and_reaps_child(self, tmp_path, script) -> None:
		pid_file = tmp_path / "child.pid"
		path = script(f"""
			import os, time
			with open({str(pid_file)!r}, "w") as f:
				f.write(str(os.getpid()))
			time.sleep(60)
		""")
		with pytest.raises(TimedOut) as exc_info:
			await run_process(tmp_path, sys.executable, [str(path)], timeout=2)
		assert exc_info.value.timeout == 2
		assert exc_info.value.to_dict()["timeout_s"] == 2

		pid = int(pid_file.read_text())
		with pytest.raises(ProcessLookupError):
			os.kill(pid, 0)

	async def test_signaled_child_reports_minus_one(self, tmp_path, script) -> None:
		path = script("""
			import os, signal
			os.kill(os.getpid(), signal.SIGKILL)
		""")
		result = await run_process(tmp_path, sys.executable, [str(path)])
		assert result.status == -1
		assert not result.success

	async def test_drain_error_raises_drain_failed(self, tmp_path, monkeypatch) -> None:
		async def broken_drain(stream):
			raise OSError("pipe exploded")

		monkeypatch.setattr(runner, "_drain", broken_drain)
		with pytest.raises(DrainFailed) as exc_info:
			await run_process(tmp_path, sys.executable, ["-c", "pass"])
		assert exc_info.value.stream == "stdout"
		assert "pipe exploded" in exc_info.value.cause
