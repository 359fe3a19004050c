"""Process runner -- spawn a command, drain both pipes concurrently, enforce a deadline.

The child gets its own process group so a timeout can take down anything it
forked (cargo -> rustc -> linker). Both output pipes are read by background
tasks that start before we wait for exit; waiting on exit with an undrained
pipe lets a chatty child block forever on a full pipe buffer.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import signal
import time
from pathlib import Path
from typing import Sequence

from rusty_tools.errors import DrainFailed, SpawnFailed, TimedOut
from rusty_tools.models import KILLED_STATUS, ExecutionResult

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


async def _drain(stream: asyncio.StreamReader | None) -> bytes:
	"""Read *stream* until EOF."""
	if stream is None:
		return b""
	chunks: list[bytes] = []
	while True:
		chunk = await stream.read(_READ_CHUNK)
		if not chunk:
			break
		chunks.append(chunk)
	return b"".join(chunks)


async def _terminate(proc: asyncio.subprocess.Process) -> None:
	"""Kill the child's process group and reap it."""
	if proc.returncode is None:
		try:
			if hasattr(os, "killpg"):
				os.killpg(proc.pid, signal.SIGKILL)
			else:
				proc.kill()
		except ProcessLookupError:
			pass
		except PermissionError:
			# Group already gone but the leader is still a zombie; kill it directly.
			try:
				proc.kill()
			except ProcessLookupError:
				pass
	await proc.wait()


async def _abandon(*tasks: asyncio.Task[bytes]) -> None:
	for task in tasks:
		if not task.done():
			task.cancel()
	await asyncio.gather(*tasks, return_exceptions=True)


async def run_process(
	cwd: str | Path,
	command: str,
	args: Sequence[str] = (),
	timeout: float | None = None,
	env: dict[str, str] | None = None,
) -> ExecutionResult:
	"""Run *command* with *args* inside *cwd* and capture both streams.

	Args:
		cwd: Working directory for the child.
		command: Executable name or path.
		args: Arguments passed after the executable.
		timeout: Seconds to wait before killing the child. ``None`` waits forever.
		env: Variables layered on top of the current environment.

	Returns:
		ExecutionResult with decoded output and the exit status (-1 if signaled).

	Raises:
		SpawnFailed: The executable could not be started.
		TimedOut: The deadline passed; the child was killed and reaped.
		DrainFailed: Reading stdout or stderr raised.
	"""
	argv = [command, *args]
	display = shlex.join(argv)
	proc_env = {**os.environ, **(env or {})}

	start = time.monotonic()
	try:
		proc = await asyncio.create_subprocess_exec(
			*argv,
			cwd=str(cwd),
			stdin=asyncio.subprocess.DEVNULL,
			stdout=asyncio.subprocess.PIPE,
			stderr=asyncio.subprocess.PIPE,
			env=proc_env,
			start_new_session=True,
		)
	except OSError as exc:
		raise SpawnFailed(display, str(exc)) from exc
	logger.debug("Spawned %s (pid %d) in %s", display, proc.pid, cwd)

	stdout_task = asyncio.create_task(_drain(proc.stdout))
	stderr_task = asyncio.create_task(_drain(proc.stderr))

	try:
		if timeout is None:
			returncode = await proc.wait()
		else:
			returncode = await asyncio.wait_for(proc.wait(), timeout=timeout)
	except asyncio.TimeoutError:
		logger.warning("%s exceeded %ss, killing pid %d", display, timeout, proc.pid)
		await _terminate(proc)
		await _abandon(stdout_task, stderr_task)
		raise TimedOut(display, timeout) from None
	except asyncio.CancelledError:
		await _terminate(proc)
		await _abandon(stdout_task, stderr_task)
		raise
	duration_ms = int((time.monotonic() - start) * 1000)

	outcomes = await asyncio.gather(stdout_task, stderr_task, return_exceptions=True)
	for stream_name, outcome in zip(("stdout", "stderr"), outcomes):
		if isinstance(outcome, BaseException):
			raise DrainFailed(stream_name, repr(outcome)) from outcome
	stdout_bytes, stderr_bytes = outcomes

	status = returncode if returncode >= 0 else KILLED_STATUS
	logger.debug(
		"%s exited with %d in %dms (stdout %d bytes, stderr %d bytes)",
		display, status, duration_ms, len(stdout_bytes), len(stderr_bytes),
	)
	return ExecutionResult(
		stdout=stdout_bytes.decode("utf-8", errors="replace"),
		stderr=stderr_bytes.decode("utf-8", errors="replace"),
		status=status,
		duration_ms=duration_ms,
	)
