"""Ephemeral cargo workspaces -- one throwaway project per tool invocation."""

from __future__ import annotations

import logging
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from rusty_tools.errors import ProvisioningFailed, RustyToolsError
from rusty_tools.runner import run_process

logger = logging.getLogger(__name__)

DEFAULT_CRATE_NAME = "temp_project"
WORKSPACE_PREFIX = "rusty-tools-"
ENTRY_POINT = Path("src") / "main.rs"


def _create_dir(base_dir: str | Path | None) -> Path:
	try:
		if base_dir is not None:
			Path(base_dir).mkdir(parents=True, exist_ok=True)
		return Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=base_dir))
	except OSError as exc:
		raise ProvisioningFailed(f"could not create workspace directory: {exc}") from exc


def _remove(path: Path) -> None:
	if not path.exists():
		return
	try:
		shutil.rmtree(path)
		logger.debug("Removed workspace %s", path)
	except OSError as exc:
		logger.warning("Failed to remove workspace %s: %s", path, exc)


async def _scaffold(
	path: Path, code: str, cargo: str, crate_name: str, init_timeout: float | None,
) -> None:
	"""Run `cargo init` in *path* and write *code* as the binary entry point."""
	try:
		result = await run_process(
			path, cargo, ["init", "--name", crate_name, "--vcs", "none"],
			timeout=init_timeout,
			env={"CARGO_TERM_COLOR": "never"},
		)
	except RustyToolsError as exc:
		raise ProvisioningFailed(f"cargo init could not run: {exc}") from exc
	if not result.success:
		raise ProvisioningFailed(f"cargo init failed: {result.stderr.strip()}")

	entry = path / ENTRY_POINT
	try:
		entry.parent.mkdir(parents=True, exist_ok=True)
		entry.write_text(code, encoding="utf-8")
	except OSError as exc:
		raise ProvisioningFailed(f"could not write {ENTRY_POINT}: {exc}") from exc


@asynccontextmanager
async def provision_workspace(
	code: str,
	*,
	cargo: str = "cargo",
	crate_name: str = DEFAULT_CRATE_NAME,
	base_dir: str | Path | None = None,
	init_timeout: float | None = 60.0,
) -> AsyncIterator[Path]:
	"""Yield a fresh cargo project whose `src/main.rs` holds *code*.

	The directory is unique per call and is deleted when the block exits,
	whether it exits normally, by exception, or because provisioning itself
	failed.

	Raises:
		ProvisioningFailed: Directory creation, `cargo init`, or the source
			write failed.
	"""
	path = _create_dir(base_dir)
	try:
		await _scaffold(path, code, cargo, crate_name, init_timeout)
		logger.debug("Provisioned workspace %s", path)
		yield path
	finally:
		_remove(path)


@asynccontextmanager
async def scratch_directory(base_dir: str | Path | None = None) -> AsyncIterator[Path]:
	"""Yield an empty throwaway directory for commands that need no project."""
	path = _create_dir(base_dir)
	try:
		yield path
	finally:
		_remove(path)
