"""Shared pytest fixtures and factory functions for rusty-tools tests."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable

import pytest

from rusty_tools.config import ServerConfig
from rusty_tools.db import Database


@pytest.fixture()
def db() -> Database:
	"""In-memory Database with schema initialized."""
	return Database(":memory:")


@pytest.fixture()
def config(tmp_path: Path) -> ServerConfig:
	"""Default ServerConfig with workspaces under tmp_path and no file-backed store."""
	cfg = ServerConfig()
	cfg.toolchain.workspace_dir = str(tmp_path / "workspaces")
	cfg.persistence.db_path = str(tmp_path / "rusty-tools.db")
	return cfg


@pytest.fixture()
def script(tmp_path: Path) -> Callable[[str], Path]:
	"""Write a Python script under tmp_path and return its path.

	Run it as ``run_process(cwd, sys.executable, [str(path)])`` to get a
	portable child process.
	"""
	counter = iter(range(1000))

	def _write(body: str) -> Path:
		path = tmp_path / f"child_{next(counter)}.py"
		path.write_text(textwrap.dedent(body))
		return path

	return _write

