"""TOML configuration loader for rusty-tools."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "rusty-tools.toml"
DEFAULT_DB_NAME = "rusty-tools.db"

ENV_DB_PATH = "RUSTY_TOOLS_DB_PATH"
ENV_NO_PERSIST = "RUSTY_TOOLS_NO_PERSIST"
ENV_CONFIG = "RUSTY_TOOLS_CONFIG"

_TRUTHY = {"1", "true", "yes", "on"}


def default_db_path() -> Path:
	"""~/.rusty-tools/rusty-tools.db, else $XDG_DATA_HOME/rusty-tools/, else ./"""
	home = os.environ.get("HOME")
	if home:
		return Path(home) / ".rusty-tools" / DEFAULT_DB_NAME
	xdg = os.environ.get("XDG_DATA_HOME")
	if xdg:
		return Path(xdg) / "rusty-tools" / DEFAULT_DB_NAME
	logger.warning("No HOME or XDG_DATA_HOME set, using current directory for DB")
	return Path(DEFAULT_DB_NAME)


@dataclass
class PersistenceConfig:
	"""Where and whether tool runs are recorded."""

	enabled: bool = True
	db_path: str = ""  # empty -> default_db_path()
	retain_analyses: int = 0  # trim to this many analyses after each run; 0 keeps all

	@property
	def resolved_path(self) -> Path:
		if self.db_path:
			return Path(os.path.expanduser(self.db_path))
		return default_db_path()


@dataclass
class ToolchainConfig:
	"""External binaries and workspace scaffolding."""

	cargo: str = "cargo"
	rustc: str = "rustc"
	rust_analyzer: str = "rust-analyzer"
	crate_name: str = "temp_project"
	workspace_dir: str = ""  # empty -> system temp dir
	init_timeout: float = 60.0


@dataclass
class TimeoutsConfig:
	"""Per-tool deadlines in seconds. 0 waits without a deadline."""

	cargo_fmt: float = 0
	cargo_clippy: float = 30
	cargo_check: float = 30
	cargo_build: float = 60
	cargo_test: float = 60
	cargo_fix: float = 60
	cargo_audit: float = 60
	cargo_tree: float = 30
	cargo_doc: float = 60
	rust_analyzer: float = 30
	rustc_explain: float = 30
	cargo_search: float = 30

	def for_tool(self, name: str) -> float | None:
		value = getattr(self, name, 0)
		return float(value) if value and value > 0 else None


@dataclass
class PolicyConfig:
	"""Source-text acceptance rules. A coarse filter, not a sandbox."""

	max_code_length: int = 100_000
	blocked_patterns: list[str] = field(default_factory=lambda: [
		"std::process::Command",
		"std::fs::",
		"std::net::",
		"unsafe",
	])


@dataclass
class ServerConfig:
	"""Top-level rusty-tools configuration."""

	persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
	toolchain: ToolchainConfig = field(default_factory=ToolchainConfig)
	timeouts: TimeoutsConfig = field(default_factory=TimeoutsConfig)
	policy: PolicyConfig = field(default_factory=PolicyConfig)


def _build_persistence(data: dict[str, Any]) -> PersistenceConfig:
	pc = PersistenceConfig()
	if "enabled" in data:
		pc.enabled = bool(data["enabled"])
	if "db_path" in data:
		pc.db_path = str(data["db_path"])
	if "retain_analyses" in data:
		pc.retain_analyses = int(data["retain_analyses"])
	return pc


def _build_toolchain(data: dict[str, Any]) -> ToolchainConfig:
	tc = ToolchainConfig()
	for key in ("cargo", "rustc", "rust_analyzer", "crate_name", "workspace_dir"):
		if key in data:
			setattr(tc, key, str(data[key]))
	if "init_timeout" in data:
		tc.init_timeout = float(data["init_timeout"])
	return tc


def _build_timeouts(data: dict[str, Any]) -> TimeoutsConfig:
	tc = TimeoutsConfig()
	known = {f.name for f in fields(TimeoutsConfig)}
	for key, value in data.items():
		if key not in known:
			logger.warning("Ignoring timeout for unknown tool: %s", key)
			continue
		setattr(tc, key, float(value))
	return tc


def _build_policy(data: dict[str, Any]) -> PolicyConfig:
	pc = PolicyConfig()
	if "max_code_length" in data:
		pc.max_code_length = int(data["max_code_length"])
	if "blocked_patterns" in data:
		pc.blocked_patterns = [str(p) for p in data["blocked_patterns"]]
	return pc


def _apply_env(sc: ServerConfig) -> None:
	db_path = os.environ.get(ENV_DB_PATH)
	if db_path:
		sc.persistence.db_path = db_path
	if os.environ.get(ENV_NO_PERSIST, "").strip().lower() in _TRUTHY:
		sc.persistence.enabled = False


def load_config(path: str | Path | None = None) -> ServerConfig:
	"""Load a rusty-tools.toml config file and apply environment overrides.

	Args:
		path: Path to the TOML file. When omitted, $RUSTY_TOOLS_CONFIG or
			./rusty-tools.toml is used if present; otherwise defaults apply.

	Raises:
		FileNotFoundError: An explicitly given config file doesn't exist.
		tomllib.TOMLDecodeError: If config is invalid TOML.
	"""
	data: dict[str, Any] = {}
	if path is not None:
		config_path = Path(path)
		if not config_path.exists():
			raise FileNotFoundError(f"Config file not found: {config_path}")
	else:
		config_path = Path(os.environ.get(ENV_CONFIG) or DEFAULT_CONFIG)
	if config_path.exists():
		with open(config_path, "rb") as f:
			data = tomllib.load(f)
		logger.debug("Loaded config from %s", config_path)

	sc = ServerConfig()
	if "persistence" in data:
		sc.persistence = _build_persistence(data["persistence"])
	if "toolchain" in data:
		sc.toolchain = _build_toolchain(data["toolchain"])
	if "timeouts" in data:
		sc.timeouts = _build_timeouts(data["timeouts"])
	if "policy" in data:
		sc.policy = _build_policy(data["policy"])
	_apply_env(sc)
	return sc


def validate_config(config: ServerConfig) -> list[tuple[str, str]]:
	"""Return (level, message) issues; level is "error" or "warning"."""
	issues: list[tuple[str, str]] = []
	if config.persistence.retain_analyses < 0:
		issues.append(("error", "persistence.retain_analyses must be >= 0"))
	if config.policy.max_code_length <= 0:
		issues.append(("error", "policy.max_code_length must be positive"))
	if config.toolchain.init_timeout <= 0:
		issues.append(("error", "toolchain.init_timeout must be positive"))
	for f in fields(TimeoutsConfig):
		if getattr(config.timeouts, f.name) < 0:
			issues.append(("error", f"timeouts.{f.name} must be >= 0"))
	if not config.toolchain.crate_name.replace("_", "").isalnum():
		issues.append(("error", f"toolchain.crate_name is not a valid crate name: {config.toolchain.crate_name!r}"))
	if not config.persistence.enabled:
		issues.append(("warning", "persistence is disabled; persist=true calls will report PersistenceUnavailable"))
	if not config.policy.blocked_patterns:
		issues.append(("warning", "policy.blocked_patterns is empty; all source text is accepted"))
	return issues
