"""Route tool calls to the execution pipeline or the store and shape replies.

An execution call runs: validate arguments -> provision a workspace -> run
the cargo command -> (when ``persist`` is set) extract diagnostics and store
the run. Persistence is a side condition of the reply: its failures are
reported under ``"persistence"`` and never replace the execution payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from rusty_tools.config import PersistenceConfig, ServerConfig
from rusty_tools.db import DEFAULT_HISTORY_LIMIT, Database
from rusty_tools.diagnostics import extract_diagnostics, extract_lint_todos
from rusty_tools.errors import (
	PersistenceUnavailable,
	RustyToolsError,
	SpawnFailed,
	UnknownTool,
)
from rusty_tools.models import ExecutionResult
from rusty_tools.runner import run_process
from rusty_tools.tools import EXEC_BY_NAME, RUST_ANALYZER, RUST_ANALYZER_ARGS, ExecTool, tool_names
from rusty_tools.validation import (
	CodeArgs,
	CompleteTodoArgs,
	ExplainArgs,
	HistoryArgs,
	SearchArgs,
	TodosArgs,
	TrimArgs,
	check_error_code,
	check_source,
	parse_args,
)
from rusty_tools.workspace import provision_workspace, scratch_directory

logger = logging.getLogger(__name__)

CARGO_ENV = {"CARGO_TERM_COLOR": "never"}


@dataclass(frozen=True)
class NoStore:
	"""Persistence is off or the store could not be opened."""

	reason: str


@dataclass(frozen=True)
class Store:
	db: Database


StoreSlot = NoStore | Store


def open_store(config: PersistenceConfig) -> StoreSlot:
	"""Open the configured database, or explain why there is none."""
	if not config.enabled:
		return NoStore("persistence is disabled")
	path = config.resolved_path
	try:
		db = Database(path)
	except PersistenceUnavailable as exc:
		logger.warning("Running without persistence: %s", exc.reason)
		return NoStore(exc.reason)
	logger.info("Persisting tool runs to %s", path)
	return Store(db)


class Dispatcher:
	"""Maps tool names to handlers. The store is fixed at construction."""

	def __init__(self, config: ServerConfig, store: StoreSlot) -> None:
		self.config = config
		self.store = store

	def close(self) -> None:
		if isinstance(self.store, Store):
			self.store.db.close()

	async def dispatch(self, name: str, arguments: dict | None = None) -> dict[str, Any]:
		"""Run tool *name* and return its JSON-ready reply.

		Raises:
			UnknownTool: *name* is not in the catalog.
			RustyToolsError: Validation or execution failed.
		"""
		args = arguments or {}
		if name == RUST_ANALYZER.name:
			return await self._rust_analyzer(args)
		if name in EXEC_BY_NAME:
			return await self._exec(EXEC_BY_NAME[name], args)
		if name == "rustc_explain":
			return await self._rustc_explain(args)
		if name == "cargo_search":
			return await self._cargo_search(args)
		if name == "cargo_history":
			return await self._history(args)
		if name == "cargo_todos":
			return await self._todos(args)
		if name == "db_stats":
			return await self._stats()
		if name == "complete_todo":
			return await self._complete_todo(args)
		if name == "db_trim":
			return await self._trim(args)
		raise UnknownTool(name, tool_names())

	# -- Execution tools --

	def _code_args(self, tool_name: str, args: dict) -> CodeArgs:
		parsed = parse_args(tool_name, CodeArgs, args)
		check_source(tool_name, parsed.code, self.config.policy)
		return parsed

	async def _exec(self, tool: ExecTool, args: dict) -> dict[str, Any]:
		parsed = self._code_args(tool.name, args)
		toolchain = self.config.toolchain
		async with provision_workspace(
			parsed.code,
			cargo=toolchain.cargo,
			crate_name=toolchain.crate_name,
			base_dir=toolchain.workspace_dir or None,
			init_timeout=toolchain.init_timeout,
		) as workspace:
			result = await run_process(
				workspace, toolchain.cargo, tool.cargo_args,
				timeout=self.config.timeouts.for_tool(tool.name),
				env=CARGO_ENV,
			)
		return await self._reply(tool, result, parsed.persist)

	async def _rust_analyzer(self, args: dict) -> dict[str, Any]:
		parsed = self._code_args(RUST_ANALYZER.name, args)
		toolchain = self.config.toolchain
		timeout = self.config.timeouts.for_tool(RUST_ANALYZER.name)
		async with provision_workspace(
			parsed.code,
			cargo=toolchain.cargo,
			crate_name=toolchain.crate_name,
			base_dir=toolchain.workspace_dir or None,
			init_timeout=toolchain.init_timeout,
		) as workspace:
			backend = "rust-analyzer"
			try:
				result = await run_process(
					workspace, toolchain.rust_analyzer, RUST_ANALYZER_ARGS,
					timeout=timeout, env=CARGO_ENV,
				)
			except SpawnFailed as exc:
				logger.info("rust-analyzer unavailable (%s), falling back to cargo check", exc.cause)
				result = None
			if result is None or not result.success:
				backend = "cargo-check"
				result = await run_process(
					workspace, toolchain.cargo, RUST_ANALYZER.cargo_args,
					timeout=timeout, env=CARGO_ENV,
				)
		reply = await self._reply(RUST_ANALYZER, result, parsed.persist)
		reply["backend"] = backend
		return reply

	async def _reply(self, tool: ExecTool, result: ExecutionResult, persist: bool) -> dict[str, Any]:
		reply: dict[str, Any] = {"tool": tool.name, **result.to_payload()}
		if persist:
			reply["persistence"] = await self._persist(tool, result)
		return reply

	async def _persist(self, tool: ExecTool, result: ExecutionResult) -> dict[str, Any]:
		if isinstance(self.store, NoStore):
			logger.warning("persist requested for %s but %s", tool.name, self.store.reason)
			return PersistenceUnavailable(self.store.reason).to_dict()

		db = self.store.db
		diagnostics = extract_diagnostics(result.stderr)
		todos = extract_lint_todos(result.stderr) if tool.lint else []
		try:
			recorded = await db.locked_call("record_run", tool.name, result, diagnostics, todos)
		except RustyToolsError as exc:
			logger.warning("Failed to persist %s run: %s", tool.name, exc)
			return exc.to_dict()
		outcome = recorded.to_dict()

		retain = self.config.persistence.retain_analyses
		if retain > 0:
			try:
				outcome["trimmed"] = await db.locked_call("trim", retain)
			except RustyToolsError as exc:
				logger.warning("Failed to trim store to %d analyses: %s", retain, exc)
				outcome["trim_error"] = exc.to_dict()
		return outcome

	# -- Toolchain lookups --

	async def _rustc_explain(self, args: dict) -> dict[str, Any]:
		parsed = parse_args("rustc_explain", ExplainArgs, args)
		code = check_error_code("rustc_explain", parsed.error_code)
		async with scratch_directory(self.config.toolchain.workspace_dir or None) as scratch:
			result = await run_process(
				scratch, self.config.toolchain.rustc, ["--explain", code],
				timeout=self.config.timeouts.for_tool("rustc_explain"),
				env=CARGO_ENV,
			)
		return {
			"error_code": code,
			"explanation": result.stdout,
			"stderr": result.stderr,
			"success": result.success,
		}

	async def _cargo_search(self, args: dict) -> dict[str, Any]:
		parsed = parse_args("cargo_search", SearchArgs, args)
		async with scratch_directory(self.config.toolchain.workspace_dir or None) as scratch:
			result = await run_process(
				scratch, self.config.toolchain.cargo, ["search", parsed.query],
				timeout=self.config.timeouts.for_tool("cargo_search"),
				env=CARGO_ENV,
			)
		return {
			"query": parsed.query,
			"results": result.stdout,
			"stderr": result.stderr,
			"success": result.success,
		}

	# -- Store queries --

	def _require_db(self) -> Database:
		if isinstance(self.store, NoStore):
			raise PersistenceUnavailable(self.store.reason)
		return self.store.db

	async def _history(self, args: dict) -> dict[str, Any]:
		parsed = parse_args("cargo_history", HistoryArgs, args)
		db = self._require_db()
		code = parsed.error_code.strip() if parsed.error_code else None
		limit = parsed.limit or DEFAULT_HISTORY_LIMIT
		errors = await db.locked_call("query_error_history", code or None, limit)
		return {
			"error_code": code or None,
			"limit": limit,
			"count": len(errors),
			"errors": [e.to_dict() for e in errors],
		}

	async def _todos(self, args: dict) -> dict[str, Any]:
		parsed = parse_args("cargo_todos", TodosArgs, args)
		db = self._require_db()
		todos = await db.locked_call("query_todos", parsed.show_completed)
		return {
			"show_completed": parsed.show_completed,
			"count": len(todos),
			"todos": [t.to_dict() for t in todos],
		}

	async def _stats(self) -> dict[str, Any]:
		db = self._require_db()
		stats = await db.locked_call("stats")
		return {"stats": stats.to_dict()}

	async def _complete_todo(self, args: dict) -> dict[str, Any]:
		parsed = parse_args("complete_todo", CompleteTodoArgs, args)
		db = self._require_db()
		completed = await db.locked_call("mark_todo_completed", parsed.todo_id)
		return {"todo_id": parsed.todo_id, "completed": completed}

	async def _trim(self, args: dict) -> dict[str, Any]:
		parsed = parse_args("db_trim", TrimArgs, args)
		db = self._require_db()
		deleted = await db.locked_call("trim", parsed.keep)
		return {"keep": parsed.keep, "deleted": deleted}
