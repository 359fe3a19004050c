"""CLI interface for rusty-tools."""

from __future__ import annotations

import argparse
import logging
import sys

from rusty_tools.config import ServerConfig, load_config, validate_config
from rusty_tools.db import DEFAULT_HISTORY_LIMIT, Database
from rusty_tools.errors import RustyToolsError


def _add_common(parser: argparse.ArgumentParser) -> None:
	parser.add_argument("--config", default=None, help="Config file path (default: ./rusty-tools.toml)")
	parser.add_argument("--db", default=None, help="Database path, overrides config and environment")


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="rusty-tools",
		description="rusty-tools - Rust toolchain over MCP with a diagnostics history",
	)
	sub = parser.add_subparsers(dest="command")

	# rusty-tools serve
	serve = sub.add_parser("serve", help="Start the MCP server (stdio)")
	_add_common(serve)
	serve.add_argument("--no-persist", action="store_true", help="Never record tool runs")

	# rusty-tools history
	history = sub.add_parser("history", help="Show stored diagnostics, newest first")
	_add_common(history)
	history.add_argument("--error-code", default=None, help="Only show this code (e.g. E0308)")
	history.add_argument("--limit", type=int, default=DEFAULT_HISTORY_LIMIT)

	# rusty-tools todos
	todos = sub.add_parser("todos", help="List lint todos")
	_add_common(todos)
	todos.add_argument("--all", action="store_true", help="Include completed todos")

	# rusty-tools complete
	complete = sub.add_parser("complete", help="Mark a todo as completed")
	_add_common(complete)
	complete.add_argument("todo_id", type=int)

	# rusty-tools stats
	stats = sub.add_parser("stats", help="Show store counts")
	_add_common(stats)

	# rusty-tools trim
	trim = sub.add_parser("trim", help="Keep only the newest analyses")
	_add_common(trim)
	trim.add_argument("keep", type=int)

	# rusty-tools validate-config
	validate = sub.add_parser("validate-config", help="Validate config file semantically")
	_add_common(validate)

	return parser


def _load(args: argparse.Namespace) -> ServerConfig:
	config = load_config(args.config)
	if args.db:
		config.persistence.db_path = args.db
	return config


def _open_db(args: argparse.Namespace) -> Database:
	return Database(_load(args).persistence.resolved_path)


def cmd_serve(args: argparse.Namespace) -> int:
	"""Start the MCP server."""
	try:
		from rusty_tools.mcp_server import run_mcp_server
	except ImportError:
		print("MCP dependencies not installed. Run: pip install -e .", file=sys.stderr)
		return 1

	config = _load(args)
	if args.no_persist:
		config.persistence.enabled = False
	run_mcp_server(config)
	return 0


def cmd_history(args: argparse.Namespace) -> int:
	"""Show stored diagnostics."""
	with _open_db(args) as db:
		errors = db.query_error_history(args.error_code, args.limit)
		if not errors:
			print("No diagnostics stored yet.")
			return 0

		for e in errors:
			code = e.error_code or "-"
			location = f" {e.file}:{e.line}" if e.file else ""
			print(f"[{code}] {e.timestamp} | {e.tool} | {e.message}{location}")
			if e.suggestion:
				print(f"    help: {e.suggestion}")
		return 0


def cmd_todos(args: argparse.Namespace) -> int:
	"""List todos."""
	with _open_db(args) as db:
		todos = db.query_todos(include_completed=args.all)
		if not todos:
			print("No todos.")
			return 0

		for t in todos:
			mark = "x" if t.completed else " "
			print(f"[{mark}] {t.id} | {t.source} | {t.description}")
		return 0


def cmd_complete(args: argparse.Namespace) -> int:
	"""Mark a todo as completed."""
	with _open_db(args) as db:
		if db.mark_todo_completed(args.todo_id):
			print(f"Completed todo {args.todo_id}")
			return 0
		print(f"No todo with id {args.todo_id}")
		return 1


def cmd_stats(args: argparse.Namespace) -> int:
	"""Show store counts."""
	with _open_db(args) as db:
		stats = db.stats()
	print(f"Analyses: {stats.total_analyses}")
	print(f"Errors: {stats.total_errors}")
	print(f"Active todos: {stats.active_todos}")
	print(f"Completed todos: {stats.completed_todos}")
	return 0


def cmd_trim(args: argparse.Namespace) -> int:
	"""Delete all but the newest analyses."""
	if args.keep < 0:
		print("keep must be >= 0")
		return 1
	with _open_db(args) as db:
		deleted = db.trim(args.keep)
	print(f"Deleted {deleted} analyses (kept up to {args.keep})")
	return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
	"""Validate config file semantically."""
	config = _load(args)
	issues = validate_config(config)

	errors = [(lvl, msg) for lvl, msg in issues if lvl == "error"]
	warnings = [(lvl, msg) for lvl, msg in issues if lvl == "warning"]

	for level, msg in issues:
		print(f"[{level.upper()}] {msg}")

	if not issues:
		print("Config OK")

	print(f"\n{len(errors)} error(s), {len(warnings)} warning(s)")
	return 1 if errors else 0


COMMANDS = {
	"serve": cmd_serve,
	"history": cmd_history,
	"todos": cmd_todos,
	"complete": cmd_complete,
	"stats": cmd_stats,
	"trim": cmd_trim,
	"validate-config": cmd_validate_config,
}


def main(argv: list[str] | None = None) -> int:
	# stdout carries the MCP protocol when serving, so logs go to stderr
	logging.basicConfig(
		level=logging.INFO,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
		datefmt="%H:%M:%S",
		stream=sys.stderr,
		force=True,
	)
	parser = build_parser()
	args = parser.parse_args(argv)

	if args.command is None:
		parser.print_help()
		return 0

	handler = COMMANDS.get(args.command)
	if handler is None:
		print(f"Unknown command: {args.command}")
		return 1

	try:
		return handler(args)
	except FileNotFoundError as e:
		print(f"Error: {e}")
		return 1
	except RustyToolsError as e:
		print(f"Error: {e}")
		return 1


if __name__ == "__main__":
	sys.exit(main())
