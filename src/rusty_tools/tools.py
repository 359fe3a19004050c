"""Catalog of the tools rusty-tools exposes.

Execution tools run a cargo sub-command against caller source text inside a
fresh workspace. Lookup tools either call the toolchain without a project
(``rustc --explain``, ``cargo search``) or read the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CODE_SCHEMA: dict[str, Any] = {
	"type": "object",
	"properties": {
		"code": {"type": "string", "description": "Rust source written to src/main.rs"},
		"persist": {
			"type": "boolean",
			"description": "Store the run, its diagnostics and lint todos",
			"default": False,
		},
	},
	"required": ["code"],
}


@dataclass(frozen=True)
class ExecTool:
	"""A cargo invocation run inside a provisioned workspace."""

	name: str
	description: str
	cargo_args: tuple[str, ...]
	lint: bool = False  # extract lint todos when persisting


@dataclass(frozen=True)
class LookupTool:
	name: str
	description: str
	input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


EXEC_TOOLS: tuple[ExecTool, ...] = (
	ExecTool("cargo_fmt", "Format Rust code with rustfmt and return the formatted source.", ("fmt", "--", "--emit=stdout")),
	ExecTool("cargo_clippy", "Lint Rust code with clippy, treating warnings as errors.", ("clippy", "--", "-D", "warnings"), lint=True),
	ExecTool("cargo_check", "Type-check Rust code without producing a binary.", ("check",)),
	ExecTool("cargo_build", "Compile Rust code.", ("build",)),
	ExecTool("cargo_test", "Compile and run the tests in Rust code.", ("test",)),
	ExecTool("cargo_fix", "Apply compiler-suggested fixes to Rust code.", ("fix", "--allow-dirty")),
	ExecTool("cargo_audit", "Audit the project's dependencies for known advisories.", ("audit",)),
	ExecTool("cargo_tree", "Show the project's dependency tree.", ("tree",)),
	ExecTool("cargo_doc", "Build documentation for Rust code.", ("doc",)),
)

RUST_ANALYZER = ExecTool(
	"rust_analyzer",
	"Collect rust-analyzer diagnostics, falling back to cargo check JSON output.",
	("check", "--message-format=json"),
)
RUST_ANALYZER_ARGS: tuple[str, ...] = ("analysis-stats", "--quiet", ".")

LOOKUP_TOOLS: tuple[LookupTool, ...] = (
	LookupTool(
		"rustc_explain",
		"Explain a rustc error code, e.g. E0308.",
		{
			"type": "object",
			"properties": {
				"error_code": {"type": "string", "description": "Error code like E0308"},
			},
			"required": ["error_code"],
		},
	),
	LookupTool(
		"cargo_search",
		"Search crates.io for crates matching a query.",
		{
			"type": "object",
			"properties": {
				"query": {"type": "string", "description": "Search terms"},
			},
			"required": ["query"],
		},
	),
	LookupTool(
		"cargo_history",
		"List stored diagnostics newest first, optionally for one error code.",
		{
			"type": "object",
			"properties": {
				"error_code": {"type": "string", "description": "Only return this code (e.g. E0308, WARNING)"},
				"limit": {"type": "integer", "description": "Maximum rows (default 10)"},
			},
		},
	),
	LookupTool(
		"cargo_todos",
		"List todos extracted from clippy runs.",
		{
			"type": "object",
			"properties": {
				"show_completed": {"type": "boolean", "description": "Include completed todos", "default": False},
			},
		},
	),
	LookupTool("db_stats", "Counts of stored analyses, errors and todos."),
	LookupTool(
		"complete_todo",
		"Mark a todo as completed.",
		{
			"type": "object",
			"properties": {
				"todo_id": {"type": "integer", "description": "ID of the todo"},
			},
			"required": ["todo_id"],
		},
	),
	LookupTool(
		"db_trim",
		"Delete all but the newest analyses and their errors. Todos are kept.",
		{
			"type": "object",
			"properties": {
				"keep": {"type": "integer", "description": "Number of analyses to keep"},
			},
			"required": ["keep"],
		},
	),
)

EXEC_BY_NAME: dict[str, ExecTool] = {t.name: t for t in (*EXEC_TOOLS, RUST_ANALYZER)}


def tool_names() -> list[str]:
	return [t.name for t in (*EXEC_TOOLS, RUST_ANALYZER)] + [t.name for t in LOOKUP_TOOLS]
