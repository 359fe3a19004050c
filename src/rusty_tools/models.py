"""Data models for tool runs and persisted diagnostics."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

KILLED_STATUS = -1


def _now_ts() -> str:
	"""UTC timestamp in SQLite's CURRENT_TIMESTAMP layout, with microseconds."""
	return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")


@dataclass(frozen=True)
class ExecutionResult:
	"""Outcome of a single external process run."""

	stdout: str = ""
	stderr: str = ""
	status: int = KILLED_STATUS  # exit code, or -1 when signaled/unknown
	duration_ms: int = 0

	@property
	def success(self) -> bool:
		return self.status == 0

	def to_payload(self) -> dict[str, Any]:
		return {
			"status": self.status,
			"success": self.success,
			"stdout": self.stdout,
			"stderr": self.stderr,
			"duration_ms": self.duration_ms,
		}


@dataclass(frozen=True)
class Diagnostic:
	"""One finding extracted from compiler/linter stderr."""

	message: str
	code: str | None = None
	file: str | None = None
	line: int | None = None
	suggestion: str | None = None


@dataclass(frozen=True)
class TodoDraft:
	"""A todo extracted from lint output, not yet stored."""

	source: str
	description: str
	file_path: str | None = None
	line_number: int | None = None


@dataclass
class Analysis:
	"""A persisted record of one tool invocation."""

	id: int
	tool: str
	full_output: str
	success: bool
	timestamp: str = field(default_factory=_now_ts)
	file_path: str | None = None


@dataclass
class DiagnosticError:
	"""A persisted diagnostic, joined with the tool of its parent analysis."""

	id: int
	analysis_id: int
	message: str
	error_code: str | None = None
	file: str | None = None
	line: int | None = None
	suggestion: str | None = None
	timestamp: str = field(default_factory=_now_ts)
	tool: str = ""

	def to_dict(self) -> dict[str, Any]:
		return asdict(self)


@dataclass
class Todo:
	"""A completable reminder derived from lint output."""

	id: int
	source: str
	description: str
	file_path: str | None = None
	line_number: int | None = None
	completed: bool = False
	created_at: str = field(default_factory=_now_ts)

	def to_dict(self) -> dict[str, Any]:
		return asdict(self)


@dataclass(frozen=True)
class Stats:
	"""Aggregate counts computed on demand from the store."""

	total_analyses: int = 0
	total_errors: int = 0
	active_todos: int = 0
	completed_todos: int = 0

	def to_dict(self) -> dict[str, int]:
		return asdict(self)


@dataclass(frozen=True)
class RecordedRun:
	"""What a single persisted tool run wrote to the store."""

	analysis_id: int
	errors_stored: int = 0
	todos_stored: int = 0

	def to_dict(self) -> dict[str, Any]:
		return {
			"stored": True,
			"analysis_id": self.analysis_id,
			"errors_stored": self.errors_stored,
			"todos_stored": self.todos_stored,
		}
