"""SQLite store for tool analyses, extracted errors, and lint todos."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generator, Sequence

from rusty_tools.errors import ForeignKeyViolation, PersistenceUnavailable, StorageError
from rusty_tools.models import (
	Analysis,
	Diagnostic,
	DiagnosticError,
	ExecutionResult,
	RecordedRun,
	Stats,
	Todo,
	TodoDraft,
	_now_ts,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS analyses (
	id INTEGER PRIMARY KEY AUTOINCREMENT,
	timestamp TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
	file_path TEXT,
	tool TEXT NOT NULL,
	full_output TEXT NOT NULL,
	success INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_analyses_timestamp ON analyses(timestamp);

CREATE TABLE IF NOT EXISTS errors (
	id INTEGER PRIMARY KEY AUTOINCREMENT,
	analysis_id INTEGER NOT NULL,
	error_code TEXT,
	message TEXT NOT NULL,
	file TEXT,
	line INTEGER,
	suggestion TEXT,
	timestamp TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
	FOREIGN KEY (analysis_id) REFERENCES analyses(id)
);

CREATE INDEX IF NOT EXISTS idx_errors_analysis ON errors(analysis_id);
CREATE INDEX IF NOT EXISTS idx_errors_code ON errors(error_code);

CREATE TABLE IF NOT EXISTS todos (
	id INTEGER PRIMARY KEY AUTOINCREMENT,
	created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
	source TEXT NOT NULL,
	description TEXT NOT NULL,
	file_path TEXT,
	line_number INTEGER,
	completed INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_todos_completed ON todos(completed, created_at);
"""


@dataclass(frozen=True)
class Migration:
	"""An additive schema change applied once, tracked in PRAGMA user_version."""

	version: int
	table: str
	column: str
	column_type: str
	followups: tuple[str, ...] = ()


# SQLite refuses ALTER TABLE ... ADD COLUMN with a CURRENT_TIMESTAMP default, so
# the legacy errors.timestamp column is added bare and backfilled from the parent
# analysis. Every row written afterwards carries its own timestamp.
MIGRATIONS: tuple[Migration, ...] = (
	Migration(
		version=1,
		table="errors",
		column="timestamp",
		column_type="TEXT",
		followups=(
			"UPDATE errors SET timestamp = ("
			"SELECT a.timestamp FROM analyses a WHERE a.id = errors.analysis_id"
			") WHERE timestamp IS NULL",
			"CREATE INDEX IF NOT EXISTS idx_errors_timestamp ON errors(timestamp)",
		),
	),
)

SCHEMA_VERSION = MIGRATIONS[-1].version


class Database:
	"""SQLite database for rusty-tools state."""

	def __init__(self, path: str | Path = ":memory:") -> None:
		db_path = str(path)
		try:
			if db_path != ":memory:":
				Path(db_path).parent.mkdir(parents=True, exist_ok=True)
			self.conn = sqlite3.connect(db_path)
		except (OSError, sqlite3.Error) as exc:
			raise PersistenceUnavailable(f"cannot open {db_path}: {exc}") from exc
		self.path = db_path
		self.conn.row_factory = sqlite3.Row
		logger.debug("Opened database connection: %s", db_path)
		try:
			if db_path != ":memory:":
				self.conn.execute("PRAGMA journal_mode=WAL")
				self.conn.execute("PRAGMA busy_timeout=5000")
			self.conn.execute("PRAGMA foreign_keys=ON")
			self._create_tables()
		except sqlite3.Error as exc:
			self.conn.close()
			raise PersistenceUnavailable(f"cannot initialize schema in {db_path}: {exc}") from exc
		self._lock = asyncio.Lock()

	@staticmethod
	def _validate_identifier(name: str) -> None:
		"""Validate a SQL identifier to prevent injection in dynamic ALTER TABLE statements."""
		if not name or len(name) > 64 or not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", name):
			raise ValueError(f"Invalid SQL identifier: {name!r}")

	def _create_tables(self) -> None:
		self.conn.executescript(SCHEMA_SQL)
		self._apply_migrations()

	@property
	def schema_version(self) -> int:
		return int(self.conn.execute("PRAGMA user_version").fetchone()[0])

	def _apply_migrations(self) -> None:
		"""Run every migration newer than the stored user_version (idempotent)."""
		current = self.schema_version
		for migration in MIGRATIONS:
			if migration.version <= current:
				continue
			self._add_column(migration.table, migration.column, migration.column_type)
			for statement in migration.followups:
				self.conn.execute(statement)
			self.conn.execute(f"PRAGMA user_version = {int(migration.version)}")
			self.conn.commit()
			logger.debug("Migration %d applied", migration.version)

	def _add_column(self, table: str, column: str, col_type: str) -> None:
		self._validate_identifier(table)
		self._validate_identifier(column)
		try:
			self.conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}")  # noqa: S608
			logger.debug("Migration: added column %s.%s", table, column)
		except sqlite3.OperationalError as exc:
			if "duplicate column name" in str(exc):
				logger.debug("Migration: %s.%s already exists", table, column)
			else:
				logger.warning("Migration failed for %s.%s: %s", table, column, exc)
				raise

	def close(self) -> None:
		logger.debug("Closing database connection")
		self.conn.close()

	def __enter__(self) -> Database:
		return self

	def __exit__(self, *args: object) -> None:
		self.close()

	@contextmanager
	def transaction(self, operation: str) -> Generator[sqlite3.Connection, None, None]:
		"""Commit on success, roll back on exception.

		Raw sqlite3 errors are re-raised as StorageError tagged with *operation*.
		"""
		try:
			yield self.conn
		except sqlite3.Error as exc:
			self._rollback()
			raise StorageError(operation, str(exc)) from exc
		except Exception:
			self._rollback()
			raise
		else:
			self.conn.commit()

	def _rollback(self) -> None:
		try:
			self.conn.rollback()
		except sqlite3.Error as exc:
			logger.warning("Rollback failed: %s", exc)

	async def locked_call(self, fn: str, *args: Any, **kwargs: Any) -> Any:
		"""Call a Database method while holding the asyncio lock.

		Every logical operation from concurrent requests goes through here so
		the single connection is never used by two tasks at once.
		"""
		async with self._lock:
			return getattr(self, fn)(*args, **kwargs)

	# -- Analyses --

	def _insert_analysis(
		self, tool: str, payload: dict[str, Any], success: bool, file_path: str | None,
	) -> int:
		cur = self.conn.execute(
			"""INSERT INTO analyses (timestamp, file_path, tool, full_output, success)
			VALUES (?, ?, ?, ?, ?)""",
			(_now_ts(), file_path, tool, json.dumps(payload), int(success)),
		)
		return int(cur.lastrowid)

	def record_analysis(
		self,
		tool: str,
		payload: dict[str, Any],
		success: bool,
		file_path: str | None = None,
	) -> int:
		with self.transaction("record_analysis"):
			return self._insert_analysis(tool, payload, success, file_path)

	def get_analysis(self, analysis_id: int) -> Analysis | None:
		row = self.conn.execute("SELECT * FROM analyses WHERE id=?", (analysis_id,)).fetchone()
		if row is None:
			return None
		return self._row_to_analysis(row)

	def get_recent_analyses(self, limit: int = 10) -> list[Analysis]:
		rows = self.conn.execute(
			"SELECT * FROM analyses ORDER BY timestamp DESC, id DESC LIMIT ?", (limit,)
		).fetchall()
		return [self._row_to_analysis(r) for r in rows]

	@staticmethod
	def _row_to_analysis(row: sqlite3.Row) -> Analysis:
		return Analysis(
			id=row["id"],
			tool=row["tool"],
			full_output=row["full_output"],
			success=bool(row["success"]),
			timestamp=row["timestamp"],
			file_path=row["file_path"],
		)

	# -- Errors --

	def _insert_error(
		self,
		analysis_id: int,
		code: str | None,
		message: str,
		file: str | None,
		line: int | None,
		suggestion: str | None,
	) -> int:
		try:
			cur = self.conn.execute(
				"""INSERT INTO errors
				(analysis_id, error_code, message, file, line, suggestion, timestamp)
				VALUES (?, ?, ?, ?, ?, ?, ?)""",
				(analysis_id, code, message, file, line, suggestion, _now_ts()),
			)
		except sqlite3.IntegrityError as exc:
			if "FOREIGN KEY" in str(exc):
				raise ForeignKeyViolation(analysis_id) from exc
			raise
		return int(cur.lastrowid)

	def record_error(
		self,
		analysis_id: int,
		code: str | None,
		message: str,
		file: str | None = None,
		line: int | None = None,
		suggestion: str | None = None,
	) -> int:
		"""Store one diagnostic against an existing analysis.

		Raises:
			ForeignKeyViolation: *analysis_id* does not exist. Nothing is inserted.
		"""
		with self.transaction("record_error"):
			return self._insert_error(analysis_id, code, message, file, line, suggestion)

	def query_error_history(
		self, code: str | None = None, limit: int | None = None,
	) -> list[DiagnosticError]:
		"""Newest-first diagnostics, optionally limited to one error code."""
		limit = DEFAULT_HISTORY_LIMIT if limit is None else limit
		sql = """SELECT e.id, e.analysis_id, e.error_code, e.message, e.file, e.line,
			e.suggestion, e.timestamp, a.tool
			FROM errors e
			JOIN analyses a ON e.analysis_id = a.id"""
		params: list[Any] = []
		if code is not None:
			sql += " WHERE e.error_code = ?"
			params.append(code)
		sql += " ORDER BY e.timestamp DESC, e.id DESC LIMIT ?"
		params.append(limit)
		try:
			rows = self.conn.execute(sql, params).fetchall()
		except sqlite3.Error as exc:
			raise StorageError("query_error_history", str(exc)) from exc
		return [self._row_to_error(r) for r in rows]

	@staticmethod
	def _row_to_error(row: sqlite3.Row) -> DiagnosticError:
		return DiagnosticError(
			id=row["id"],
			analysis_id=row["analysis_id"],
			error_code=row["error_code"],
			message=row["message"],
			file=row["file"],
			line=row["line"],
			suggestion=row["suggestion"],
			timestamp=row["timestamp"],
			tool=row["tool"],
		)

	# -- Todos --

	def _insert_todo(
		self, source: str, description: str, file_path: str | None, line_number: int | None,
	) -> int:
		cur = self.conn.execute(
			"""INSERT INTO todos (created_at, source, description, file_path, line_number, completed)
			VALUES (?, ?, ?, ?, ?, 0)""",
			(_now_ts(), source, description, file_path, line_number),
		)
		return int(cur.lastrowid)

	def record_todo(
		self,
		source: str,
		description: str,
		file_path: str | None = None,
		line_number: int | None = None,
	) -> int:
		with self.transaction("record_todo"):
			return self._insert_todo(source, description, file_path, line_number)

	def query_todos(self, include_completed: bool = False) -> list[Todo]:
		sql = "SELECT * FROM todos"
		if not include_completed:
			sql += " WHERE completed = 0"
		sql += " ORDER BY created_at DESC, id DESC"
		try:
			rows = self.conn.execute(sql).fetchall()
		except sqlite3.Error as exc:
			raise StorageError("query_todos", str(exc)) from exc
		return [self._row_to_todo(r) for r in rows]

	def mark_todo_completed(self, todo_id: int) -> bool:
		"""Mark a todo done. Returns False (and changes nothing) for an unknown id."""
		with self.transaction("mark_todo_completed"):
			cur = self.conn.execute("UPDATE todos SET completed = 1 WHERE id = ?", (todo_id,))
		return cur.rowcount > 0

	@staticmethod
	def _row_to_todo(row: sqlite3.Row) -> Todo:
		line_number = row["line_number"]
		if isinstance(line_number, str):
			line_number = int(line_number) if line_number.isdigit() else None
		return Todo(
			id=row["id"],
			source=row["source"],
			description=row["description"],
			file_path=row["file_path"],
			line_number=line_number,
			completed=bool(row["completed"]),
			created_at=row["created_at"],
		)

	# -- Whole runs --

	def record_run(
		self,
		tool: str,
		result: ExecutionResult,
		diagnostics: Sequence[Diagnostic] = (),
		todos: Sequence[TodoDraft] = (),
		file_path: str | None = None,
	) -> RecordedRun:
		"""Store an analysis with its diagnostics and todos in one transaction."""
		with self.transaction("record_run"):
			analysis_id = self._insert_analysis(tool, result.to_payload(), result.success, file_path)
			for d in diagnostics:
				self._insert_error(analysis_id, d.code, d.message, d.file, d.line, d.suggestion)
			for t in todos:
				self._insert_todo(t.source, t.description, t.file_path, t.line_number)
		if diagnostics or todos:
			logger.info(
				"Stored %d errors and %d todos from analysis %d (%s)",
				len(diagnostics), len(todos), analysis_id, tool,
			)
		return RecordedRun(
			analysis_id=analysis_id,
			errors_stored=len(diagnostics),
			todos_stored=len(todos),
		)

	# -- Maintenance --

	def stats(self) -> Stats:
		try:
			row = self.conn.execute(
				"""SELECT
					(SELECT COUNT(*) FROM analyses) AS total_analyses,
					(SELECT COUNT(*) FROM errors) AS total_errors,
					(SELECT COUNT(*) FROM todos WHERE completed = 0) AS active_todos,
					(SELECT COUNT(*) FROM todos WHERE completed != 0) AS completed_todos"""
			).fetchone()
		except sqlite3.Error as exc:
			raise StorageError("stats", str(exc)) from exc
		return Stats(
			total_analyses=row["total_analyses"],
			total_errors=row["total_errors"],
			active_todos=row["active_todos"],
			completed_todos=row["completed_todos"],
		)

	def trim(self, keep: int) -> int:
		"""Delete all but the newest *keep* analyses and their errors.

		Todos are independent of analyses and are never touched. Returns the
		number of analyses removed.
		"""
		if keep < 0:
			raise ValueError(f"keep must be >= 0, got {keep}")
		stale = (
			"SELECT id FROM analyses ORDER BY timestamp DESC, id DESC LIMIT -1 OFFSET ?"
		)
		with self.transaction("trim"):
			self.conn.execute(f"DELETE FROM errors WHERE analysis_id IN ({stale})", (keep,))  # noqa: S608
			cur = self.conn.execute(f"DELETE FROM analyses WHERE id IN ({stale})", (keep,))  # noqa: S608
		deleted = cur.rowcount
		if deleted:
			logger.info("Trimmed %d analyses (kept %d)", deleted, keep)
		return deleted
