"""Line-oriented extraction of diagnostics and lint todos from cargo stderr.

Two independent passes run over the same text:

- ``extract_diagnostics`` applies ``DIAGNOSTIC_RULES`` top to bottom on every
  line; the first rule that yields a record wins and the rest are skipped.
- ``extract_lint_todos`` picks clippy warnings and ``help:`` lines out as
  completable todos. It is only used for lint runs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from rusty_tools.models import Diagnostic, TodoDraft

WARNING_CODE = "WARNING"
HELP_MESSAGE = "Help"

TODO_SOURCE_WARNING = "lint-warning"
TODO_SOURCE_SUGGESTION = "lint-suggestion"

LINT_MARKERS: tuple[str, ...] = ("clippy::", "#[warn(")

_CODED_RE = re.compile(r"error\[([^\]]+)\]:(.*)")


@dataclass(frozen=True)
class DiagnosticRule:
	"""A line predicate paired with the extractor that runs when it holds."""

	name: str
	matches: Callable[[str], bool]
	extract: Callable[[str], Diagnostic | None]


def _after(text: str, marker: str) -> str:
	return text.split(marker, 1)[1].strip()


# -- Rule 1: error[E0308]: message --

def _is_coded(line: str) -> bool:
	return "error[" in line


def _extract_coded(line: str) -> Diagnostic | None:
	m = _CODED_RE.search(line.strip())
	if m is None:
		return None
	code, message = m.group(1).strip(), m.group(2).strip()
	if not code or not message:
		return None
	return Diagnostic(code=code, message=message)


# -- Rule 2: warning: message --

def _is_warning(line: str) -> bool:
	return "warning:" in line


def _extract_warning(line: str) -> Diagnostic | None:
	message = _after(line, "warning:")
	if not message:
		return None
	return Diagnostic(code=WARNING_CODE, message=message)


# -- Rule 3:   --> src/main.rs:10:5 --

def _is_location(line: str) -> bool:
	return " --> " in line or line.lstrip().startswith("--> ")


def _extract_location(line: str) -> Diagnostic | None:
	text = line.strip()
	if text.count("-->") != 1:
		return None
	location = _after(text, "-->")
	parts = location.split(":")
	if len(parts) < 2 or not parts[0]:
		return None
	try:
		line_no: int | None = int(parts[1])
	except ValueError:
		line_no = None
	return Diagnostic(message=f"Error at {location}", file=parts[0], line=line_no)


# -- Rule 4: help: suggestion --

def _is_help(line: str) -> bool:
	return line.lstrip().startswith("help:")


def _extract_help(line: str) -> Diagnostic | None:
	suggestion = _after(line, "help:")
	if not suggestion:
		return None
	return Diagnostic(message=HELP_MESSAGE, suggestion=suggestion)


DIAGNOSTIC_RULES: tuple[DiagnosticRule, ...] = (
	DiagnosticRule("coded", _is_coded, _extract_coded),
	DiagnosticRule("warning", _is_warning, _extract_warning),
	DiagnosticRule("location", _is_location, _extract_location),
	DiagnosticRule("help", _is_help, _extract_help),
)


def classify_line(line: str) -> Diagnostic | None:
	"""Return the record produced by the first matching rule, if any."""
	for rule in DIAGNOSTIC_RULES:
		if rule.matches(line):
			record = rule.extract(line)
			if record is not None:
				return record
	return None


def extract_diagnostics(stderr: str) -> list[Diagnostic]:
	"""Scan *stderr* line by line and return recognised diagnostics in order."""
	records: list[Diagnostic] = []
	for line in stderr.splitlines():
		record = classify_line(line)
		if record is not None:
			records.append(record)
	return records


def extract_lint_todos(stderr: str) -> list[TodoDraft]:
	"""Collect clippy warnings and help suggestions as todo drafts."""
	todos: list[TodoDraft] = []
	for raw in stderr.splitlines():
		line = raw.strip()
		if "warning:" in line and any(marker in line for marker in LINT_MARKERS):
			description = _after(line, "warning:")
			if description:
				todos.append(TodoDraft(source=TODO_SOURCE_WARNING, description=description))
		if line.startswith("help:"):
			description = _after(line, "help:")
			if description:
				todos.append(TodoDraft(source=TODO_SOURCE_SUGGESTION, description=description))
	return todos
