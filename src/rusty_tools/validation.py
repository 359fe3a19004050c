"""Tool argument schemas and source-text policy checks."""

from __future__ import annotations

import re
from typing import TypeVar

from pydantic import BaseModel, Field, ValidationError

from rusty_tools.config import PolicyConfig
from rusty_tools.errors import InvalidArguments

_ERROR_CODE_RE = re.compile(r"^E\d{3,5}$")

ArgsT = TypeVar("ArgsT", bound=BaseModel)


class CodeArgs(BaseModel, extra="ignore"):
	"""Arguments shared by every tool that runs against caller source text."""

	code: str
	persist: bool = False


class ExplainArgs(BaseModel, extra="ignore"):
	error_code: str


class SearchArgs(BaseModel, extra="ignore"):
	query: str = Field(min_length=1)


class HistoryArgs(BaseModel, extra="ignore"):
	error_code: str | None = None
	limit: int | None = Field(default=None, ge=1, le=1000)


class TodosArgs(BaseModel, extra="ignore"):
	show_completed: bool = False


class CompleteTodoArgs(BaseModel, extra="ignore"):
	todo_id: int


class TrimArgs(BaseModel, extra="ignore"):
	keep: int = Field(ge=0)


def parse_args(tool_name: str, schema: type[ArgsT], arguments: dict | None) -> ArgsT:
	"""Validate raw MCP *arguments* against *schema*."""
	try:
		return schema.model_validate(arguments or {})
	except ValidationError as exc:
		problems = "; ".join(
			f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
			for err in exc.errors()
		)
		raise InvalidArguments(tool_name, problems) from exc


def check_source(tool_name: str, code: str, policy: PolicyConfig) -> None:
	"""Reject empty, oversized, or blocked-pattern source text."""
	if not code.strip():
		raise InvalidArguments(tool_name, "code cannot be empty")
	if len(code) > policy.max_code_length:
		raise InvalidArguments(
			tool_name,
			f"code exceeds maximum length of {policy.max_code_length} characters",
		)
	for pattern in policy.blocked_patterns:
		if pattern in code:
			raise InvalidArguments(tool_name, f"code contains blocked pattern: {pattern}")


def check_error_code(tool_name: str, error_code: str) -> str:
	"""Normalise and validate a rustc error code like ``E0308``."""
	code = error_code.strip().upper()
	if not _ERROR_CODE_RE.match(code):
		raise InvalidArguments(
			tool_name, f"invalid error code format: {error_code!r}, expected like E0308",
		)
	return code
