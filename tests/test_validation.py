"""Tests for tool argument schemas and source-text policy."""

from __future__ import annotations

import pytest

from rusty_tools.config import PolicyConfig
from rusty_tools.errors import InvalidArguments
from rusty_tools.validation import (
	CodeArgs,
	HistoryArgs,
	SearchArgs,
	check_error_code,
	check_source,
	parse_args,
)


class TestParseArgs:
	def test_defaults_and_extra_keys(self) -> None:
		args = parse_args("cargo_check", CodeArgs, {"code": "fn main() {}", "verbose": True})
		assert args.code == "fn main() {}"
		assert args.persist is False

	def test_none_arguments(self) -> None:
		assert parse_args("cargo_history", HistoryArgs, None).limit is None

	def test_missing_required_field(self) -> None:
		with pytest.raises(InvalidArguments) as exc_info:
			parse_args("cargo_check", CodeArgs, {})
		assert exc_info.value.tool_name == "cargo_check"
		assert "code" in exc_info.value.reason

	def test_wrong_type(self) -> None:
		with pytest.raises(InvalidArguments):
			parse_args("cargo_check", CodeArgs, {"code": ["not", "a", "string"]})

	def test_limit_bounds(self) -> None:
		with pytest.raises(InvalidArguments):
			parse_args("cargo_history", HistoryArgs, {"limit": 0})
		assert parse_args("cargo_history", HistoryArgs, {"limit": 25}).limit == 25

	def test_empty_search_query(self) -> None:
		with pytest.raises(InvalidArguments):
			parse_args("cargo_search", SearchArgs, {"query": ""})


class TestCheckSource:
	def test_accepts_plain_code(self) -> None:
		check_source("cargo_check", "fn main() { println!(\"hi\"); }", PolicyConfig())

	def test_rejects_blank(self) -> None:
		with pytest.raises(InvalidArguments, match="empty"):
			check_source("cargo_check", "   \n", PolicyConfig())

	def test_rejects_oversized(self) -> None:
		with pytest.raises(InvalidArguments, match="maximum length"):
			check_source("cargo_check", "x" * 11, PolicyConfig(max_code_length=10))

	@pytest.mark.parametrize("snippet", [
		"use std::process::Command;",
		"std::fs::read(\"/etc/passwd\")",
		"std::net::TcpStream::connect(\"x\")",
		"unsafe { *ptr }",
	])
	def test_rejects_blocked_patterns(self, snippet: str) -> None:
		with pytest.raises(InvalidArguments, match="blocked pattern"):
			check_source("cargo_build", f"fn main() {{ {snippet} }}", PolicyConfig())

	def test_custom_patterns(self) -> None:
		policy = PolicyConfig(blocked_patterns=["include_bytes!"])
		check_source("cargo_build", "fn main() { unsafe {} }", policy)
		with pytest.raises(InvalidArguments):
			check_source("cargo_build", "include_bytes!(\"x\")", policy)


class TestCheckErrorCode:
	@pytest.mark.parametrize(("raw", "expected"), [
		("E0308", "E0308"),
		(" e0599 ", "E0599"),
		("E001", "E001"),
	])
	def test_valid(self, raw: str, expected: str) -> None:
		assert check_error_code("rustc_explain", raw) == expected

	@pytest.mark.parametrize("raw", ["", "0308", "E12", "E0308; ls", "W0308"])
	def test_invalid(self, raw: str) -> None:
		with pytest.raises(InvalidArguments):
			check_error_code("rustc_explain", raw)
