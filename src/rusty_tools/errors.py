"""Error hierarchy for rusty-tools.

Every error carries typed fields, serialises via ``to_dict()`` into the JSON
reply sent to MCP clients, and has a readable ``__str__`` for logging.
"""

from __future__ import annotations


class RustyToolsError(Exception):
	"""Base error for all tool-execution and persistence failures."""

	def __init__(self, message: str, *, detail: dict | None = None) -> None:
		super().__init__(message)
		self.message = message
		self.detail = detail or {}

	def to_dict(self) -> dict:
		return {"error": type(self).__name__, "message": self.message, **self.detail}

	def __str__(self) -> str:
		return self.message


# -- Execution path --


class ProvisioningFailed(RustyToolsError):
	"""The ephemeral cargo project could not be created."""

	def __init__(self, cause: str) -> None:
		self.cause = cause
		super().__init__(f"Workspace provisioning failed: {cause}", detail={"cause": cause})


class SpawnFailed(RustyToolsError):
	"""The external command could not be started."""

	def __init__(self, command: str, cause: str) -> None:
		self.command = command
		self.cause = cause
		super().__init__(
			f"Failed to spawn '{command}': {cause}",
			detail={"command": command, "cause": cause},
		)


class TimedOut(RustyToolsError):
	"""The command exceeded its deadline and was killed."""

	def __init__(self, command: str, timeout: float) -> None:
		self.command = command
		self.timeout = timeout
		super().__init__(
			f"'{command}' timed out after {timeout:g}s",
			detail={"command": command, "timeout_s": timeout},
		)


class DrainFailed(RustyToolsError):
	"""Reading one of the child's output streams failed."""

	def __init__(self, stream: str, cause: str) -> None:
		self.stream = stream
		self.cause = cause
		super().__init__(
			f"Failed to read {stream}: {cause}",
			detail={"stream": stream, "cause": cause},
		)


# -- Persistence path --


class PersistenceUnavailable(RustyToolsError):
	"""No store is configured, or it could not be opened."""

	def __init__(self, reason: str) -> None:
		self.reason = reason
		super().__init__(f"Persistence unavailable: {reason}", detail={"reason": reason})


class ForeignKeyViolation(RustyToolsError):
	"""An error record referenced an analysis that does not exist."""

	def __init__(self, analysis_id: int) -> None:
		self.analysis_id = analysis_id
		super().__init__(
			f"Analysis {analysis_id} does not exist",
			detail={"analysis_id": analysis_id},
		)


class StorageError(RustyToolsError):
	"""Generic read/write failure in the store."""

	def __init__(self, operation: str, cause: str) -> None:
		self.operation = operation
		self.cause = cause
		super().__init__(
			f"Storage error during {operation}: {cause}",
			detail={"operation": operation, "cause": cause},
		)


# -- Request surface --


class InvalidArguments(RustyToolsError):
	"""Tool arguments failed validation or source-text policy."""

	def __init__(self, tool_name: str, reason: str) -> None:
		self.tool_name = tool_name
		self.reason = reason
		super().__init__(
			f"Invalid arguments for '{tool_name}': {reason}",
			detail={"tool_name": tool_name, "reason": reason},
		)


class UnknownTool(RustyToolsError):
	"""Requested tool name is not registered."""

	def __init__(self, tool_name: str, available_tools: list[str]) -> None:
		self.tool_name = tool_name
		self.available_tools = available_tools
		super().__init__(
			f"Unknown tool: {tool_name}. Available: {', '.join(available_tools)}",
			detail={"tool_name": tool_name, "available_tools": available_tools},
		)
