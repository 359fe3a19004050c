"""MCP stdio server exposing the Rust toolchain as tools."""

from __future__ import annotations

import json
import logging

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from rusty_tools.config import ServerConfig, load_config
from rusty_tools.dispatcher import Dispatcher, open_store
from rusty_tools.errors import RustyToolsError
from rusty_tools.tools import CODE_SCHEMA, EXEC_TOOLS, LOOKUP_TOOLS, RUST_ANALYZER

logger = logging.getLogger(__name__)

server = Server("rusty-tools")

_dispatcher: Dispatcher | None = None


def _get_dispatcher() -> Dispatcher:
	global _dispatcher
	if _dispatcher is None:
		config = load_config()
		_dispatcher = Dispatcher(config, open_store(config.persistence))
	return _dispatcher


# -- Tool definitions --

TOOLS = [
	*(
		Tool(name=t.name, description=t.description, inputSchema=CODE_SCHEMA)
		for t in (*EXEC_TOOLS, RUST_ANALYZER)
	),
	*(
		Tool(name=t.name, description=t.description, inputSchema=t.input_schema)
		for t in LOOKUP_TOOLS
	),
]


@server.list_tools()
async def list_tools() -> list[Tool]:
	return TOOLS


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
	return [TextContent(type="text", text=json.dumps(await _dispatch(name, arguments), indent=2))]


async def _dispatch(name: str, arguments: dict | None) -> dict:
	try:
		return await _get_dispatcher().dispatch(name, arguments)
	except RustyToolsError as e:
		logger.info("%s failed: %s", name, e)
		return e.to_dict()
	except Exception as e:
		logger.exception("Unexpected failure in %s", name)
		return {"error": str(e)}


def run_mcp_server(config: ServerConfig | None = None) -> None:
	"""Entry point for `rusty-tools serve`."""
	import asyncio

	global _dispatcher
	config = config or load_config()
	_dispatcher = Dispatcher(config, open_store(config.persistence))

	async def _run():
		async with stdio_server() as (read_stream, write_stream):
			await server.run(read_stream, write_stream, server.create_initialization_options())

	try:
		asyncio.run(_run())
	finally:
		_dispatcher.close()
		_dispatcher = None
