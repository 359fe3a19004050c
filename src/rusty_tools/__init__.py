"""Rust toolchain MCP server with persisted diagnostics."""

__version__ = "0.1.0"
