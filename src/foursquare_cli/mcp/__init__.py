"""MCP server module for Foursquare CLI.

This module provides an MCP (Model Context Protocol) server that exposes
Foursquare authentication and check-in history as tools for AI agents.
"""

from foursquare_cli.mcp.server import main, mcp

__all__ = ["mcp", "main"]
