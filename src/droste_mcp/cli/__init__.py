"""Command-line entry point for the Droste CV MCP server."""

from .commands.mcp import app


def main():
    app()


__all__ = ["app", "main"]
