"""MCP server management commands."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from droste_mcp.config import MCPConfig
from droste_mcp.server import MCPServer
from droste_mcp.tools import TOOL_SPECS

app = typer.Typer(help="Droste CV MCP server")

# stdout carries MCP frames on the stdio transport
console = Console(stderr=True)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _build_server(config: MCPConfig) -> MCPServer:
    return MCPServer(
        host=config.host,
        port=config.port,
        transport=config.transport,
        backend_url=config.backend_url,
        api_key=config.api_key,
        session_secret=config.session_secret,
        request_timeout=config.request_timeout,
    )


@app.callback()
def main(
    log_level: str = typer.Option(
        "INFO", "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
):
    """Expose the Droste CV backend to MCP clients."""
    _configure_logging(log_level)


@app.command()
def start(
    transport: Optional[str] = typer.Option(None, help="Transport: stdio, http or jsonrpc (overrides config)"),
    host: Optional[str] = typer.Option(None, help="Server host (HTTP transports, overrides config)"),
    port: Optional[int] = typer.Option(None, help="Server port (HTTP transports, overrides config)"),
    backend_url: Optional[str] = typer.Option(None, help="Backend API base URL (overrides config)"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Path to droste-mcp.yaml"),
):
    """
    Start the MCP server.

    Configuration is loaded from ./droste-mcp.yaml if it exists, then
    environment variables. Command-line options override both.

    Examples:
        # Start with stdio transport (for Claude Desktop, Cursor, ...)
        droste-mcp start

        # Start the JSON-RPC endpoint
        droste-mcp start --transport jsonrpc --host 0.0.0.0 --port 3001

        # Start the HTTP wrapper against a remote backend
        droste-mcp start --transport http --backend-url https://cv.example.com
    """
    try:
        config = MCPConfig.load(config_file)

        if transport is not None:
            config.transport = transport
        if host is not None:
            config.host = host
        if port is not None:
            config.port = port
        if backend_url is not None:
            config.backend_url = backend_url
        config.validate()

        server = _build_server(config)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]Starting MCP server...[/green]")
    console.print(f"Transport: {config.transport}")
    console.print(f"Backend: {config.backend_url}")
    if config.transport != "stdio":
        console.print(f"Listening on {config.host}:{config.port}")
    console.print("\n[dim]Press Ctrl+C to stop server[/dim]\n")

    try:
        server.start()
    except RuntimeError as e:
        console.print(f"[red]Error starting server:[/red] {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped by user[/yellow]")


@app.command()
def check(
    backend_url: Optional[str] = typer.Option(None, help="Backend API base URL (overrides config)"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Path to droste-mcp.yaml"),
):
    """
    Verify that the backend accepts the configured API key.

    Exits with code 1 if the key is missing or rejected, or the backend
    is unreachable.
    """
    try:
        config = MCPConfig.load(config_file)
        if backend_url is not None:
            config.backend_url = backend_url
        server = _build_server(config)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)

    if not asyncio.run(server.self_check()):
        console.print(f"[red]Backend check failed[/red] for {config.backend_url}")
        raise typer.Exit(1)

    console.print(f"[green]Backend check passed[/green] for {config.backend_url}")


@app.command()
def tools():
    """List the MCP tools this server exposes."""
    table = Table(title="MCP Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Auth")
    table.add_column("Required inputs")
    table.add_column("Description")

    for spec in TOOL_SPECS:
        table.add_row(
            spec.name,
            "Yes" if spec.requires_auth else "No",
            ", ".join(spec.input_schema.get("required", [])) or "-",
            spec.description,
        )

    console.print(table)


@app.command(name="config")
def show_config(
    config_file: Optional[Path] = typer.Option(None, "--config", help="Path to droste-mcp.yaml"),
):
    """Show the effective configuration with secrets redacted."""
    try:
        config = MCPConfig.load(config_file)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="MCP Server Configuration", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    for key, value in config.to_public_dict().items():
        table.add_row(key, "-" if value is None else str(value))

    console.print(table)
