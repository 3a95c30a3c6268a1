"""
MCP server configuration.

Handles configuration file loading (droste-mcp.yaml) with environment
variable overrides for the stdio, HTTP wrapper and JSON-RPC transports.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml

from droste_mcp.adapters import DEFAULT_BACKEND_URL
from droste_mcp.auth import load_api_key_from_env, redact
from droste_mcp.transport import DEFAULT_TIMEOUT_SECONDS


DEFAULT_CONFIG_FILE = "droste-mcp.yaml"
TRANSPORTS = ("stdio", "http", "jsonrpc")

Transport = Literal["stdio", "http", "jsonrpc"]


@dataclass
class MCPConfig:
    """
    MCP server configuration loaded from droste-mcp.yaml.

    Attributes:
        host: Bind address for the HTTP transports (default: "127.0.0.1")
        port: Port for the HTTP transports (default: 3001)
        transport: "stdio", "http" (in-process wrapper) or "jsonrpc"
        backend_url: Base URL of the Droste CV backend API
        api_key: Static backend API key (stdio transport)
        session_secret: Signing secret for the session cookie (jsonrpc)
        request_timeout: Seconds before backend and correlated requests time out
    """

    host: str = "127.0.0.1"
    port: int = 3001
    transport: Transport = "stdio"
    backend_url: str = DEFAULT_BACKEND_URL
    api_key: Optional[str] = None
    session_secret: Optional[str] = None
    request_timeout: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "MCPConfig":
        """
        Load configuration from a YAML file and the environment.

        Falls back to defaults if the file doesn't exist. Environment
        variables override config file values.

        Args:
            config_file: Path to YAML file (default: ./droste-mcp.yaml)

        Returns:
            MCPConfig instance with loaded/default values

        Raises:
            ValueError: If the config file or an environment value is invalid
        """
        path = config_file if config_file is not None else Path.cwd() / DEFAULT_CONFIG_FILE
        config_dict: Dict[str, Any] = {}

        if path.exists():
            try:
                with open(path) as f:
                    config_dict = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid {path.name}: {e}") from e
            if not isinstance(config_dict, dict):
                raise ValueError(f"Invalid {path.name}: expected a mapping at top level")
        elif config_file is not None:
            raise ValueError(f"Config file not found: {config_file}")

        # Environment variables override config file
        if "HOST" in os.environ:
            config_dict["host"] = os.environ["HOST"]

        if "PORT" in os.environ:
            try:
                config_dict["port"] = int(os.environ["PORT"])
            except ValueError:
                raise ValueError(
                    f"Invalid PORT: {os.environ['PORT']}. Must be an integer."
                )

        if "MCP_TRANSPORT" in os.environ:
            config_dict["transport"] = os.environ["MCP_TRANSPORT"]

        if "BACKEND_API_URL" in os.environ:
            config_dict["backend_url"] = os.environ["BACKEND_API_URL"]

        api_key = load_api_key_from_env()
        if api_key:
            config_dict["api_key"] = api_key

        if "MCP_SESSION_SECRET" in os.environ:
            config_dict["session_secret"] = os.environ["MCP_SESSION_SECRET"]

        if "MCP_REQUEST_TIMEOUT" in os.environ:
            try:
                config_dict["request_timeout"] = float(os.environ["MCP_REQUEST_TIMEOUT"])
            except ValueError:
                raise ValueError(
                    f"Invalid MCP_REQUEST_TIMEOUT: {os.environ['MCP_REQUEST_TIMEOUT']}. "
                    "Must be a number of seconds."
                )

        known = {f.name for f in fields(cls)}
        config = cls(**{k: v for k, v in config_dict.items() if k in known})
        config.validate()
        return config

    def validate(self) -> None:
        """
        Check values that would make the server fail at startup.

        Raises:
            ValueError: On an unknown transport, bad port or bad timeout
        """
        if self.transport not in TRANSPORTS:
            raise ValueError(
                f"Invalid transport '{self.transport}'. "
                f"Must be one of: {', '.join(TRANSPORTS)}."
            )
        if not isinstance(self.port, int) or not 1 <= self.port <= 65535:
            raise ValueError(f"Invalid port {self.port}. Must be between 1 and 65535.")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

    def save(self, config_file: Path) -> None:
        """
        Save configuration to YAML.

        Does NOT save api_key or session_secret (secrets come from env vars).
        """
        config_file.parent.mkdir(parents=True, exist_ok=True)

        config_dict = {
            "host": self.host,
            "port": self.port,
            "transport": self.transport,
            "backend_url": self.backend_url,
            "request_timeout": self.request_timeout,
        }

        with open(config_file, "w") as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)

    def to_public_dict(self) -> Dict[str, Any]:
        """Configuration with secret values redacted, for display and logs."""
        return {
            "host": self.host,
            "port": self.port,
            "transport": self.transport,
            "backend_url": self.backend_url,
            "api_key": redact(self.api_key),
            "session_secret": redact(self.session_secret),
            "request_timeout": self.request_timeout,
        }
