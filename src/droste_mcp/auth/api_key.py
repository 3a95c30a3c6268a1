"""
Static API key handling for the stdio transport.

The key is read once from the environment at startup. A missing key is
not fatal here; the gateway reports it on the first backend call.
"""

import os
from typing import Optional

from droste_mcp.session.credentials import API_KEY_ENV_VAR


REDACTED = "***REDACTED***"


def load_api_key_from_env() -> Optional[str]:
    """
    Load the backend API key from the environment.

    Checks for the DROSTE_CV_API_KEY environment variable.

    Returns:
        The API key if set and non-empty, None otherwise
    """
    value = os.environ.get(API_KEY_ENV_VAR, "").strip()
    return value or None


def redact(secret: Optional[str]) -> Optional[str]:
    """Return a placeholder for a secret so it can be shown or logged."""
    return REDACTED if secret else None
