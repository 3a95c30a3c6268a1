"""Shared fixtures: a scriptable fake of the CV backend API."""

import asyncio
import json
from typing import Dict, List, Tuple

import httpx
import pytest

from droste_mcp.adapters import LOGIN_PATH, REFRESH_PATH, BackendGateway

BACKEND_URL = "http://backend.test"
USER = {"id": "user-1", "name": "Ada Lovelace", "email": "ada@example.com"}
PASSWORD = "correct-horse"


class FakeBackend:
    """
    In-memory stand-in for the backend, served through httpx.MockTransport.

    Accepts exactly one access token at a time. ``revoke()`` invalidates
    the current token so the next call gets a 401 and must refresh.
    """

    def __init__(self, access_token: str = "access-1", refresh_token: str = "refresh-1"):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.requests: List[httpx.Request] = []
        self.refresh_calls = 0
        self.refresh_status = 200
        self.refresh_delay = 0.0
        self.responses: Dict[Tuple[str, str], httpx.Response] = {}
        self.cvs = [{"id": "cv-1", "title": "Senior Engineer"}]
        self.url = BACKEND_URL
        self.user = USER
        self.email = USER["email"]
        self.password = PASSWORD

    def revoke(self):
        self.access_token = "revoked"

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def gateway(self) -> BackendGateway:
        return BackendGateway(BACKEND_URL, timeout=5.0, transport=self.transport())

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body = json.loads(request.content) if request.content else None

        if path == LOGIN_PATH:
            if body == {"email": USER["email"], "password": PASSWORD}:
                return httpx.Response(
                    200,
                    json={
                        "accessToken": self.access_token,
                        "refreshToken": self.refresh_token,
                        "user": USER,
                    },
                )
            return httpx.Response(401, json={"message": "Invalid credentials"})

        if path == REFRESH_PATH:
            self.refresh_calls += 1
            if self.refresh_delay:
                await asyncio.sleep(self.refresh_delay)
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"message": "Refresh failed"})
            if (body or {}).get("refreshToken") != self.refresh_token:
                return httpx.Response(401, json={"message": "Invalid refresh token"})
            self.access_token = f"access-{self.refresh_calls + 1}"
            return httpx.Response(200, json={"accessToken": self.access_token})

        if request.headers.get("Authorization") != f"Bearer {self.access_token}":
            return httpx.Response(401, json={"message": "Unauthorized"})

        override = self.responses.get((request.method, path))
        if override is not None:
            return override

        if path == "/api/cvs":
            return httpx.Response(200, json=self.cvs)

        return httpx.Response(
            200,
            json={
                "method": request.method,
                "path": request.url.raw_path.decode("ascii").split("?")[0],
                "params": dict(request.url.params),
                "body": body,
            },
        )


@pytest.fixture
def backend():
    return FakeBackend()


CONFIG_ENV_VARS = (
    "HOST",
    "PORT",
    "MCP_TRANSPORT",
    "BACKEND_API_URL",
    "DROSTE_CV_API_KEY",
    "MCP_SESSION_SECRET",
    "MCP_REQUEST_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's shell configuration out of the tests."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
