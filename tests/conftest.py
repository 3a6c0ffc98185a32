"""Pytest configuration and fixtures."""

import os
from typing import Any

import httpx
import pytest

# Set test environment variables before importing application modules
os.environ["KEYCLOAK_BASE_URL"] = "http://keycloak.test"
os.environ["KEYCLOAK_ADMIN_CLIENT_ID"] = "test-admin-client"
os.environ["KEYCLOAK_ADMIN_CLIENT_SECRET"] = "test-admin-secret"
os.environ["REALM_DENY_LIST"] = "platform,internal"
os.environ["OTEL_ENABLED"] = "false"


class FakeIdentityProvider:
    """Identity provider double that records every request it receives.

    Each route holds a list of ``(status, response kwargs)`` handed out in
    order; the last one repeats once the list is exhausted.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], list[tuple[int, dict[str, Any]]]] = {}

    def add(self, method: str, path: str, *responses: tuple[int, dict[str, Any]]) -> None:
        self.routes[(method, path)] = list(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responses = self.routes.get((request.method, request.url.path))
        if not responses:
            return httpx.Response(599, text=f"unexpected {request.method} {request.url.path}")
        status_code, kwargs = responses.pop(0) if len(responses) > 1 else responses[0]
        return httpx.Response(status_code, **kwargs)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport)

    def requests_to(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


class TrackingStream(httpx.AsyncByteStream):
    """Response body that remembers whether it was closed."""

    def __init__(self, content: bytes = b"") -> None:
        self.content = content
        self.closed = False

    async def __aiter__(self):
        yield self.content

    async def aclose(self) -> None:
        self.closed = True


def reply(status_code: int, **kwargs: Any) -> tuple[int, dict[str, Any]]:
    """Build a response entry for FakeIdentityProvider.add()."""
    return (status_code, kwargs)


@pytest.fixture
def idp():
    """Provide a fresh fake identity provider."""
    return FakeIdentityProvider()
