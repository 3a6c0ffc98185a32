"""httpx transport that refreshes a registration access token on HTTP 401.

The client whose token should be refreshed travels with each request in
``request.extensions`` under :data:`CLIENT_ID_EXTENSION`. It lives exactly as
long as the request does; nothing is shared between requests.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from idp_registrar.clientreg.errors import BodyReplayError

logger = logging.getLogger(__name__)

CLIENT_ID_EXTENSION = "clientreg.client_id"


class TokenRefresher(Protocol):
    """Issues a fresh registration access token for one client."""

    async def refresh_token(self, client_id: str) -> str: ...


def with_client_id(extensions: dict[str, Any] | None, client_id: str) -> dict[str, Any]:
    """Return a copy of ``extensions`` tagged with ``client_id``."""
    tagged = dict(extensions or {})
    tagged[CLIENT_ID_EXTENSION] = client_id
    return tagged


def client_id_from_request(request: httpx.Request) -> str:
    """Client identity attached to ``request``, or an empty string."""
    return request.extensions.get(CLIENT_ID_EXTENSION) or ""


class RetryTransport(httpx.AsyncBaseTransport):
    """Wraps another transport and replays a request once after a 401.

    On a 401 for a request tagged with a client id, the refresher is asked
    for a new token and the request is sent again with that token. The
    second response is returned whatever its status. If the refresh fails
    the original 401 is returned unchanged.
    """

    def __init__(
        self,
        base: httpx.AsyncBaseTransport | None = None,
        refresher: TokenRefresher | None = None,
    ) -> None:
        self._base = base or httpx.AsyncHTTPTransport()
        self.refresher = refresher

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        response = await self._base.handle_async_request(request)

        if response.status_code != 401 or self.refresher is None:
            return response

        client_id = client_id_from_request(request)
        if not client_id:
            return response

        try:
            new_token = await self.refresher.refresh_token(client_id)
        except Exception as exc:
            logger.warning(
                "Token refresh for client %s failed, returning original 401: %s",
                client_id,
                exc,
            )
            return response

        await response.aclose()

        retry_request = _clone_with_token(request, new_token)
        logger.debug("Retrying %s %s for client %s", request.method, request.url, client_id)
        return await self._base.handle_async_request(retry_request)

    async def aclose(self) -> None:
        await self._base.aclose()


def _clone_with_token(request: httpx.Request, token: str) -> httpx.Request:
    try:
        body = request.content
    except httpx.RequestNotRead as exc:
        raise BodyReplayError(
            f"cannot replay body of {request.method} {request.url}: body was streamed"
        ) from exc

    headers = request.headers.copy()
    headers["Authorization"] = f"Bearer {token}"
    return httpx.Request(
        request.method,
        request.url,
        headers=headers,
        content=body,
        extensions=dict(request.extensions),
    )
