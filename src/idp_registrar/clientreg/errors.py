"""Error types raised by the client registration package."""

from __future__ import annotations

import logging

import httpx

from idp_registrar.clientreg.models import Operation

logger = logging.getLogger(__name__)

MAX_ERROR_BODY_SIZE = 4096


class ClientRegError(Exception):
    """Base class for all client registration failures."""


class HTTPError(ClientRegError):
    """The identity provider answered with an unexpected status code.

    Two errors classify the same when status code and operation match; the
    body is kept for diagnostics only.
    """

    def __init__(self, status_code: int, body: str, operation: Operation) -> None:
        self.status_code = status_code
        self.body = body
        self.operation = Operation(operation)
        if body:
            message = f"oidc {self.operation.value} failed: HTTP {status_code}: {body}"
        else:
            message = f"oidc {self.operation.value} failed: HTTP {status_code}"
        super().__init__(message)

    @property
    def classification(self) -> tuple[int, Operation]:
        return (self.status_code, self.operation)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HTTPError):
            return NotImplemented
        return self.classification == other.classification

    def __hash__(self) -> int:
        return hash(self.classification)


class NoTokenProviderError(ClientRegError):
    """Registration was attempted without an initial-access token provider."""

    def __init__(self) -> None:
        super().__init__("oidc: token provider is required for this operation")


class NoRegistrationURIError(ClientRegError):
    """A read, update or delete was attempted without a registration URI."""

    def __init__(self) -> None:
        super().__init__("oidc: registration client URI is required")


class TokenProviderError(ClientRegError):
    """The initial-access token could not be obtained."""


class RequestFailedError(ClientRegError):
    """The request never produced an HTTP response."""


class DecodeError(ClientRegError):
    """A request payload could not be encoded or a response decoded."""


class BodyReplayError(ClientRegError):
    """A request body could not be re-obtained for a retry."""


async def http_error_from_response(
    response: httpx.Response,
    operation: Operation,
) -> HTTPError:
    """Build an HTTPError, reading at most MAX_ERROR_BODY_SIZE body bytes."""
    chunks: list[bytes] = []
    remaining = MAX_ERROR_BODY_SIZE
    try:
        async for chunk in response.aiter_bytes():
            chunks.append(chunk[:remaining])
            remaining -= len(chunks[-1])
            if remaining <= 0:
                break
    except (httpx.StreamError, httpx.TransportError) as exc:
        logger.debug("Error body for HTTP %d truncated: %s", response.status_code, exc)
    body = b"".join(chunks).decode("utf-8", errors="replace")
    return HTTPError(response.status_code, body, operation)


def as_http_error(exc: BaseException | None) -> HTTPError | None:
    """Return the HTTPError carried by ``exc`` or any exception it wraps.

    Only explicit wrapping (``raise ... from``) is followed. Errors of the
    non-HTTP family are never classified as HTTP, whatever they wrap.
    """
    seen: set[int] = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, HTTPError):
            return exc
        if isinstance(exc, ClientRegError):
            return None
        seen.add(id(exc))
        exc = exc.__cause__
    return None


def is_http_error(exc: BaseException | None) -> bool:
    return as_http_error(exc) is not None


def is_unauthorized(exc: BaseException | None) -> bool:
    http_error = as_http_error(exc)
    return http_error is not None and http_error.status_code == 401


def is_not_found(exc: BaseException | None) -> bool:
    http_error = as_http_error(exc)
    return http_error is not None and http_error.status_code == 404
