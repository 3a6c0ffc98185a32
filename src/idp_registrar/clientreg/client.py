"""Dynamic Client Registration client (RFC 7591 / RFC 7592)."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

import httpx
from opentelemetry import trace
from pydantic import ValidationError

from idp_registrar.clientreg.errors import (
    DecodeError,
    NoRegistrationURIError,
    NoTokenProviderError,
    RequestFailedError,
    TokenProviderError,
    http_error_from_response,
)
from idp_registrar.clientreg.models import ClientInformation, ClientMetadata, Operation
from idp_registrar.clientreg.retry_transport import (
    RetryTransport,
    TokenRefresher,
    with_client_id,
)
from idp_registrar.config import get_settings

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class TokenProvider(Protocol):
    """Issues one-time initial access tokens for client registration."""

    async def token_for_registration(self) -> str: ...


class RegistrationClient:
    """Client for the DCR register / read / update / delete operations.

    Each call is an independent exchange. Tokens are never cached here: the
    initial access token comes from the token provider on every
    registration, and the registration access token is passed in by the
    caller for every other operation.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        token_provider: TokenProvider | None = None,
        token_refresher: TokenRefresher | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the registration client.

        Args:
            http_client: Optional shared HTTP client. Its transport should be a
                RetryTransport if 401 recovery is wanted.
            token_provider: Source of initial access tokens. Required for register.
            token_refresher: Used for 401 recovery when no http_client is given.
            timeout: Request timeout in seconds. Defaults to settings.
        """
        self._http_client = http_client
        self._token_provider = token_provider
        self._token_refresher = token_refresher
        self._timeout = timeout if timeout is not None else get_settings().http_timeout_seconds

    async def register(
        self,
        registration_endpoint: str,
        metadata: ClientMetadata,
    ) -> ClientInformation:
        """Register a new client.

        Raises:
            NoTokenProviderError: No token provider configured.
            TokenProviderError: The initial access token could not be obtained.
            HTTPError: The provider did not answer 201.
        """
        if self._token_provider is None:
            raise NoTokenProviderError()

        with tracer.start_as_current_span("clientreg.register"):
            try:
                token = await self._token_provider.token_for_registration()
            except Exception as exc:
                raise TokenProviderError(f"failed to get registration token: {exc}") from exc

            body = await self._exchange(
                "POST",
                registration_endpoint,
                token,
                Operation.REGISTER,
                expected_status=201,
                metadata=metadata,
            )
            info = _decode_client_information(body, Operation.REGISTER)

        logger.info("Registered OAuth client %s", info.client_id)
        return info

    async def read(
        self,
        client_id: str,
        registration_client_uri: str,
        registration_access_token: str,
    ) -> ClientInformation:
        """Read the current registration of a client."""
        if not registration_client_uri:
            raise NoRegistrationURIError()

        with tracer.start_as_current_span("clientreg.read"):
            body = await self._exchange(
                "GET",
                registration_client_uri,
                registration_access_token,
                Operation.READ,
                expected_status=200,
                client_id=client_id,
            )
            info = _decode_client_information(body, Operation.READ)

        logger.debug("Read OAuth client %s", info.client_id)
        return info

    async def update(
        self,
        registration_client_uri: str,
        registration_access_token: str,
        metadata: ClientMetadata,
    ) -> ClientInformation:
        """Replace the registered metadata of a client.

        This is a full replacement, not a patch. The client id used for 401
        recovery is taken from ``metadata.client_id``.
        """
        if not registration_client_uri:
            raise NoRegistrationURIError()

        with tracer.start_as_current_span("clientreg.update"):
            body = await self._exchange(
                "PUT",
                registration_client_uri,
                registration_access_token,
                Operation.UPDATE,
                expected_status=200,
                client_id=metadata.client_id,
                metadata=metadata,
            )
            info = _decode_client_information(body, Operation.UPDATE)

        logger.info("Updated OAuth client %s", info.client_id)
        return info

    async def delete(
        self,
        client_id: str,
        registration_client_uri: str,
        registration_access_token: str,
    ) -> None:
        """Delete a client registration."""
        if not registration_client_uri:
            raise NoRegistrationURIError()

        with tracer.start_as_current_span("clientreg.delete"):
            await self._exchange(
                "DELETE",
                registration_client_uri,
                registration_access_token,
                Operation.DELETE,
                expected_status=204,
                client_id=client_id,
            )

        logger.info("Deleted OAuth client %s", client_id)

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return

        transport = RetryTransport(refresher=self._token_refresher)
        async with httpx.AsyncClient(transport=transport, timeout=self._timeout) as client:
            yield client

    async def _exchange(
        self,
        method: str,
        url: str,
        token: str,
        operation: Operation,
        *,
        expected_status: int,
        client_id: str | None = None,
        metadata: ClientMetadata | None = None,
    ) -> bytes:
        headers = {"Authorization": f"Bearer {token}"}
        content = None
        if metadata is not None:
            try:
                content = json.dumps(metadata.to_wire()).encode("utf-8")
            except (TypeError, ValueError) as exc:
                raise DecodeError(f"failed to marshal client metadata: {exc}") from exc
            headers["Content-Type"] = "application/json"
        if operation is not Operation.DELETE:
            headers["Accept"] = "application/json"

        extensions = with_client_id(None, client_id) if client_id else None

        async with self._client() as http:
            request = http.build_request(
                method,
                url,
                content=content,
                headers=headers,
                extensions=extensions,
            )
            try:
                response = await http.send(request, stream=True)
            except httpx.RequestError as exc:
                raise RequestFailedError(
                    f"oidc {operation.value} request failed: {exc}"
                ) from exc

            try:
                if response.status_code != expected_status:
                    raise await http_error_from_response(response, operation)
                return await response.aread()
            except httpx.RequestError as exc:
                raise RequestFailedError(
                    f"oidc {operation.value} failed reading response: {exc}"
                ) from exc
            finally:
                await response.aclose()


def _decode_client_information(body: bytes, operation: Operation) -> ClientInformation:
    try:
        return ClientInformation.model_validate_json(body)
    except ValidationError as exc:
        raise DecodeError(f"oidc {operation.value}: failed to parse response: {exc}") from exc


# Global client instance
_registration_client: RegistrationClient | None = None


def get_registration_client() -> RegistrationClient:
    """Get the global registration client, backed by the Keycloak admin client.

    Returns:
        RegistrationClient instance.
    """
    global _registration_client
    if _registration_client is None:
        from idp_registrar.clientreg.keycloak import get_keycloak_admin_client

        admin_client = get_keycloak_admin_client()
        _registration_client = RegistrationClient(
            token_provider=admin_client,
            token_refresher=admin_client,
        )
    return _registration_client
