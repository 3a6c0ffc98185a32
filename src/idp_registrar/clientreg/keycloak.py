"""Keycloak Admin API client used by Dynamic Client Registration.

Implements both credential capabilities the registration client consumes:

* ``token_for_registration`` - a one-time Initial Access Token (IAT)
* ``refresh_token`` - a fresh registration access token for one client

plus the realm operations the operator and the admission webhook need.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Generator

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from idp_registrar.clientreg.errors import MAX_ERROR_BODY_SIZE
from idp_registrar.clientreg.retry_transport import RetryTransport
from idp_registrar.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Refresh admin tokens this many seconds before they expire
TOKEN_EXPIRY_LEEWAY = 30


class KeycloakAdminError(Exception):
    """Error from a Keycloak Admin API operation."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
        operation: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.operation = operation


class ClientNotFoundError(KeycloakAdminError):
    """No client in the realm matches the requested client_id."""


class SMTPConfig(BaseModel):
    """SMTP server configuration for a realm."""

    model_config = ConfigDict(populate_by_name=True)

    host: str | None = None
    port: str | None = None
    from_: str | None = Field(None, alias="from")
    ssl: bool | None = None
    starttls: bool | None = None
    auth: bool | None = None
    user: str | None = None
    password: str | None = None


class RealmConfig(BaseModel):
    """Realm representation sent on create and update."""

    model_config = ConfigDict(populate_by_name=True)

    realm: str
    display_name: str | None = Field(None, alias="displayName")
    enabled: bool = True
    login_with_email_allowed: bool | None = Field(None, alias="loginWithEmailAllowed")
    registration_email_as_username: bool | None = Field(
        None, alias="registrationEmailAsUsername"
    )
    registration_allowed: bool | None = Field(None, alias="registrationAllowed")
    smtp_server: SMTPConfig | None = Field(None, alias="smtpServer")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class KeycloakClient(BaseModel):
    """Basic information about a client as listed by the Admin API."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., description="Keycloak internal UUID")
    client_id: str = Field(..., alias="clientId", description="OIDC client_id")
    name: str | None = Field(None, description="Display name")
    secret: str | None = None


class ClientCredentialsAuth(httpx.Auth):
    """Bearer auth using a client_credentials token from the admin realm.

    The token is cached until shortly before it expires and fetched again
    once if the Admin API answers 401.
    """

    requires_response_body = True

    def __init__(self, token_url: str, client_id: str, client_secret: str) -> None:
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._access_token: str | None = None
        self._expires_at = 0.0

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        if self._access_token is None or time.monotonic() >= self._expires_at:
            token_response = yield self._token_request()
            self._store_token(token_response)

        request.headers["Authorization"] = f"Bearer {self._access_token}"
        response = yield request

        if response.status_code == 401:
            token_response = yield self._token_request()
            self._store_token(token_response)
            request.headers["Authorization"] = f"Bearer {self._access_token}"
            yield request

    def _token_request(self) -> httpx.Request:
        return httpx.Request(
            "POST",
            self._token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
        )

    def _store_token(self, response: httpx.Response) -> None:
        operation = "obtain admin token"
        if response.status_code != 200:
            raise KeycloakAdminError(
                f"failed to {operation}: status {response.status_code}",
                status_code=response.status_code,
                body=response.text[:MAX_ERROR_BODY_SIZE],
                operation=operation,
            )

        data = _parse_json(response, operation)
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise KeycloakAdminError(
                f"failed to {operation}: access_token is missing in response",
                status_code=response.status_code,
                body=response.text[:MAX_ERROR_BODY_SIZE],
                operation=operation,
            )
        try:
            expires_in = int(data.get("expires_in", 60))
        except (TypeError, ValueError) as exc:
            raise KeycloakAdminError(
                f"failed to {operation}: invalid expires_in: {exc}",
                status_code=response.status_code,
                operation=operation,
            ) from exc

        self._access_token = access_token
        self._expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_LEEWAY, 0)


class KeycloakAdminClient:
    """Client for the Keycloak Admin REST API.

    The HTTP client passed in must already authenticate as an admin, for
    example with :class:`ClientCredentialsAuth`.
    """

    def __init__(self, http_client: httpx.AsyncClient, base_url: str, realm: str) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._realm = realm

    @property
    def realm(self) -> str:
        return self._realm

    def for_realm(self, realm: str) -> KeycloakAdminClient:
        """Return a client for another realm sharing the same HTTP client."""
        return KeycloakAdminClient(self._http, self._base_url, realm)

    def registration_endpoint(self) -> str:
        """OIDC Dynamic Client Registration endpoint of the realm."""
        return f"{self._base_url}/realms/{self._realm}/clients-registrations/openid-connect"

    async def token_for_registration(self) -> str:
        """Create a new Initial Access Token for client registration.

        Returns:
            The IAT.

        Raises:
            KeycloakAdminError: If the token could not be created.
        """
        operation = "create initial access token"
        response = await self._request(
            "POST",
            f"{self._base_url}/admin/realms/{self._realm}/clients-initial-access",
            operation,
            json={},
        )
        if response.status_code not in (200, 201):
            raise _error_from_response(response, operation)

        data = _parse_json(response, operation)
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise KeycloakAdminError(
                f"failed to {operation}: token is empty in response",
                status_code=response.status_code,
                body=response.text[:MAX_ERROR_BODY_SIZE],
                operation=operation,
            )
        return token

    async def refresh_token(self, client_id: str) -> str:
        """Regenerate the registration access token of a client.

        Args:
            client_id: The OIDC client_id (not the Keycloak UUID).

        Returns:
            The new registration access token.

        Raises:
            ClientNotFoundError: No client with that client_id exists.
            KeycloakAdminError: If the token could not be regenerated.
        """
        client_uuid = await self._resolve_client_uuid(client_id)

        operation = "regenerate registration access token"
        response = await self._request(
            "POST",
            f"{self._base_url}/admin/realms/{self._realm}/clients/{client_uuid}"
            "/registration-access-token",
            operation,
        )
        if response.status_code not in (200, 201):
            raise _error_from_response(response, operation)

        data = _parse_json(response, operation)
        token = data.get("registrationAccessToken") if isinstance(data, dict) else None
        if not token:
            raise KeycloakAdminError(
                f"failed to {operation}: token is empty in response",
                status_code=response.status_code,
                body=response.text[:MAX_ERROR_BODY_SIZE],
                operation=operation,
            )

        logger.info("Regenerated registration access token for client %s", client_id)
        return token

    async def realm_exists(self, realm_name: str) -> bool:
        """Check whether a realm exists.

        Only 200 and 404 are meaningful; anything else is an error.
        """
        operation = "check realm existence"
        response = await self._request(
            "GET", f"{self._base_url}/admin/realms/{realm_name}", operation
        )
        if response.status_code == 200:
            return True
        if response.status_code == 404:
            return False
        raise _error_from_response(response, operation)

    async def create_or_update_realm(self, config: RealmConfig) -> bool:
        """Create a realm, or update it when it already exists.

        Returns:
            True if the realm was created, False if it was updated.
        """
        operation = "create realm"
        body = config.to_wire()
        response = await self._request(
            "POST", f"{self._base_url}/admin/realms", operation, json=body
        )
        if response.status_code == 201:
            logger.info("Realm created: %s", config.realm)
            return True
        if response.status_code == 409:
            await self._update_realm(config.realm, body)
            return False
        raise _error_from_response(response, operation)

    async def _update_realm(self, realm_name: str, body: dict) -> None:
        operation = "update realm"
        response = await self._request(
            "PUT", f"{self._base_url}/admin/realms/{realm_name}", operation, json=body
        )
        if response.status_code not in (200, 204):
            raise _error_from_response(response, operation)
        logger.info("Realm updated: %s", realm_name)

    async def delete_realm(self, realm_name: str) -> None:
        """Delete a realm. A missing realm is not an error."""
        operation = "delete realm"
        response = await self._request(
            "DELETE", f"{self._base_url}/admin/realms/{realm_name}", operation
        )
        if response.status_code not in (200, 204, 404):
            raise _error_from_response(response, operation)
        logger.info("Realm deleted: %s", realm_name)

    async def get_client_by_name(self, client_name: str) -> KeycloakClient | None:
        """Find a client by its display name, or None."""
        for client in await self.list_clients():
            if client.name == client_name:
                return client
        return None

    async def list_clients(self) -> list[KeycloakClient]:
        """List all clients of the realm."""
        operation = "get clients"
        response = await self._request(
            "GET", f"{self._base_url}/admin/realms/{self._realm}/clients", operation
        )
        if response.status_code != 200:
            raise _error_from_response(response, operation)

        data = _parse_json(response, operation)
        try:
            return [KeycloakClient.model_validate(item) for item in data]
        except (TypeError, ValidationError) as exc:
            raise KeycloakAdminError(
                f"failed to parse clients response: {exc}", operation=operation
            ) from exc

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _resolve_client_uuid(self, client_id: str) -> str:
        for client in await self.list_clients():
            if client.client_id == client_id:
                return client.id
        raise ClientNotFoundError(
            f"client with client_id {client_id!r} not found",
            status_code=404,
            operation="resolve client",
        )

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        json: object | None = None,
    ) -> httpx.Response:
        try:
            return await self._http.request(method, url, json=json)
        except httpx.RequestError as e:
            logger.error("HTTP error calling Keycloak Admin API (%s): %s", operation, e)
            raise KeycloakAdminError(
                f"failed to {operation}: {e}",
                operation=operation,
            ) from e


def _error_from_response(response: httpx.Response, operation: str) -> KeycloakAdminError:
    body = response.text[:MAX_ERROR_BODY_SIZE]
    return KeycloakAdminError(
        f"failed to {operation}: status {response.status_code} body: {body}",
        status_code=response.status_code,
        body=body,
        operation=operation,
    )


def _parse_json(response: httpx.Response, operation: str):
    try:
        return response.json()
    except ValueError as exc:
        raise KeycloakAdminError(
            f"failed to parse {operation} response: {exc}",
            status_code=response.status_code,
            body=response.text[:MAX_ERROR_BODY_SIZE],
            operation=operation,
        ) from exc


def create_admin_client(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> KeycloakAdminClient:
    """Build an admin client authenticated with client credentials.

    Every request sent through the returned client carries the admin bearer
    token, so DCR calls must not use it. Registration needs its own
    ``httpx.AsyncClient`` whose transport is ``RetryTransport(refresher=admin)``,
    as :func:`get_registration_client` builds. The admin client's own
    RetryTransport only passes responses through: admin requests are never
    tagged with a client id.

    Args:
        settings: Settings to read Keycloak credentials from. Defaults to
            the global settings.
        transport: Base transport under the RetryTransport. Defaults to
            ``httpx.AsyncHTTPTransport``.
    """
    settings = settings or get_settings()
    auth = ClientCredentialsAuth(
        settings.keycloak_token_endpoint,
        settings.keycloak_admin_client_id,
        settings.keycloak_admin_client_secret,
    )
    retry_transport = RetryTransport(transport)
    http_client = httpx.AsyncClient(
        auth=auth,
        transport=retry_transport,
        timeout=settings.http_timeout_seconds,
    )
    admin_client = KeycloakAdminClient(
        http_client,
        settings.keycloak_base_url,
        settings.keycloak_admin_realm,
    )
    retry_transport.refresher = admin_client
    return admin_client


# Global client instance
_admin_client: KeycloakAdminClient | None = None


def get_keycloak_admin_client() -> KeycloakAdminClient:
    """Get the global Keycloak admin client instance.

    Returns:
        KeycloakAdminClient instance.
    """
    global _admin_client
    if _admin_client is None:
        _admin_client = create_admin_client()
    return _admin_client


async def close_keycloak_admin_client() -> None:
    """Close the global admin client, if one was created."""
    global _admin_client
    if _admin_client is not None:
        await _admin_client.aclose()
        _admin_client = None
