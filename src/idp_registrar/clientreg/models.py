"""Data models for OIDC Dynamic Client Registration (RFC 7591/7592)."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

GRANT_TYPE_AUTHORIZATION_CODE = "authorization_code"
GRANT_TYPE_REFRESH_TOKEN = "refresh_token"
GRANT_TYPE_CLIENT_CREDENTIALS = "client_credentials"
GRANT_TYPE_IMPLICIT = "implicit"

TOKEN_ENDPOINT_AUTH_METHOD_NONE = "none"
TOKEN_ENDPOINT_AUTH_METHOD_CLIENT_SECRET_POST = "client_secret_post"
TOKEN_ENDPOINT_AUTH_METHOD_CLIENT_SECRET_BASIC = "client_secret_basic"


class Operation(str, Enum):
    """Logical DCR operation, independent of the HTTP verb used."""

    REGISTER = "register"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class ClientMetadata(BaseModel):
    """Client metadata sent on registration and update.

    Unset fields are left off the wire entirely instead of being sent as
    empty strings, empty lists or nulls.
    """

    model_config = ConfigDict(extra="ignore")

    client_id: str | None = Field(None, description="Client identifier (update only)")
    client_name: str | None = Field(None, description="Human-readable client name")
    redirect_uris: list[str] | None = Field(None, description="Redirection URIs, in order")
    grant_types: list[str] | None = Field(None, description="OAuth 2.0 grant types")
    response_types: list[str] | None = Field(None, description="OAuth 2.0 response types")
    token_endpoint_auth_method: str | None = Field(
        None,
        description="Requested authentication method for the token endpoint",
    )
    post_logout_redirect_uris: list[str] | None = None
    scope: str | None = None
    contacts: list[str] | None = None
    logo_uri: str | None = None
    client_uri: str | None = None
    policy_uri: str | None = None
    tos_uri: str | None = None
    jwks_uri: str | None = None
    software_id: str | None = None
    software_version: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON body of a registration request."""
        return {
            key: value
            for key, value in self.model_dump(mode="json", exclude_none=True).items()
            if value not in ("", [])
        }


class ClientInformation(ClientMetadata):
    """Client information response (RFC 7591 section 3.2.1).

    ``registration_access_token`` and ``registration_client_uri`` are opaque
    values issued by the provider. They are the only credentials accepted for
    later read, update and delete calls on this client.
    """

    client_id: str = Field(..., description="Issued client identifier")
    client_secret: str | None = None
    client_id_issued_at: int = Field(0, description="Issue time in epoch seconds, 0 if absent")
    client_secret_expires_at: int = Field(
        0,
        description="Secret expiry in epoch seconds, 0 if absent or never",
    )
    registration_access_token: str | None = None
    registration_client_uri: str | None = None

    @property
    def metadata(self) -> ClientMetadata:
        """The client metadata as echoed back by the provider."""
        return ClientMetadata.model_validate(
            self.model_dump(include=set(ClientMetadata.model_fields))
        )
