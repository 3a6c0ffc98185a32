"""Resource and AdmissionReview models for the admission webhook."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from idp_registrar.clientreg.models import (
    GRANT_TYPE_AUTHORIZATION_CODE,
    GRANT_TYPE_REFRESH_TOKEN,
    TOKEN_ENDPOINT_AUTH_METHOD_CLIENT_SECRET_BASIC,
    TOKEN_ENDPOINT_AUTH_METHOD_NONE,
    ClientMetadata,
)


class ClientType(str, Enum):
    """Kind of OAuth client managed for a realm."""

    CONFIDENTIAL = "confidential"
    PUBLIC = "public"


class ObjectMeta(BaseModel):
    """Subset of Kubernetes object metadata used by the webhook."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    namespace: str | None = None


class ClientSecretRef(BaseModel):
    """Reference to the Secret holding a client's credentials."""

    name: str | None = None
    namespace: str | None = None


class IdentityProviderClientConfig(BaseModel):
    """One OAuth client requested in an IdentityProviderConfiguration."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    client_type: ClientType = Field(ClientType.CONFIDENTIAL, alias="clientType")
    client_id: str = Field("", alias="clientID")
    client_name: str = Field("", alias="clientName")
    valid_redirect_uris: list[str] = Field(default_factory=list, alias="validRedirectUris")
    valid_post_logout_redirect_uris: list[str] = Field(
        default_factory=list, alias="validPostLogoutRedirectUris"
    )
    client_secret_ref: ClientSecretRef | None = Field(None, alias="clientSecretRef")
    registration_client_uri: str = Field("", alias="registrationClientURI")

    def to_client_metadata(self) -> ClientMetadata:
        """Registration metadata for this client.

        Public clients authenticate with ``none``, confidential ones with
        ``client_secret_basic``.
        """
        auth_method = TOKEN_ENDPOINT_AUTH_METHOD_CLIENT_SECRET_BASIC
        if self.client_type == ClientType.PUBLIC:
            auth_method = TOKEN_ENDPOINT_AUTH_METHOD_NONE

        return ClientMetadata(
            client_id=self.client_id or None,
            client_name=self.client_name or None,
            redirect_uris=self.valid_redirect_uris or None,
            post_logout_redirect_uris=self.valid_post_logout_redirect_uris or None,
            grant_types=[GRANT_TYPE_AUTHORIZATION_CODE, GRANT_TYPE_REFRESH_TOKEN],
            token_endpoint_auth_method=auth_method,
        )


class IdentityProviderConfigurationSpec(BaseModel):
    clients: list[IdentityProviderClientConfig] = Field(default_factory=list)


class IdentityProviderConfiguration(BaseModel):
    """Cluster-scoped resource describing a realm and its OAuth clients.

    The resource name is the realm name.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str | None = Field(None, alias="apiVersion")
    kind: str | None = None
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: IdentityProviderConfigurationSpec = Field(
        default_factory=IdentityProviderConfigurationSpec
    )

    @property
    def name(self) -> str:
        return self.metadata.name


class AdmissionRequest(BaseModel):
    """The ``request`` part of an admission.k8s.io/v1 AdmissionReview."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: str
    operation: str
    name: str | None = None
    object: dict[str, Any] | None = None
    old_object: dict[str, Any] | None = Field(None, alias="oldObject")


class AdmissionStatus(BaseModel):
    code: int
    message: str


class AdmissionResponse(BaseModel):
    uid: str
    allowed: bool
    status: AdmissionStatus | None = None
    warnings: list[str] | None = None


class AdmissionReview(BaseModel):
    """admission.k8s.io/v1 AdmissionReview envelope."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str = Field("admission.k8s.io/v1", alias="apiVersion")
    kind: str = "AdmissionReview"
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None
