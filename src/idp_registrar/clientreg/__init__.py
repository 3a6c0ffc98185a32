"""OIDC Dynamic Client Registration (RFC 7591 / RFC 7592).

Registers, reads, updates and deletes OAuth clients at an identity provider.
Requests that fail with HTTP 401 are retried once by :class:`RetryTransport`
after a fresh registration access token has been obtained for the client.
"""

from idp_registrar.clientreg.client import (
    RegistrationClient,
    TokenProvider,
    get_registration_client,
)
from idp_registrar.clientreg.errors import (
    BodyReplayError,
    ClientRegError,
    DecodeError,
    HTTPError,
    NoRegistrationURIError,
    NoTokenProviderError,
    RequestFailedError,
    TokenProviderError,
    as_http_error,
    is_http_error,
    is_not_found,
    is_unauthorized,
)
from idp_registrar.clientreg.models import (
    ClientInformation,
    ClientMetadata,
    Operation,
)
from idp_registrar.clientreg.retry_transport import (
    CLIENT_ID_EXTENSION,
    RetryTransport,
    TokenRefresher,
    client_id_from_request,
    with_client_id,
)

__all__ = [
    # Models
    "ClientInformation",
    "ClientMetadata",
    "Operation",
    # Client
    "RegistrationClient",
    "TokenProvider",
    "get_registration_client",
    # Errors
    "BodyReplayError",
    "ClientRegError",
    "DecodeError",
    "HTTPError",
    "NoRegistrationURIError",
    "NoTokenProviderError",
    "RequestFailedError",
    "TokenProviderError",
    "as_http_error",
    "is_http_error",
    "is_not_found",
    "is_unauthorized",
    # Transport
    "CLIENT_ID_EXTENSION",
    "RetryTransport",
    "TokenRefresher",
    "client_id_from_request",
    "with_client_id",
]
