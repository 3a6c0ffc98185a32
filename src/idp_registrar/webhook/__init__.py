"""Validating admission webhook for IdentityProviderConfiguration resources."""

from idp_registrar.webhook.models import (
    AdmissionReview,
    ClientType,
    IdentityProviderClientConfig,
    IdentityProviderConfiguration,
)
from idp_registrar.webhook.router import router as webhook_router
from idp_registrar.webhook.validator import (
    AdmissionDeniedError,
    IdentityProviderConfigurationValidator,
    RealmChecker,
    get_identity_provider_configuration_validator,
)

__all__ = [
    # Models
    "AdmissionReview",
    "ClientType",
    "IdentityProviderClientConfig",
    "IdentityProviderConfiguration",
    # Validator
    "AdmissionDeniedError",
    "IdentityProviderConfigurationValidator",
    "RealmChecker",
    "get_identity_provider_configuration_validator",
    # Router
    "webhook_router",
]
