"""Validation of IdentityProviderConfiguration admission requests.

Creation is rejected when the realm is reserved, deny-listed or already
exists in Keycloak. Updates and deletes are always allowed: the reconciler
adds finalizers and status to resources whose realm it has already created,
and rejecting those updates would deadlock it.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from opentelemetry import trace

from idp_registrar.config import get_settings
from idp_registrar.webhook.models import IdentityProviderConfiguration

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

RESERVED_REALM = "master"


class RealmChecker(Protocol):
    async def realm_exists(self, realm_name: str) -> bool: ...


class AdmissionDeniedError(Exception):
    """The admission request must be rejected with this message."""


class IdentityProviderConfigurationValidator:
    """Admission validator for IdentityProviderConfiguration resources.

    Each method returns a list of warnings and raises AdmissionDeniedError
    to reject the request.
    """

    def __init__(
        self,
        realm_checker: RealmChecker,
        realm_deny_list: Sequence[str] = (),
    ) -> None:
        self._realm_checker = realm_checker
        self._realm_deny_list = tuple(realm_deny_list)

    async def validate_create(self, obj: IdentityProviderConfiguration) -> list[str]:
        realm_name = obj.name.strip()

        with tracer.start_as_current_span("webhook.validate_create") as span:
            span.set_attribute("realm", realm_name)

            if not realm_name:
                raise AdmissionDeniedError("realm name must not be empty")
            if realm_name == RESERVED_REALM:
                raise AdmissionDeniedError(
                    "creation of IdentityProviderConfiguration for realm 'master' is not allowed"
                )
            if realm_name in self._realm_deny_list:
                raise AdmissionDeniedError(
                    f'creation of IdentityProviderConfiguration for realm "{realm_name}" '
                    "is not allowed"
                )

            try:
                exists = await self._realm_checker.realm_exists(realm_name)
            except Exception as exc:
                raise AdmissionDeniedError(
                    f"failed to check realm existence in keycloak: {exc}"
                ) from exc

            if exists:
                raise AdmissionDeniedError(f'keycloak realm "{realm_name}" already exists')

        return []

    async def validate_update(
        self,
        old_obj: IdentityProviderConfiguration,
        new_obj: IdentityProviderConfiguration,
    ) -> list[str]:
        return []

    async def validate_delete(self, obj: IdentityProviderConfiguration) -> list[str]:
        return []


# Global validator instance
_validator: IdentityProviderConfigurationValidator | None = None


def get_identity_provider_configuration_validator() -> IdentityProviderConfigurationValidator:
    """Get the global validator, backed by the Keycloak admin client.

    Returns:
        IdentityProviderConfigurationValidator instance.
    """
    global _validator
    if _validator is None:
        from idp_registrar.clientreg.keycloak import get_keycloak_admin_client

        _validator = IdentityProviderConfigurationValidator(
            realm_checker=get_keycloak_admin_client(),
            realm_deny_list=get_settings().realm_deny_list,
        )
    return _validator
