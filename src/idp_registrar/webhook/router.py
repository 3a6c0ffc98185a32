"""FastAPI router serving the validating admission webhook."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from idp_registrar.webhook.models import (
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    AdmissionStatus,
    IdentityProviderConfiguration,
)
from idp_registrar.webhook.validator import (
    AdmissionDeniedError,
    IdentityProviderConfigurationValidator,
    get_identity_provider_configuration_validator,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admission"])


@router.post(
    "/validate-identityproviderconfiguration",
    response_model=AdmissionReview,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def validate_identity_provider_configuration(
    review: AdmissionReview,
    validator: Annotated[
        IdentityProviderConfigurationValidator,
        Depends(get_identity_provider_configuration_validator),
    ],
) -> AdmissionReview:
    """Validate an IdentityProviderConfiguration admission request.

    Handles AdmissionReview requests for CREATE, UPDATE and DELETE. Only
    CREATE can be rejected; any failure while deciding a CREATE rejects it.
    """
    if review.request is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="AdmissionReview has no request",
        )

    response = await _review(review.request, validator)
    return AdmissionReview(
        api_version=review.api_version,
        kind=review.kind,
        response=response,
    )


async def _review(
    request: AdmissionRequest,
    validator: IdentityProviderConfigurationValidator,
) -> AdmissionResponse:
    try:
        if request.operation == "CREATE":
            obj = IdentityProviderConfiguration.model_validate(request.object or {})
            warnings = await validator.validate_create(obj)
        elif request.operation == "UPDATE":
            old_obj = _parse_lenient(request.old_object)
            new_obj = _parse_lenient(request.object)
            warnings = await validator.validate_update(old_obj, new_obj)
        elif request.operation == "DELETE":
            obj = _parse_lenient(request.old_object)
            warnings = await validator.validate_delete(obj)
        else:
            warnings = []
    except ValidationError as e:
        logger.warning("Rejecting %s %s: malformed object", request.operation, request.name)
        return AdmissionResponse(
            uid=request.uid,
            allowed=False,
            status=AdmissionStatus(
                code=status.HTTP_400_BAD_REQUEST,
                message=f"malformed IdentityProviderConfiguration: {e}",
            ),
        )
    except AdmissionDeniedError as e:
        logger.warning("Rejecting %s %s: %s", request.operation, request.name, e)
        return AdmissionResponse(
            uid=request.uid,
            allowed=False,
            status=AdmissionStatus(code=status.HTTP_403_FORBIDDEN, message=str(e)),
        )

    return AdmissionResponse(
        uid=request.uid,
        allowed=True,
        warnings=warnings or None,
    )


def _parse_lenient(raw: dict | None) -> IdentityProviderConfiguration:
    # Updates and deletes are always allowed; an unparseable object becomes an empty one.
    try:
        return IdentityProviderConfiguration.model_validate(raw or {})
    except ValidationError:
        return IdentityProviderConfiguration()
