"""
Enrollment token API endpoints.

Issues enrollment tokens and exchanges them for device certificates.
Domain errors (invalid input, unknown/expired/used token, CA failure) are
rendered by the global exception handlers as RFC 7807 problem details.
"""

from fastapi import APIRouter, status
from loguru import logger

from fleetprov.api.v1.enrollment.request import (
    GenerateTokenRequest,
    SubmitTokenRequest,
)
from fleetprov.api.v1.enrollment.response import (
    GenerateTokenResponse,
    PurgeTokensResponse,
    SubmitTokenResponse,
)
from fleetprov.api.v1.enrollment.services import TokenService
from fleetprov.di import OwnerIdDep, ProvisioningFacadeDep

router = APIRouter()


@router.post(
    "/generate",
    response_model=GenerateTokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue an enrollment token",
    description="""
    Issue a short-lived, single-use enrollment token.

    The response carries the subject UUID the device certificate will be
    bound to. The token is pending until a device submits it, and expires
    after `timeInMinutes`.
    """,
)
async def generate_token(
    request: GenerateTokenRequest,
    facade: ProvisioningFacadeDep,
) -> GenerateTokenResponse:
    return await TokenService(facade).generate(request)


@router.post(
    "/submit",
    response_model=SubmitTokenResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Exchange a token for a device certificate",
    description="""
    Submit an enrollment token with the device's declared metadata.

    **Flow**:
    1. Fields are checked (400 if any is missing)
    2. Token must exist (404), be unexpired (410) and unused (409)
    3. The CA signs a certificate for the token's subject UUID (502 on failure)
    4. The token is marked fulfilled; a second submission returns 409

    A CA failure leaves the token pending, so the device may retry.
    """,
)
async def submit_token(
    request: SubmitTokenRequest,
    facade: ProvisioningFacadeDep,
) -> SubmitTokenResponse:
    return await TokenService(facade).submit(request)


@router.post(
    "/generate-protected",
    response_model=GenerateTokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue an enrollment token (authenticated)",
)
async def generate_token_protected(
    request: GenerateTokenRequest,
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
) -> GenerateTokenResponse:
    logger.info(f"Account {owner_id} requested an enrollment token")
    return await TokenService(facade).generate(request)


@router.post(
    "/submit-protected",
    response_model=SubmitTokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Exchange a token and register the device (authenticated)",
    description="""
    Same as `/submit`, and additionally registers the enrolled device to the
    calling account (uuid = subject UUID) in the same transaction that
    fulfills the token.
    """,
)
async def submit_token_protected(
    request: SubmitTokenRequest,
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
) -> SubmitTokenResponse:
    return await TokenService(facade).submit(request, owner_id=owner_id)


@router.post(
    "/purge",
    response_model=PurgeTokensResponse,
    summary="Garbage-collect old expired tokens",
    description="Delete tokens that expired longer ago than `TOKEN_RETENTION_DAYS`.",
)
async def purge_tokens(
    owner_id: OwnerIdDep,
    facade: ProvisioningFacadeDep,
) -> PurgeTokensResponse:
    purged = await facade.purge_expired_tokens()
    logger.info(f"Account {owner_id} purged {purged} expired token(s)")
    return PurgeTokensResponse(purged=purged)
