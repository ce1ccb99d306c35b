"""Reference issuer endpoints: metadata, JWKS and issuance."""

import logging
from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from evp.core.errors import EmailValidationError, InvalidSignatureError
from evp.core.settings import IssuerSettings, VerifierSettings
from evp.crypto.types import EmailVerificationMetadata, JWKSResponse
from evp.httpsig.base import normalize_headers
from evp.httpsig.types import SignedRequest
from evp.issuance.discovery import (
    ISSUANCE_PATH,
    JWKS_PATH,
    METADATA_PATH,
    build_metadata,
    public_jwks,
)
from evp.issuance.verify_request import create_error_response, verify_issuance_request
from evp.tokens.issuance_token import generate_issuance_token
from evp.tokens.types import Confirmation, IssuanceTokenPayload

logger = logging.getLogger(__name__)

router = APIRouter()

JWKS_CACHE_CONTROL = "public, max-age=3600"
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_SERVER_ERROR = 500

EmailAuthenticator = Callable[[Request, str], Awaitable[bool]]
"""Decides whether the browser session behind a request owns ``email``."""


class IssuanceResponse(BaseModel):
    issuance_token: str


def _load_settings() -> IssuerSettings:
    return IssuerSettings()


def _load_verifier_settings() -> VerifierSettings:
    return VerifierSettings()


async def _deny_all(_request: Request, _email: str) -> bool:
    return False


def get_email_authenticator() -> EmailAuthenticator:
    """Override through ``app.dependency_overrides`` to plug in a session check."""
    return _deny_all


def _error(error: str, description: str, status_code: int) -> JSONResponse:
    body = create_error_response(error, description)
    return JSONResponse(body.model_dump(), status_code=status_code)


@router.get(METADATA_PATH)
async def email_verification_metadata(
    settings: Annotated[IssuerSettings, Depends(_load_settings)],
) -> EmailVerificationMetadata:
    """Issuer metadata for browsers and relying parties."""
    signing_jwk = settings.get_signing_jwk()
    algorithms = [signing_jwk["alg"]] if signing_jwk and signing_jwk.get("alg") else None
    return build_metadata(settings, algorithms)


@router.get(JWKS_PATH)
async def jwks(
    response: Response,
    settings: Annotated[IssuerSettings, Depends(_load_settings)],
) -> JWKSResponse:
    """JSON Web Key Set endpoint."""
    signing_jwk = settings.get_signing_jwk()
    response.headers["Cache-Control"] = JWKS_CACHE_CONTROL
    return JWKSResponse(keys=public_jwks(signing_jwk) if signing_jwk else [])


@router.post(ISSUANCE_PATH, response_model=None)
async def issuance(
    request: Request,
    settings: Annotated[IssuerSettings, Depends(_load_settings)],
    verifier_settings: Annotated[VerifierSettings, Depends(_load_verifier_settings)],
    authenticator: Annotated[EmailAuthenticator, Depends(get_email_authenticator)],
) -> IssuanceResponse | JSONResponse:
    """POST /issuance -- exchange a signed request for an issuance token."""
    signing_jwk = settings.get_signing_jwk()
    if signing_jwk is None:
        return _error("server_error", "No signing key", HTTP_SERVER_ERROR)

    signed = SignedRequest(
        method=request.method,
        authority=settings.authority,
        path=request.url.path,
        query=request.url.query or None,
        headers=normalize_headers(request.headers.items()),
        body=await request.body(),
    )
    try:
        verified = await verify_issuance_request(
            signed, settings.authority, max_clock_skew=verifier_settings.max_clock_skew
        )
    except InvalidSignatureError as exc:
        logger.warning("Rejected issuance request: %s", exc.message)
        return _error(
            "invalid_signature", "Request signature could not be verified", HTTP_UNAUTHORIZED
        )
    except EmailValidationError:
        return _error("invalid_request", "Invalid email address", HTTP_BAD_REQUEST)

    if not await authenticator(request, verified.email):
        return _error(
            "authentication_required",
            "Browser session is not authenticated for this email",
            HTTP_UNAUTHORIZED,
        )
    if verified.disposable:
        return _error(
            "disposable_not_supported",
            "Disposable email addresses are not supported",
            HTTP_BAD_REQUEST,
        )

    payload = IssuanceTokenPayload(
        iss=settings.issuer,
        cnf=Confirmation(jwk=verified.public_key),
        email=verified.email,
        email_verified=True,
    )
    token = await generate_issuance_token(payload, signing_jwk)
    logger.info("Issued token for key %s", verified.thumbprint)
    return IssuanceResponse(issuance_token=token)
