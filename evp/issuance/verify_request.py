"""Verification of signed issuance requests arriving at an issuer."""

import json
from typing import Any

from pydantic import BaseModel

from evp.core.errors import EmailValidationError, InvalidSignatureError
from evp.crypto.types import JWK
from evp.httpsig.base import normalize_headers
from evp.httpsig.resolvers import JWKSCache
from evp.httpsig.types import SignedRequest, VerifyOptions
from evp.httpsig.verify import verify_request
from evp.tokens.validation import is_valid_email

SEC_FETCH_DEST = "email-verification"
JSON_CONTENT_TYPE = "application/json"


class VerifiedIssuanceRequest(BaseModel):
    """A signature-verified issuance request and its browser key."""

    email: str
    public_key: JWK
    thumbprint: str
    disposable: bool | None = None
    directed_email: str | None = None


class ErrorResponse(BaseModel):
    error: str
    error_description: str


def create_error_response(error: str, description: str) -> ErrorResponse:
    return ErrorResponse(error=error, error_description=description)


def _decode_body(body: bytes | str | None) -> dict[str, Any]:
    if body is None:
        raw = ""
    elif isinstance(body, bytes):
        raw = body.decode("utf-8", errors="replace")
    else:
        raw = body
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise InvalidSignatureError("Invalid request body: not valid JSON") from exc
    if not isinstance(data, dict):
        raise InvalidSignatureError("Invalid request body: expected a JSON object")
    return data


async def verify_issuance_request(
    request: SignedRequest,
    authority: str,
    *,
    max_clock_skew: int = 60,
    cache: JWKSCache | None = None,
) -> VerifiedIssuanceRequest:
    """Verify a browser's signed POST to the issuance endpoint.

    ``authority`` is the issuer's canonical host, never the request's
    Host header. Only the ``hwk`` Signature-Key scheme is accepted.

    Raises:
        InvalidSignatureError: headers, signature or body are unacceptable.
        EmailValidationError: the email is malformed.
    """
    headers = normalize_headers(request.headers)

    sec_fetch_dest = headers.get("sec-fetch-dest")
    if sec_fetch_dest != SEC_FETCH_DEST:
        raise InvalidSignatureError(
            f"Invalid Sec-Fetch-Dest header: expected '{SEC_FETCH_DEST}', got '{sec_fetch_dest}'"
        )
    content_type = headers.get("content-type")
    if not content_type or JSON_CONTENT_TYPE not in content_type:
        raise InvalidSignatureError(
            f"Invalid Content-Type header: expected '{JSON_CONTENT_TYPE}', got '{content_type}'"
        )

    result = await verify_request(
        request.model_copy(update={"authority": authority}),
        VerifyOptions(max_clock_skew=max_clock_skew, strict_aauth=True),
        cache=cache,
    )
    if not result.verified:
        raise InvalidSignatureError(
            f"HTTP Message Signature verification failed: {result.error or 'Unknown error'}"
        )
    if result.key_type != "hwk":
        raise InvalidSignatureError(
            f"Invalid Signature-Key type: expected 'hwk', got '{result.key_type}'"
        )

    body = _decode_body(request.body)
    email = body.get("email")
    if not email or not isinstance(email, str):
        raise InvalidSignatureError("Invalid request body: missing or invalid email field")
    if not is_valid_email(email):
        raise EmailValidationError(f"Invalid email format: {email}")

    disposable = body.get("disposable")
    if disposable is not None and not isinstance(disposable, bool):
        raise InvalidSignatureError("Invalid request body: disposable must be a boolean")
    directed_email = body.get("directed_email")
    if directed_email is not None and not isinstance(directed_email, str):
        raise InvalidSignatureError("Invalid request body: directed_email must be a string")

    return VerifiedIssuanceRequest(
        email=email,
        public_key=result.public_key,
        thumbprint=result.thumbprint,
        disposable=disposable,
        directed_email=directed_email,
    )
