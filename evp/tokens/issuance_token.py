"""IssuanceToken (SD-JWT): the issuer's attestation bound to the browser key."""

from pydantic import ValidationError

from evp.core.errors import InvalidSignatureError, TokenFormatError
from evp.crypto.jwk import extract_public_key_parameters, validate_jwk
from evp.crypto.types import JWK
from evp.tokens.clock import TIME_VALIDATION_WINDOW, ensure_iat_claim, validate_iat_for_verification
from evp.tokens.jws import resolve_algorithm, sign_compact, verify_compact
from evp.tokens.types import (
    ISSUANCE_TOKEN_TYPE,
    IssuanceTokenPayload,
    KeyResolver,
    TokenGenerationOptions,
)
from evp.tokens.validation import (
    parse_jwt,
    validate_email_claim,
    validate_email_verified_claim,
    validate_jwt_type,
    validate_required_claims,
)

REQUIRED_CLAIMS = ("iss", "cnf", "email", "email_verified")


async def generate_issuance_token(
    payload: IssuanceTokenPayload,
    jwk: JWK,
    options: TokenGenerationOptions | None = None,
) -> str:
    """Sign an IssuanceToken with the issuer key; cnf.jwk is reduced to public members."""
    validate_jwk(jwk)
    claims = payload.model_dump(exclude_none=True)
    validate_email_claim(claims)
    validate_email_verified_claim(claims)
    algorithm = resolve_algorithm(jwk, options)

    claims = ensure_iat_claim(claims)
    claims["cnf"] = {"jwk": extract_public_key_parameters(payload.cnf.jwk)}
    headers = {"typ": ISSUANCE_TOKEN_TYPE, "kid": jwk["kid"]}
    return sign_compact(claims, jwk, algorithm, headers)


async def verify_issuance_token(
    token: str,
    key_resolver: KeyResolver,
    *,
    iat_window: int = TIME_VALIDATION_WINDOW,
) -> IssuanceTokenPayload:
    """Verify an IssuanceToken with the issuer key returned by ``key_resolver``."""
    header, claims = parse_jwt(token)
    validate_jwt_type(header, ISSUANCE_TOKEN_TYPE)
    if not header.get("kid"):
        raise InvalidSignatureError("IssuanceToken header must contain key identifier (kid)")
    algorithm = header.get("alg")
    if not algorithm:
        raise InvalidSignatureError("IssuanceToken header must contain algorithm (alg)")

    validate_required_claims(claims, REQUIRED_CLAIMS)
    validate_email_claim(claims)
    validate_email_verified_claim(claims)
    validate_iat_for_verification(claims.get("iat"), iat_window)
    cnf = claims["cnf"]
    if not isinstance(cnf, dict) or not isinstance(cnf.get("jwk"), dict):
        raise InvalidSignatureError("IssuanceToken must contain cnf.jwk claim")

    issuer_key = await key_resolver(header["kid"], claims["iss"])
    verified = verify_compact(token, issuer_key, algorithm, "IssuanceToken")
    try:
        return IssuanceTokenPayload.model_validate(verified)
    except ValidationError as exc:
        raise TokenFormatError(f"IssuanceToken payload is malformed: {exc}") from exc
