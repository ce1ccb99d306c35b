"""RequestToken: a self-signed browser request carrying its own public key."""

from pydantic import ValidationError

from evp.core.errors import InvalidSignatureError, MissingClaimError, TokenFormatError
from evp.crypto.jwk import extract_public_key_parameters, validate_jwk
from evp.crypto.types import JWK
from evp.tokens.clock import TIME_VALIDATION_WINDOW, ensure_iat_claim, validate_iat_for_verification
from evp.tokens.jws import resolve_algorithm, sign_compact, verify_compact
from evp.tokens.types import REQUEST_TOKEN_TYPE, RequestTokenPayload, TokenGenerationOptions
from evp.tokens.validation import parse_jwt, validate_email_claim, validate_required_claims

REQUIRED_CLAIMS = ("aud", "nonce", "email")


async def generate_request_token(
    payload: RequestTokenPayload,
    jwk: JWK,
    options: TokenGenerationOptions | None = None,
) -> str:
    """Sign a RequestToken whose header embeds the public half of ``jwk``."""
    validate_jwk(jwk)
    claims = payload.model_dump(exclude_none=True)
    validate_email_claim(claims)
    for claim in ("aud", "nonce"):
        if not claims.get(claim):
            raise MissingClaimError(claim)
    algorithm = resolve_algorithm(jwk, options)
    headers = {
        "typ": REQUEST_TOKEN_TYPE,
        "kid": jwk["kid"],
        "jwk": extract_public_key_parameters(jwk),
    }
    return sign_compact(ensure_iat_claim(claims), jwk, algorithm, headers)


async def verify_request_token(
    token: str, *, iat_window: int = TIME_VALIDATION_WINDOW
) -> RequestTokenPayload:
    """Verify a RequestToken against the key embedded in its own header."""
    header, claims = parse_jwt(token)
    embedded_key = header.get("jwk")
    if not isinstance(embedded_key, dict) or not embedded_key:
        raise InvalidSignatureError(
            "RequestToken header must contain embedded public key (jwk)"
        )
    algorithm = header.get("alg")
    if not algorithm:
        raise InvalidSignatureError("RequestToken header must contain algorithm (alg)")

    validate_required_claims(claims, REQUIRED_CLAIMS)
    validate_email_claim(claims)
    validate_iat_for_verification(claims.get("iat"), iat_window)

    verified = verify_compact(token, embedded_key, algorithm, "RequestToken")
    try:
        return RequestTokenPayload.model_validate(verified)
    except ValidationError as exc:
        raise TokenFormatError(f"RequestToken payload is malformed: {exc}") from exc
