"""PresentationToken (SD-JWT+KB): ``<SD-JWT>~<KB-JWT>``.

The KB-JWT carries no key of its own. Its verification key is the cnf.jwk
of the SD-JWT, so the SD-JWT is fully verified first and the KB-JWT is
pinned to that exact SD-JWT string through sd_hash.
"""

from pydantic import ValidationError

from evp.core.errors import InvalidSignatureError, TokenFormatError
from evp.crypto.jwk import calculate_sha256_hash, validate_jwk
from evp.crypto.types import JWK
from evp.tokens.clock import TIME_VALIDATION_WINDOW, ensure_iat_claim, validate_iat_for_verification
from evp.tokens.issuance_token import verify_issuance_token
from evp.tokens.jws import resolve_algorithm, sign_compact, verify_compact
from evp.tokens.types import (
    KEY_BINDING_TOKEN_TYPE,
    KeyBindingPayload,
    KeyResolver,
    PresentationTokenPayload,
    TokenGenerationOptions,
)
from evp.tokens.validation import (
    parse_jwt,
    parse_presentation_token,
    validate_jwt_type,
    validate_required_claims,
)

KB_REQUIRED_CLAIMS = ("aud", "nonce", "iat", "sd_hash")


async def generate_presentation_token(
    sd_jwt: str,
    audience: str,
    nonce: str,
    jwk: JWK,
    options: TokenGenerationOptions | None = None,
) -> str:
    """Append a KB-JWT signed by the holder key to ``sd_jwt``."""
    validate_jwk(jwk)
    if not sd_jwt or not isinstance(sd_jwt, str):
        raise TokenFormatError("SD-JWT must be a non-empty string")
    algorithm = resolve_algorithm(jwk, options)
    claims = ensure_iat_claim(
        {"aud": audience, "nonce": nonce, "sd_hash": calculate_sha256_hash(sd_jwt)}
    )
    kb_jwt = sign_compact(claims, jwk, algorithm, {"typ": KEY_BINDING_TOKEN_TYPE})
    return f"{sd_jwt}~{kb_jwt}"


async def verify_presentation_token(
    token: str,
    key_resolver: KeyResolver,
    expected_audience: str,
    expected_nonce: str,
    *,
    iat_window: int = TIME_VALIDATION_WINDOW,
) -> PresentationTokenPayload:
    """Verify the whole chain: SD-JWT, KB-JWT claims, sd_hash, then KB-JWT signature."""
    sd_jwt, kb_jwt = parse_presentation_token(token)
    sd_payload = await verify_issuance_token(sd_jwt, key_resolver, iat_window=iat_window)

    kb_header, kb_claims = parse_jwt(kb_jwt)
    validate_jwt_type(kb_header, KEY_BINDING_TOKEN_TYPE)
    algorithm = kb_header.get("alg")
    if not algorithm:
        raise InvalidSignatureError("KB-JWT header must contain algorithm (alg)")

    validate_required_claims(kb_claims, KB_REQUIRED_CLAIMS)
    if kb_claims["aud"] != expected_audience:
        raise InvalidSignatureError(
            f"KB-JWT audience mismatch. Expected: {expected_audience}, "
            f"Got: {kb_claims['aud']}"
        )
    if kb_claims["nonce"] != expected_nonce:
        raise InvalidSignatureError("KB-JWT nonce mismatch")
    validate_iat_for_verification(kb_claims["iat"], iat_window)

    expected_hash = calculate_sha256_hash(sd_jwt)
    if kb_claims["sd_hash"] != expected_hash:
        raise InvalidSignatureError(
            f"KB-JWT sd_hash mismatch. Expected: {expected_hash}, "
            f"Got: {kb_claims['sd_hash']}"
        )

    verified = verify_compact(kb_jwt, sd_payload.cnf.jwk, algorithm, "KB-JWT")
    try:
        kb_payload = KeyBindingPayload.model_validate(verified)
    except ValidationError as exc:
        raise TokenFormatError(f"KB-JWT payload is malformed: {exc}") from exc
    return PresentationTokenPayload(sd_jwt=sd_payload, kb_jwt=kb_payload)
