"""Compact JWS signing and algorithm-pinned verification via PyJWT."""

from collections.abc import Mapping
from typing import Any

import jwt
from jwt.types import Options

from evp.core.errors import InvalidSignatureError, JWKValidationError
from evp.crypto.jwk import load_signing_key, load_verification_key
from evp.tokens.types import TokenGenerationOptions

# Claim checks are done by the token modules; PyJWT only checks the signature.
_SIGNATURE_ONLY: Options = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "require": [],
}


def resolve_algorithm(
    jwk: Mapping[str, Any], options: TokenGenerationOptions | None = None
) -> str:
    """Signing algorithm from the options override or the JWK's own alg."""
    algorithm = (options.algorithm if options else None) or jwk.get("alg")
    if not algorithm:
        raise JWKValidationError("Algorithm must be specified in JWK or options")
    return algorithm


def sign_compact(
    claims: Mapping[str, Any],
    jwk: Mapping[str, Any],
    algorithm: str,
    headers: dict[str, Any],
) -> str:
    """Sign ``claims`` with a private JWK, emitting exactly ``headers`` plus alg."""
    private_key = load_signing_key(jwk, algorithm)
    return jwt.encode(
        dict(claims),
        private_key,
        algorithm=algorithm,
        headers=headers,
        sort_headers=False,
    )


def verify_compact(token: str, key: Any, algorithm: str, token_name: str) -> dict[str, Any]:
    """Verify ``token`` against ``key`` accepting only ``algorithm``.

    ``key`` is either a public JWK mapping or a loaded ``cryptography`` key.
    Any failure is reported as InvalidSignatureError.
    """
    if isinstance(key, Mapping):
        try:
            key = load_verification_key(key, algorithm)
        except JWKValidationError as exc:
            raise InvalidSignatureError(
                f"{token_name} verification key is unusable: {exc.message}"
            ) from exc
    try:
        return jwt.decode(token, key, algorithms=[algorithm], options=_SIGNATURE_ONLY)
    except (jwt.PyJWTError, TypeError, ValueError) as exc:
        raise InvalidSignatureError(
            f"{token_name} signature verification failed: {exc}"
        ) from exc
