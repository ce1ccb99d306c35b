"""JWK validation, public-key extraction, and hashing helpers."""

import base64
import hashlib
import json
from collections.abc import Mapping
from typing import Any

import jwt

from evp.core.errors import JWKValidationError
from evp.crypto.types import JWK

SUPPORTED_OKP_CURVES = frozenset({"Ed25519", "Ed448", "X25519", "X448"})
PRIVATE_KEY_PARAMETERS = frozenset({"d", "p", "q", "dp", "dq", "qi", "oth", "k"})
ASYMMETRIC_ALGORITHMS = frozenset(
    {
        "RS256",
        "RS384",
        "RS512",
        "PS256",
        "PS384",
        "PS512",
        "ES256",
        "ES256K",
        "ES384",
        "ES512",
        "EdDSA",
    }
)

_REQUIRED_BY_KTY = {
    "RSA": ("n", "e"),
    "EC": ("crv", "x", "y"),
    "OKP": ("crv", "x"),
}
_THUMBPRINT_MEMBERS = {
    "RSA": ("e", "kty", "n"),
    "EC": ("crv", "kty", "x", "y"),
    "OKP": ("crv", "kty", "x"),
}


def base64url_encode(data: bytes | str) -> str:
    """Encode bytes as unpadded base64url."""
    if isinstance(data, str):
        data = data.encode()
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_decode(data: str) -> bytes:
    """Decode unpadded base64url."""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def calculate_sha256_hash(value: str) -> str:
    """SHA-256 over the UTF-8 bytes of ``value``, base64url encoded."""
    return base64url_encode(hashlib.sha256(value.encode()).digest())


def validate_key_parameters(jwk: Mapping[str, Any]) -> None:
    """Check the type-specific members of a JWK (no alg/kid requirement)."""
    kty = jwk.get("kty")
    if not kty:
        raise JWKValidationError('JWK must contain "kty" field')
    required = _REQUIRED_BY_KTY.get(kty)
    if required is None:
        raise JWKValidationError(f"Unsupported key type: {kty}")
    for member in required:
        if not jwk.get(member):
            raise JWKValidationError(f'{kty} key must contain "{member}" parameter')
    if kty == "OKP" and jwk["crv"] not in SUPPORTED_OKP_CURVES:
        raise JWKValidationError(f"Unsupported OKP curve: {jwk['crv']}")


def validate_jwk(jwk: Mapping[str, Any]) -> None:
    """Validate a signing JWK: alg, kid, kty and the key-type parameters."""
    if not isinstance(jwk, Mapping):
        raise JWKValidationError("JWK must be a JSON object")
    if not jwk.get("alg"):
        raise JWKValidationError('JWK must contain "alg" field')
    if not jwk.get("kid"):
        raise JWKValidationError('JWK must contain "kid" field')
    validate_key_parameters(jwk)


def extract_public_key_parameters(jwk: Mapping[str, Any]) -> JWK:
    """Return the public-only view of a JWK; private members never survive."""
    public: JWK = {}
    members = ("kty", "alg", "kid", *_REQUIRED_BY_KTY.get(jwk.get("kty", ""), ()))
    for member in members:
        value = jwk.get(member)
        if value is not None:
            public[member] = value
    return public


def has_private_parameters(jwk: Mapping[str, Any]) -> bool:
    return any(member in jwk for member in PRIVATE_KEY_PARAMETERS)


def _load_key(jwk: Mapping[str, Any], algorithm: str) -> Any:
    if algorithm not in ASYMMETRIC_ALGORITHMS:
        raise JWKValidationError(f"Unsupported algorithm: {algorithm}")
    try:
        return jwt.PyJWK(dict(jwk), algorithm=algorithm).key
    except (jwt.PyJWTError, ValueError, KeyError, TypeError) as exc:
        raise JWKValidationError(f"Unable to import JWK for {algorithm}: {exc}") from exc


def load_signing_key(jwk: Mapping[str, Any], algorithm: str) -> Any:
    """Import a private JWK as a ``cryptography`` private key."""
    if "d" not in jwk:
        raise JWKValidationError("Signing JWK must contain private key material")
    return _load_key(jwk, algorithm)


def load_verification_key(jwk: Mapping[str, Any], algorithm: str) -> Any:
    """Import the public half of a JWK as a ``cryptography`` public key."""
    return _load_key(extract_public_key_parameters(jwk), algorithm)


def calculate_thumbprint(jwk: Mapping[str, Any]) -> str:
    """RFC 7638 JWK thumbprint (SHA-256, base64url)."""
    members = _THUMBPRINT_MEMBERS.get(jwk.get("kty", ""))
    if members is None:
        raise JWKValidationError(f"Unsupported key type: {jwk.get('kty')}")
    missing = [m for m in members if not jwk.get(m)]
    if missing:
        raise JWKValidationError(
            f"{jwk['kty']} key missing required fields ({', '.join(missing)})"
        )
    canonical = json.dumps(
        {m: jwk[m] for m in members}, separators=(",", ":"), sort_keys=True
    )
    return base64url_encode(hashlib.sha256(canonical.encode()).digest())
