"""Signature algorithms for HTTP Message Signatures, derived from the key type."""

from collections.abc import Mapping
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from evp.core.errors import JWKValidationError
from evp.crypto.jwk import load_signing_key, load_verification_key, validate_key_parameters

ED25519 = "ed25519"
ECDSA_P256_SHA256 = "ecdsa-p256-sha256"
RSA_PSS_SHA256 = "rsa-pss-sha256"

P256_SCALAR_SIZE = 32
PSS_SALT_LENGTH = 32

# httpsig algorithm -> JWS alg used only to import the JWK.
_JWS_ALG = {ED25519: "EdDSA", ECDSA_P256_SHA256: "ES256", RSA_PSS_SHA256: "PS256"}


def algorithm_for_jwk(jwk: Mapping[str, Any]) -> str:
    """The only algorithm a key of this type may be used with."""
    validate_key_parameters(jwk)
    kty, crv = jwk["kty"], jwk.get("crv")
    if kty == "OKP":
        if crv != "Ed25519":
            raise JWKValidationError(f"Unsupported OKP curve: {crv}")
        return ED25519
    if kty == "EC":
        if crv != "P-256":
            raise JWKValidationError(f"Unsupported EC curve: {crv}")
        return ECDSA_P256_SHA256
    return RSA_PSS_SHA256


def _pss() -> padding.PSS:
    return padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=PSS_SALT_LENGTH)


def sign_bytes(data: bytes, private_jwk: Mapping[str, Any]) -> bytes:
    algorithm = algorithm_for_jwk(private_jwk)
    key = load_signing_key(private_jwk, _JWS_ALG[algorithm])
    if algorithm == ED25519:
        return key.sign(data)
    if algorithm == ECDSA_P256_SHA256:
        r, s = decode_dss_signature(key.sign(data, ec.ECDSA(hashes.SHA256())))
        return r.to_bytes(P256_SCALAR_SIZE, "big") + s.to_bytes(P256_SCALAR_SIZE, "big")
    return key.sign(data, _pss(), hashes.SHA256())


def verify_bytes(data: bytes, signature: bytes, public_jwk: Mapping[str, Any]) -> bool:
    """True when ``signature`` over ``data`` verifies; never raises on a bad signature."""
    algorithm = algorithm_for_jwk(public_jwk)
    key = load_verification_key(public_jwk, _JWS_ALG[algorithm])
    try:
        if algorithm == ED25519:
            key.verify(signature, data)
        elif algorithm == ECDSA_P256_SHA256:
            if len(signature) != 2 * P256_SCALAR_SIZE:
                return False
            r = int.from_bytes(signature[:P256_SCALAR_SIZE], "big")
            s = int.from_bytes(signature[P256_SCALAR_SIZE:], "big")
            key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256()))
        else:
            key.verify(signature, data, _pss(), hashes.SHA256())
    except InvalidSignature:
        return False
    return True
