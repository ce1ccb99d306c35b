"""Signing key generation, JWK conversion, and at-rest encryption."""

import json

import uuid_utils
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from evp.crypto.jwk import base64url_encode
from evp.crypto.types import JWK

RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537
P256_COORDINATE_SIZE = 32


def _int_to_base64url(value: int, length: int | None = None) -> str:
    """Encode an integer as big-endian base64url without padding."""
    byte_length = length or (value.bit_length() + 7) // 8
    return base64url_encode(value.to_bytes(byte_length, byteorder="big"))


def _new_kid() -> str:
    return str(uuid_utils.uuid7())


def rsa_private_key_to_jwk(
    private_key: rsa.RSAPrivateKey, kid: str, alg: str = "RS256"
) -> JWK:
    """Convert an RSA private key to a private JWK."""
    numbers = private_key.private_numbers()
    public = numbers.public_numbers
    return {
        "kty": "RSA",
        "alg": alg,
        "kid": kid,
        "use": "sig",
        "n": _int_to_base64url(public.n),
        "e": _int_to_base64url(public.e),
        "d": _int_to_base64url(numbers.d),
        "p": _int_to_base64url(numbers.p),
        "q": _int_to_base64url(numbers.q),
        "dp": _int_to_base64url(numbers.dmp1),
        "dq": _int_to_base64url(numbers.dmq1),
        "qi": _int_to_base64url(numbers.iqmp),
    }


def ec_private_key_to_jwk(private_key: ec.EllipticCurvePrivateKey, kid: str) -> JWK:
    """Convert a P-256 private key to a private JWK."""
    numbers = private_key.private_numbers()
    public = numbers.public_numbers
    return {
        "kty": "EC",
        "alg": "ES256",
        "kid": kid,
        "use": "sig",
        "crv": "P-256",
        "x": _int_to_base64url(public.x, P256_COORDINATE_SIZE),
        "y": _int_to_base64url(public.y, P256_COORDINATE_SIZE),
        "d": _int_to_base64url(numbers.private_value, P256_COORDINATE_SIZE),
    }


def ed25519_private_key_to_jwk(private_key: ed25519.Ed25519PrivateKey, kid: str) -> JWK:
    """Convert an Ed25519 private key to a private OKP JWK."""
    private_raw = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return {
        "kty": "OKP",
        "alg": "EdDSA",
        "kid": kid,
        "use": "sig",
        "crv": "Ed25519",
        "x": base64url_encode(public_raw),
        "d": base64url_encode(private_raw),
    }


def generate_rsa_jwk(kid: str | None = None, alg: str = "RS256") -> JWK:
    """Generate a new RSA-2048 private JWK (RS256 unless ``alg`` says PS*)."""
    private_key = rsa.generate_private_key(
        public_exponent=RSA_PUBLIC_EXPONENT,
        key_size=RSA_KEY_SIZE,
    )
    return rsa_private_key_to_jwk(private_key, kid or _new_kid(), alg)


def generate_ec_jwk(kid: str | None = None) -> JWK:
    """Generate a new P-256 private JWK for ES256."""
    return ec_private_key_to_jwk(ec.generate_private_key(ec.SECP256R1()), kid or _new_kid())


def generate_ed25519_jwk(kid: str | None = None) -> JWK:
    """Generate a new Ed25519 private JWK for EdDSA."""
    return ed25519_private_key_to_jwk(
        ed25519.Ed25519PrivateKey.generate(), kid or _new_kid()
    )


def encrypt_private_jwk(jwk: JWK, fernet_key: str) -> str:
    """Encrypt a private JWK with Fernet for storage in configuration."""
    cipher = Fernet(fernet_key.encode())
    return cipher.encrypt(json.dumps(jwk).encode()).decode()


def decrypt_private_jwk(encrypted: str, fernet_key: str) -> JWK:
    """Decrypt a Fernet-encrypted private JWK."""
    cipher = Fernet(fernet_key.encode())
    return json.loads(cipher.decrypt(encrypted.encode()))
