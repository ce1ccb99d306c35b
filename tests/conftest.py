"""Shared test fixtures for the email verification core."""

from collections.abc import AsyncIterator

import pytest
from cryptography.fernet import Fernet
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from evp.core.app import create_app
from evp.crypto.keys import (
    encrypt_private_jwk,
    generate_ec_jwk,
    generate_ed25519_jwk,
    generate_rsa_jwk,
)
from evp.crypto.types import JWK

ISSUER = "issuer.example"
FERNET_KEY = Fernet.generate_key().decode()


@pytest.fixture(scope="session")
def rsa_jwk() -> JWK:
    """Issuer-style RSA private JWK (RS256)."""
    return generate_rsa_jwk(kid="rsa-key-1")


@pytest.fixture(scope="session")
def ed25519_jwk() -> JWK:
    """Browser-style Ed25519 private JWK (EdDSA)."""
    return generate_ed25519_jwk(kid="ed25519-key-1")


@pytest.fixture(scope="session")
def ec_jwk() -> JWK:
    """P-256 private JWK (ES256)."""
    return generate_ec_jwk(kid="ec-key-1")


@pytest.fixture(autouse=True)
def _set_env(monkeypatch: pytest.MonkeyPatch, rsa_jwk: JWK) -> None:
    """Set environment variables for test settings."""
    monkeypatch.setenv("EVP_ISSUER_ISSUER", ISSUER)
    monkeypatch.setenv("EVP_ISSUER_AUTHORITY", ISSUER)
    monkeypatch.setenv("EVP_ISSUER_SIGNING_KEY_ENCRYPTION_KEY", FERNET_KEY)
    monkeypatch.setenv("EVP_ISSUER_SIGNING_JWK", encrypt_private_jwk(rsa_jwk, FERNET_KEY))


@pytest.fixture
def app() -> FastAPI:
    """Reference issuer application built from the test environment."""
    return create_app()


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Create an httpx test client against the reference issuer."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=f"https://{ISSUER}") as ac:
        yield ac
