"""Tests for IssuanceToken generation and verification."""

import jwt
import pytest

from evp.core.errors import (
    EmailValidationError,
    InvalidSignatureError,
    MissingClaimError,
    TimeValidationError,
    TokenFormatError,
)
from evp.crypto.jwk import (
    base64url_encode,
    extract_public_key_parameters,
    load_signing_key,
    load_verification_key,
)
from evp.crypto.keys import generate_rsa_jwk
from evp.crypto.types import JWK
from evp.tokens.clock import get_current_timestamp
from evp.tokens.issuance_token import generate_issuance_token, verify_issuance_token
from evp.tokens.types import Confirmation, IssuanceTokenPayload, KeyResolver

ISSUER = "issuer.example"


def _payload(holder_jwk: JWK, **overrides: object) -> IssuanceTokenPayload:
    fields = {
        "iss": ISSUER,
        "cnf": Confirmation(jwk=holder_jwk),
        "email": "user@example.com",
        "email_verified": True,
    }
    fields.update(overrides)
    return IssuanceTokenPayload(**fields)


def _static_resolver(issuer_jwk: JWK) -> KeyResolver:
    public = extract_public_key_parameters(issuer_jwk)

    async def resolve(kid: str | None, issuer: str | None) -> JWK:
        assert kid == issuer_jwk["kid"]
        assert issuer == ISSUER
        return public

    return resolve


class TestGenerateIssuanceToken:
    """Tests for IssuanceToken creation."""

    async def test_header(self, rsa_jwk: JWK, ed25519_jwk: JWK) -> None:
        token = await generate_issuance_token(_payload(ed25519_jwk), rsa_jwk)
        header = jwt.get_unverified_header(token)
        assert header == {"alg": "RS256", "typ": "evt+jwt", "kid": rsa_jwk["kid"]}

    async def test_strips_private_key_from_cnf(self, rsa_jwk: JWK, ed25519_jwk: JWK) -> None:
        token = await generate_issuance_token(_payload(ed25519_jwk), rsa_jwk)
        claims = jwt.decode(token, options={"verify_signature": False})
        assert "d" not in claims["cnf"]["jwk"]
        assert claims["cnf"]["jwk"]["x"] == ed25519_jwk["x"]

    async def test_rejects_unverified_email(self, rsa_jwk: JWK, ed25519_jwk: JWK) -> None:
        with pytest.raises(EmailValidationError):
            await generate_issuance_token(_payload(ed25519_jwk, email_verified=False), rsa_jwk)

    async def test_rejects_invalid_email(self, rsa_jwk: JWK, ed25519_jwk: JWK) -> None:
        with pytest.raises(EmailValidationError):
            await generate_issuance_token(_payload(ed25519_jwk, email="bad@"), rsa_jwk)

    async def test_keeps_private_email_flag(self, rsa_jwk: JWK, ed25519_jwk: JWK) -> None:
        token = await generate_issuance_token(
            _payload(ed25519_jwk, is_private_email=True), rsa_jwk
        )
        result = await verify_issuance_token(token, _static_resolver(rsa_jwk))
        assert result.is_private_email is True


class TestVerifyIssuanceToken:
    """Tests for IssuanceToken verification."""

    async def test_round_trip(self, rsa_jwk: JWK, ed25519_jwk: JWK) -> None:
        token = await generate_issuance_token(_payload(ed25519_jwk), rsa_jwk)
        result = await verify_issuance_token(token, _static_resolver(rsa_jwk))
        assert result.iss == ISSUER
        assert result.email == "user@example.com"
        assert result.email_verified is True
        assert result.cnf.jwk == extract_public_key_parameters(ed25519_jwk)
        assert "d" not in result.cnf.jwk

    async def test_resolver_may_return_loaded_key(
        self, ed25519_jwk: JWK, ec_jwk: JWK
    ) -> None:
        token = await generate_issuance_token(_payload(ec_jwk), ed25519_jwk)

        async def resolve(_kid: str | None, _issuer: str | None) -> object:
            return load_verification_key(ed25519_jwk, "EdDSA")

        result = await verify_issuance_token(token, resolve)  # type: ignore[arg-type]
        assert result.cnf.jwk["kty"] == "EC"

    async def test_wrong_issuer_key(self, rsa_jwk: JWK, ed25519_jwk: JWK) -> None:
        token = await generate_issuance_token(_payload(ed25519_jwk), rsa_jwk)
        other = generate_rsa_jwk(kid=rsa_jwk["kid"])
        with pytest.raises(InvalidSignatureError):
            await verify_issuance_token(token, _static_resolver(other))

    async def test_replaced_signature(self, rsa_jwk: JWK, ed25519_jwk: JWK) -> None:
        token = await generate_issuance_token(_payload(ed25519_jwk), rsa_jwk)
        forged = token.rsplit(".", 1)[0] + "." + base64url_encode(b"invalid-signature")
        with pytest.raises(InvalidSignatureError):
            await verify_issuance_token(forged, _static_resolver(rsa_jwk))

    async def test_stale_iat(self, rsa_jwk: JWK, ed25519_jwk: JWK) -> None:
        stale = get_current_timestamp() - 120
        token = await generate_issuance_token(_payload(ed25519_jwk, iat=stale), rsa_jwk)
        with pytest.raises(TimeValidationError):
            await verify_issuance_token(token, _static_resolver(rsa_jwk))

    async def test_wrong_type(self, rsa_jwk: JWK) -> None:
        token = jwt.encode(
            {"iss": ISSUER},
            load_signing_key(rsa_jwk, "RS256"),
            algorithm="RS256",
            headers={"typ": "JWT", "kid": rsa_jwk["kid"]},
        )
        with pytest.raises(TokenFormatError):
            await verify_issuance_token(token, _static_resolver(rsa_jwk))

    async def test_missing_claim(self, rsa_jwk: JWK) -> None:
        token = jwt.encode(
            {"iss": ISSUER, "email": "user@example.com", "email_verified": True},
            load_signing_key(rsa_jwk, "RS256"),
            algorithm="RS256",
            headers={"typ": "evt+jwt", "kid": rsa_jwk["kid"]},
        )
        with pytest.raises(MissingClaimError) as exc_info:
            await verify_issuance_token(token, _static_resolver(rsa_jwk))
        assert exc_info.value.claim == "cnf"

    async def test_missing_kid(self, rsa_jwk: JWK) -> None:
        token = jwt.encode(
            {"iss": ISSUER},
            load_signing_key(rsa_jwk, "RS256"),
            algorithm="RS256",
            headers={"typ": "evt+jwt"},
        )
        with pytest.raises(InvalidSignatureError, match="kid"):
            await verify_issuance_token(token, _static_resolver(rsa_jwk))
