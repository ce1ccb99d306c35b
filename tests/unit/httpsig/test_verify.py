"""Tests for signing and verifying HTTP Message Signatures."""

import httpx
import jwt
import pytest

from evp.core.errors import JWKValidationError
from evp.core.settings import VerifierSettings
from evp.crypto.jwk import calculate_thumbprint, extract_public_key_parameters
from evp.crypto.keys import generate_ed25519_jwk
from evp.crypto.types import JWK
from evp.httpsig.algorithms import (
    ECDSA_P256_SHA256,
    ED25519,
    RSA_PSS_SHA256,
    algorithm_for_jwk,
    sign_bytes,
    verify_bytes,
)
from evp.httpsig.resolvers import JWKSCache
from evp.httpsig.sign import fetch, sign_request
from evp.httpsig.types import (
    JwksSignatureKey,
    JwtSignatureKey,
    SignedHeaders,
    SignedRequest,
    VerifyOptions,
)
from evp.httpsig.verify import verify_request
from evp.tokens.clock import get_current_timestamp

AUTHORITY = "resource.example"
URL = f"https://{AUTHORITY}/api/data"
BODY = '{"hello":"world"}'


def _request(
    signed: SignedHeaders,
    *,
    method: str = "GET",
    path: str = "/api/data",
    body: bytes | str | None = None,
    extra: dict[str, str] | None = None,
) -> SignedRequest:
    headers = {**signed.as_dict(), **(extra or {})}
    return SignedRequest(
        method=method, authority=AUTHORITY, path=path, headers=headers, body=body
    )


class TestAlgorithms:
    """Tests for key-type derived signature algorithms."""

    def test_algorithm_for_jwk(self, ed25519_jwk: JWK, ec_jwk: JWK, rsa_jwk: JWK) -> None:
        assert algorithm_for_jwk(ed25519_jwk) == ED25519
        assert algorithm_for_jwk(ec_jwk) == ECDSA_P256_SHA256
        assert algorithm_for_jwk(rsa_jwk) == RSA_PSS_SHA256

    def test_unsupported_curve(self) -> None:
        with pytest.raises(JWKValidationError):
            algorithm_for_jwk({"kty": "EC", "crv": "P-384", "x": "a", "y": "b"})

    @pytest.mark.parametrize("key_fixture", ["ed25519_jwk", "ec_jwk", "rsa_jwk"])
    def test_sign_and_verify(self, request: pytest.FixtureRequest, key_fixture: str) -> None:
        jwk = request.getfixturevalue(key_fixture)
        public = extract_public_key_parameters(jwk)
        signature = sign_bytes(b"base", jwk)
        assert verify_bytes(b"base", signature, public)
        assert not verify_bytes(b"other", signature, public)

    def test_ecdsa_signature_is_raw(self, ec_jwk: JWK) -> None:
        assert len(sign_bytes(b"base", ec_jwk)) == 64
        assert not verify_bytes(b"base", b"\x00" * 10, extract_public_key_parameters(ec_jwk))


class TestSignRequest:
    """Tests for signature header production."""

    def test_get_defaults(self, ed25519_jwk: JWK) -> None:
        signed = sign_request("GET", URL, ed25519_jwk, created=1700000000)
        assert signed.signature_input == (
            'sig=("@method" "@authority" "@path" "signature-key");created=1700000000'
        )
        assert signed.signature_key.startswith("sig=hwk;")
        assert signed.signature.startswith("sig=:")
        assert signed.content_digest is None
        assert set(signed.as_dict()) == {"Signature-Input", "Signature-Key", "Signature"}

    def test_body_adds_digest_and_content_type(self, ed25519_jwk: JWK) -> None:
        signed = sign_request("POST", URL, ed25519_jwk, body=BODY)
        assert signed.content_digest is not None
        assert signed.content_digest.startswith("sha-256=:")
        assert signed.content_type == "application/octet-stream"
        assert '"content-digest"' in signed.signature_input

    def test_caller_content_type_is_kept(self, ed25519_jwk: JWK) -> None:
        signed = sign_request(
            "POST", URL, ed25519_jwk, headers={"Content-Type": "application/json"}, body=BODY
        )
        assert signed.content_type is None

    def test_custom_label(self, ed25519_jwk: JWK) -> None:
        signed = sign_request("GET", URL, ed25519_jwk, label="aauth")
        assert signed.signature_input.startswith("aauth=")
        assert signed.signature_key.startswith("aauth=")


class TestVerifyRequest:
    """Tests for request verification."""

    @pytest.mark.parametrize("key_fixture", ["ed25519_jwk", "ec_jwk", "rsa_jwk"])
    async def test_hwk_round_trip(self, request: pytest.FixtureRequest, key_fixture: str) -> None:
        jwk = request.getfixturevalue(key_fixture)
        signed = sign_request("GET", URL, jwk)
        result = await verify_request(_request(signed))
        assert result.verified, result.error
        assert result.label == "sig"
        assert result.key_type == "hwk"
        assert result.thumbprint == calculate_thumbprint(jwk)
        assert "d" not in result.public_key

    async def test_post_with_body(self, ed25519_jwk: JWK) -> None:
        headers = {"Content-Type": "application/json"}
        signed = sign_request("POST", URL, ed25519_jwk, headers=headers, body=BODY)
        result = await verify_request(
            _request(signed, method="POST", body=BODY, extra=headers)
        )
        assert result.verified, result.error

    async def test_body_tampered(self, ed25519_jwk: JWK) -> None:
        headers = {"Content-Type": "application/json"}
        signed = sign_request("POST", URL, ed25519_jwk, headers=headers, body=BODY)
        result = await verify_request(
            _request(signed, method="POST", body='{"hello":"mallory"}', extra=headers)
        )
        assert not result.verified
        assert "Content-Digest" in (result.error or "")

    @pytest.mark.parametrize("empty_body", [b"", ""])
    async def test_body_emptied(self, ed25519_jwk: JWK, empty_body: bytes | str) -> None:
        headers = {"Content-Type": "application/json"}
        signed = sign_request("POST", URL, ed25519_jwk, headers=headers, body=BODY)
        result = await verify_request(
            _request(signed, method="POST", body=empty_body, extra=headers)
        )
        assert not result.verified
        assert "Content-Digest" in (result.error or "")

    async def test_absent_body_skips_digest(self, ed25519_jwk: JWK) -> None:
        headers = {"Content-Type": "application/json"}
        signed = sign_request("POST", URL, ed25519_jwk, headers=headers, body=BODY)
        result = await verify_request(_request(signed, method="POST", extra=headers))
        assert result.verified, result.error

    async def test_options_from_settings(self, ed25519_jwk: JWK) -> None:
        signed = sign_request(
            "GET", URL, ed25519_jwk, components=["@method", "@authority", "@path"]
        )
        settings = VerifierSettings(strict_aauth=False, max_clock_skew=30)
        options = VerifyOptions.from_settings(settings)
        assert options.max_clock_skew == 30
        result = await verify_request(_request(signed), options)
        assert result.verified, result.error

    async def test_path_tampered(self, ed25519_jwk: JWK) -> None:
        signed = sign_request("GET", URL, ed25519_jwk)
        result = await verify_request(_request(signed, path="/api/admin"))
        assert not result.verified
        assert result.error == "Signature verification failed"

    async def test_authority_is_bound(self, ed25519_jwk: JWK) -> None:
        signed = sign_request("GET", "https://other.example/api/data", ed25519_jwk)
        result = await verify_request(_request(signed))
        assert not result.verified

    async def test_signature_key_swap(self, ed25519_jwk: JWK) -> None:
        signed = sign_request("GET", URL, ed25519_jwk)
        other = sign_request("GET", URL, generate_ed25519_jwk())
        forged = signed.model_copy(update={"signature_key": other.signature_key})
        result = await verify_request(_request(forged))
        assert not result.verified

    async def test_missing_headers(self) -> None:
        result = await verify_request(
            SignedRequest(method="GET", authority=AUTHORITY, path="/", headers={})
        )
        assert not result.verified
        assert "signature-key" in (result.error or "")

    async def test_label_mismatch(self, ed25519_jwk: JWK) -> None:
        signed = sign_request("GET", URL, ed25519_jwk)
        relabeled = signed.model_copy(
            update={"signature_input": signed.signature_input.replace("sig=", "other=", 1)}
        )
        result = await verify_request(_request(relabeled))
        assert not result.verified
        assert "label 'sig'" in (result.error or "")

    async def test_stale_created(self, ed25519_jwk: JWK) -> None:
        signed = sign_request("GET", URL, ed25519_jwk, created=get_current_timestamp() - 120)
        result = await verify_request(_request(signed))
        assert not result.verified
        assert "clock skew" in (result.error or "")

    async def test_custom_clock_skew(self, ed25519_jwk: JWK) -> None:
        signed = sign_request("GET", URL, ed25519_jwk, created=get_current_timestamp() - 120)
        result = await verify_request(_request(signed), VerifyOptions(max_clock_skew=300))
        assert result.verified, result.error

    async def test_strict_aauth_requires_signature_key(self, ed25519_jwk: JWK) -> None:
        signed = sign_request(
            "GET", URL, ed25519_jwk, components=["@method", "@authority", "@path"]
        )
        strict = await verify_request(_request(signed))
        assert not strict.verified
        assert "signature-key" in (strict.error or "")

        relaxed = await verify_request(_request(signed), VerifyOptions(strict_aauth=False))
        assert relaxed.verified, relaxed.error

    async def test_jwt_scheme(self, ed25519_jwk: JWK) -> None:
        cnf = {"jwk": extract_public_key_parameters(ed25519_jwk)}
        agent_token = jwt.encode(
            {"iss": "https://agent.example", "cnf": cnf},
            "secret-key-for-tests-0123456789ab",
            algorithm="HS256",
        )
        signed = sign_request("GET", URL, ed25519_jwk, JwtSignatureKey(jwt=agent_token))
        result = await verify_request(_request(signed))
        assert result.verified, result.error
        assert result.key_type == "jwt"
        assert result.jwt is not None
        assert result.jwt.raw == agent_token
        assert result.jwt.payload["iss"] == "https://agent.example"

    async def test_jwks_scheme(self, ed25519_jwk: JWK) -> None:
        public = extract_public_key_parameters(ed25519_jwk)

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/.well-known/aauth-agent":
                return httpx.Response(200, json={"jwks_uri": "https://agent.example/jwks"})
            return httpx.Response(200, json={"keys": [public]})

        signature_key = JwksSignatureKey(
            id="https://agent.example", kid=public["kid"], well_known="aauth-agent"
        )
        signed = sign_request("GET", URL, ed25519_jwk, signature_key)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await verify_request(_request(signed), cache=JWKSCache(client=client))
        assert result.verified, result.error
        assert result.key_type == "jwks"
        assert result.jwks is not None
        assert result.jwks.kid == public["kid"]

    async def test_jwks_fetch_failure_is_reported(self, ed25519_jwk: JWK) -> None:
        def handler(_request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        signature_key = JwksSignatureKey(id="https://agent.example/jwks", kid="k1")
        signed = sign_request("GET", URL, ed25519_jwk, signature_key)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await verify_request(_request(signed), cache=JWKSCache(client=client))
        assert not result.verified
        assert "404" in (result.error or "")


class TestFetch:
    """Tests for the signed fetch helper."""

    async def test_dry_run_returns_headers(self, ed25519_jwk: JWK) -> None:
        headers = await fetch(URL, signing_key=ed25519_jwk, dry_run=True)
        assert isinstance(headers, dict)
        assert {"Signature-Input", "Signature-Key", "Signature"} <= set(headers)

    async def test_sends_verifiable_request(self, ed25519_jwk: JWK) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(204)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            response = await fetch(
                URL,
                signing_key=ed25519_jwk,
                method="POST",
                headers={"Content-Type": "application/json"},
                body=BODY,
                client=client,
            )
        assert isinstance(response, httpx.Response)
        assert response.status_code == 204

        sent = captured[0]
        result = await verify_request(
            SignedRequest(
                method=sent.method,
                authority=sent.url.netloc.decode(),
                path=sent.url.path,
                headers=dict(sent.headers),
                body=sent.content,
            )
        )
        assert result.verified, result.error
