"""Issuer metadata document and the key resolver that consumes it."""

import logging
from urllib.parse import urlsplit

import httpx
from pydantic import ValidationError

from evp.core.errors import JWKSFetchError
from evp.core.settings import IssuerSettings, VerifierSettings
from evp.crypto.jwk import PRIVATE_KEY_PARAMETERS
from evp.crypto.types import JWK, EmailVerificationMetadata
from evp.httpsig.resolvers import JWKSCache, find_key

logger = logging.getLogger(__name__)

METADATA_PATH = "/.well-known/email-verification"
ISSUANCE_PATH = "/issuance"
JWKS_PATH = "/jwks"


def build_metadata(
    settings: IssuerSettings, signing_algorithms: list[str] | None = None
) -> EmailVerificationMetadata:
    """Build the email-verification metadata document from settings."""
    base = f"https://{settings.issuer.rstrip('/')}"
    return EmailVerificationMetadata(
        issuance_endpoint=f"{base}{ISSUANCE_PATH}",
        jwks_uri=f"{base}{JWKS_PATH}",
        signing_alg_values_supported=signing_algorithms,
    )


def _hostname_matches(url: str, issuer: str) -> bool:
    hostname = urlsplit(url).hostname or ""
    issuer = issuer.lower()
    return hostname == issuer or hostname.endswith(f".{issuer}")


class IssuerKeyResolver:
    """KeyResolver backed by an issuer's metadata and JWKS documents.

    Callers pass the issuer domain; DNS delegation is not consulted.
    """

    def __init__(self, cache: JWKSCache, metadata_cache: JWKSCache | None = None) -> None:
        self.cache = cache
        self.metadata_cache = metadata_cache or cache

    @classmethod
    def from_settings(
        cls, settings: VerifierSettings, client: httpx.AsyncClient | None = None
    ) -> "IssuerKeyResolver":
        """Separate JWKS and metadata caches sized from ``settings``."""
        return cls(
            JWKSCache(settings.jwks_cache_ttl, timeout=settings.fetch_timeout, client=client),
            JWKSCache(settings.metadata_cache_ttl, timeout=settings.fetch_timeout, client=client),
        )

    async def __call__(self, kid: str | None, issuer: str | None) -> JWK:
        if not kid:
            raise JWKSFetchError("Key identifier (kid) is required to resolve issuer keys")
        if not issuer:
            raise JWKSFetchError("Issuer is required to resolve issuer keys")
        metadata = await self.fetch_metadata(issuer)
        keys = await self.fetch_jwks(metadata.jwks_uri, issuer)
        key = find_key({"keys": keys}, kid, metadata.jwks_uri)
        alg = key.get("alg")
        if alg and metadata.signing_alg_values_supported is not None:
            if alg not in metadata.signing_alg_values_supported:
                raise JWKSFetchError(f"Key algorithm {alg} not advertised by {issuer}")
        return key

    async def fetch_metadata(self, issuer: str) -> EmailVerificationMetadata:
        url = f"https://{issuer}{METADATA_PATH}"
        data = await self.metadata_cache.get_json(url)
        try:
            metadata = EmailVerificationMetadata.model_validate(data)
        except ValidationError as exc:
            raise JWKSFetchError(f"Invalid metadata from {url}") from exc
        for name in ("issuance_endpoint", "jwks_uri"):
            if not _hostname_matches(getattr(metadata, name), issuer):
                logger.warning("Rejected %s outside issuer domain %s", name, issuer)
                raise JWKSFetchError(f"{name} must be hosted under the issuer domain {issuer}")
        return metadata

    async def fetch_jwks(self, jwks_uri: str, issuer: str) -> list[JWK]:
        if not _hostname_matches(jwks_uri, issuer):
            raise JWKSFetchError(f"jwks_uri must be hosted under the issuer domain {issuer}")
        data = await self.cache.get_json(jwks_uri)
        keys = data.get("keys")
        if not isinstance(keys, list) or not keys:
            raise JWKSFetchError(f"JWKS from {jwks_uri} must contain a non-empty keys array")
        for key in keys:
            if not isinstance(key, dict) or not key.get("kty") or not key.get("kid"):
                raise JWKSFetchError(f"Every key in JWKS from {jwks_uri} needs kty and kid")
        return keys


def public_jwks(*signing_jwks: JWK) -> list[JWK]:
    """Public halves of the issuer's signing keys for the JWKS endpoint."""
    return [
        {name: value for name, value in jwk.items() if name not in PRIVATE_KEY_PARAMETERS}
        for jwk in signing_jwks
    ]
