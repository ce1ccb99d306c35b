"""Key resolution for the hwk, jwt and jwks Signature-Key schemes."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from evp.core.errors import JWKSFetchError, TokenFormatError
from evp.crypto.types import JWK
from evp.httpsig.headers import HWK_PARAMETERS
from evp.httpsig.types import JwksKeyReference, JwtKeyInfo, ParsedSignatureKey
from evp.tokens.validation import parse_jwt

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 3600.0
DEFAULT_FETCH_TIMEOUT = 10.0


@dataclass(frozen=True)
class CachedDocument:
    """Immutable snapshot of a fetched JSON document."""

    url: str
    data: dict[str, Any]
    expires_at: float


class JWKSCache:
    """Read-through cache of JSON documents keyed by URL.

    Entries are replaced wholesale and never served past their TTL.
    Concurrent lookups of the same URL share one in-flight fetch.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_CACHE_TTL,
        *,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.timeout = timeout
        self._client = client
        self._clock = clock
        self._entries: dict[str, CachedDocument] = {}
        self._inflight: dict[str, asyncio.Future[CachedDocument]] = {}

    def clear(self) -> None:
        self._entries.clear()

    async def get(self, url: str) -> CachedDocument:
        entry = self._entries.get(url)
        if entry is not None and entry.expires_at > self._clock():
            logger.debug("Document cache hit: %s", url)
            return entry
        pending = self._inflight.get(url)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch(url))
            self._inflight[url] = pending
            pending.add_done_callback(lambda done: self._settle(url, done))
        return await asyncio.shield(pending)

    def _settle(self, url: str, done: asyncio.Future[CachedDocument]) -> None:
        self._inflight.pop(url, None)
        # Failures are retrieved here too; every waiter may have been cancelled.
        if not done.cancelled():
            done.exception()

    async def get_json(self, url: str) -> dict[str, Any]:
        return (await self.get(url)).data

    async def _fetch(self, url: str) -> CachedDocument:
        logger.debug("Fetching %s", url)
        try:
            if self._client is not None:
                response = await self._request(self._client, url)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._request(client, url)
        except httpx.TimeoutException as exc:
            raise JWKSFetchError(f"Request timeout after {self.timeout}s: {url}") from exc
        except httpx.HTTPError as exc:
            raise JWKSFetchError(f"Network error fetching {url}: {exc}") from exc

        if not response.is_success:
            raise JWKSFetchError(
                f"Failed to fetch {url}: {response.status_code} {response.reason_phrase}"
            )
        content_type = response.headers.get("content-type", "")
        if "json" not in content_type:
            raise JWKSFetchError(f"Invalid content type from {url}: {content_type}")
        try:
            data = response.json()
        except ValueError as exc:
            raise JWKSFetchError(f"Invalid JSON from {url}") from exc
        if not isinstance(data, dict):
            raise JWKSFetchError(f"Invalid document from {url}: not an object")

        document = CachedDocument(str(response.url), data, self._clock() + self.ttl)
        self._entries[url] = document
        return document

    async def _request(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        return await client.get(url, timeout=self.timeout, follow_redirects=True)


def find_key(jwks: dict[str, Any], kid: str, source: str) -> JWK:
    keys = jwks.get("keys")
    if not isinstance(keys, list):
        raise JWKSFetchError(f"Invalid JWKS format from {source}")
    for key in keys:
        if isinstance(key, dict) and key.get("kid") == kid:
            return key
    raise JWKSFetchError(f'Key with kid="{kid}" not found in JWKS from {source}')


def resolve_hwk(signature_key: ParsedSignatureKey) -> JWK:
    return {
        name: signature_key.params[name]
        for name in HWK_PARAMETERS
        if name in signature_key.params
    }


def resolve_jwt(signature_key: ParsedSignatureKey) -> tuple[JWK, JwtKeyInfo]:
    """Extract cnf.jwk from the embedded JWT without validating the JWT."""
    raw = signature_key.params["jwt"]
    header, payload = parse_jwt(raw)
    cnf = payload.get("cnf")
    if not isinstance(cnf, dict) or not isinstance(cnf.get("jwk"), dict):
        raise TokenFormatError("JWT missing cnf.jwk claim")
    return cnf["jwk"], JwtKeyInfo(header=header, payload=payload, raw=raw)


async def resolve_jwks(
    signature_key: ParsedSignatureKey, cache: JWKSCache
) -> tuple[JWK, JwksKeyReference]:
    reference = JwksKeyReference(
        id=signature_key.params["id"],
        kid=signature_key.params["kid"],
        well_known=signature_key.params.get("well-known"),
    )
    jwks_url = reference.id
    if reference.well_known:
        metadata_url = f"{reference.id.rstrip('/')}/.well-known/{reference.well_known}"
        metadata = await cache.get_json(metadata_url)
        jwks_url = metadata.get("jwks_uri")
        if not isinstance(jwks_url, str) or not jwks_url:
            raise JWKSFetchError(f"Metadata document missing jwks_uri: {metadata_url}")
    jwks = await cache.get_json(jwks_url)
    return find_key(jwks, reference.kid, jwks_url), reference
