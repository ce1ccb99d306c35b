"""Signing outgoing requests with HTTP Message Signatures."""

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from evp.crypto.jwk import extract_public_key_parameters
from evp.crypto.types import JWK
from evp.httpsig.algorithms import sign_bytes
from evp.httpsig.base import (
    build_signature_base,
    default_components,
    derive_component_values,
    normalize_headers,
)
from evp.httpsig.headers import (
    generate_content_digest,
    generate_signature_header,
    generate_signature_input_header,
    generate_signature_key_header,
)
from evp.httpsig.types import HwkSignatureKey, SignatureKey, SignedHeaders
from evp.tokens.clock import get_current_timestamp

logger = logging.getLogger(__name__)

DEFAULT_LABEL = "sig"
DEFAULT_BODY_CONTENT_TYPE = "application/octet-stream"


def _split_url(url: str) -> tuple[str, str, str | None]:
    parsed = httpx.URL(url)
    authority = parsed.netloc.decode("ascii")
    query = parsed.query.decode("ascii") or None
    return authority, parsed.path or "/", query


def sign_request(
    method: str,
    url: str,
    signing_key: JWK,
    signature_key: SignatureKey | None = None,
    *,
    headers: Mapping[str, Any] | None = None,
    body: bytes | str | None = None,
    components: list[str] | None = None,
    label: str = DEFAULT_LABEL,
    created: int | None = None,
) -> SignedHeaders:
    """Produce the signature headers for a request to ``url``.

    With a body, Content-Digest is always generated and Content-Type
    defaults to ``application/octet-stream`` when the caller sets none.
    """
    signature_key = signature_key or HwkSignatureKey()
    authority, path, query = _split_url(url)
    created = get_current_timestamp() if created is None else created
    has_body = body is not None

    all_headers = normalize_headers(headers or {})
    content_digest = content_type = None
    if has_body:
        content_digest = generate_content_digest(body)
        all_headers["content-digest"] = content_digest
        if "content-type" not in all_headers:
            content_type = DEFAULT_BODY_CONTENT_TYPE
            all_headers["content-type"] = content_type

    public_jwk = extract_public_key_parameters(signing_key)
    signature_key_header = generate_signature_key_header(label, signature_key, public_jwk)
    all_headers["signature-key"] = signature_key_header

    components = list(components) if components else default_components(has_body)
    params = {"created": created}
    signature_base = build_signature_base(
        components,
        derive_component_values(method, authority, path, query),
        all_headers,
        params,
    )
    signature = sign_bytes(signature_base.encode(), signing_key)

    return SignedHeaders(
        signature_input=generate_signature_input_header(label, components, created),
        signature_key=signature_key_header,
        signature=generate_signature_header(label, signature),
        content_digest=content_digest,
        content_type=content_type,
    )


async def fetch(
    url: str,
    *,
    signing_key: JWK,
    signature_key: SignatureKey | None = None,
    method: str = "GET",
    headers: Mapping[str, Any] | None = None,
    body: bytes | str | None = None,
    label: str = DEFAULT_LABEL,
    dry_run: bool = False,
    client: httpx.AsyncClient | None = None,
) -> httpx.Response | dict[str, str]:
    """Sign and send a request; with ``dry_run`` return the headers instead."""
    signed = sign_request(
        method,
        url,
        signing_key,
        signature_key,
        headers=headers,
        body=body,
        label=label,
    )
    request_headers = {**(headers or {}), **signed.as_dict()}
    if dry_run:
        return request_headers

    logger.debug("Sending signed %s request to %s", method.upper(), url)
    if client is not None:
        return await client.request(method, url, headers=request_headers, content=body)
    async with httpx.AsyncClient() as owned:
        return await owned.request(method, url, headers=request_headers, content=body)
