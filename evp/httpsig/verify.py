"""Verification of HTTP Message Signatures on incoming requests."""

import hashlib
import hmac
import logging

from evp.core.errors import EmailVerificationError, InvalidSignatureError, TimeValidationError
from evp.crypto.jwk import calculate_thumbprint, validate_key_parameters
from evp.httpsig.algorithms import verify_bytes
from evp.httpsig.base import build_signature_base, derive_component_values, normalize_headers
from evp.httpsig.headers import parse_signature, parse_signature_input, parse_signature_key
from evp.httpsig.resolvers import JWKSCache, resolve_hwk, resolve_jwks, resolve_jwt
from evp.httpsig.structured import Item, parse_dictionary
from evp.httpsig.types import SignedRequest, VerificationResult, VerifyOptions
from evp.tokens.clock import get_current_timestamp

logger = logging.getLogger(__name__)


def _require_header(headers: dict[str, str], name: str) -> str:
    value = headers.get(name)
    if not value:
        raise InvalidSignatureError(f"Missing {name} header")
    return value


def _check_content_digest(headers: dict[str, str], body: bytes | str) -> None:
    header = headers.get("content-digest")
    if not header:
        raise InvalidSignatureError("Missing content-digest header for request with body")
    member = parse_dictionary(header).get("sha-256")
    if not isinstance(member, Item) or not isinstance(member.value, bytes):
        raise InvalidSignatureError("Unsupported content-digest algorithm")
    raw = body.encode() if isinstance(body, str) else body
    if not hmac.compare_digest(member.value, hashlib.sha256(raw).digest()):
        raise InvalidSignatureError("Content-Digest does not match request body")


async def verify_request(
    request: SignedRequest,
    options: VerifyOptions | None = None,
    *,
    cache: JWKSCache | None = None,
) -> VerificationResult:
    """Verify the signature identified by the request's Signature-Key label.

    Never raises; a failed check is reported through ``error``. Pass a
    long-lived ``cache`` to reuse fetched JWKS documents across requests;
    without one, documents live only for this call.
    """
    options = options or VerifyOptions()
    cache = cache or JWKSCache(options.jwks_cache_ttl)
    try:
        return await _verify(request, options, cache)
    except EmailVerificationError as exc:
        logger.info("Signature verification failed: %s", exc.message)
        return VerificationResult(verified=False, error=exc.message)
    except Exception as exc:
        logger.exception("Unexpected error during signature verification")
        return VerificationResult(verified=False, error=str(exc) or type(exc).__name__)


async def _verify(
    request: SignedRequest, options: VerifyOptions, cache: JWKSCache
) -> VerificationResult:
    headers = normalize_headers(request.headers)
    signature_key = parse_signature_key(_require_header(headers, "signature-key"))
    label = signature_key.label

    inputs = {entry.label: entry for entry in parse_signature_input(
        _require_header(headers, "signature-input")
    )}
    signature_input = inputs.get(label)
    if signature_input is None:
        raise InvalidSignatureError(f"No Signature-Input found for label '{label}'")
    signature = parse_signature(_require_header(headers, "signature")).get(label)
    if signature is None:
        raise InvalidSignatureError(f"No Signature found for label '{label}'")

    if options.strict_aauth and "signature-key" not in signature_input.components:
        raise InvalidSignatureError(
            "signature-key must be a covered component (AAuth strict mode)"
        )

    derived = derive_component_values(
        request.method, request.authority, request.path, request.query
    )
    signature_base = build_signature_base(
        signature_input.components, derived, headers, signature_input.params
    )

    skew = abs(get_current_timestamp() - signature_input.created)
    if skew > options.max_clock_skew:
        raise TimeValidationError(
            f"Signature created timestamp outside allowed clock skew ({skew}s)"
        )

    jwt_info = jwks_reference = None
    if signature_key.type == "hwk":
        public_key = resolve_hwk(signature_key)
    elif signature_key.type == "jwt":
        public_key, jwt_info = resolve_jwt(signature_key)
    else:
        public_key, jwks_reference = await resolve_jwks(signature_key, cache)

    validate_key_parameters(public_key)
    if not verify_bytes(signature_base.encode(), signature, public_key):
        raise InvalidSignatureError("Signature verification failed")

    if request.body is not None and "content-digest" in signature_input.components:
        _check_content_digest(headers, request.body)

    logger.debug("Verified %s signature '%s'", signature_key.type, label)
    return VerificationResult(
        verified=True,
        label=label,
        key_type=signature_key.type,
        public_key=public_key,
        thumbprint=calculate_thumbprint(public_key),
        created=signature_input.created,
        jwt=jwt_info,
        jwks=jwks_reference,
    )
