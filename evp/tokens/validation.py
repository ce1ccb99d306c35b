"""Claim, header, and email validation applied before any field is trusted."""

import re
from collections.abc import Iterable, Mapping
from typing import Any

import jwt

from evp.core.errors import EmailValidationError, MissingClaimError, TokenFormatError

MAX_EMAIL_LENGTH = 254
MAX_LOCAL_PART_LENGTH = 64
MAX_DOMAIN_LENGTH = 253

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_INJECTION_PATTERNS = (
    re.compile(r"<[^>]*>"),
    re.compile(r"[\r\n]"),
    re.compile(r"\x00"),
    re.compile(r"\.\."),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"%[0-9a-f]{2}", re.IGNORECASE),
)


def is_valid_email(email: Any) -> bool:
    """Syntax, RFC 5321 length, and injection deny-list check."""
    if not isinstance(email, str) or not _EMAIL_PATTERN.match(email):
        return False
    if any(pattern.search(email) for pattern in _INJECTION_PATTERNS):
        return False
    if len(email) > MAX_EMAIL_LENGTH:
        return False
    local_part, domain = email.split("@")
    return len(local_part) <= MAX_LOCAL_PART_LENGTH and len(domain) <= MAX_DOMAIN_LENGTH


def parse_jwt(token: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """Decode header and payload without verifying anything."""
    if not isinstance(token, str) or not token:
        raise TokenFormatError("Invalid JWT format: token must be a non-empty string")
    try:
        header = jwt.get_unverified_header(token)
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as exc:
        raise TokenFormatError(f"Invalid JWT format: {exc}") from exc
    return header, payload


def validate_required_claims(payload: Mapping[str, Any], required: Iterable[str]) -> None:
    for claim in required:
        if payload.get(claim) is None:
            raise MissingClaimError(claim)


def validate_email_claim(payload: Mapping[str, Any]) -> None:
    email = payload.get("email")
    if not email:
        raise MissingClaimError("email")
    if not is_valid_email(email):
        raise EmailValidationError(f"Invalid email format: {email!r}")


def validate_email_verified_claim(payload: Mapping[str, Any]) -> None:
    """email_verified must be present and the literal boolean true."""
    value = payload.get("email_verified")
    if value is None:
        raise MissingClaimError("email_verified")
    if value is not True:
        raise EmailValidationError("email_verified claim must be true")


def validate_jwt_type(header: Mapping[str, Any], expected: str) -> None:
    if header.get("typ") != expected:
        raise TokenFormatError(f"Expected JWT type '{expected}', got '{header.get('typ')}'")


def parse_presentation_token(token: str) -> tuple[str, str]:
    """Split ``<SD-JWT>~<KB-JWT>`` into its two non-empty halves."""
    if not isinstance(token, str):
        raise TokenFormatError("PresentationToken must be a string")
    parts = token.split("~")
    if len(parts) != 2:
        raise TokenFormatError("PresentationToken must contain exactly one tilde separator")
    sd_jwt, kb_jwt = parts
    if not sd_jwt or not kb_jwt:
        raise TokenFormatError("PresentationToken parts cannot be empty")
    return sd_jwt, kb_jwt
