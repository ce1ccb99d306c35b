"""Payload models for the three token kinds and the key resolver contract."""

from collections.abc import Awaitable, Callable

from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from pydantic import BaseModel, ConfigDict, StrictBool

from evp.crypto.types import JWK

REQUEST_TOKEN_TYPE = "JWT"
ISSUANCE_TOKEN_TYPE = "evt+jwt"
KEY_BINDING_TOKEN_TYPE = "kb+jwt"

KeyResolver = Callable[[str | None, str | None], Awaitable[JWK | PublicKeyTypes]]
"""Async ``(kid, issuer) -> key`` returning a public JWK or a loaded public key."""


class TokenGenerationOptions(BaseModel):
    """Optional overrides for token generation."""

    algorithm: str | None = None


class RequestTokenPayload(BaseModel):
    """Browser-signed request sent to an issuer."""

    model_config = ConfigDict(extra="allow")

    aud: str
    nonce: str
    email: str
    iat: int | None = None
    jti: str | None = None


class Confirmation(BaseModel):
    """The cnf claim: the holder's public key."""

    model_config = ConfigDict(extra="allow")

    jwk: JWK


class IssuanceTokenPayload(BaseModel):
    """Issuer attestation (SD-JWT) binding an email to the browser key."""

    model_config = ConfigDict(extra="allow")

    iss: str
    cnf: Confirmation
    email: str
    email_verified: StrictBool
    iat: int | None = None
    is_private_email: bool | None = None


class KeyBindingPayload(BaseModel):
    """KB-JWT claims signed by the holder key."""

    model_config = ConfigDict(extra="allow")

    aud: str
    nonce: str
    iat: int
    sd_hash: str


class PresentationTokenPayload(BaseModel):
    """Both halves of a verified SD-JWT+KB presentation."""

    sd_jwt: IssuanceTokenPayload
    kb_jwt: KeyBindingPayload
