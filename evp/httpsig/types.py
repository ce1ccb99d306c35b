"""Type definitions for HTTP Message Signature signing and verification."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from evp.core.settings import VerifierSettings
from evp.crypto.types import JWK

KeyType = Literal["hwk", "jwt", "jwks"]


class HwkSignatureKey(BaseModel):
    """Public key carried inline in the Signature-Key header."""

    type: Literal["hwk"] = "hwk"


class JwtSignatureKey(BaseModel):
    """Key carried as cnf.jwk inside a JWT; the JWT itself is not validated here."""

    type: Literal["jwt"] = "jwt"
    jwt: str


class JwksSignatureKey(BaseModel):
    """Key referenced by ``kid`` in a JWKS located directly or via metadata."""

    type: Literal["jwks"] = "jwks"
    id: str
    kid: str
    well_known: str | None = None


SignatureKey = Annotated[
    HwkSignatureKey | JwtSignatureKey | JwksSignatureKey,
    Field(discriminator="type"),
]


class SignedRequest(BaseModel):
    """What the verifier sees of an incoming request.

    ``authority`` is supplied by the application, never read from Host.
    """

    method: str
    authority: str
    path: str = "/"
    query: str | None = None
    headers: dict[str, str | list[str]] = Field(default_factory=dict)
    body: bytes | str | None = None


class VerifyOptions(BaseModel):
    max_clock_skew: int = 60
    jwks_cache_ttl: float = 3600
    strict_aauth: bool = True

    @classmethod
    def from_settings(cls, settings: VerifierSettings) -> "VerifyOptions":
        return cls(
            max_clock_skew=settings.max_clock_skew,
            jwks_cache_ttl=settings.jwks_cache_ttl,
            strict_aauth=settings.strict_aauth,
        )


class ParsedSignatureInput(BaseModel):
    label: str
    components: list[str]
    params: dict[str, Any]
    created: int


class ParsedSignatureKey(BaseModel):
    label: str
    type: KeyType
    params: dict[str, Any]


class JwtKeyInfo(BaseModel):
    """Unvalidated JWT from a ``jwt`` Signature-Key; the caller owns its checks."""

    header: dict[str, Any]
    payload: dict[str, Any]
    raw: str


class JwksKeyReference(BaseModel):
    id: str
    kid: str
    well_known: str | None = None


class VerificationResult(BaseModel):
    """Uniform outcome of ``verify_request``; failures set ``error``."""

    verified: bool
    label: str = ""
    key_type: KeyType | None = None
    public_key: JWK = Field(default_factory=dict)
    thumbprint: str = ""
    created: int = 0
    jwt: JwtKeyInfo | None = None
    jwks: JwksKeyReference | None = None
    error: str | None = None


class SignedHeaders(BaseModel):
    """Headers produced by ``sign_request`` for the caller to attach."""

    signature_input: str
    signature_key: str
    signature: str
    content_digest: str | None = None
    content_type: str | None = None

    def as_dict(self) -> dict[str, str]:
        headers = {
            "Signature-Input": self.signature_input,
            "Signature-Key": self.signature_key,
            "Signature": self.signature,
        }
        if self.content_digest is not None:
            headers["Content-Digest"] = self.content_digest
        if self.content_type is not None:
            headers["Content-Type"] = self.content_type
        return headers
