"""Type definitions for JWKs, JWKS documents, and issuer metadata."""

from typing import Any

from pydantic import BaseModel, ConfigDict

JWK = dict[str, Any]


class JWKSResponse(BaseModel):
    """JSON Web Key Set document."""

    keys: list[JWK]


class EmailVerificationMetadata(BaseModel):
    """Issuer metadata served at /.well-known/email-verification."""

    model_config = ConfigDict(extra="allow")

    issuance_endpoint: str
    jwks_uri: str
    signing_alg_values_supported: list[str] | None = None
