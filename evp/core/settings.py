"""Settings loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict

from evp.core.errors import JWKValidationError
from evp.crypto.jwk import has_private_parameters
from evp.crypto.keys import decrypt_private_jwk
from evp.crypto.types import JWK

MAX_CLOCK_SKEW_DEFAULT = 60
JWKS_CACHE_TTL_DEFAULT = 3600
METADATA_CACHE_TTL_DEFAULT = 300
FETCH_TIMEOUT_DEFAULT = 10.0


class VerifierSettings(BaseSettings):
    """Signature clock skew, cache lifetimes and fetch limits for verifiers."""

    model_config = SettingsConfigDict(env_prefix="EVP_")

    max_clock_skew: int = MAX_CLOCK_SKEW_DEFAULT
    jwks_cache_ttl: int = JWKS_CACHE_TTL_DEFAULT
    metadata_cache_ttl: int = METADATA_CACHE_TTL_DEFAULT
    fetch_timeout: float = FETCH_TIMEOUT_DEFAULT
    strict_aauth: bool = True


class IssuerSettings(BaseSettings):
    """Reference issuer service settings."""

    model_config = SettingsConfigDict(env_prefix="EVP_ISSUER_")

    issuer: str = "issuer.example"
    authority: str = "issuer.example"
    signing_jwk: str = ""
    signing_key_encryption_key: str = ""
    cors_origins: str = ""

    def get_cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        if not self.cors_origins:
            return []
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def get_signing_jwk(self) -> JWK | None:
        """Decrypt the configured signing key, if any."""
        if not self.signing_jwk or not self.signing_key_encryption_key:
            return None
        jwk = decrypt_private_jwk(self.signing_jwk, self.signing_key_encryption_key)
        if not has_private_parameters(jwk):
            raise JWKValidationError("Configured signing JWK has no private key material")
        return jwk
