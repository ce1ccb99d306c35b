"""Error taxonomy shared by the token codec, signature engine, and key fetchers."""


class EmailVerificationError(Exception):
    """Base class for every protocol error; ``code`` is stable and machine-readable."""

    code = "email_verification"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingClaimError(EmailVerificationError):
    """A required claim is absent from a token payload."""

    code = "missing_claim"

    def __init__(self, claim: str) -> None:
        super().__init__(f"Required claim '{claim}' is missing")
        self.claim = claim


class InvalidSignatureError(EmailVerificationError):
    """Signature, key binding, or audience/nonce checks failed."""

    code = "invalid_signature"

    def __init__(self, message: str = "Token signature verification failed") -> None:
        super().__init__(message)


class TimeValidationError(EmailVerificationError):
    """The iat claim is missing or outside the accepted window."""

    code = "time_validation"


class TokenFormatError(EmailVerificationError):
    """Malformed JWT, presentation token, or structured header."""

    code = "token_format"


class JWKValidationError(EmailVerificationError):
    """Key shape is invalid or the key type/algorithm is unsupported."""

    code = "jwk_validation"


class EmailValidationError(EmailVerificationError):
    """Email syntax or email_verified checks failed."""

    code = "email_validation"


class DNSDiscoveryError(EmailVerificationError):
    """Issuer discovery failed."""

    code = "dns_discovery"


class JWKSFetchError(EmailVerificationError):
    """Fetching issuer metadata or a JWKS document failed."""

    code = "jwks_fetch"
