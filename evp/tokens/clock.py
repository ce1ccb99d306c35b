"""Issued-at handling; iat doubles as the implicit expiry of every token."""

import time
from typing import Any

from evp.core.errors import TimeValidationError

TIME_VALIDATION_WINDOW = 60


def get_current_timestamp() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


def validate_iat_claim(iat: float, window_seconds: int = TIME_VALIDATION_WINDOW) -> None:
    """Reject an iat more than ``window_seconds`` away from now, in either direction."""
    now = get_current_timestamp()
    difference = abs(now - iat)
    if difference > window_seconds:
        raise TimeValidationError(
            "Token iat claim is outside acceptable time window. "
            f"Current time: {now}, Token iat: {iat}, "
            f"Difference: {difference}s, Max allowed: {window_seconds}s"
        )


def ensure_iat_claim(claims: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``claims`` with iat set to now unless already present."""
    if claims.get("iat") is not None:
        return dict(claims)
    return {**claims, "iat": get_current_timestamp()}


def validate_iat_for_verification(
    iat: Any, window_seconds: int = TIME_VALIDATION_WINDOW
) -> None:
    """Require a numeric iat within the window."""
    if iat is None:
        raise TimeValidationError("Token is missing required iat claim")
    if isinstance(iat, bool) or not isinstance(iat, int | float):
        raise TimeValidationError(f"Token iat claim must be numeric, got {iat!r}")
    validate_iat_claim(iat, window_seconds)
