"""Token verification against a single issuer's trust configuration.

The trust configuration, never the token, decides which algorithm and key
are used. Verification runs in a fixed order:

1. structural decode of the header,
2. header ``alg`` must equal the configured algorithm,
3. signature check (PyJWT, pinned to that one algorithm),
4. ``exp`` / ``nbf`` / ``iat`` against the current time and leeway.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone
from typing import Any

import jwt
from jwt.exceptions import DecodeError, InvalidSignatureError, InvalidTokenError

from jwt_middleware.errors import (
    AlgorithmMismatchError,
    MalformedTokenError,
    SignatureInvalidError,
    TokenExpiredError,
    TokenNotYetValidError,
    VerificationError,
)
from jwt_middleware.registry import PublicKeyTrust, SecretKeyTrust, TrustConfig

logger = logging.getLogger(__name__)

# Temporal claims are checked here against an injectable clock; PyJWT only
# verifies the signature and the payload structure.
_SIGNATURE_ONLY = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "require": [],
}

_UNVERIFIED = {**_SIGNATURE_ONLY, "verify_signature": False}


def _key_for(trust: TrustConfig) -> Any:
    if isinstance(trust, SecretKeyTrust):
        return trust.secret
    if isinstance(trust, PublicKeyTrust):
        return trust.public_key
    raise TypeError(f"Unsupported trust configuration: {type(trust).__name__}")


def _numeric_claim(payload: dict[str, Any], name: str) -> float | None:
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedTokenError(f"Malformed token: the '{name}' claim must be a number.")
    if not math.isfinite(value):
        raise MalformedTokenError(f"Malformed token: the '{name}' claim must be a finite number.")
    return value


def _format_time(timestamp: float) -> str:
    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
    except (OverflowError, ValueError, OSError):
        # outside the platform's datetime range
        return str(timestamp)


def _check_times(payload: dict[str, Any], leeway: int, now: int) -> None:
    exp = _numeric_claim(payload, "exp")
    if exp is not None and exp < now - leeway:
        raise TokenExpiredError(f"The token expired on {_format_time(exp)}.")

    nbf = _numeric_claim(payload, "nbf")
    if nbf is not None and nbf > now + leeway:
        raise TokenNotYetValidError(f"The token can't be used before {_format_time(nbf)}.")

    iat = _numeric_claim(payload, "iat")
    if iat is not None and iat > now + leeway:
        raise TokenNotYetValidError(f"The token can't be used before {_format_time(iat)}.")


def decode_issuer(token: str) -> str | None:
    """Read the ``iss`` claim without verifying anything.

    Only ever use the result as a registry lookup key.

    Raises:
        MalformedTokenError: If the token cannot be decoded, or ``iss`` is
            present but not a string.
    """
    try:
        payload = jwt.decode(token, options=_UNVERIFIED)
    except InvalidTokenError as exc:
        raise MalformedTokenError(f"Malformed token: {exc}") from exc

    issuer = payload.get("iss")
    if issuer is not None and not isinstance(issuer, str):
        raise MalformedTokenError("Malformed token: the 'iss' claim must be a string.")
    return issuer


def decode(token: str, trust: TrustConfig, *, now: int | None = None) -> dict[str, Any]:
    """Verify ``token`` against ``trust`` and return its claims.

    Args:
        token: Compact JWT (``header.payload.signature``).
        trust: Trust configuration of the token's issuer.
        now: Current time in whole epoch seconds. Defaults to ``time.time()``.

    Returns:
        All claims of the token payload.

    Raises:
        MalformedTokenError: Token or temporal claims are structurally invalid.
        AlgorithmMismatchError: Header ``alg`` differs from ``trust.alg``.
        SignatureInvalidError: Signature does not verify.
        TokenExpiredError: ``exp`` is before ``now - leeway_seconds``.
        TokenNotYetValidError: ``nbf`` or ``iat`` is after ``now + leeway_seconds``.
    """
    try:
        header = jwt.get_unverified_header(token)
    except InvalidTokenError as exc:
        raise MalformedTokenError(f"Malformed token: {exc}") from exc

    if header.get("alg") != trust.alg:
        raise AlgorithmMismatchError("The token's algorithm does not match the algorithm configured for its issuer.")

    try:
        payload = jwt.decode(token, _key_for(trust), algorithms=[trust.alg], options=_SIGNATURE_ONLY)
    except InvalidSignatureError as exc:
        raise SignatureInvalidError("Signature verification failed.") from exc
    except DecodeError as exc:
        raise MalformedTokenError(f"Malformed token: {exc}") from exc
    except InvalidTokenError as exc:
        raise VerificationError(f"Token rejected: {exc}") from exc

    _check_times(payload, trust.leeway_seconds, int(time.time()) if now is None else now)
    return payload
