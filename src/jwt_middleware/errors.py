"""Exception hierarchy for jwt-middleware.

Configuration problems surface once, at construction time, as
``ConfigurationError``. Everything that can go wrong with an individual token
is a ``VerificationError`` and is turned into a 401 by the dispatch layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class JWTMiddlewareError(Exception):
    """Base class for all jwt-middleware exceptions."""


@dataclass(frozen=True)
class Violation:
    """A single violated configuration rule.

    Attributes:
        issuer: Issuer key the rule applies to, or None for top-level options.
        field: Offending option name.
        message: Human-readable description of the rule.
    """

    issuer: Any
    field: str
    message: str

    def __str__(self) -> str:
        if self.issuer is None:
            return f"{self.field}: {self.message}"
        return f"issuer {self.issuer!r}: {self.field}: {self.message}"


class ConfigurationError(JWTMiddlewareError, ValueError):
    """Raised when middleware options are invalid.

    Attributes:
        violations: Every rule the options broke, not just the first one.
    """

    def __init__(self, violations: list[Violation]) -> None:
        self.violations = list(violations)
        lines = "\n".join(f"  - {v}" for v in self.violations)
        super().__init__(f"Invalid options ({len(self.violations)} violation(s)):\n{lines}")


class VerificationError(JWTMiddlewareError):
    """A token was found but could not be accepted."""


class MalformedTokenError(VerificationError):
    """The token is not a structurally valid JWT."""


class AlgorithmMismatchError(VerificationError):
    """The token header names a different algorithm than the issuer is pinned to."""


class SignatureInvalidError(VerificationError):
    """The signature does not verify against the issuer's key material."""


class TokenExpiredError(VerificationError):
    """The ``exp`` claim lies in the past, beyond the allowed leeway."""


class TokenNotYetValidError(VerificationError):
    """The ``nbf`` or ``iat`` claim lies in the future, beyond the allowed leeway."""
