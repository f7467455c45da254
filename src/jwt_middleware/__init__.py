"""jwt-middleware: per-issuer JWT verification for HTTP request pipelines."""

from __future__ import annotations

from jwt_middleware.asgi import JWTAuthMiddleware, claims_var, current_claims
from jwt_middleware.config import load_config
from jwt_middleware.errors import (
    AlgorithmMismatchError,
    ConfigurationError,
    JWTMiddlewareError,
    MalformedTokenError,
    SignatureInvalidError,
    TokenExpiredError,
    TokenNotYetValidError,
    VerificationError,
    Violation,
)
from jwt_middleware.locator import read_token_from_header
from jwt_middleware.middleware import (
    AuthResult,
    JWTAuthenticator,
    JWTMiddleware,
    RejectionReason,
    unauthorized_response,
    wrap_jwt,
)
from jwt_middleware.registry import (
    HMAC_ALGORITHMS,
    NO_ISSUER,
    PUBLIC_KEY_ALGORITHMS,
    IssuerRegistry,
    PublicKeyTrust,
    SecretKeyTrust,
    build_registry,
)
from jwt_middleware.verifier import decode, decode_issuer

__all__ = [
    # Middleware
    "wrap_jwt",
    "JWTMiddleware",
    "JWTAuthMiddleware",
    "JWTAuthenticator",
    "AuthResult",
    "RejectionReason",
    "unauthorized_response",
    "claims_var",
    "current_claims",
    # Building blocks
    "read_token_from_header",
    "build_registry",
    "load_config",
    "decode",
    "decode_issuer",
    "IssuerRegistry",
    "SecretKeyTrust",
    "PublicKeyTrust",
    # Constants
    "NO_ISSUER",
    "HMAC_ALGORITHMS",
    "PUBLIC_KEY_ALGORITHMS",
    # Errors
    "JWTMiddlewareError",
    "ConfigurationError",
    "Violation",
    "VerificationError",
    "MalformedTokenError",
    "AlgorithmMismatchError",
    "SignatureInvalidError",
    "TokenExpiredError",
    "TokenNotYetValidError",
]

__version__ = "0.1.0"
