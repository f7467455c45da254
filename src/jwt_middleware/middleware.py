"""Request dispatch: locate the token, resolve its issuer, verify, decide.

``JWTAuthenticator.authenticate`` holds the whole decision and returns an
``AuthResult``. The wrappers in this module and in ``jwt_middleware.asgi``
only adapt that result to a calling convention.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from jwt_middleware.errors import VerificationError
from jwt_middleware.locator import TokenFinder, read_token_from_header
from jwt_middleware.registry import NO_ISSUER, IssuerRegistry, build_registry
from jwt_middleware.verifier import decode, decode_issuer

logger = logging.getLogger(__name__)

UNIFORM_REJECTION_MESSAGE = "Unauthorized."


class RejectionReason(str, enum.Enum):
    """Why a request was turned away."""

    NO_TOKEN = "no_token"
    UNKNOWN_ISSUER = "unknown_issuer"
    VERIFICATION_FAILED = "verification_failed"


@dataclass(frozen=True)
class AuthResult:
    """Outcome of authenticating one request.

    Exactly one of ``claims`` (authenticated) or ``reason`` (rejected) is set.
    """

    claims: dict[str, Any] | None = None
    reason: RejectionReason | None = None
    message: str = ""
    error: VerificationError | None = field(default=None, repr=False, compare=False)

    @property
    def authenticated(self) -> bool:
        return self.claims is not None

    @classmethod
    def accept(cls, claims: dict[str, Any]) -> AuthResult:
        return cls(claims=claims)

    @classmethod
    def reject(cls, reason: RejectionReason, message: str, error: VerificationError | None = None) -> AuthResult:
        return cls(reason=reason, message=message, error=error)


def unauthorized_response(message: str) -> dict[str, Any]:
    """Build the plain-text 401 response returned for every rejection."""
    return {
        "status": 401,
        "headers": {
            "Content-Type": "text/plain; charset=utf-8",
            "WWW-Authenticate": "Bearer",
        },
        "body": message,
    }


def _describe(request: Mapping[str, Any]) -> str:
    return str(request.get("path") or request.get("uri") or "request")


class JWTAuthenticator:
    """Authenticates requests against a per-issuer trust configuration.

    Args:
        issuers: Issuer key to options mapping, see ``build_registry``.
            Validated here; invalid options raise ``ConfigurationError``.
        find_token_fn: Callable returning the raw token of a request, or None.
            Defaults to a bearer token in the ``Authorization`` header.
        reject_missing_token: If True, requests without a token get a 401.
            If False, they proceed with empty claims.
        uniform_rejection: If True, every 401 carries the same body so that
            clients cannot tell which issuers are configured. The specific
            reason is still logged.
        clock: Returns the current epoch time, used for ``exp``/``nbf``/``iat``.
    """

    def __init__(
        self,
        issuers: Any = None,
        *,
        find_token_fn: TokenFinder | None = None,
        reject_missing_token: bool = True,
        uniform_rejection: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = build_registry(issuers)
        self._find_token = find_token_fn or read_token_from_header("Authorization")
        self._reject_missing_token = reject_missing_token
        self._uniform_rejection = uniform_rejection
        self._clock = clock

    @property
    def registry(self) -> IssuerRegistry:
        return self._registry

    def _reject(
        self,
        request: Mapping[str, Any],
        reason: RejectionReason,
        message: str,
        error: VerificationError | None = None,
    ) -> AuthResult:
        logger.warning("Authentication failed for %s: %s", _describe(request), message)
        if self._uniform_rejection:
            message = UNIFORM_REJECTION_MESSAGE
        return AuthResult.reject(reason, message, error)

    def authenticate(self, request: Mapping[str, Any]) -> AuthResult:
        """Run the full pipeline for one request. Never raises for bad tokens."""
        token = self._find_token(request)
        if token is None:
            if self._reject_missing_token:
                return self._reject(request, RejectionReason.NO_TOKEN, "No token found.")
            return AuthResult.accept({})

        try:
            issuer = decode_issuer(token)
            issuer_key = NO_ISSUER if issuer is None else issuer
            trust = self._registry.get(issuer_key)
            if trust is None:
                return self._reject(request, RejectionReason.UNKNOWN_ISSUER, "Unknown issuer.")
            claims = decode(token, trust, now=int(self._clock()))
        except VerificationError as exc:
            return self._reject(request, RejectionReason.VERIFICATION_FAILED, str(exc), exc)

        logger.debug("Authenticated %s (issuer=%r)", _describe(request), issuer_key)
        return AuthResult.accept(claims)


class JWTMiddleware:
    """Wraps a request handler with JWT authentication.

    Requests are mappings with a ``headers`` entry. On success the handler is
    called with a copy of the request that has ``claims`` set, and whatever
    it returns is passed through. On failure the handler is not called and a
    401 response mapping is produced instead.

    Supports both a direct call (``middleware(request)``) and continuation
    style (``middleware.handle(request, respond, raise_)``). Exceptions
    raised by the handler are never intercepted.
    """

    def __init__(self, handler: Callable[..., Any], **options: Any) -> None:
        self._handler = handler
        self._authenticator = JWTAuthenticator(**options)

    @property
    def authenticator(self) -> JWTAuthenticator:
        return self._authenticator

    def __call__(self, request: Mapping[str, Any]) -> Any:
        result = self._authenticator.authenticate(request)
        if not result.authenticated:
            return unauthorized_response(result.message)
        return self._handler({**request, "claims": result.claims})

    def handle(
        self,
        request: Mapping[str, Any],
        respond: Callable[[Any], Any],
        raise_: Callable[[BaseException], Any],
    ) -> Any:
        result = self._authenticator.authenticate(request)
        if not result.authenticated:
            return respond(unauthorized_response(result.message))
        return self._handler({**request, "claims": result.claims}, respond, raise_)


def wrap_jwt(handler: Callable[..., Any], **options: Any) -> JWTMiddleware:
    """Wrap ``handler`` with JWT authentication. See ``JWTAuthenticator`` for options."""
    return JWTMiddleware(handler, **options)
