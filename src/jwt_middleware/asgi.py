"""ASGI middleware that authenticates requests and exposes claims via ContextVar."""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

from starlette.responses import PlainTextResponse

from jwt_middleware.middleware import JWTAuthenticator

logger = logging.getLogger(__name__)

# Claims of the request being handled, for code that has no access to the scope
claims_var: ContextVar[dict[str, Any] | None] = ContextVar("jwt_claims", default=None)

# RFC 6455 "policy violation"
_WS_POLICY_VIOLATION = 1008


def current_claims() -> dict[str, Any]:
    """Return the claims of the current request, or an empty dict outside one."""
    return claims_var.get() or {}


class JWTAuthMiddleware:
    """ASGI middleware that verifies JWT bearer tokens.

    ``http`` and ``websocket`` scopes are authenticated; anything else (e.g.
    ``lifespan``) passes through untouched. Authenticated requests reach the
    wrapped app with ``scope["claims"]`` set and ``claims_var`` bound for the
    duration of the call.

    Args:
        app: The ASGI application to wrap.
        **options: Passed to ``JWTAuthenticator`` (``issuers``,
            ``find_token_fn``, ``reject_missing_token``, ...).
    """

    def __init__(self, app: Any, **options: Any) -> None:
        self._app = app
        self._authenticator = JWTAuthenticator(**options)

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self._app(scope, receive, send)
            return

        result = self._authenticator.authenticate(scope)
        if not result.authenticated:
            if scope["type"] == "websocket":
                await send({"type": "websocket.close", "code": _WS_POLICY_VIOLATION, "reason": result.message})
                return
            response = PlainTextResponse(result.message, status_code=401, headers={"WWW-Authenticate": "Bearer"})
            await response(scope, receive, send)
            return

        token = claims_var.set(result.claims)
        try:
            await self._app({**scope, "claims": result.claims}, receive, send)
        finally:
            claims_var.reset(token)
