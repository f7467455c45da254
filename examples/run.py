"""Serve a small Starlette app behind JWTAuthMiddleware.

Usage (from the project root):
    JWT_SECRET=my-secret-of-at-least-32-characters python examples/run.py

Then test with curl:
    curl http://localhost:8000/whoami                               # 401 (no token)
    curl -H "Authorization: Bearer <token>" localhost:8000/whoami   # 200
    curl http://localhost:8000/public                               # 200, empty claims
"""

import os
import time

import jwt as pyjwt
import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from jwt_middleware import JWTAuthMiddleware, current_claims

ISSUER = "examples"
jwt_secret = os.environ.get("JWT_SECRET", "change-me-this-is-only-a-demo-secret")


async def whoami(request: Request) -> JSONResponse:
    return JSONResponse({"claims": request.scope["claims"]})


async def public(request: Request) -> JSONResponse:
    return JSONResponse({"claims": current_claims()})


protected = Starlette(
    routes=[Route("/whoami", whoami)],
    middleware=[Middleware(JWTAuthMiddleware, issuers={ISSUER: {"alg": "HS256", "secret": jwt_secret}})],
)
optional = Starlette(
    routes=[Route("/public", public)],
    middleware=[
        Middleware(
            JWTAuthMiddleware,
            issuers={ISSUER: {"alg": "HS256", "secret": jwt_secret}},
            reject_missing_token=False,
        )
    ],
)


async def app(scope, receive, send):
    target = optional if scope.get("path", "").startswith("/public") else protected
    await target(scope, receive, send)


# Sample token for testing; this package never issues tokens itself
sample_token = pyjwt.encode(
    {"iss": ISSUER, "sub": "demo-user", "exp": int(time.time()) + 3600},
    jwt_secret,
    algorithm="HS256",
)
print(f"Sample token: {sample_token}")

uvicorn.run(app, host="127.0.0.1", port=8000)
