"""Tests for request dispatch: JWTAuthenticator, JWTMiddleware and wrap_jwt."""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import MagicMock, patch

import jwt as pyjwt
import pytest

from jwt_middleware.errors import ConfigurationError, TokenExpiredError
from jwt_middleware.middleware import (
    UNIFORM_REJECTION_MESSAGE,
    JWTAuthenticator,
    JWTMiddleware,
    RejectionReason,
    wrap_jwt,
)
from jwt_middleware.registry import NO_ISSUER
from tests.conftest import NOW, SECRET

ISSUER = "https://auth.example.com"


def _make_token(payload: dict, key=SECRET, algorithm: str = "HS256") -> str:
    return pyjwt.encode(payload, key, algorithm=algorithm)


def _request(token: str | None = None, path: str = "/api", header: str = "Authorization") -> dict[str, Any]:
    headers = {header: f"Bearer {token}"} if token is not None else {}
    return {"path": path, "method": "GET", "headers": headers}


def _echo_handler(request: dict[str, Any]) -> dict[str, Any]:
    return {"status": 200, "body": request["claims"]}


@pytest.fixture
def issuers(rsa_public_pem) -> dict:
    return {
        ISSUER: {"alg": "HS256", "secret": SECRET},
        "rsa-issuer": {"alg": "RS256", "public_key": rsa_public_pem, "leeway_seconds": 10},
    }


class TestAuthenticated:
    def test_claims_attached_and_handler_result_passed_through(self, issuers):
        claims = {"iss": ISSUER, "sub": "user-1", "roles": ["admin"]}
        sentinel = object()
        handler = MagicMock(return_value=sentinel)
        mw = wrap_jwt(handler, issuers=issuers)

        assert mw(_request(_make_token(claims))) is sentinel
        forwarded = handler.call_args.args[0]
        assert forwarded["claims"] == claims
        assert forwarded["path"] == "/api"
        assert forwarded["method"] == "GET"

    @pytest.mark.parametrize("header", ["Authorization", "authorization", "AUTHORIZATION"])
    @pytest.mark.parametrize("scheme", ["Bearer", "bearer", "BEARER"])
    def test_any_casing(self, issuers, header, scheme):
        token = _make_token({"iss": ISSUER, "sub": "u"})
        mw = wrap_jwt(_echo_handler, issuers=issuers)
        response = mw({"headers": {header: f"{scheme} {token}"}})
        assert response == {"status": 200, "body": {"iss": ISSUER, "sub": "u"}}

    def test_asymmetric_issuer(self, issuers, rsa_private_key):
        token = _make_token({"iss": "rsa-issuer", "sub": "svc"}, key=rsa_private_key, algorithm="RS256")
        mw = wrap_jwt(_echo_handler, issuers=issuers)
        assert mw(_request(token))["body"]["sub"] == "svc"

    def test_token_without_issuer_uses_no_issuer_entry(self):
        mw = wrap_jwt(_echo_handler, issuers={NO_ISSUER: {"alg": "HS256", "secret": SECRET}})
        assert mw(_request(_make_token({"sub": "u"})))["body"] == {"sub": "u"}

    def test_request_not_mutated(self, issuers):
        request = _request(_make_token({"iss": ISSUER}))
        wrap_jwt(_echo_handler, issuers=issuers)(request)
        assert "claims" not in request

    def test_custom_token_finder(self, issuers):
        token = _make_token({"iss": ISSUER, "sub": "cookie-user"})
        mw = wrap_jwt(_echo_handler, issuers=issuers, find_token_fn=lambda request: request["cookies"].get("jwt"))
        assert mw({"headers": {}, "cookies": {"jwt": token}})["body"]["sub"] == "cookie-user"

    def test_leeway_uses_clock(self, issuers, rsa_private_key):
        token = _make_token({"iss": "rsa-issuer", "exp": NOW - 10}, key=rsa_private_key, algorithm="RS256")
        mw = wrap_jwt(_echo_handler, issuers=issuers, clock=lambda: NOW + 0.9)
        assert mw(_request(token))["status"] == 200


class TestMissingToken:
    def test_rejected_by_default(self, issuers):
        handler = MagicMock()
        response = wrap_jwt(handler, issuers=issuers)(_request())
        assert response["status"] == 401
        assert response["body"] == "No token found."
        assert response["headers"]["WWW-Authenticate"] == "Bearer"
        handler.assert_not_called()

    def test_non_bearer_header_counts_as_missing(self, issuers):
        response = wrap_jwt(_echo_handler, issuers=issuers)({"headers": {"Authorization": "Basic abc"}})
        assert response["body"] == "No token found."

    def test_allowed_when_not_required(self, issuers):
        mw = wrap_jwt(_echo_handler, issuers=issuers, reject_missing_token=False)
        assert mw(_request()) == {"status": 200, "body": {}}

    def test_invalid_token_still_rejected_when_not_required(self, issuers):
        mw = wrap_jwt(_echo_handler, issuers=issuers, reject_missing_token=False)
        response = mw(_request(_make_token({"iss": ISSUER}, key="some-other-secret-that-is-long-enough")))
        assert response["status"] == 401


class TestUnknownIssuer:
    def test_unknown_issuer_rejected(self, issuers):
        token = _make_token({"iss": "https://evil.example.com"})
        response = wrap_jwt(_echo_handler, issuers=issuers)(_request(token))
        assert response["status"] == 401
        assert response["body"] == "Unknown issuer."

    def test_missing_issuer_without_no_issuer_entry(self, issuers):
        response = wrap_jwt(_echo_handler, issuers=issuers)(_request(_make_token({"sub": "u"})))
        assert response["body"] == "Unknown issuer."

    def test_verifier_never_invoked(self, issuers):
        mw = wrap_jwt(_echo_handler, issuers=issuers)
        with patch("jwt_middleware.middleware.decode") as mock_decode:
            mw(_request(_make_token({"iss": "https://evil.example.com"})))
        mock_decode.assert_not_called()


class TestVerificationFailure:
    def test_bad_signature(self, issuers):
        token = _make_token({"iss": ISSUER}, key="some-other-secret-that-is-long-enough")
        response = wrap_jwt(_echo_handler, issuers=issuers)(_request(token))
        assert response["status"] == 401
        assert response["body"] == "Signature verification failed."

    def test_algorithm_mismatch(self, issuers):
        token = _make_token({"iss": "rsa-issuer"})
        response = wrap_jwt(_echo_handler, issuers=issuers)(_request(token))
        assert response["status"] == 401
        assert "algorithm" in response["body"]

    def test_expired(self, issuers):
        token = _make_token({"iss": ISSUER, "exp": NOW - 1})
        response = wrap_jwt(_echo_handler, issuers=issuers, clock=lambda: NOW)(_request(token))
        assert response["status"] == 401
        assert "expired" in response["body"]

    @pytest.mark.parametrize(
        "claims",
        [
            {"exp": -1e20},
            {"exp": float("-inf")},
            {"exp": float("nan")},
            {"nbf": 1e20},
            {"iat": float("inf")},
        ],
    )
    def test_extreme_time_claims_rejected(self, issuers, claims):
        token = _make_token({"iss": ISSUER, **claims})
        response = wrap_jwt(_echo_handler, issuers=issuers, clock=lambda: NOW)(_request(token))
        assert response["status"] == 401

    def test_malformed(self, issuers):
        response = wrap_jwt(_echo_handler, issuers=issuers)(_request("not-a-jwt"))
        assert response["status"] == 401
        assert response["body"].startswith("Malformed token")

    def test_response_does_not_leak_key_material(self, issuers):
        token = _make_token({"iss": ISSUER}, key="some-other-secret-that-is-long-enough")
        response = wrap_jwt(_echo_handler, issuers=issuers)(_request(token))
        assert SECRET not in response["body"]


class TestAuthResult:
    def test_reasons(self, issuers):
        auth = JWTAuthenticator(issuers, clock=lambda: NOW)
        assert auth.authenticate(_request()).reason is RejectionReason.NO_TOKEN
        assert auth.authenticate(_request(_make_token({"iss": "x"}))).reason is RejectionReason.UNKNOWN_ISSUER
        expired = auth.authenticate(_request(_make_token({"iss": ISSUER, "exp": NOW - 5})))
        assert expired.reason is RejectionReason.VERIFICATION_FAILED
        assert isinstance(expired.error, TokenExpiredError)
        assert not expired.authenticated

    def test_accepted(self, issuers):
        result = JWTAuthenticator(issuers).authenticate(_request(_make_token({"iss": ISSUER, "sub": "u"})))
        assert result.authenticated
        assert result.claims == {"iss": ISSUER, "sub": "u"}
        assert result.reason is None

    def test_same_token_twice(self, issuers):
        auth = JWTAuthenticator(issuers)
        request = _request(_make_token({"iss": ISSUER, "sub": "u"}))
        assert auth.authenticate(request).claims == auth.authenticate(request).claims


class TestUniformRejection:
    def test_all_rejections_share_body(self, issuers):
        mw = wrap_jwt(_echo_handler, issuers=issuers, uniform_rejection=True)
        bodies = {
            mw(_request())["body"],
            mw(_request(_make_token({"iss": "https://evil.example.com"})))["body"],
            mw(_request(_make_token({"iss": ISSUER}, key="some-other-secret-that-is-long-enough")))["body"],
        }
        assert bodies == {UNIFORM_REJECTION_MESSAGE}

    def test_reason_still_reported(self, issuers):
        auth = JWTAuthenticator(issuers, uniform_rejection=True)
        result = auth.authenticate(_request(_make_token({"iss": "https://evil.example.com"})))
        assert result.reason is RejectionReason.UNKNOWN_ISSUER
        assert result.message == UNIFORM_REJECTION_MESSAGE


class TestContinuationStyle:
    def test_success_calls_handler_with_continuations(self, issuers):
        respond, raise_ = MagicMock(), MagicMock()

        def handler(request, respond, raise_):
            respond({"status": 200, "body": request["claims"]})

        mw = JWTMiddleware(handler, issuers=issuers)
        mw.handle(_request(_make_token({"iss": ISSUER, "sub": "u"})), respond, raise_)
        respond.assert_called_once_with({"status": 200, "body": {"iss": ISSUER, "sub": "u"}})
        raise_.assert_not_called()

    def test_rejection_responds_401(self, issuers):
        respond, raise_ = MagicMock(), MagicMock()
        handler = MagicMock()
        JWTMiddleware(handler, issuers=issuers).handle(_request(), respond, raise_)
        response = respond.call_args.args[0]
        assert response["status"] == 401
        assert response["body"] == "No token found."
        handler.assert_not_called()
        raise_.assert_not_called()

    def test_missing_token_allowed(self, issuers):
        respond, raise_ = MagicMock(), MagicMock()
        handler = MagicMock()
        JWTMiddleware(handler, issuers=issuers, reject_missing_token=False).handle(_request(), respond, raise_)
        request, passed_respond, passed_raise = handler.call_args.args
        assert request["claims"] == {}
        assert passed_respond is respond
        assert passed_raise is raise_


class TestHandlerErrors:
    def test_handler_exception_propagates(self, issuers):
        def handler(request):
            raise RuntimeError("boom")

        mw = wrap_jwt(handler, issuers=issuers)
        with pytest.raises(RuntimeError, match="boom"):
            mw(_request(_make_token({"iss": ISSUER})))

    def test_verification_error_from_handler_not_swallowed(self, issuers):
        def handler(request):
            raise TokenExpiredError("downstream")

        mw = wrap_jwt(handler, issuers=issuers)
        with pytest.raises(TokenExpiredError, match="downstream"):
            mw(_request(_make_token({"iss": ISSUER})))


class TestConstruction:
    def test_invalid_registry_fails_fast(self, rsa_public_pem):
        handler = MagicMock()
        with pytest.raises(ConfigurationError, match="'bad-issuer'"):
            wrap_jwt(handler, issuers={"bad-issuer": {"alg": "HS256", "public_key": rsa_public_pem}})
        handler.assert_not_called()

    def test_issuers_required(self):
        with pytest.raises(ConfigurationError, match="issuers"):
            wrap_jwt(_echo_handler)

    def test_registry_exposed(self, issuers):
        mw = wrap_jwt(_echo_handler, issuers=issuers)
        assert set(mw.authenticator.registry) == {ISSUER, "rsa-issuer"}


class TestLogging:
    def test_rejection_logs_warning_with_path(self, issuers, caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.WARNING, logger="jwt_middleware.middleware"):
            wrap_jwt(_echo_handler, issuers=issuers)(_request(path="/api/data"))
        assert any("Authentication failed for /api/data" in r.message for r in caplog.records)

    def test_rejection_log_format(self, issuers, caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.WARNING, logger="jwt_middleware.middleware"):
            wrap_jwt(_echo_handler, issuers=issuers)(_request(path="/api/data"))
        assert [r.getMessage() for r in caplog.records] == ["Authentication failed for /api/data: No token found."]

    def test_token_never_logged(self, issuers, caplog: pytest.LogCaptureFixture):
        token = _make_token({"iss": ISSUER}, key="some-other-secret-that-is-long-enough")
        with caplog.at_level(logging.DEBUG, logger="jwt_middleware"):
            wrap_jwt(_echo_handler, issuers=issuers)(_request(token))
        assert not any(token in r.getMessage() for r in caplog.records)

    def test_success_does_not_warn(self, issuers, caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.WARNING, logger="jwt_middleware.middleware"):
            wrap_jwt(_echo_handler, issuers=issuers)(_request(_make_token({"iss": ISSUER})))
        assert not any("Authentication failed" in r.message for r in caplog.records)
