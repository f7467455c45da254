"""Credential locators: find the raw token in a request."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any

TokenFinder = Callable[[Mapping[str, Any]], str | None]

_BEARER_RE = re.compile(r"^Bearer (.+)$", re.IGNORECASE)


def _text(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return value


def header_items(request: Mapping[str, Any]) -> Iterator[tuple[str, str]]:
    """Yield ``(name, value)`` header pairs of a request in their original order.

    ``request["headers"]`` may be a mapping or a sequence of pairs, with
    ``str`` or latin-1 ``bytes`` entries, so ASGI scopes work as-is.
    """
    headers: Mapping[Any, Any] | Iterable[tuple[Any, Any]] = request.get("headers") or ()
    pairs = headers.items() if isinstance(headers, Mapping) else headers
    for name, value in pairs:
        yield _text(name), _text(value)


def read_token_from_header(header_name: str = "Authorization") -> TokenFinder:
    """Build a finder that reads a bearer token from ``header_name``.

    The header name is matched case-insensitively and only the first matching
    header is considered. Its value must read ``Bearer <token>`` (any casing of
    "Bearer", a single space). Returns None when the header is absent or does
    not carry a bearer token.
    """
    wanted = header_name.lower()

    def find_token(request: Mapping[str, Any]) -> str | None:
        for name, value in header_items(request):
            if name.lower() == wanted:
                match = _BEARER_RE.match(value)
                return match.group(1) if match else None
        return None

    return find_token
