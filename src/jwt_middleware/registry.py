"""Issuer registry: which key material and algorithm each issuer is pinned to."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jwt.algorithms import get_default_algorithms
from jwt.exceptions import InvalidKeyError

from jwt_middleware.errors import ConfigurationError, Violation

logger = logging.getLogger(__name__)


class _NoIssuer(enum.Enum):
    NO_ISSUER = "no-issuer"

    def __repr__(self) -> str:
        return "NO_ISSUER"


# Registry key for tokens that carry no ``iss`` claim.
NO_ISSUER = _NoIssuer.NO_ISSUER

HMAC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
RSA_ALGORITHMS = frozenset({"RS256", "RS384", "RS512", "PS256", "PS384", "PS512"})
EC_ALGORITHMS = frozenset({"ES256", "ES384", "ES512"})
PUBLIC_KEY_ALGORITHMS = RSA_ALGORITHMS | EC_ALGORITHMS

_EC_CURVES = {"ES256": "secp256r1", "ES384": "secp384r1", "ES512": "secp521r1"}
_OPTION_NAMES = frozenset({"alg", "secret", "public_key", "leeway_seconds"})


@dataclass(frozen=True)
class SecretKeyTrust:
    """Trust configuration for a shared-secret (HMAC) issuer."""

    alg: str
    secret: bytes = field(repr=False)
    leeway_seconds: int = 0


@dataclass(frozen=True)
class PublicKeyTrust:
    """Trust configuration for a public-key (RSA / EC) issuer."""

    alg: str
    public_key: Any = field(repr=False)
    leeway_seconds: int = 0


TrustConfig = Union[SecretKeyTrust, PublicKeyTrust]
IssuerKey = Union[str, _NoIssuer]


class IssuerRegistry(Mapping[IssuerKey, TrustConfig]):
    """Read-only mapping of issuer key to trust configuration.

    Built once by ``build_registry``; never mutated afterwards, so concurrent
    requests can read it without locking.
    """

    def __init__(self, entries: Mapping[IssuerKey, TrustConfig]) -> None:
        self._entries = MappingProxyType(dict(entries))

    def __getitem__(self, issuer: IssuerKey) -> TrustConfig:
        return self._entries[issuer]

    def __iter__(self) -> Iterator[IssuerKey]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        algs = ", ".join(f"{issuer!r}: {trust.alg}" for issuer, trust in self._entries.items())
        return f"IssuerRegistry({{{algs}}})"


def _check_leeway(issuer: IssuerKey, opts: Mapping[str, Any], violations: list[Violation]) -> int:
    leeway = opts.get("leeway_seconds", 0)
    # bool is an int subclass; True is not a leeway
    if isinstance(leeway, bool) or not isinstance(leeway, int) or leeway < 0:
        violations.append(Violation(issuer, "leeway_seconds", f"must be a non-negative integer, got {leeway!r}"))
        return 0
    return leeway


def _load_secret(issuer: IssuerKey, alg: str, opts: Mapping[str, Any], violations: list[Violation]) -> bytes | None:
    if "public_key" in opts:
        violations.append(Violation(issuer, "public_key", f"not allowed for symmetric algorithm {alg}"))
    if "secret" not in opts:
        violations.append(Violation(issuer, "secret", f"required for symmetric algorithm {alg}"))
        return None

    secret = opts["secret"]
    if not isinstance(secret, (str, bytes)) or not secret:
        violations.append(Violation(issuer, "secret", "must be a non-empty string or bytes"))
        return None
    try:
        return get_default_algorithms()[alg].prepare_key(secret)
    except InvalidKeyError as exc:
        violations.append(Violation(issuer, "secret", str(exc)))
        return None


def _load_public_key(issuer: IssuerKey, alg: str, opts: Mapping[str, Any], violations: list[Violation]) -> Any:
    if "secret" in opts:
        violations.append(Violation(issuer, "secret", f"not allowed for public-key algorithm {alg}"))
    if "public_key" not in opts:
        violations.append(Violation(issuer, "public_key", f"required for public-key algorithm {alg}"))
        return None

    try:
        key = get_default_algorithms()[alg].prepare_key(opts["public_key"])
    except (InvalidKeyError, TypeError, ValueError) as exc:
        violations.append(Violation(issuer, "public_key", f"could not be loaded: {exc}"))
        return None

    if isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        violations.append(Violation(issuer, "public_key", "must be a public key, got a private key"))
        return None
    if alg in RSA_ALGORITHMS and not isinstance(key, rsa.RSAPublicKey):
        violations.append(Violation(issuer, "public_key", f"{alg} requires an RSA public key"))
        return None
    if alg in EC_ALGORITHMS:
        if not isinstance(key, ec.EllipticCurvePublicKey):
            violations.append(Violation(issuer, "public_key", f"{alg} requires an EC public key"))
            return None
        if key.curve.name != _EC_CURVES[alg]:
            violations.append(
                Violation(issuer, "public_key", f"{alg} requires curve {_EC_CURVES[alg]}, got {key.curve.name}")
            )
            return None
    return key


def _build_trust(issuer: IssuerKey, opts: Any, violations: list[Violation]) -> TrustConfig | None:
    if not isinstance(opts, Mapping):
        violations.append(Violation(issuer, "options", f"must be a mapping, got {type(opts).__name__}"))
        return None

    for name in sorted(set(opts) - _OPTION_NAMES, key=str):
        violations.append(Violation(issuer, str(name), "unknown option"))

    alg = opts.get("alg")
    leeway = _check_leeway(issuer, opts, violations)

    if alg is None:
        violations.append(Violation(issuer, "alg", "is required"))
        return None
    if not isinstance(alg, str):
        violations.append(Violation(issuer, "alg", f"must be a string, got {type(alg).__name__}"))
        return None
    if alg in HMAC_ALGORITHMS:
        secret = _load_secret(issuer, alg, opts, violations)
        return None if secret is None else SecretKeyTrust(alg, secret, leeway)
    if alg in PUBLIC_KEY_ALGORITHMS:
        key = _load_public_key(issuer, alg, opts, violations)
        return None if key is None else PublicKeyTrust(alg, key, leeway)

    supported = ", ".join(sorted(HMAC_ALGORITHMS | PUBLIC_KEY_ALGORITHMS))
    violations.append(Violation(issuer, "alg", f"must be one of {supported}, got {alg!r}"))
    return None


def build_registry(issuers: Any) -> IssuerRegistry:
    """Validate raw issuer options and build an ``IssuerRegistry``.

    Args:
        issuers: Mapping of issuer key (a string, or ``NO_ISSUER`` for tokens
            without an ``iss`` claim) to options ``{"alg", "secret" |
            "public_key", "leeway_seconds"}``. An existing ``IssuerRegistry``
            is returned unchanged.

    Raises:
        ConfigurationError: Listing every violated rule across all issuers.
    """
    if isinstance(issuers, IssuerRegistry):
        return issuers
    if issuers is None:
        raise ConfigurationError([Violation(None, "issuers", "is required")])
    if not isinstance(issuers, Mapping):
        raise ConfigurationError([Violation(None, "issuers", f"must be a mapping, got {type(issuers).__name__}")])

    violations: list[Violation] = []
    entries: dict[IssuerKey, TrustConfig] = {}
    for issuer, opts in issuers.items():
        if not isinstance(issuer, (str, _NoIssuer)):
            violations.append(Violation(issuer, "issuer", "key must be a string or NO_ISSUER"))
            continue
        trust = _build_trust(issuer, opts, violations)
        if trust is not None:
            entries[issuer] = trust

    if violations:
        raise ConfigurationError(violations)

    logger.debug("Built issuer registry with %d issuer(s)", len(entries))
    return IssuerRegistry(entries)
