"""Load middleware options from a JSON configuration file.

File layout::

    {
      "issuers": {
        "https://auth.example.com": {"alg": "RS256", "public_key_file": "keys/auth.pem"},
        "internal": {"alg": "HS256", "secret_env": "INTERNAL_JWT_SECRET", "leeway_seconds": 30}
      },
      "no_issuer": {"alg": "HS256", "secret_env": "LEGACY_JWT_SECRET"},
      "reject_missing_token": true
    }

``public_key_file`` paths are resolved relative to the configuration file.
``secret_env`` names an environment variable holding the secret, so secrets
need not live in the file.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from jwt_middleware.errors import ConfigurationError, Violation
from jwt_middleware.registry import NO_ISSUER, build_registry

logger = logging.getLogger(__name__)

_TOP_LEVEL_KEYS = frozenset({"issuers", "no_issuer", "reject_missing_token"})


def _resolve_entry(issuer: Any, entry: Any, base_dir: Path, violations: list[Violation]) -> Any:
    """Replace ``public_key_file`` / ``secret_env`` with the material they point to."""
    if not isinstance(entry, dict):
        return entry

    resolved = dict(entry)
    if "public_key_file" in resolved:
        key_path = base_dir / str(resolved.pop("public_key_file"))
        if "public_key" in resolved:
            violations.append(Violation(issuer, "public_key_file", "cannot be combined with public_key"))
        try:
            resolved["public_key"] = key_path.read_text()
        except OSError as exc:
            violations.append(Violation(issuer, "public_key_file", f"cannot read {key_path}: {exc.strerror}"))

    if "secret_env" in resolved:
        var_name = str(resolved.pop("secret_env"))
        if "secret" in resolved:
            violations.append(Violation(issuer, "secret_env", "cannot be combined with secret"))
        secret = os.environ.get(var_name)
        if secret:
            resolved["secret"] = secret
        else:
            violations.append(Violation(issuer, "secret_env", f"environment variable {var_name} is not set"))

    return resolved


def load_config(path: str | Path) -> dict[str, Any]:
    """Read a JSON configuration file into middleware keyword arguments.

    The returned ``issuers`` value is an already validated ``IssuerRegistry``.

    Raises:
        ConfigurationError: If the file cannot be read or parsed, or any issuer
            entry is invalid. All problems found are reported together.
    """
    config_path = Path(path)
    try:
        raw = json.loads(config_path.read_text())
    except OSError as exc:
        raise ConfigurationError([Violation(None, "config", f"cannot read {config_path}: {exc.strerror}")]) from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError([Violation(None, "config", f"{config_path} is not valid JSON: {exc}")]) from exc

    if not isinstance(raw, dict):
        raise ConfigurationError([Violation(None, "config", "top level must be a JSON object")])

    violations: list[Violation] = []
    for name in sorted(set(raw) - _TOP_LEVEL_KEYS):
        violations.append(Violation(None, name, "unknown option"))

    reject_missing_token = raw.get("reject_missing_token", True)
    if not isinstance(reject_missing_token, bool):
        violations.append(Violation(None, "reject_missing_token", "must be true or false"))

    issuers = raw.get("issuers", {})
    if not isinstance(issuers, dict):
        violations.append(Violation(None, "issuers", "must be a JSON object"))
        issuers = {}

    raw_entries: dict[Any, Any] = dict(issuers)
    if "no_issuer" in raw:
        raw_entries[NO_ISSUER] = raw["no_issuer"]
    if not raw_entries:
        violations.append(Violation(None, "issuers", "at least one issuer or no_issuer must be configured"))

    entries: dict[Any, Any] = {}
    for issuer, entry in raw_entries.items():
        seen = len(violations)
        resolved = _resolve_entry(issuer, entry, config_path.parent, violations)
        # entries whose key material could not be resolved would only repeat the error
        if len(violations) == seen:
            entries[issuer] = resolved

    try:
        registry = build_registry(entries)
    except ConfigurationError as exc:
        violations.extend(exc.violations)
        registry = None

    if violations:
        raise ConfigurationError(violations)

    logger.info("Loaded %d issuer(s) from %s", len(registry), config_path)
    return {"issuers": registry, "reject_missing_token": reject_missing_token}
