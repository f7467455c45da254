"""CLI entry point: python -m jwt_middleware."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from jwt_middleware.config import load_config
from jwt_middleware.errors import ConfigurationError
from jwt_middleware.middleware import JWTAuthenticator

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the jwt-middleware CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m jwt_middleware",
        description="Validate issuer configuration files and verify tokens against them.",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default="WARNING",
        help="Logging level (default: WARNING).",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    check = commands.add_parser("check", help="Validate a configuration file and report every problem.")
    check.add_argument("config", type=Path, help="Path to the JSON configuration file.")

    verify = commands.add_parser("verify", help="Verify a token and print its claims as JSON.")
    verify.add_argument("config", type=Path, help="Path to the JSON configuration file.")
    verify.add_argument(
        "token",
        nargs="?",
        default=None,
        help="Token to verify. Read from stdin when omitted.",
    )

    return parser


def _load(config_path: Path) -> dict | None:
    try:
        return load_config(config_path)
    except ConfigurationError as exc:
        print(f"Error: {config_path}: {len(exc.violations)} problem(s) found.", file=sys.stderr)
        for violation in exc.violations:
            print(f"  - {violation}", file=sys.stderr)
        return None


def _check(args: argparse.Namespace) -> int:
    options = _load(args.config)
    if options is None:
        return 1
    for issuer, trust in options["issuers"].items():
        print(f"{issuer!r}: {trust.alg} (leeway {trust.leeway_seconds}s)")
    print(f"OK: {len(options['issuers'])} issuer(s) configured.")
    return 0


def _verify(args: argparse.Namespace) -> int:
    options = _load(args.config)
    if options is None:
        return 1

    token = args.token if args.token is not None else sys.stdin.read().strip()
    if not token:
        print("Error: no token given.", file=sys.stderr)
        return 1

    authenticator = JWTAuthenticator(options["issuers"], find_token_fn=lambda _request: token)
    result = authenticator.authenticate({"path": "cli"})
    if not result.authenticated:
        print(f"Rejected: {result.message}", file=sys.stderr)
        return 1

    print(json.dumps(result.claims, indent=2, sort_keys=True, default=str))
    return 0


def main() -> None:
    """CLI entry point.

    Exit codes:
        0 - Configuration valid / token accepted
        1 - Configuration invalid / token rejected
        2 - Invalid arguments (argparse)
    """
    parser = _build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "check":
        sys.exit(_check(args))
    sys.exit(_verify(args))


if __name__ == "__main__":
    main()
