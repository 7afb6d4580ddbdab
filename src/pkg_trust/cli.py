# src/pkg_trust/cli.py

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from typing import Any, Sequence

from .adapters.jwks.trust import KeyTrustResolver
from .config.env import settings_from_env
from .config.settings import TrustConfiguration
from .core.logging import configure_logging
from .domain.constants import DEFAULT_KEY_SET_PATH, GrantType
from .domain.exceptions import ConfigurationError, TrustEngineError
from .integrations.common.engine_factory import create_trust_engine


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pkg-trust",
        description="Check key-set locators, validate tokens and fetch tokens",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level for diagnostics written to stderr (default: WARNING).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check-locator", help="Run the key-set locator trust check only.")
    check.add_argument("locator", help="Key-set URL, e.g. a token's 'jku' header.")
    check.add_argument("--domain", help="Trusted base domain (default: from env).")
    check.add_argument("--path", default=None, help=f"Key-set path (default: {DEFAULT_KEY_SET_PATH}).")

    decode = sub.add_parser("decode", help="Validate a token with env-configured settings.")
    decode.add_argument("token")

    token = sub.add_parser("token", help="Request a token with env-configured client credentials.")
    token.add_argument(
        "--grant",
        choices=[GrantType.CLIENT_CREDENTIALS.value, GrantType.PASSWORD.value],
        default=GrantType.CLIENT_CREDENTIALS.value,
    )
    token.add_argument("--username")
    token.add_argument("--password")
    token.add_argument("--subdomain", help="Tenant subdomain for the token endpoint.")
    token.add_argument("--scope", "-s", nargs="*", help="Scopes to request.")

    return parser.parse_args(args=argv)


def _check_locator(args: argparse.Namespace) -> dict[str, Any]:
    if args.domain:
        config = TrustConfiguration(trusted_domain=args.domain)
    else:
        config = settings_from_env().trust
    if args.path:
        config = replace(config, key_set_path=args.path)

    ref = KeyTrustResolver().resolve(args.locator, config)
    return {"trusted": True, "url": ref.url, "host": ref.host}


def _decode(args: argparse.Namespace) -> dict[str, Any]:
    with create_trust_engine(settings_from_env()) as engine:
        validated = engine.decode(args.token)
    claims = validated.claims
    return {
        "provenance": validated.provenance.value,
        "key_set_url": validated.key_set_url,
        "header": {
            "alg": validated.header.algorithm,
            "kid": validated.header.key_id,
            "jku": validated.header.key_set_locator,
        },
        "claims": {
            "iss": claims.issuer,
            "sub": claims.subject,
            "aud": list(claims.audiences),
            "iat": claims.issued_at,
            "exp": claims.expires_at,
            "client_id": claims.client_id,
            "scope": list(claims.scopes),
            **dict(claims.attributes),
        },
    }


def _token(args: argparse.Namespace) -> dict[str, Any]:
    settings = settings_from_env()
    exchange = settings.exchange
    if not (exchange.token_url and exchange.client_id and exchange.client_secret):
        raise ConfigurationError("Token requests need TRUST_TOKEN_URL, TRUST_CLIENT_ID and TRUST_CLIENT_SECRET")

    with create_trust_engine(settings) as engine:
        client = engine.exchange_client
        if args.grant == GrantType.PASSWORD.value:
            if not (args.username and args.password):
                raise ConfigurationError("--username and --password are required for the password grant")
            response = client.password_token(
                exchange.token_url,
                exchange.client_id,
                exchange.client_secret,
                args.username,
                args.password,
                subdomain=args.subdomain,
                scopes=args.scope,
            )
        else:
            response = client.client_credentials_token(
                exchange.token_url,
                exchange.client_id,
                exchange.client_secret,
                subdomain=args.subdomain,
                scopes=args.scope,
            )
    return {
        "access_token": response.access_token,
        "token_type": response.token_type,
        "expires_in": response.expires_in,
    }


_COMMANDS = {
    "check-locator": _check_locator,
    "decode": _decode,
    "token": _token,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)

    try:
        result = _COMMANDS[args.command](args)
    except TrustEngineError as exc:
        json.dump({"ok": False, "kind": exc.kind.value, "error": str(exc)}, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 1

    json.dump({"ok": True, **result}, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
