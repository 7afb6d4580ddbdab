from __future__ import annotations

import json
import os
from typing import Any, Mapping, Optional

from ..domain.constants import AuthenticationMethod, DEFAULT_KEY_SET_PATH, SUBDOMAIN_HEADER
from ..domain.exceptions import ConfigurationError
from .settings import (
    EngineSettings,
    ExchangeConfiguration,
    TokenCacheConfiguration,
    TrustConfiguration,
)

DEFAULT_SERVICE_LABEL = "xsuaa"


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from exc


def _split_csv(env: Mapping[str, str], key: str) -> list[str]:
    raw = env.get(key)
    if not raw:
        return []
    return [x.strip() for x in raw.split(",") if x and x.strip()]


def _methods(env: Mapping[str, str]) -> tuple[AuthenticationMethod, ...]:
    names = _split_csv(env, "TRUST_AUTHENTICATION_METHODS")
    if not names:
        return (AuthenticationMethod.OAUTH2,)
    try:
        return tuple(AuthenticationMethod[n.upper()] for n in names)
    except KeyError as exc:
        raise ConfigurationError(f"Unknown authentication method: {exc.args[0]}") from exc


def binding_credentials(
    vcap_services: str,
    label: str = DEFAULT_SERVICE_LABEL,
) -> Optional[dict[str, Any]]:
    """
    Return the credentials of the first service bound under `label`
    in a VCAP_SERVICES document, or None if there is none.
    """
    try:
        services = json.loads(vcap_services)
    except ValueError as exc:
        raise ConfigurationError("VCAP_SERVICES is not valid JSON") from exc
    if not isinstance(services, dict):
        raise ConfigurationError("VCAP_SERVICES must be a JSON object")

    bindings = services.get(label) or []
    if not isinstance(bindings, list):
        raise ConfigurationError(f"VCAP_SERVICES entry {label!r} must be a list of bindings")
    if not bindings:
        return None
    binding = bindings[0]
    if not isinstance(binding, dict):
        raise ConfigurationError(f"VCAP_SERVICES binding for {label!r} must be an object")
    credentials = binding.get("credentials") or {}
    if not isinstance(credentials, dict):
        raise ConfigurationError(f"VCAP_SERVICES credentials for {label!r} must be an object")
    return dict(credentials)


def settings_from_env(
    env: Optional[Mapping[str, str]] = None,
    *,
    service_label: str = DEFAULT_SERVICE_LABEL,
) -> EngineSettings:
    """
    Build EngineSettings from environment variables.

    Identity values come from a VCAP_SERVICES binding when present,
    otherwise from TRUST_CLIENT_ID, TRUST_CLIENT_SECRET, TRUST_DOMAIN,
    TRUST_TOKEN_URL and TRUST_VERIFICATION_KEY. Cache and policy values
    always come from TRUST_* variables.
    """
    env = os.environ if env is None else env

    creds: Optional[dict[str, Any]] = None
    if env.get("VCAP_SERVICES"):
        creds = binding_credentials(env["VCAP_SERVICES"], service_label)

    if creds is not None:
        client_id = creds.get("clientid")
        client_secret = creds.get("clientsecret")
        domain = creds.get("uaadomain")
        url = creds.get("url")
        token_url = f"{url.rstrip('/')}/oauth/token" if url else None
        verification_key = creds.get("verificationkey")
    else:
        client_id = env.get("TRUST_CLIENT_ID")
        client_secret = env.get("TRUST_CLIENT_SECRET")
        domain = env.get("TRUST_DOMAIN")
        token_url = env.get("TRUST_TOKEN_URL")
        verification_key = env.get("TRUST_VERIFICATION_KEY")

    if not (domain or verification_key):
        raise ConfigurationError(
            "Missing trust settings: TRUST_DOMAIN or TRUST_VERIFICATION_KEY"
        )

    trust = TrustConfiguration(
        client_id=client_id or None,
        trusted_domain=domain or None,
        verification_key=verification_key or None,
        key_set_path=env.get("TRUST_KEY_SET_PATH") or DEFAULT_KEY_SET_PATH,
        key_set_cache_ttl=_float(env, "TRUST_KEY_SET_CACHE_TTL", 600.0),
        allowed_algorithms=tuple(_split_csv(env, "TRUST_ALGORITHMS") or ["RS256"]),
        http_timeout=_float(env, "TRUST_HTTP_TIMEOUT", 5.0),
    )
    token_cache = TokenCacheConfiguration(
        cache_duration=_float(env, "TRUST_TOKEN_CACHE_DURATION", 600.0),
        cache_size=int(_float(env, "TRUST_TOKEN_CACHE_SIZE", 1000)),
        expiration_delta=_float(env, "TRUST_TOKEN_EXPIRATION_DELTA", 0.0),
    )
    exchange = ExchangeConfiguration(
        token_url=token_url or None,
        client_id=client_id or None,
        client_secret=client_secret or None,
        subdomain_header=env.get("TRUST_SUBDOMAIN_HEADER") or SUBDOMAIN_HEADER,
        authentication_methods=_methods(env),
        timeout=_float(env, "TRUST_EXCHANGE_TIMEOUT", 10.0),
    )
    return EngineSettings(trust=trust, token_cache=token_cache, exchange=exchange)
