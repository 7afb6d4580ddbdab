from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .. import __version__
from ..domain.constants import AuthenticationMethod, DEFAULT_KEY_SET_PATH, SUBDOMAIN_HEADER


@dataclass(frozen=True, slots=True)
class TrustConfiguration:
    """
    Token validation settings for one service / tenant.

    Host code decides how to construct this (env, config file, etc.).
    Immutable: build a new engine to change it.
    """
    client_id: Optional[str] = None
    trusted_domain: Optional[str] = None
    verification_key: Optional[str] = field(default=None, repr=False)
    key_set_path: str = DEFAULT_KEY_SET_PATH
    key_set_cache_ttl: float = 600.0
    allowed_algorithms: Tuple[str, ...] = ("RS256",)
    http_timeout: float = 5.0

    @property
    def normalized_domain(self) -> Optional[str]:
        if not self.trusted_domain:
            return None
        d = self.trusted_domain.strip().strip(".").lower()
        return d or None


@dataclass(frozen=True, slots=True)
class TokenCacheConfiguration:
    """
    Token response cache settings.

    - cache_duration:   maximum lifetime of an entry in seconds; 0 disables
    - cache_size:       maximum number of entries
    - expiration_delta: entries count as expired this many seconds early
    """
    cache_duration: float = 600.0
    cache_size: int = 1000
    expiration_delta: float = 0.0

    @property
    def enabled(self) -> bool:
        return self.cache_duration > 0 and self.cache_size > 0


@dataclass(frozen=True, slots=True)
class ExchangeConfiguration:
    """
    Token endpoint and credential-resolution policy.

    `client_id` / `client_secret` are the service's own credentials, used
    for the password grant when BASIC credentials are resolved.
    """
    token_url: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = field(default=None, repr=False)
    subdomain_header: str = SUBDOMAIN_HEADER
    authentication_methods: Tuple[AuthenticationMethod, ...] = (AuthenticationMethod.OAUTH2,)
    timeout: float = 10.0
    user_agent: str = f"pkg-trust/{__version__}"


@dataclass(frozen=True, slots=True)
class EngineSettings:
    trust: TrustConfiguration = field(default_factory=TrustConfiguration)
    token_cache: TokenCacheConfiguration = field(default_factory=TokenCacheConfiguration)
    exchange: ExchangeConfiguration = field(default_factory=ExchangeConfiguration)
