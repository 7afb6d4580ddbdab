from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

import httpx

from ...adapters.jwks.cache import KeySetCache
from ...adapters.jwks.fetcher import HttpKeySetFetcher
from ...adapters.oauth2.cache import TokenResponseCache
from ...adapters.oauth2.client import TokenExchangeClient
from ...application.use_cases.authorize import AuthorizeScopesUseCase
from ...application.use_cases.resolve_credentials import CredentialResolver
from ...application.use_cases.validate_token import TokenValidator
from ...config.settings import EngineSettings
from ...domain.constants import AuthenticationMethod
from ...domain.entities import BearerToken, ValidatedToken, ValidationResult
from ...domain.ports import KeySetFetcher, ScopeConverter
from ...domain.value_objects import AccessRequirement, InboundRequest


@dataclass(slots=True)
class TrustEngine:
    """
    Framework-agnostic facade over one isolated set of components.

    Owns both caches; nothing is shared with other engines in the process.
    Integrations (FastAPI, CLI) adapt this to their own surfaces.
    """

    settings: EngineSettings
    validator: TokenValidator
    resolver: CredentialResolver
    exchange_client: TokenExchangeClient
    key_cache: KeySetCache
    token_cache: TokenResponseCache
    authorize_use_case: AuthorizeScopesUseCase = field(default_factory=AuthorizeScopesUseCase)
    _closeables: tuple = field(default=(), repr=False)

    # --- Core operations --------------------------------------------------

    def decode(self, token: str) -> ValidatedToken:
        """Token -> ValidatedToken (or raise a ValidationError)."""
        return self.validator.decode(token)

    def validate(self, token: str) -> ValidationResult:
        return self.validator.validate(token)

    def resolve(
            self,
            request: InboundRequest,
            policy: Optional[Sequence[AuthenticationMethod]] = None,
    ) -> BearerToken:
        return self.resolver.resolve(request, policy)

    def authorize(
            self,
            token: ValidatedToken,
            requirements: Iterable[AccessRequirement],
    ) -> ValidatedToken:
        return self.authorize_use_case.execute(token, requirements)

    # --- Lifecycle --------------------------------------------------------

    def close(self) -> None:
        for closeable in self._closeables:
            closeable.close()
        self.key_cache.clear()
        self.token_cache.clear()

    def __enter__(self) -> "TrustEngine":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def create_trust_engine(
        settings: EngineSettings,
        *,
        fetcher: Optional[KeySetFetcher] = None,
        http_client: Optional[httpx.Client] = None,
        scope_converter: Optional[ScopeConverter] = None,
) -> TrustEngine:
    """
    High-level factory: EngineSettings -> TrustEngine.

    - builds both caches, the key-set fetcher and the exchange client
    - wires TokenValidator, CredentialResolver and AuthorizeScopesUseCase
    - clients created here are closed by TrustEngine.close(); injected ones
      stay owned by the caller
    """
    trust = settings.trust
    exchange = settings.exchange
    closeables = []

    if fetcher is None:
        http_fetcher = HttpKeySetFetcher(timeout_seconds=trust.http_timeout, user_agent=exchange.user_agent)
        closeables.append(http_fetcher)
        fetcher = http_fetcher

    exchange_client = TokenExchangeClient(
        timeout=exchange.timeout,
        user_agent=exchange.user_agent,
        client=http_client,
    )
    if http_client is None:
        closeables.append(exchange_client)

    key_cache = KeySetCache(ttl_seconds=trust.key_set_cache_ttl)
    token_cache = TokenResponseCache(settings.token_cache)

    validator = TokenValidator(
        config=trust,
        key_cache=key_cache,
        fetcher=fetcher,
    )
    resolver = CredentialResolver(
        exchanger=exchange_client,
        cache=token_cache,
        token_url=exchange.token_url,
        client_id=exchange.client_id,
        client_secret=exchange.client_secret,
        subdomain_header=exchange.subdomain_header,
        policy=tuple(exchange.authentication_methods),
    )

    return TrustEngine(
        settings=settings,
        validator=validator,
        resolver=resolver,
        exchange_client=exchange_client,
        key_cache=key_cache,
        token_cache=token_cache,
        authorize_use_case=AuthorizeScopesUseCase(scope_converter=scope_converter),
        _closeables=tuple(closeables),
    )
