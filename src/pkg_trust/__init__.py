"""
pkg_trust

Trust engine for identity-service access tokens: key-set trust checks,
signature and claim validation, and credential-to-token resolution with
caching. Framework integrations (FastAPI) live under `integrations`.
"""

__version__ = "0.1.0"

from .domain.constants import AuthenticationMethod, GrantType, KeyProvenance, ValidationState
from .domain.entities import (
    BearerToken,
    Token,
    TokenClaims,
    TokenHeader,
    TokenResponse,
    ValidatedToken,
    ValidationResult,
)
from .domain.exceptions import (
    AmbiguousAuthenticationConfigurationError,
    AuthorizationError,
    ClientMismatchError,
    ConfigurationError,
    ExchangeError,
    InsecureSchemeError,
    InvalidKeyEndpointError,
    KeyFetchFailedError,
    MalformedTokenError,
    NoTrustedKeySourceError,
    ResolutionError,
    SignatureInvalidError,
    TokenExpiredError,
    TrustEngineError,
    TrustViolationError,
    UntrustedDomainError,
    ValidationError,
)
from .domain.value_objects import (
    AccessRequirement,
    InboundRequest,
    TrustedKeySetRef,
    require_scopes,
)

from .config.settings import (
    EngineSettings,
    ExchangeConfiguration,
    TokenCacheConfiguration,
    TrustConfiguration,
)
from .config.env import settings_from_env
from .core.logging import configure_logging

from .application.use_cases.authorize import AuthorizeScopesUseCase, LocalScopeConverter
from .application.use_cases.resolve_credentials import CredentialResolver
from .application.use_cases.validate_token import TokenValidator

from .adapters.jwks.trust import KeyTrustResolver
from .adapters.oauth2.client import TokenExchangeClient
from .integrations.common.engine_factory import TrustEngine, create_trust_engine

__all__ = [
    "__version__",
    # domain core
    "AuthenticationMethod",
    "GrantType",
    "KeyProvenance",
    "ValidationState",
    "BearerToken",
    "Token",
    "TokenClaims",
    "TokenHeader",
    "TokenResponse",
    "ValidatedToken",
    "ValidationResult",
    "AccessRequirement",
    "InboundRequest",
    "TrustedKeySetRef",
    "require_scopes",
    # exceptions
    "TrustEngineError",
    "ConfigurationError",
    "ValidationError",
    "MalformedTokenError",
    "NoTrustedKeySourceError",
    "SignatureInvalidError",
    "TokenExpiredError",
    "ClientMismatchError",
    "KeyFetchFailedError",
    "TrustViolationError",
    "InsecureSchemeError",
    "UntrustedDomainError",
    "InvalidKeyEndpointError",
    "ExchangeError",
    "AmbiguousAuthenticationConfigurationError",
    "ResolutionError",
    "AuthorizationError",
    # configuration
    "EngineSettings",
    "ExchangeConfiguration",
    "TokenCacheConfiguration",
    "TrustConfiguration",
    "settings_from_env",
    "configure_logging",
    # use cases
    "AuthorizeScopesUseCase",
    "LocalScopeConverter",
    "CredentialResolver",
    "TokenValidator",
    # adapters
    "KeyTrustResolver",
    "TokenExchangeClient",
    "TrustEngine",
    "create_trust_engine",
]
