from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

from .constants import AuthenticationMethod, KeyProvenance, ValidationState
from .exceptions import TrustEngineError, ValidationError


def _frozen_mapping(values: Mapping[str, Any] | None = None) -> Mapping[str, Any]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True, slots=True)
class TokenHeader:
    """
    Decoded JOSE header. `key_set_locator` is the untrusted `jku` value.
    """
    algorithm: Optional[str] = None
    key_id: Optional[str] = None
    key_set_locator: Optional[str] = None
    type: Optional[str] = None


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """
    Standard claims of an access token plus everything else as `attributes`.
    """
    issuer: Optional[str] = None
    subject: Optional[str] = None
    audiences: Tuple[str, ...] = ()
    issued_at: Optional[float] = None
    expires_at: Optional[float] = None
    client_id: Optional[str] = None
    scopes: Tuple[str, ...] = ()
    attributes: Mapping[str, Any] = field(default_factory=_frozen_mapping)

    def get(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)


@dataclass(frozen=True, slots=True)
class Token:
    """
    Immutable view of one compact token. Created once per decode call.
    """
    raw: str
    header: TokenHeader
    claims: TokenClaims
    signature: bytes = field(repr=False)

    @property
    def client_id(self) -> Optional[str]:
        return self.claims.client_id

    @property
    def subject(self) -> Optional[str]:
        return self.claims.subject

    @property
    def scopes(self) -> Tuple[str, ...]:
        return self.claims.scopes

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True, slots=True)
class ValidatedToken:
    """
    An accepted token together with the provenance of its verification key.
    """
    token: Token
    provenance: KeyProvenance
    key_set_url: Optional[str] = None

    @property
    def claims(self) -> TokenClaims:
        return self.token.claims

    @property
    def header(self) -> TokenHeader:
        return self.token.header


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """
    Outcome of the validation state machine; never raises for token failures.
    """
    state: ValidationState
    last_state: ValidationState
    token: Optional[ValidatedToken] = None
    error: Optional[ValidationError] = None

    @property
    def accepted(self) -> bool:
        return self.state is ValidationState.ACCEPTED

    def unwrap(self) -> ValidatedToken:
        if self.error is not None:
            raise self.error
        if self.token is None:
            raise TrustEngineError("Validation result carries neither a token nor an error")
        return self.token


@dataclass(frozen=True, slots=True)
class CachedKeySet:
    """
    A fetched key set. `keys` maps key id to verification key objects.
    A ttl of 0 means the entry is never reused.
    """
    locator: str
    keys: Mapping[str, Any]
    fetched_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        if self.ttl <= 0:
            return True
        return now >= self.fetched_at + self.ttl

    def get_key(self, key_id: Optional[str]) -> Any:
        if key_id is None:
            # a single published key may be used without a kid
            if len(self.keys) == 1:
                return next(iter(self.keys.values()))
            return None
        return self.keys.get(key_id)


@dataclass(frozen=True, slots=True)
class TokenRequest:
    """
    One token-endpoint call. Built fresh per exchange, never cached.
    """
    grant_type: str
    endpoint: str
    headers: Mapping[str, str] = field(default_factory=_frozen_mapping)
    parameters: Mapping[str, str] = field(default_factory=_frozen_mapping, repr=False)


@dataclass(frozen=True, slots=True)
class TokenResponse:
    access_token: str = field(repr=False)
    token_type: Optional[str] = None
    expires_in: int = 0
    refresh_token: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True, slots=True)
class BearerToken:
    """
    Result of credential resolution: the token to forward downstream.
    """
    value: str = field(repr=False)
    method: AuthenticationMethod
    token_type: str = "Bearer"

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.value}"

    def __str__(self) -> str:
        return self.value
