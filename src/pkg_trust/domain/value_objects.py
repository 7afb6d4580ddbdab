# src/pkg_trust/domain/value_objects.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Optional, Sequence, Tuple, Union


# --- Key-set locator -------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TrustedKeySetRef:
    """
    A key-set locator that passed the trust check.

    `url` is the normalized form (scheme + host + path only) and is the only
    form used as a cache key or dereferenced over the network.
    """
    url: str
    host: str
    locator: str

    def __str__(self) -> str:
        return self.url


# --- Credential material ---------------------------------------------------


@dataclass(frozen=True, slots=True)
class UsernamePassword:
    """Basic-auth user credentials."""
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class ClientCredentials:
    """Basic-auth header read as an OAuth2 client id/secret pair."""
    client_id: str
    client_secret: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class BearerCredentials:
    token: str = field(repr=False)


CredentialMaterial = Union[UsernamePassword, ClientCredentials, BearerCredentials]


# --- Inbound request surface -----------------------------------------------


@dataclass(frozen=True, slots=True)
class InboundRequest:
    """
    Framework-neutral view of an inbound request.

    Headers keep their original order and duplicates; lookups are
    case-insensitive.
    """
    headers: Tuple[Tuple[str, str], ...] = ()

    def __init__(self, headers: Iterable[Tuple[str, str]] | Mapping[str, str] = ()) -> None:
        items = headers.items() if isinstance(headers, Mapping) else headers
        object.__setattr__(self, "headers", tuple((str(k), str(v)) for k, v in items))

    def get_all(self, name: str) -> Iterator[str]:
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                yield value

    def get(self, name: str) -> Optional[str]:
        return next(self.get_all(name), None)


# --- Authorization requirements --------------------------------------------


def _normalize(values: Iterable[str]) -> Tuple[str, ...]:
    """
    Normalize an iterable of strings into a tuple.
    If a plain string is passed, treat it as a single-element collection.
    """
    if isinstance(values, str):
        return (values,)
    return tuple(values)


@dataclass(frozen=True, slots=True)
class AccessRequirement:
    """
    Declarative scope requirement.

    - any_of:   at least one of these scopes must be present (OR)
    - all_of:   all of these scopes must be present (AND)
    """

    any_of: Tuple[str, ...] = ()
    all_of: Tuple[str, ...] = ()

    def __init__(
            self,
            any_of: Iterable[str] | None = None,
            all_of: Iterable[str] | None = None,
    ) -> None:
        object.__setattr__(self, "any_of", _normalize(any_of or ()))
        object.__setattr__(self, "all_of", _normalize(all_of or ()))


def require_scopes(*scopes: str, any_of: bool = True) -> AccessRequirement:
    if any_of:
        return AccessRequirement(any_of=scopes)
    return AccessRequirement(all_of=scopes)


def split_scopes(raw: Union[str, Sequence[str], None]) -> Tuple[str, ...]:
    if not raw:
        return ()
    if isinstance(raw, str):
        return tuple(raw.split())
    return tuple(str(s) for s in raw)
