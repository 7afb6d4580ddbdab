from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ...adapters.oauth2.cache import TokenResponseCache
from ...adapters.oauth2.client import is_valid_subdomain, replace_subdomain
from ...core.logging import get_logger
from ...domain import constants as c
from ...domain.constants import AuthenticationMethod, GrantType
from ...domain.entities import BearerToken
from ...domain.exceptions import (
    AmbiguousAuthenticationConfigurationError,
    ConfigurationError,
    ResolutionError,
)
from ...domain.ports import TokenExchanger
from ...domain.value_objects import (
    BearerCredentials,
    ClientCredentials,
    CredentialMaterial,
    InboundRequest,
    UsernamePassword,
)

logger = get_logger(__name__)

AUTHORIZATION = "Authorization"

Extractor = Callable[[InboundRequest], Optional[CredentialMaterial]]


# --------------------------------------------------------------------- #
# Extraction
# --------------------------------------------------------------------- #

def _authorization_values(request: InboundRequest, scheme: str) -> Iterator[str]:
    """Credentials of every Authorization header using `scheme`, in order."""
    for value in request.get_all(AUTHORIZATION):
        found, _, credentials = value.strip().partition(" ")
        if found.lower() == scheme and credentials.strip():
            yield credentials.strip()


def _basic_pairs(request: InboundRequest) -> Iterator[Tuple[str, str]]:
    for encoded in _authorization_values(request, "basic"):
        try:
            decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            continue
        user, sep, secret = decoded.partition(":")
        if sep and user:
            yield user, secret


def extract_basic(request: InboundRequest) -> Optional[UsernamePassword]:
    for user, secret in _basic_pairs(request):
        return UsernamePassword(username=user, password=secret)
    return None


def extract_client_credentials(request: InboundRequest) -> Optional[ClientCredentials]:
    for client_id, secret in _basic_pairs(request):
        return ClientCredentials(client_id=client_id, client_secret=secret)
    return None


def extract_bearer(request: InboundRequest) -> Optional[BearerCredentials]:
    for token in _authorization_values(request, "bearer"):
        return BearerCredentials(token=token)
    return None


EXTRACTORS: Mapping[AuthenticationMethod, Extractor] = MappingProxyType({
    AuthenticationMethod.BASIC: extract_basic,
    AuthenticationMethod.CLIENT_CREDENTIALS: extract_client_credentials,
    AuthenticationMethod.OAUTH2: extract_bearer,
})

# request field each method reads
_SOURCE_FIELDS: Mapping[AuthenticationMethod, str] = MappingProxyType({
    AuthenticationMethod.BASIC: "Authorization: Basic",
    AuthenticationMethod.CLIENT_CREDENTIALS: "Authorization: Basic",
    AuthenticationMethod.OAUTH2: "Authorization: Bearer",
})


def check_policy(policy: Sequence[AuthenticationMethod]) -> Tuple[AuthenticationMethod, ...]:
    """
    Deduplicate a policy, keeping order, and reject one where two methods
    read the same request field.

    Raises:
        AmbiguousAuthenticationConfigurationError
    """
    methods = tuple(dict.fromkeys(policy))
    readers: Dict[str, List[AuthenticationMethod]] = {}
    for method in methods:
        readers.setdefault(_SOURCE_FIELDS[method], []).append(method)
    for field_name, owners in readers.items():
        if len(owners) > 1:
            names = ", ".join(m.name for m in owners)
            raise AmbiguousAuthenticationConfigurationError(
                f"Authentication methods {names} both read '{field_name}'; configure only one of them"
            )
    return methods


# --------------------------------------------------------------------- #
# Resolution
# --------------------------------------------------------------------- #

@dataclass(slots=True)
class CredentialResolver:
    """
    Turns the credentials of an inbound request into a bearer token.

    Methods are tried in policy order; the first one whose credential
    material is present wins and the rest are not attempted:

      - OAUTH2:             bearer token passed through unchanged
      - CLIENT_CREDENTIALS: basic header as client id/secret, exchanged
                            with the client_credentials grant
      - BASIC:              basic header as user credentials, exchanged with
                            the password grant when the service has its own
                            client credentials, otherwise like
                            CLIENT_CREDENTIALS

    An optional tenant subdomain header selects the token endpoint host and
    is part of the cache fingerprint.
    """

    exchanger: TokenExchanger
    cache: TokenResponseCache
    token_url: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    subdomain_header: str = c.SUBDOMAIN_HEADER
    policy: Tuple[AuthenticationMethod, ...] = (AuthenticationMethod.OAUTH2,)

    def resolve(
        self,
        request: InboundRequest,
        policy: Optional[Sequence[AuthenticationMethod]] = None,
    ) -> BearerToken:
        """
        Raises:
            AmbiguousAuthenticationConfigurationError
            ResolutionError
            ExchangeError
        """
        methods = check_policy(self.policy if policy is None else policy)
        subdomain = (request.get(self.subdomain_header) or "").strip() or None
        if subdomain is not None and not is_valid_subdomain(subdomain):
            logger.warning("invalid_subdomain_header", header=self.subdomain_header)
            raise ResolutionError(f"Header {self.subdomain_header} is not a single DNS label")

        for method in methods:
            material = EXTRACTORS[method](request)
            if material is None:
                continue
            logger.debug("credentials_found", method=method.name, subdomain=subdomain)
            return self._resolve_with(method, material, subdomain)

        raise ResolutionError(
            "No credentials found for authentication methods "
            f"{[m.name for m in methods]}"
        )

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _resolve_with(
        self,
        method: AuthenticationMethod,
        material: CredentialMaterial,
        subdomain: Optional[str],
    ) -> BearerToken:
        if isinstance(material, BearerCredentials):
            return BearerToken(value=material.token, method=method)

        if isinstance(material, UsernamePassword):
            if self.client_id and self.client_secret:
                grant = GrantType.PASSWORD
                params = {
                    c.CLIENT_ID: self.client_id,
                    c.CLIENT_SECRET: self.client_secret,
                    c.USERNAME: material.username,
                    c.PASSWORD: material.password,
                    c.RESPONSE_TYPE: "token",
                }
            else:
                grant = GrantType.CLIENT_CREDENTIALS
                params = {
                    c.CLIENT_ID: material.username,
                    c.CLIENT_SECRET: material.password,
                }
        else:
            grant = GrantType.CLIENT_CREDENTIALS
            params = {
                c.CLIENT_ID: material.client_id,
                c.CLIENT_SECRET: material.client_secret,
            }

        return self._exchange(method, grant, params, subdomain)

    def _exchange(
        self,
        method: AuthenticationMethod,
        grant: GrantType,
        params: Dict[str, str],
        subdomain: Optional[str],
    ) -> BearerToken:
        if not self.token_url:
            raise ConfigurationError(f"{method.name} resolution needs a token URL")

        endpoint = replace_subdomain(self.token_url, subdomain)
        fingerprint = self.cache.fingerprint(grant, params, endpoint=endpoint, subdomain=subdomain)
        response = self.cache.get_or_exchange(
            fingerprint,
            lambda: self.exchanger.exchange(grant, params, endpoint),
        )
        return BearerToken(
            value=response.access_token,
            method=method,
            token_type=response.token_type or "Bearer",
        )
