from __future__ import annotations

from typing import Any, Collection, Mapping, Optional, Protocol, Set

from .entities import TokenResponse
from .value_objects import TrustedKeySetRef


class KeySetFetcher(Protocol):
    """
    Port for retrieving a JSON Web Key Set document.

    Implementations only ever receive locators that passed the trust check.
    """

    def fetch(self, ref: TrustedKeySetRef) -> Mapping[str, Any]:
        """
        Return the decoded JWKS document (``{"keys": [...]}``).

        Raises:
          - KeyFetchFailedError on transport or HTTP failures
        """
        ...


class TokenExchanger(Protocol):
    """
    Port for exchanging credentials at a token endpoint.
    """

    def exchange(
        self,
        grant_type: str,
        parameters: Mapping[str, str],
        endpoint: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> TokenResponse:
        ...


class ScopeConverter(Protocol):
    def convert(self, scopes: Collection[str]) -> Set[str]:
        ...
