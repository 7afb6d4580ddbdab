from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Iterable, Optional, Set

from ...domain.entities import ValidatedToken
from ...domain.exceptions import AuthorizationError
from ...domain.ports import ScopeConverter
from ...domain.value_objects import AccessRequirement


@dataclass(frozen=True, slots=True)
class LocalScopeConverter(ScopeConverter):
    """
    Keeps only scopes granted for `app_id` and strips the prefix:
    ``"my-app!t1.Read"`` -> ``"Read"``.
    """
    app_id: str

    def convert(self, scopes: Collection[str]) -> Set[str]:
        prefix = f"{self.app_id}."
        return {s[len(prefix):] for s in scopes if s.startswith(prefix) and len(s) > len(prefix)}


@dataclass(slots=True)
class AuthorizeScopesUseCase:
    """
    Application use case for authorization using declarative AccessRequirement
    objects against the scopes of an already validated token.

    Raises AuthorizationError if any requirement is not satisfied.
    """

    scope_converter: Optional[ScopeConverter] = None

    def scopes_of(self, token: ValidatedToken) -> Set[str]:
        scopes = token.claims.scopes
        if self.scope_converter is not None:
            return set(self.scope_converter.convert(scopes))
        return set(scopes)

    def _check_requirement(self, scopes: Set[str], requirement: AccessRequirement) -> None:
        any_of = list(requirement.any_of)
        all_of = list(requirement.all_of)

        if any_of and not any(s in scopes for s in any_of):
            raise AuthorizationError(
                f"Missing at least one required scope from: {any_of}"
            )

        missing = [s for s in all_of if s not in scopes]
        if missing:
            raise AuthorizationError(f"Missing required scope(s): {missing}")

    def execute(
            self,
            token: ValidatedToken,
            requirements: Iterable[AccessRequirement],
    ) -> ValidatedToken:
        """
        Raises:
            AuthorizationError if any of the requirements are not satisfied.

        Returns:
            The same token if authorization succeeds (for chaining).
        """
        scopes = self.scopes_of(token)

        for requirement in requirements:
            self._check_requirement(scopes, requirement)

        return token
