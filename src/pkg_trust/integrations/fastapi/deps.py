from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, Request, status

from .security import extract_bearer_token, inbound_request_from
from ..common.engine_factory import TrustEngine
from ...core.logging import get_logger
from ...domain.entities import BearerToken, ValidatedToken
from ...domain.exceptions import (
    AmbiguousAuthenticationConfigurationError,
    AuthorizationError,
    ConfigurationError,
    ExchangeError,
    ResolutionError,
    TokenExpiredError,
    ValidationError,
)
from ...domain.value_objects import require_scopes as scope_requirement

logger = get_logger(__name__)


@dataclass(slots=True)
class FastAPITrust:
    """
    FastAPI integration for pkg_trust, built on the TrustEngine facade.
    """

    engine: TrustEngine

    # ------------------------------------------------------------------ #
    # Base dependencies
    # ------------------------------------------------------------------ #

    def get_validated_token(self, request: Request) -> ValidatedToken:
        """Dependency: require a valid bearer token."""
        token = extract_bearer_token(request)
        try:
            return self.engine.decode(token)
        except TokenExpiredError as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expired",
                headers={"WWW-Authenticate": "Bearer"},
            ) from exc
        except ValidationError as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=exc.kind.value,
                headers={"WWW-Authenticate": "Bearer"},
            ) from exc

    def get_bearer_token(self, request: Request) -> BearerToken:
        """Dependency: resolve the request's credentials into a bearer token."""
        try:
            return self.engine.resolve(inbound_request_from(request))
        except ResolutionError as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=str(exc),
            ) from exc
        except (AmbiguousAuthenticationConfigurationError, ConfigurationError) as exc:
            logger.error("credential_resolution_misconfigured", error=str(exc))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Authentication is misconfigured",
            ) from exc
        except ExchangeError as exc:
            # 4xx from the token endpoint means the caller's credentials were refused
            if exc.status_code is not None and 400 <= exc.status_code < 500:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Credentials rejected by the authorization server",
                ) from exc
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Authorization server unavailable",
            ) from exc

    # ------------------------------------------------------------------ #
    # Authorization dependency factories
    # ------------------------------------------------------------------ #

    def require_scopes(self, *scopes: str, any_of: bool = True) -> Callable:
        """
        Dependency factory: require the given scopes (any by default).
        """

        def dependency(
                token: ValidatedToken = Depends(self.get_validated_token),
        ) -> ValidatedToken:
            requirement = scope_requirement(*scopes, any_of=any_of)
            try:
                return self.engine.authorize(token, [requirement])
            except AuthorizationError as exc:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                                    detail=str(exc)) from exc

        return dependency
