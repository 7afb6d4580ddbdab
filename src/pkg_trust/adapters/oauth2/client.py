from __future__ import annotations

import re
import uuid
from typing import Any, Dict, Iterable, Mapping, Optional, Union
from urllib.parse import urlsplit, urlunsplit

import httpx
import structlog

from ... import __version__
from ...core.logging import MASK, get_logger, mask_secrets
from ...domain import constants as c
from ...domain.constants import GrantType
from ...domain.entities import TokenRequest, TokenResponse
from ...domain.exceptions import ExchangeError
from ...domain.ports import TokenExchanger

logger = get_logger(__name__)

DEFAULT_USER_AGENT = f"pkg-trust/{__version__}"

# a tenant subdomain is exactly one DNS label
SUBDOMAIN_PATTERN = re.compile(r"[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?", re.IGNORECASE)


def is_valid_subdomain(value: Optional[str]) -> bool:
    return bool(value) and SUBDOMAIN_PATTERN.fullmatch(value) is not None


def replace_subdomain(url: str, subdomain: Optional[str]) -> str:
    """
    Point a token URL at a tenant: the first host label is replaced by
    `subdomain` (or prepended when the host has fewer than three labels).

    Raises:
        ExchangeError: `subdomain` is not a single DNS label, or the rebuilt
            URL would leave the token URL's parent domain.
    """
    if not subdomain:
        return url
    if not is_valid_subdomain(subdomain):
        raise ExchangeError(f"Invalid tenant subdomain {subdomain!r}", endpoint=url)
    parts = urlsplit(url)
    host = parts.hostname or ""
    labels = host.split(".")
    parent = ".".join(labels[1:]) if len(labels) >= 3 else host
    netloc = f"{subdomain}.{parent}"
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    replaced = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    if not (urlsplit(replaced).hostname or "").endswith("." + parent):
        raise ExchangeError(f"Tenant subdomain {subdomain!r} leaves {parent}", endpoint=url)
    return replaced


def _parse_expires_in(value: Any, endpoint: str) -> int:
    if value is None:
        # no lifetime given: usable once, never cached
        return 0
    try:
        if isinstance(value, bool):
            raise ValueError(value)
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError(value)
            return int(value)
        return int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ExchangeError(
            f"Cannot convert expires_in from response ({value!r}) to an integer",
            endpoint=endpoint,
        ) from exc


def parse_token_response(body: Any, endpoint: str) -> TokenResponse:
    if not isinstance(body, Mapping):
        raise ExchangeError("Token response is not a JSON object", endpoint=endpoint)
    access_token = body.get(c.ACCESS_TOKEN)
    if not isinstance(access_token, str) or not access_token:
        raise ExchangeError("Token response carries no access_token", endpoint=endpoint)
    refresh = body.get(c.REFRESH_TOKEN)
    token_type = body.get(c.TOKEN_TYPE)
    return TokenResponse(
        access_token=access_token,
        token_type=str(token_type) if token_type is not None else None,
        expires_in=_parse_expires_in(body.get(c.EXPIRES_IN), endpoint),
        refresh_token=str(refresh) if refresh else None,
    )


def current_correlation_id(headers: Optional[Mapping[str, str]] = None) -> str:
    """Explicit header, then the structlog context, then a fresh UUID."""
    for key, value in (headers or {}).items():
        if key.lower() == c.CORRELATION_HEADER.lower() and value:
            return value
    bound = structlog.contextvars.get_contextvars().get("correlation_id")
    if bound:
        return str(bound)
    return str(uuid.uuid4())


def _masked_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {k: (MASK if k.lower() == "authorization" else v) for k, v in headers.items()}


class TokenExchangeClient(TokenExchanger):
    """
    Exchanges credentials for tokens at an OAuth2 token endpoint.

    - form-encoded POST, correlation id + user agent headers
    - 200 -> TokenResponse; anything else -> ExchangeError
    - secrets are masked before parameters are logged
    - no retries: a one-time assertion must not be replayed blindly
    """

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._user_agent = user_agent
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------ #
    # Port implementation
    # ------------------------------------------------------------------ #

    def build_request(
        self,
        grant_type: Union[GrantType, str],
        parameters: Mapping[str, str],
        endpoint: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> TokenRequest:
        form = {k: str(v) for k, v in parameters.items() if v is not None}
        form[c.GRANT_TYPE] = str(grant_type)

        request_headers = {
            k: v for k, v in (headers or {}).items()
            if k.lower() not in (c.CORRELATION_HEADER.lower(), "user-agent")
        }
        request_headers[c.CORRELATION_HEADER] = current_correlation_id(headers)
        request_headers["User-Agent"] = self._user_agent
        request_headers["Accept"] = "application/json"

        return TokenRequest(
            grant_type=str(grant_type),
            endpoint=endpoint,
            headers=request_headers,
            parameters=form,
        )

    def exchange(
        self,
        grant_type: Union[GrantType, str],
        parameters: Mapping[str, str],
        endpoint: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> TokenResponse:
        """
        Raises:
            ExchangeError
        """
        request = self.build_request(grant_type, parameters, endpoint, headers=headers)
        logger.debug(
            "token_request",
            endpoint=endpoint,
            grant_type=request.grant_type,
            headers=_masked_headers(request.headers),
            parameters=mask_secrets(request.parameters),
        )

        try:
            response = self._client.post(
                endpoint,
                data=dict(request.parameters),
                headers=dict(request.headers),
            )
        except httpx.HTTPError as exc:
            logger.warning("token_request_failed", endpoint=endpoint, error=type(exc).__name__)
            raise ExchangeError(
                f"Unexpected error retrieving token: {type(exc).__name__}",
                endpoint=endpoint,
            ) from exc

        logger.debug("token_response", endpoint=endpoint, status_code=response.status_code)
        if response.status_code != 200:
            logger.warning(
                "token_request_failed",
                endpoint=endpoint,
                status_code=response.status_code,
            )
            raise ExchangeError(
                "Error retrieving token",
                endpoint=endpoint,
                status_code=response.status_code,
                response_body=response.text,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ExchangeError(
                "Token response is not valid JSON",
                endpoint=endpoint,
                status_code=response.status_code,
            ) from exc
        return parse_token_response(body, endpoint)

    # ------------------------------------------------------------------ #
    # Grant helpers
    # ------------------------------------------------------------------ #

    def client_credentials_token(
        self,
        endpoint: str,
        client_id: str,
        client_secret: str,
        *,
        subdomain: Optional[str] = None,
        scopes: Optional[Iterable[str]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> TokenResponse:
        params = {c.CLIENT_ID: client_id, c.CLIENT_SECRET: client_secret}
        return self._grant(GrantType.CLIENT_CREDENTIALS, params, endpoint, subdomain, scopes, headers)

    def password_token(
        self,
        endpoint: str,
        client_id: str,
        client_secret: str,
        username: str,
        password: str,
        *,
        subdomain: Optional[str] = None,
        scopes: Optional[Iterable[str]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> TokenResponse:
        params = {
            c.CLIENT_ID: client_id,
            c.CLIENT_SECRET: client_secret,
            c.USERNAME: username,
            c.PASSWORD: password,
            c.RESPONSE_TYPE: "token",
        }
        return self._grant(GrantType.PASSWORD, params, endpoint, subdomain, scopes, headers)

    def jwt_bearer_token(
        self,
        endpoint: str,
        client_id: str,
        client_secret: str,
        assertion: str,
        *,
        subdomain: Optional[str] = None,
        scopes: Optional[Iterable[str]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> TokenResponse:
        params = {
            c.CLIENT_ID: client_id,
            c.CLIENT_SECRET: client_secret,
            c.ASSERTION: assertion,
            c.RESPONSE_TYPE: "token",
        }
        return self._grant(GrantType.JWT_BEARER, params, endpoint, subdomain, scopes, headers)

    def refresh_token(
        self,
        endpoint: str,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        *,
        subdomain: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> TokenResponse:
        params = {
            c.CLIENT_ID: client_id,
            c.CLIENT_SECRET: client_secret,
            c.REFRESH_TOKEN: refresh_token,
        }
        return self._grant(GrantType.REFRESH_TOKEN, params, endpoint, subdomain, None, headers)

    def _grant(
        self,
        grant_type: GrantType,
        params: Dict[str, str],
        endpoint: str,
        subdomain: Optional[str],
        scopes: Optional[Iterable[str]],
        headers: Optional[Mapping[str, str]],
    ) -> TokenResponse:
        scope_list = list(scopes or [])
        if scope_list:
            params[c.SCOPE] = " ".join(scope_list)
        return self.exchange(
            grant_type,
            params,
            replace_subdomain(endpoint, subdomain),
            headers=headers,
        )
