from __future__ import annotations

from typing import Optional

from .constants import ErrorKind


class TrustEngineError(Exception):
    """Base exception for pkg_trust."""
    kind: ErrorKind = ErrorKind.RESOLUTION_ERROR


class ConfigurationError(TrustEngineError):
    """Raised when settings are missing or inconsistent."""
    kind = ErrorKind.CONFIGURATION_ERROR


# --- Token validation ------------------------------------------------------


class ValidationError(TrustEngineError):
    """Raised when a token cannot be accepted."""
    kind = ErrorKind.MALFORMED_TOKEN


class MalformedTokenError(ValidationError):
    """Raised when the compact structure or the header is not decodable."""
    kind = ErrorKind.MALFORMED_TOKEN


class NoTrustedKeySourceError(ValidationError):
    """Raised when neither a fallback key nor a trusted key set is available."""
    kind = ErrorKind.NO_TRUSTED_KEY_SOURCE


class SignatureInvalidError(ValidationError):
    kind = ErrorKind.SIGNATURE_INVALID


class TokenExpiredError(ValidationError):
    """Raised when token has expired."""
    kind = ErrorKind.TOKEN_EXPIRED


class ClientMismatchError(ValidationError):
    kind = ErrorKind.CLIENT_MISMATCH


class KeyFetchFailedError(ValidationError):
    """Raised when a trusted key set could not be retrieved or parsed."""
    kind = ErrorKind.KEY_FETCH_FAILED


# --- Key-set locator trust -------------------------------------------------


class TrustViolationError(ValidationError):
    """Raised when a key-set locator fails the trust check."""
    kind = ErrorKind.UNTRUSTED_DOMAIN

    def __init__(self, message: str, locator: str) -> None:
        super().__init__(message)
        self.locator = locator


class InsecureSchemeError(TrustViolationError):
    kind = ErrorKind.INSECURE_SCHEME


class UntrustedDomainError(TrustViolationError):
    kind = ErrorKind.UNTRUSTED_DOMAIN


class InvalidKeyEndpointError(TrustViolationError):
    kind = ErrorKind.INVALID_KEY_ENDPOINT


# --- Token exchange and credential resolution ------------------------------


class ExchangeError(TrustEngineError):
    """
    Raised when the token endpoint call fails.

    Carries the endpoint, the HTTP status (None for transport failures) and
    the response body. Request parameters are never part of this error.
    """
    kind = ErrorKind.EXCHANGE_ERROR

    def __init__(
        self,
        message: str,
        *,
        endpoint: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(self._compose(message))

    def _compose(self, message: str) -> str:
        parts = [message, f"endpoint={self.endpoint}"]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.response_body:
            parts.append(f"body={self.response_body}")
        return ", ".join(parts)


class AmbiguousAuthenticationConfigurationError(TrustEngineError):
    """Raised when two policy methods would read the same credential field."""
    kind = ErrorKind.AMBIGUOUS_AUTHENTICATION_CONFIGURATION


class ResolutionError(TrustEngineError):
    """Raised when no credential material matched any policy method."""
    kind = ErrorKind.RESOLUTION_ERROR


class AuthorizationError(TrustEngineError):
    """Raised when a token lacks required scopes."""
    kind = ErrorKind.AUTHORIZATION_ERROR
