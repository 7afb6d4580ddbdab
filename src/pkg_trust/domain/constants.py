from __future__ import annotations

from enum import Enum
from typing import Optional


class GrantType(Enum):
    CLIENT_CREDENTIALS = "client_credentials"
    REFRESH_TOKEN = "refresh_token"
    PASSWORD = "password"
    JWT_BEARER = "urn:ietf:params:oauth:grant-type:jwt-bearer"
    SAML2_BEARER = "urn:ietf:params:oauth:grant-type:saml2-bearer"
    AUTHORIZATION_CODE = "authorization_code"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_value(cls, value: str) -> Optional["GrantType"]:
        for grant_type in cls:
            if grant_type.value == value:
                return grant_type
        return None


class AuthenticationMethod(Enum):
    BASIC = "basic"
    OAUTH2 = "oauth2"
    CLIENT_CREDENTIALS = "client_credentials"


class KeyProvenance(Enum):
    """Where the key that verified a token came from."""
    FALLBACK = "fallback"
    FETCHED = "fetched"


class ValidationState(Enum):
    RECEIVED = "received"
    HEADER_PARSED = "header_parsed"
    KEY_RESOLVED = "key_resolved"
    SIGNATURE_VERIFIED = "signature_verified"
    CLAIMS_VALIDATED = "claims_validated"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ErrorKind(Enum):
    MALFORMED_TOKEN = "MalformedToken"
    INSECURE_SCHEME = "InsecureScheme"
    UNTRUSTED_DOMAIN = "UntrustedDomain"
    INVALID_KEY_ENDPOINT = "InvalidKeyEndpoint"
    NO_TRUSTED_KEY_SOURCE = "NoTrustedKeySource"
    SIGNATURE_INVALID = "SignatureInvalid"
    TOKEN_EXPIRED = "TokenExpired"
    CLIENT_MISMATCH = "ClientMismatch"
    KEY_FETCH_FAILED = "KeyFetchFailed"
    EXCHANGE_ERROR = "ExchangeError"
    AMBIGUOUS_AUTHENTICATION_CONFIGURATION = "AmbiguousAuthenticationConfiguration"
    RESOLUTION_ERROR = "ResolutionError"
    AUTHORIZATION_ERROR = "AuthorizationError"
    CONFIGURATION_ERROR = "ConfigurationError"


# Token endpoint form fields
GRANT_TYPE = "grant_type"
CLIENT_ID = "client_id"
CLIENT_SECRET = "client_secret"
USERNAME = "username"
PASSWORD = "password"
ASSERTION = "assertion"
REFRESH_TOKEN = "refresh_token"
SCOPE = "scope"
RESPONSE_TYPE = "response_type"

# Token endpoint response fields
ACCESS_TOKEN = "access_token"
TOKEN_TYPE = "token_type"
EXPIRES_IN = "expires_in"

CORRELATION_HEADER = "X-CorrelationID"
SUBDOMAIN_HEADER = "X-Identity-Zone-Subdomain"
DEFAULT_KEY_SET_PATH = "/token_keys"
