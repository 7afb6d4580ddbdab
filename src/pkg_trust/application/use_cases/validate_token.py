from __future__ import annotations

import textwrap
import time
from types import MappingProxyType
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional, Tuple

import jwt
from cryptography.hazmat.primitives.serialization import load_pem_public_key
from jwt.exceptions import PyJWTError
from jwt.utils import base64url_decode

from ...adapters.jwks.cache import KeySetCache
from ...adapters.jwks.trust import KeyTrustResolver
from ...config.settings import TrustConfiguration
from ...core.logging import get_logger
from ...domain.constants import KeyProvenance, ValidationState
from ...domain.entities import (
    Token,
    TokenClaims,
    TokenHeader,
    ValidatedToken,
    ValidationResult,
)
from ...domain.exceptions import (
    ClientMismatchError,
    KeyFetchFailedError,
    MalformedTokenError,
    NoTrustedKeySourceError,
    SignatureInvalidError,
    TokenExpiredError,
    ValidationError,
)
from ...domain.ports import KeySetFetcher
from ...domain.value_objects import split_scopes

logger = get_logger(__name__)

_PEM_BEGIN = "-----BEGIN PUBLIC KEY-----"
_PEM_END = "-----END PUBLIC KEY-----"
_STANDARD_CLAIMS = {"iss", "sub", "aud", "iat", "exp", "client_id", "cid", "scope"}

_Candidate = Tuple[Any, KeyProvenance]


def normalize_pem(key: str) -> str:
    """
    Re-wrap a PEM public key that was configured without line breaks.
    Anything not starting with the PEM header is returned unchanged.
    """
    text = key.strip()
    if not (text.startswith(_PEM_BEGIN) and text.endswith(_PEM_END)):
        return text
    body = "".join(text[len(_PEM_BEGIN):-len(_PEM_END)].split())
    return "\n".join([_PEM_BEGIN, *textwrap.wrap(body, 64), _PEM_END]) + "\n"


def _numeric(claims: Mapping[str, Any], name: str) -> Optional[float]:
    value = claims.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedTokenError(f"Claim {name!r} must be numeric")
    return value


def _optional_str(mapping: Mapping[str, Any], name: str) -> Optional[str]:
    value = mapping.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedTokenError(f"{name!r} must be a string")
    return value


def parse_token(raw: str) -> Token:
    """
    Compact serialization -> Token, without verifying anything.

    Raises:
        MalformedTokenError
    """
    if not isinstance(raw, str) or raw.count(".") != 2:
        raise MalformedTokenError("Token is not a compact JWS (header.payload.signature)")
    try:
        header = jwt.get_unverified_header(raw)
        claims = jwt.decode(raw, options={"verify_signature": False})
        signature = base64url_decode(raw.rsplit(".", 1)[1].encode("ascii"))
    except (PyJWTError, ValueError, UnicodeError) as exc:
        raise MalformedTokenError(f"Invalid token: {exc}") from exc

    aud_claim = claims.get("aud")
    if isinstance(aud_claim, str):
        audiences: Tuple[str, ...] = (aud_claim,)
    else:
        audiences = tuple(str(a) for a in (aud_claim or []))

    return Token(
        raw=raw,
        header=TokenHeader(
            algorithm=_optional_str(header, "alg"),
            key_id=_optional_str(header, "kid"),
            key_set_locator=_optional_str(header, "jku"),
            type=_optional_str(header, "typ"),
        ),
        claims=TokenClaims(
            issuer=_optional_str(claims, "iss"),
            subject=_optional_str(claims, "sub"),
            audiences=audiences,
            issued_at=_numeric(claims, "iat"),
            expires_at=_numeric(claims, "exp"),
            client_id=claims.get("client_id") or claims.get("cid"),
            scopes=split_scopes(claims.get("scope")),
            attributes=MappingProxyType({k: v for k, v in claims.items() if k not in _STANDARD_CLAIMS}),
        ),
        signature=signature,
    )


@dataclass(slots=True)
class TokenValidator:
    """
    Token validation state machine:

        RECEIVED -> HEADER_PARSED -> KEY_RESOLVED -> SIGNATURE_VERIFIED
                 -> CLAIMS_VALIDATED -> ACCEPTED

    Any state may end in REJECTED. A token is only ever verified with the
    configured fallback key or with a key from a key set whose locator
    passed KeyTrustResolver.
    """

    config: TrustConfiguration
    key_cache: KeySetCache
    fetcher: KeySetFetcher
    trust_resolver: KeyTrustResolver = field(default_factory=KeyTrustResolver)
    clock: Callable[[], float] = time.time

    _fallback_key: Any = field(init=False, default=None, repr=False)
    _fallback_error: Optional[str] = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        if self.config.verification_key:
            pem = normalize_pem(self.config.verification_key)
            try:
                self._fallback_key = load_pem_public_key(pem.encode("utf-8"))
            except (ValueError, TypeError) as exc:
                # surfaced as SignatureInvalid whenever the fallback is needed
                self._fallback_error = f"fallback key cannot be loaded: {exc}"

    @property
    def has_fallback_key(self) -> bool:
        return bool(self.config.verification_key)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def decode(self, raw_token: str) -> ValidatedToken:
        """
        Validate a token and return it with its key provenance.

        Raises:
            ValidationError (one of its subclasses)
        """
        return self.validate(raw_token).unwrap()

    def validate(self, raw_token: str) -> ValidationResult:
        """Run the state machine; failures are returned, not raised."""
        state = ValidationState.RECEIVED
        try:
            token = parse_token(raw_token)
            self._check_algorithm(token)
            state = ValidationState.HEADER_PARSED

            candidates, key_set_url = self._resolve_keys(token)
            state = ValidationState.KEY_RESOLVED

            provenance = self._verify_signature(token, candidates, key_set_url)
            state = ValidationState.SIGNATURE_VERIFIED

            self._validate_claims(token)
            state = ValidationState.CLAIMS_VALIDATED
        except ValidationError as exc:
            logger.info("token_rejected", state=state.value, kind=exc.kind.value, reason=str(exc))
            return ValidationResult(
                state=ValidationState.REJECTED,
                last_state=state,
                error=exc,
            )

        validated = ValidatedToken(
            token=token,
            provenance=provenance,
            key_set_url=key_set_url if provenance is KeyProvenance.FETCHED else None,
        )
        return ValidationResult(
            state=ValidationState.ACCEPTED,
            last_state=state,
            token=validated,
        )

    # ------------------------------------------------------------------ #
    # States
    # ------------------------------------------------------------------ #

    def _check_algorithm(self, token: Token) -> None:
        alg = token.header.algorithm
        if not alg or alg not in self.config.allowed_algorithms:
            raise MalformedTokenError(
                f"Token algorithm {alg!r} is not one of {list(self.config.allowed_algorithms)}"
            )

    def _resolve_keys(self, token: Token) -> Tuple[List[_Candidate], Optional[str]]:
        locator = token.header.key_set_locator
        domain = self.config.normalized_domain
        fallback: List[_Candidate] = (
            [(self._fallback_key, KeyProvenance.FALLBACK)] if self.has_fallback_key else []
        )

        if fallback and (not locator or not domain):
            return fallback, None

        if not (locator and domain):
            raise NoTrustedKeySourceError(
                "Cannot verify token: no fallback key and no trusted key set "
                f"(jku={locator!r}, kid={token.header.key_id!r}, trusted domain={domain!r})"
            )

        # trust violations are final, the fallback never rescues them
        ref = self.trust_resolver.resolve(locator, self.config)

        try:
            key_set = self.key_cache.get(ref, self.fetcher.fetch)
        except KeyFetchFailedError as exc:
            if not fallback:
                raise
            logger.warning("fallback_key_used", reason="key_set_fetch_failed", url=ref.url, error=str(exc))
            return fallback, ref.url

        key = key_set.get_key(token.header.key_id)
        if key is None:
            if not fallback:
                raise NoTrustedKeySourceError(
                    f"Key set {ref.url} has no key with kid {token.header.key_id!r}"
                )
            logger.warning("fallback_key_used", reason="kid_not_found", url=ref.url, kid=token.header.key_id)
            return fallback, ref.url

        return [(getattr(key, "key", key), KeyProvenance.FETCHED), *fallback], ref.url

    def _verify_signature(
        self,
        token: Token,
        candidates: List[_Candidate],
        key_set_url: Optional[str],
    ) -> KeyProvenance:
        alg = token.header.algorithm
        failures: List[str] = []

        for key, provenance in candidates:
            if provenance is KeyProvenance.FALLBACK and key is None:
                failures.append(f"using fallback key: {self._fallback_error}")
                continue
            try:
                jwt.decode(
                    token.raw,
                    key,
                    algorithms=[alg],
                    options={
                        "verify_signature": True,
                        "verify_exp": False,
                        "verify_nbf": False,
                        "verify_iat": False,
                        "verify_aud": False,
                        "verify_iss": False,
                        "verify_sub": False,
                        "verify_jti": False,
                    },
                )
                return provenance
            except (PyJWTError, ValueError, TypeError) as exc:
                source = "fallback key" if provenance is KeyProvenance.FALLBACK else f"fetched key from {key_set_url}"
                failures.append(f"using {source}: {exc}")
                if provenance is KeyProvenance.FETCHED and len(candidates) > 1:
                    logger.warning("fallback_key_used", reason="fetched_key_rejected", url=key_set_url)

        last = candidates[-1][1] if candidates else KeyProvenance.FETCHED
        if last is KeyProvenance.FALLBACK:
            message = "Token signature verification using fallback key failed"
        else:
            message = "Token signature verification using fetched key failed"
        raise SignatureInvalidError(f"{message} ({'; '.join(failures)})")

    def _validate_claims(self, token: Token) -> None:
        exp = token.claims.expires_at
        if exp is None:
            raise TokenExpiredError("Token carries no expiry")
        now = self.clock()
        if not now < exp:
            raise TokenExpiredError("Token has expired")

        expected = self.config.client_id
        if expected and token.claims.client_id != expected:
            raise ClientMismatchError(
                f"Token client id {token.claims.client_id!r} does not match {expected!r}"
            )
