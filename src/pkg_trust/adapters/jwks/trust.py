from __future__ import annotations

import re
from typing import Optional
from urllib.parse import SplitResult, urlsplit

from ...config.settings import TrustConfiguration
from ...core.logging import get_logger
from ...domain.exceptions import (
    InsecureSchemeError,
    InvalidKeyEndpointError,
    TrustViolationError,
    UntrustedDomainError,
)
from ...domain.value_objects import TrustedKeySetRef

logger = get_logger(__name__)

SECURE_SCHEME = "https"
_HOST_PATTERN = re.compile(r"^[a-z0-9.-]+$")


def is_within_domain(host: str, domain: str) -> bool:
    """Equal to `domain`, or a subdomain of it on a dot boundary."""
    host = host.lower()
    domain = domain.lower()
    return host == domain or host.endswith("." + domain)


class KeyTrustResolver:
    """
    Decides whether a key-set locator taken from a token header may be
    dereferenced.

    Fail-closed: the first failing check rejects. No network access happens
    here; only the returned TrustedKeySetRef may be handed to a fetcher.
    """

    def resolve(self, locator: Optional[str], config: TrustConfiguration) -> TrustedKeySetRef:
        """
        Raises:
            InsecureSchemeError
            UntrustedDomainError
            InvalidKeyEndpointError
        """
        try:
            return self._check(locator or "", config)
        except TrustViolationError as exc:
            logger.warning(
                "untrusted_key_set_locator",
                locator=exc.locator,
                kind=exc.kind.value,
                reason=str(exc),
            )
            raise

    def _check(self, locator: str, config: TrustConfiguration) -> TrustedKeySetRef:
        parts = self._split(locator)

        # 1) transport
        if parts.scheme.lower() != SECURE_SCHEME:
            raise InsecureSchemeError(
                f"Key set locator must use {SECURE_SCHEME}: {locator!r}", locator
            )

        # 2) user-info spoofing (trusted-host@attacker-host)
        if "@" in parts.netloc:
            raise UntrustedDomainError(
                f"Key set locator must not carry user info: {locator!r}", locator
            )

        # 3) host within the trusted domain
        domain = config.normalized_domain
        if domain is None:
            raise UntrustedDomainError("No trusted domain configured", locator)

        host = (parts.hostname or "").lower()
        if not host or not _HOST_PATTERN.match(host) or not is_within_domain(host, domain):
            raise UntrustedDomainError(
                f"Do not trust key set locator {locator!r}: host is not within {domain!r}",
                locator,
            )
        try:
            port = parts.port
        except ValueError as exc:
            raise InvalidKeyEndpointError(f"Invalid port in key set locator {locator!r}", locator) from exc
        if port not in (None, 443):
            raise UntrustedDomainError(
                f"Do not trust key set locator {locator!r}: unexpected port {port}", locator
            )

        # 4) exact key endpoint path
        if parts.path != config.key_set_path:
            raise InvalidKeyEndpointError(
                f"Key set locator {locator!r} does not point to {config.key_set_path!r}",
                locator,
            )

        # 5) no query, no fragment (also rejects a bare '?' or '#')
        if parts.query or parts.fragment or "?" in locator or "#" in locator:
            raise InvalidKeyEndpointError(
                f"Key set locator {locator!r} must not carry a query or fragment",
                locator,
            )

        return TrustedKeySetRef(
            url=f"{SECURE_SCHEME}://{host}{parts.path}",
            host=host,
            locator=locator,
        )

    @staticmethod
    def _split(locator: str) -> SplitResult:
        if not locator or locator != locator.strip() or any(ord(c) < 0x21 for c in locator):
            raise InvalidKeyEndpointError(f"Key set locator is not a valid URL: {locator!r}", locator)
        try:
            return urlsplit(locator)
        except ValueError as exc:
            raise InvalidKeyEndpointError(
                f"Key set locator is not a valid URL: {locator!r}", locator
            ) from exc
