from __future__ import annotations

import hashlib
import hmac
import secrets
import threading
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple, Union

from ...config.settings import TokenCacheConfiguration
from ...core.logging import SECRET_KEY_MARKERS, get_logger
from ...core.single_flight import SingleFlight
from ...domain.constants import GrantType
from ...domain.entities import TokenResponse
from ...domain.exceptions import ExchangeError

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RequestFingerprint:
    """
    Cache key of a token request. Secret values only appear as keyed
    digests, so inspecting the cache never reveals them.
    """
    grant_type: str
    endpoint: str
    subdomain: Optional[str]
    parameters: Tuple[Tuple[str, str], ...]


@dataclass(frozen=True, slots=True)
class _CacheEntry:
    response: TokenResponse
    expires_at: float


def _is_secret(key: str) -> bool:
    return any(marker in key.lower() for marker in SECRET_KEY_MARKERS)


def compute_fingerprint(
    grant_type: Union[GrantType, str],
    parameters: Mapping[str, str],
    *,
    endpoint: str,
    subdomain: Optional[str] = None,
    salt: bytes = b"",
) -> RequestFingerprint:
    items = []
    for key in sorted(parameters):
        value = parameters[key]
        if value is None:
            continue
        value = str(value)
        if _is_secret(key):
            value = "hmac-sha256:" + hmac.new(salt, value.encode("utf-8"), hashlib.sha256).hexdigest()
        items.append((key, value))
    return RequestFingerprint(
        grant_type=str(grant_type),
        endpoint=endpoint,
        subdomain=subdomain or None,
        parameters=tuple(items),
    )


class TokenResponseCache:
    """
    Caches token responses by request fingerprint.

    Entry lifetime is the issuer's expires_in clamped to cache_duration.
    Lookups for the same fingerprint are single-flight; failed exchanges are
    never stored. A cache_duration of 0 turns storing off for the lifetime
    of the instance.
    """

    def __init__(
        self,
        config: Optional[TokenCacheConfiguration] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        wait_timeout: Optional[float] = None,
    ) -> None:
        self._config = config or TokenCacheConfiguration()
        self._clock = clock
        self._wait_timeout = wait_timeout
        self._salt = secrets.token_bytes(32)
        self._lock = threading.Lock()
        self._entries: Dict[RequestFingerprint, _CacheEntry] = {}
        self._flight: SingleFlight[TokenResponse] = SingleFlight()

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def fingerprint(
        self,
        grant_type: Union[GrantType, str],
        parameters: Mapping[str, str],
        *,
        endpoint: str,
        subdomain: Optional[str] = None,
    ) -> RequestFingerprint:
        return compute_fingerprint(
            grant_type,
            parameters,
            endpoint=endpoint,
            subdomain=subdomain,
            salt=self._salt,
        )

    def get(self, fingerprint: RequestFingerprint) -> Optional[TokenResponse]:
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                return None
            if self._expired(entry):
                del self._entries[fingerprint]
                return None
            return entry.response

    def get_or_exchange(
        self,
        fingerprint: RequestFingerprint,
        exchange_fn: Callable[[], TokenResponse],
    ) -> TokenResponse:
        cached = self.get(fingerprint)
        if cached is not None:
            logger.debug("token_cache_hit", grant_type=fingerprint.grant_type, subdomain=fingerprint.subdomain)
            return cached
        try:
            return self._flight.do(
                fingerprint,
                lambda: self._load(fingerprint, exchange_fn),
                self._wait_timeout,
            )
        except FutureTimeoutError as exc:
            raise ExchangeError(
                "Timed out waiting for an in-flight token request",
                endpoint=fingerprint.endpoint,
            ) from exc

    def sweep(self) -> int:
        with self._lock:
            return self._drop_expired()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _expired(self, entry: _CacheEntry) -> bool:
        return self._clock() >= entry.expires_at - self._config.expiration_delta

    def _drop_expired(self) -> int:
        expired = [fp for fp, entry in self._entries.items() if self._expired(entry)]
        for fp in expired:
            del self._entries[fp]
        return len(expired)

    def _load(
        self,
        fingerprint: RequestFingerprint,
        exchange_fn: Callable[[], TokenResponse],
    ) -> TokenResponse:
        cached = self.get(fingerprint)
        if cached is not None:
            return cached

        logger.debug("token_cache_miss", grant_type=fingerprint.grant_type, subdomain=fingerprint.subdomain)
        response = exchange_fn()
        self._store(fingerprint, response)
        return response

    def _store(self, fingerprint: RequestFingerprint, response: TokenResponse) -> None:
        if not self.enabled:
            return
        ttl = min(float(response.expires_in), self._config.cache_duration)
        if ttl <= 0:
            return

        entry = _CacheEntry(response=response, expires_at=self._clock() + ttl)
        with self._lock:
            self._entries.pop(fingerprint, None)
            if len(self._entries) >= self._config.cache_size:
                self._drop_expired()
            while len(self._entries) >= self._config.cache_size:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[fingerprint] = entry
