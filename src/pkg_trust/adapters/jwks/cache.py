from __future__ import annotations

import threading
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from jwt import PyJWKSet
from jwt.exceptions import PyJWTError

from ...core.logging import get_logger
from ...core.single_flight import SingleFlight
from ...domain.entities import CachedKeySet
from ...domain.exceptions import KeyFetchFailedError
from ...domain.value_objects import TrustedKeySetRef

logger = get_logger(__name__)

Fetcher = Callable[[TrustedKeySetRef], Mapping[str, Any]]


def parse_key_set(document: Mapping[str, Any]) -> Dict[str, Any]:
    """
    JWKS document -> {kid: PyJWK}. Keys PyJWT cannot use are skipped;
    a document without any usable key is a fetch failure.
    """
    try:
        key_set = PyJWKSet.from_dict(dict(document))
    except (PyJWTError, TypeError, KeyError, ValueError) as exc:
        raise KeyFetchFailedError(f"Key set document is not usable: {exc}") from exc
    return {key.key_id or "": key for key in key_set.keys}


class KeySetCache:
    """
    Time-boxed, single-flight cache of key sets, keyed by normalized URL.

    - one entry per normalized locator, replaced wholesale on refresh
    - at most one fetch per locator in flight; concurrent callers share it
    - fetch failures reach every waiter and are never cached
    - ttl_seconds == 0 disables caching (every call refetches)
    """

    def __init__(
        self,
        ttl_seconds: float = 600.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        wait_timeout: Optional[float] = None,
    ) -> None:
        self._ttl = max(0.0, float(ttl_seconds))
        self._clock = clock
        self._wait_timeout = wait_timeout
        self._lock = threading.Lock()
        self._entries: Dict[str, CachedKeySet] = {}
        self._flight: SingleFlight[CachedKeySet] = SingleFlight()

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, ref: TrustedKeySetRef, fetcher: Fetcher) -> CachedKeySet:
        cached = self._fresh(ref.url)
        if cached is not None:
            logger.debug("key_set_cache_hit", url=ref.url)
            return cached
        try:
            return self._flight.do(ref.url, lambda: self._load(ref, fetcher), self._wait_timeout)
        except FutureTimeoutError as exc:
            raise KeyFetchFailedError(f"Timed out waiting for key set {ref.url}") from exc

    def invalidate(self, ref: TrustedKeySetRef) -> None:
        with self._lock:
            self._entries.pop(ref.url, None)

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [url for url, entry in self._entries.items() if entry.is_expired(now)]
            for url in expired:
                del self._entries[url]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _fresh(self, url: str) -> Optional[CachedKeySet]:
        with self._lock:
            entry = self._entries.get(url)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[url]
                return None
            return entry

    def _load(self, ref: TrustedKeySetRef, fetcher: Fetcher) -> CachedKeySet:
        # a flight that finished just before ours may already have filled it
        cached = self._fresh(ref.url)
        if cached is not None:
            return cached

        logger.debug("key_set_cache_miss", url=ref.url)
        try:
            document = fetcher(ref)
        except KeyFetchFailedError:
            raise
        except Exception as exc:
            raise KeyFetchFailedError(f"Key set fetch from {ref.url} failed: {exc}") from exc

        entry = CachedKeySet(
            locator=ref.url,
            keys=MappingProxyType(parse_key_set(document)),
            fetched_at=self._clock(),
            ttl=self._ttl,
        )
        if self._ttl > 0:
            with self._lock:
                self._entries[ref.url] = entry
        return entry
