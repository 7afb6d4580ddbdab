from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import requests
from requests import Session

from ...core.logging import get_logger
from ...domain.exceptions import KeyFetchFailedError
from ...domain.ports import KeySetFetcher
from ...domain.value_objects import TrustedKeySetRef

logger = get_logger(__name__)


class HttpKeySetFetcher(KeySetFetcher):
    """
    Adapter implementing KeySetFetcher with a requests Session.

    Only the normalized URL of a trusted ref is requested; redirects are not
    followed so a trusted host cannot bounce the request elsewhere.
    """

    def __init__(
        self,
        timeout_seconds: float = 5.0,
        session: Optional[Session] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._session = session or Session()
        self._headers: Dict[str, str] = {"Accept": "application/json"}
        if user_agent:
            self._headers["User-Agent"] = user_agent

    def close(self) -> None:
        self._session.close()

    def fetch(self, ref: TrustedKeySetRef) -> Mapping[str, Any]:
        logger.debug("key_set_fetch", url=ref.url)
        try:
            response = self._session.get(
                ref.url,
                headers=self._headers,
                timeout=self._timeout,
                allow_redirects=False,
            )
            response.raise_for_status()
            body = response.json()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            logger.warning("key_set_fetch_failed", url=ref.url, status_code=status)
            raise KeyFetchFailedError(
                f"Key set fetch from {ref.url} failed with status {status}"
            ) from exc
        except (requests.RequestException, ValueError) as exc:
            logger.warning("key_set_fetch_failed", url=ref.url, error=str(exc))
            raise KeyFetchFailedError(f"Key set fetch from {ref.url} failed: {exc}") from exc

        if response.status_code != 200 or not isinstance(body, dict):
            raise KeyFetchFailedError(f"Key set fetch from {ref.url} returned no key set document")
        return body
