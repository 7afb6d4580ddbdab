from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """
    Collapse concurrent calls for the same key into one execution.

    The first caller for a key (the leader) runs the function; callers that
    arrive while it is in flight wait for the same Future and observe the
    same result or the same exception. Nothing is remembered once the call
    completes; caching is the owner's business.

    A waiter that gives up (timeout) only stops waiting: the leader's call
    keeps running and completes for the remaining waiters.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: Dict[Hashable, "Future[T]"] = {}

    def do(self, key: Hashable, fn: Callable[[], T], timeout: Optional[float] = None) -> T:
        with self._lock:
            future = self._calls.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._calls[key] = future

        if leader:
            self._run(key, fn, future)
        return future.result(timeout)

    def in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._calls

    def _run(self, key: Hashable, fn: Callable[[], T], future: "Future[T]") -> None:
        try:
            result = fn()
        except BaseException as exc:  # handed to every waiter via the Future
            self._forget(key)
            future.set_exception(exc)
        else:
            self._forget(key)
            future.set_result(result)

    def _forget(self, key: Hashable) -> None:
        # late arrivals must start a new call, never join a finished one
        with self._lock:
            self._calls.pop(key, None)
