# tests/conftest.py
import json
import threading
import time

import jwt
from jwt.algorithms import RSAAlgorithm
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from pkg_trust.domain.exceptions import KeyFetchFailedError

DOMAIN = "auth.example.com"
JKU = f"https://tenant.{DOMAIN}/token_keys"
CLIENT_ID = "sb-app"


def public_pem(private_key) -> str:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def jwk_of(private_key, kid: str) -> dict:
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk.update({"kid": kid, "use": "sig", "alg": "RS256"})
    return jwk


class FakeFetcher:
    """Counts fetches; serves a fixed document or raises."""

    def __init__(self, document=None, error: Exception | None = None, delay: float = 0.0):
        self.document = document
        self.error = error
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def fetch(self, ref):
        with self._lock:
            self.calls.append(ref.url)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.document

    @property
    def count(self) -> int:
        return len(self.calls)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def key_set(signing_key):
    return {"keys": [jwk_of(signing_key, "key-1")]}


@pytest.fixture
def make_token(signing_key):
    def _make(key=None, *, kid="key-1", jku=JKU, alg="RS256", **claims):
        payload = {
            "iss": f"https://tenant.{DOMAIN}/oauth/token",
            "sub": "user-1",
            "aud": [CLIENT_ID],
            "client_id": CLIENT_ID,
            "iat": int(time.time()),
            "exp": int(time.time()) + 300,
            "scope": [f"{CLIENT_ID}.Read", "openid"],
        }
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        headers = {k: v for k, v in {"kid": kid, "jku": jku}.items() if v is not None}
        return jwt.encode(payload, key or signing_key, algorithm=alg, headers=headers)

    return _make


@pytest.fixture
def fetch_error():
    return KeyFetchFailedError("key set endpoint unreachable")
