# tests/test_exchange_client.py
from urllib.parse import parse_qs

import httpx
import pytest
import respx
import structlog
from structlog.testing import capture_logs

from pkg_trust.adapters.oauth2.client import (
    TokenExchangeClient,
    current_correlation_id,
    parse_token_response,
    replace_subdomain,
)
from pkg_trust.core.logging import MASK, mask_secrets
from pkg_trust.domain.constants import GrantType
from pkg_trust.domain.exceptions import ExchangeError

TOKEN_URL = "https://tenant.auth.example.com/oauth/token"
TOKEN_BODY = {"access_token": "at-123", "token_type": "bearer", "expires_in": 3600}


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


@pytest.mark.parametrize(
    "url, subdomain, expected",
    [
        ("https://tenant.auth.example.com/oauth/token", "other", "https://other.auth.example.com/oauth/token"),
        ("https://auth.example.com/oauth/token", "other", "https://other.example.com/oauth/token"),
        ("https://localhost/oauth/token", "other", "https://other.localhost/oauth/token"),
        ("https://tenant.auth.example.com:8443/oauth/token", "other", "https://other.auth.example.com:8443/oauth/token"),
        ("https://tenant.auth.example.com/oauth/token", None, "https://tenant.auth.example.com/oauth/token"),
    ],
)
def test_replace_subdomain(url, subdomain, expected):
    assert replace_subdomain(url, subdomain) == expected


@pytest.mark.parametrize(
    "subdomain",
    ["evil.test#", "evil.test/x?", "a@evil.test", "evil:8080", "evil.test", "x/y", "-bad", "bad-", "t1\n"],
)
def test_replace_subdomain_rejects_non_label(subdomain):
    with pytest.raises(ExchangeError, match="subdomain"):
        replace_subdomain(TOKEN_URL, subdomain)


@respx.mock
def test_invalid_subdomain_sends_nothing():
    client = TokenExchangeClient()

    with pytest.raises(ExchangeError):
        client.password_token(TOKEN_URL, "cid", "csecret", "alice", "pw", subdomain="evil.test#")

    assert not respx.calls


def test_parse_token_response():
    response = parse_token_response({"access_token": "a", "expires_in": "120", "refresh_token": "r"}, TOKEN_URL)
    assert response.expires_in == 120
    assert response.refresh_token == "r"

    with pytest.raises(ExchangeError, match="expires_in"):
        parse_token_response({"access_token": "a", "expires_in": "soon"}, TOKEN_URL)
    with pytest.raises(ExchangeError, match="access_token"):
        parse_token_response({"expires_in": 1}, TOKEN_URL)


def test_mask_secrets():
    masked = mask_secrets({"client_id": "c", "client_secret": "s", "password": "p", "assertion": "a", "username": "u"})
    assert masked == {"client_id": "c", "client_secret": MASK, "password": MASK, "assertion": MASK, "username": "u"}


def test_correlation_id_sources():
    assert current_correlation_id({"x-correlationid": "from-header"}) == "from-header"
    with structlog.contextvars.bound_contextvars(correlation_id="from-context"):
        assert current_correlation_id() == "from-context"
    generated = current_correlation_id()
    assert len(generated) == 36


@respx.mock
def test_client_credentials_request():
    route = respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, json=TOKEN_BODY))
    client = TokenExchangeClient(user_agent="pkg-trust/test")

    response = client.client_credentials_token(TOKEN_URL, "cid", "csecret", scopes=["a", "b"])

    assert response.access_token == "at-123"
    assert response.expires_in == 3600
    request = route.calls.last.request
    assert _form(request) == {
        "grant_type": "client_credentials",
        "client_id": "cid",
        "client_secret": "csecret",
        "scope": "a b",
    }
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    assert request.headers["accept"] == "application/json"
    assert request.headers["user-agent"] == "pkg-trust/test"
    assert request.headers["x-correlationid"]


@respx.mock
def test_password_and_jwt_bearer_grants():
    route = respx.post("https://other.auth.example.com/oauth/token").mock(
        return_value=httpx.Response(200, json=TOKEN_BODY)
    )
    client = TokenExchangeClient()

    client.password_token(TOKEN_URL, "cid", "csecret", "alice", "pw", subdomain="other")
    assert _form(route.calls.last.request) == {
        "grant_type": "password",
        "client_id": "cid",
        "client_secret": "csecret",
        "username": "alice",
        "password": "pw",
        "response_type": "token",
    }

    client.jwt_bearer_token(TOKEN_URL, "cid", "csecret", "assertion-jwt", subdomain="other")
    form = _form(route.calls.last.request)
    assert form["grant_type"] == GrantType.JWT_BEARER.value
    assert form["assertion"] == "assertion-jwt"

    client.refresh_token(TOKEN_URL, "cid", "csecret", "rt-1", subdomain="other")
    assert _form(route.calls.last.request)["refresh_token"] == "rt-1"


@respx.mock
def test_explicit_correlation_id_is_forwarded():
    route = respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, json=TOKEN_BODY))

    TokenExchangeClient().exchange(
        GrantType.CLIENT_CREDENTIALS,
        {"client_id": "cid", "client_secret": "s"},
        TOKEN_URL,
        headers={"X-CorrelationID": "corr-1"},
    )

    assert route.calls.last.request.headers["x-correlationid"] == "corr-1"


@respx.mock
def test_secrets_are_masked_in_logs():
    respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, json=TOKEN_BODY))

    with capture_logs() as logs:
        TokenExchangeClient().password_token(TOKEN_URL, "cid", "csecret", "alice", "pw")

    request_log = next(entry for entry in logs if entry["event"] == "token_request")
    assert request_log["parameters"]["client_secret"] == MASK
    assert request_log["parameters"]["password"] == MASK
    assert request_log["parameters"]["username"] == "alice"
    assert "csecret" not in repr(logs)
    assert "'pw'" not in repr(logs)


@respx.mock
def test_non_200_raises_exchange_error():
    respx.post(TOKEN_URL).mock(return_value=httpx.Response(401, text='{"error":"unauthorized"}'))

    with pytest.raises(ExchangeError) as info:
        TokenExchangeClient().client_credentials_token(TOKEN_URL, "cid", "csecret")

    assert info.value.status_code == 401
    assert info.value.endpoint == TOKEN_URL
    assert info.value.response_body == '{"error":"unauthorized"}'
    assert "csecret" not in str(info.value)


@respx.mock
def test_transport_error_raises_exchange_error():
    respx.post(TOKEN_URL).mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(ExchangeError) as info:
        TokenExchangeClient().client_credentials_token(TOKEN_URL, "cid", "csecret")

    assert info.value.status_code is None
    assert "ConnectError" in str(info.value)


@respx.mock
def test_invalid_json_raises_exchange_error():
    respx.post(TOKEN_URL).mock(return_value=httpx.Response(200, text="<html>"))

    with pytest.raises(ExchangeError, match="not valid JSON"):
        TokenExchangeClient().client_credentials_token(TOKEN_URL, "cid", "csecret")


def test_injected_http_client_is_used():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=TOKEN_BODY)

    client = TokenExchangeClient(client=httpx.Client(transport=httpx.MockTransport(handler)))
    client.client_credentials_token(TOKEN_URL, "cid", "csecret")

    assert len(seen) == 1
    assert str(seen[0].url) == TOKEN_URL
