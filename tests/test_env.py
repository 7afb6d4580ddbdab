# tests/test_env.py
import json

import pytest

from pkg_trust.config.env import binding_credentials, settings_from_env
from pkg_trust.domain.constants import AuthenticationMethod
from pkg_trust.domain.exceptions import ConfigurationError

VCAP = json.dumps({
    "xsuaa": [{
        "name": "my-xsuaa",
        "credentials": {
            "clientid": "sb-app",
            "clientsecret": "app-secret",
            "uaadomain": "auth.example.com",
            "url": "https://tenant.auth.example.com/",
            "verificationkey": "-----BEGIN PUBLIC KEY-----abc-----END PUBLIC KEY-----",
        },
    }],
})


def test_settings_from_plain_env():
    settings = settings_from_env({
        "TRUST_CLIENT_ID": "sb-app",
        "TRUST_CLIENT_SECRET": "s",
        "TRUST_DOMAIN": "auth.example.com",
        "TRUST_TOKEN_URL": "https://tenant.auth.example.com/oauth/token",
        "TRUST_KEY_SET_CACHE_TTL": "0",
        "TRUST_TOKEN_CACHE_SIZE": "5",
        "TRUST_AUTHENTICATION_METHODS": "oauth2, client_credentials",
        "TRUST_ALGORITHMS": "RS256,ES256",
    })

    assert settings.trust.client_id == "sb-app"
    assert settings.trust.trusted_domain == "auth.example.com"
    assert settings.trust.key_set_path == "/token_keys"
    assert settings.trust.key_set_cache_ttl == 0
    assert settings.trust.allowed_algorithms == ("RS256", "ES256")
    assert settings.token_cache.cache_size == 5
    assert settings.token_cache.cache_duration == 600
    assert settings.exchange.token_url == "https://tenant.auth.example.com/oauth/token"
    assert settings.exchange.subdomain_header == "X-Identity-Zone-Subdomain"
    assert settings.exchange.authentication_methods == (
        AuthenticationMethod.OAUTH2,
        AuthenticationMethod.CLIENT_CREDENTIALS,
    )


def test_settings_from_vcap_services():
    settings = settings_from_env({"VCAP_SERVICES": VCAP})

    assert settings.trust.client_id == "sb-app"
    assert settings.trust.trusted_domain == "auth.example.com"
    assert settings.trust.verification_key.startswith("-----BEGIN PUBLIC KEY-----")
    assert settings.exchange.token_url == "https://tenant.auth.example.com/oauth/token"
    assert settings.exchange.client_secret == "app-secret"
    assert "app-secret" not in repr(settings)


def test_binding_credentials():
    assert binding_credentials(VCAP)["clientid"] == "sb-app"
    assert binding_credentials(VCAP, label="other") is None
    with pytest.raises(ConfigurationError):
        binding_credentials("{not json")


@pytest.mark.parametrize(
    "document",
    ["[]", '"xsuaa"', '{"xsuaa": {"a": 1}}', '{"xsuaa": [1]}', '{"xsuaa": [{"credentials": ["x"]}]}'],
)
def test_binding_credentials_wrong_shape(document):
    with pytest.raises(ConfigurationError):
        binding_credentials(document)


def test_missing_trust_settings():
    with pytest.raises(ConfigurationError):
        settings_from_env({"TRUST_CLIENT_ID": "sb-app"})


@pytest.mark.parametrize(
    "env",
    [
        {"TRUST_DOMAIN": "auth.example.com", "TRUST_KEY_SET_CACHE_TTL": "ten minutes"},
        {"TRUST_DOMAIN": "auth.example.com", "TRUST_AUTHENTICATION_METHODS": "kerberos"},
    ],
)
def test_invalid_values(env):
    with pytest.raises(ConfigurationError):
        settings_from_env(env)
