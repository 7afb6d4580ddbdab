# tests/test_trust.py
import pytest

from pkg_trust.adapters.jwks.trust import KeyTrustResolver, is_within_domain
from pkg_trust.config.settings import TrustConfiguration
from pkg_trust.domain.exceptions import (
    InsecureSchemeError,
    InvalidKeyEndpointError,
    UntrustedDomainError,
)

CONFIG = TrustConfiguration(trusted_domain="auth.example.com")


def test_is_within_domain():
    assert is_within_domain("auth.example.com", "auth.example.com")
    assert is_within_domain("tenant.auth.example.com", "auth.example.com")
    assert not is_within_domain("notauth.example.com", "auth.example.com")
    assert not is_within_domain("auth.example.com.evil.com", "auth.example.com")


@pytest.mark.parametrize(
    "locator, url",
    [
        ("https://tenant.auth.example.com/token_keys", "https://tenant.auth.example.com/token_keys"),
        ("https://auth.example.com/token_keys", "https://auth.example.com/token_keys"),
        ("HTTPS://Tenant.Auth.Example.COM/token_keys", "https://tenant.auth.example.com/token_keys"),
        ("https://tenant.auth.example.com:443/token_keys", "https://tenant.auth.example.com/token_keys"),
    ],
)
def test_trusted_locators(locator, url):
    ref = KeyTrustResolver().resolve(locator, CONFIG)
    assert ref.url == url
    assert ref.locator == locator
    assert ref.host == url.split("/")[2]


@pytest.mark.parametrize(
    "locator, error",
    [
        # transport
        ("http://tenant.auth.example.com/token_keys", InsecureSchemeError),
        ("ftp://tenant.auth.example.com/token_keys", InsecureSchemeError),
        ("//tenant.auth.example.com/token_keys", InsecureSchemeError),
        # host
        ("https://evil.example.com/token_keys", UntrustedDomainError),
        ("https://notauth.example.com/token_keys", UntrustedDomainError),
        ("https://auth.example.com.evil.com/token_keys", UntrustedDomainError),
        ("https://auth.example.com@evil.com/token_keys", UntrustedDomainError),
        ("https://user:pw@tenant.auth.example.com/token_keys", UntrustedDomainError),
        ("https://tenant.auth.example.com\\@evil.com/token_keys", UntrustedDomainError),
        ("https://evil.com\\.auth.example.com/token_keys", UntrustedDomainError),
        ("https://tenant.auth.example.com:8443/token_keys", UntrustedDomainError),
        # endpoint
        ("https://tenant.auth.example.com:port/token_keys", InvalidKeyEndpointError),
        ("https://tenant.auth.example.com/token_keys/extra", InvalidKeyEndpointError),
        ("https://tenant.auth.example.com/other/../token_keys", InvalidKeyEndpointError),
        ("https://tenant.auth.example.com/token_keys/..", InvalidKeyEndpointError),
        ("https://tenant.auth.example.com/TOKEN_KEYS", InvalidKeyEndpointError),
        ("https://tenant.auth.example.com/", InvalidKeyEndpointError),
        ("https://tenant.auth.example.com/token_keys?redirect=https://evil.com", InvalidKeyEndpointError),
        ("https://tenant.auth.example.com/token_keys?", InvalidKeyEndpointError),
        ("https://tenant.auth.example.com/token_keys#frag", InvalidKeyEndpointError),
        # not a URL at all
        ("", InvalidKeyEndpointError),
        (" https://tenant.auth.example.com/token_keys", InvalidKeyEndpointError),
        ("https://tenant.auth.example.com/token keys", InvalidKeyEndpointError),
        ("https://tenant.auth.example.com/token_keys\n", InvalidKeyEndpointError),
    ],
)
def test_untrusted_locators(locator, error):
    with pytest.raises(error) as info:
        KeyTrustResolver().resolve(locator, CONFIG)
    assert info.value.locator == locator


def test_no_trusted_domain_rejects_everything():
    with pytest.raises(UntrustedDomainError):
        KeyTrustResolver().resolve(
            "https://tenant.auth.example.com/token_keys",
            TrustConfiguration(trusted_domain=None),
        )


def test_custom_key_set_path():
    config = TrustConfiguration(trusted_domain="auth.example.com", key_set_path="/oauth2/certs")
    ref = KeyTrustResolver().resolve("https://auth.example.com/oauth2/certs", config)
    assert ref.url == "https://auth.example.com/oauth2/certs"

    with pytest.raises(InvalidKeyEndpointError):
        KeyTrustResolver().resolve("https://auth.example.com/token_keys", config)


def test_trusted_domain_is_normalized():
    config = TrustConfiguration(trusted_domain=" Auth.Example.com. ")
    ref = KeyTrustResolver().resolve("https://tenant.auth.example.com/token_keys", config)
    assert ref.host == "tenant.auth.example.com"
