import base64
import json
import zlib
from unittest import mock
from urllib.parse import parse_qs, urlparse

import pytest

from auth_providers.errors import SamlError, ValidationError
from auth_providers.models import AuthType, CallbackResult
from auth_providers.providers import Saml2BearerProvider, Saml2PureProvider
from auth_providers.saml2 import (Saml2Settings, build_saml_authorization_url, get_saml_assertion,
                                  parse_saml_not_on_or_after, resolve_token_url)

ASSERTION_2030 = base64.b64encode(b'<Assertion NotOnOrAfter="2030-01-01T00:00:00Z"></Assertion>').decode()
EXPIRES_2030_MS = 1893456000000


class _Resp:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload)

    def json(self):
        return self._payload


# Test intent: NotOnOrAfter is read from the decoded assertion as epoch ms;
# missing or unreadable values give None.
def test_parse_saml_not_on_or_after():
    assert parse_saml_not_on_or_after(ASSERTION_2030) == EXPIRES_2030_MS
    with_ms = base64.b64encode(b'<a NotOnOrAfter="2030-01-01T00:00:00.500Z"/>').decode()
    assert parse_saml_not_on_or_after(with_ms) == EXPIRES_2030_MS + 500
    with_ticks = base64.b64encode(b'<a NotOnOrAfter="2030-01-01T00:00:00.1234567Z"/>').decode()
    assert parse_saml_not_on_or_after(with_ticks) == EXPIRES_2030_MS + 123
    one_digit = base64.b64encode(b'<a NotOnOrAfter="2030-01-01T00:00:00.5+00:00"/>').decode()
    assert parse_saml_not_on_or_after(one_digit) == EXPIRES_2030_MS + 500
    assert parse_saml_not_on_or_after(base64.b64encode(b"<Assertion/>").decode()) is None
    assert parse_saml_not_on_or_after(base64.b64encode(b'<a NotOnOrAfter="soon"/>').decode()) is None
    assert parse_saml_not_on_or_after("%%%not-base64%%%") is None


# Test intent: the redirect binding URL carries a raw-deflated, base64
# AuthnRequest naming the ACS URL and SP entity, plus the RelayState.
def test_build_saml_authorization_url_round_trip():
    url = build_saml_authorization_url("https://idp.example.com/sso", "sp-entity",
                                       "http://localhost:3001/callback", relay_state="state 1")
    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://idp.example.com/sso"
    query = parse_qs(parsed.query)
    xml = zlib.decompress(base64.b64decode(query["SAMLRequest"][0]), -15).decode()
    assert 'AssertionConsumerServiceURL="http://localhost:3001/callback"' in xml
    assert "<saml:Issuer>sp-entity</saml:Issuer>" in xml
    assert 'ProtocolBinding="urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"' in xml
    assert query["RelayState"] == ["state 1"]


# Test intent: an explicit authorization URL is used verbatim.
def test_explicit_authorization_url_wins():
    assert build_saml_authorization_url("https://idp/sso", "sp", "http://acs", authorization_url="https://x/y") \
        == "https://x/y"


# Test intent: the bearer exchange needs a token URL or a UAA base URL.
def test_resolve_token_url():
    assert resolve_token_url(None, "https://uaa.example.com/") == "https://uaa.example.com/oauth/token"
    assert resolve_token_url("https://t/token", "https://uaa") == "https://t/token"
    with pytest.raises(ValidationError):
        resolve_token_url(None, None)


# Test intent: the browser flow runs the callback in SAML mode on the
# configured port and returns the posted SAMLResponse.
def test_get_saml_assertion_browser_flow():
    settings = Saml2Settings(idp_sso_url="https://idp/sso", sp_entity_id="sp", redirect_port=4100,
                             browser="headless")
    with mock.patch("auth_providers.saml2.start_callback",
                    return_value=CallbackResult(saml_response="PHNhbWw+")) as m_cb:
        assert get_saml_assertion(settings) == "PHNhbWw+"
    kwargs = m_cb.call_args.kwargs
    assert kwargs["saml"] is True
    assert kwargs["base_port"] == 4100
    assert kwargs["browser"] == "headless"
    assert m_cb.call_args.args[0](4100).startswith("https://idp/sso?SAMLRequest=")


# Test intent: the manual flow reads a pasted assertion; empty input fails.
def test_get_saml_assertion_manual_flow():
    settings = Saml2Settings(idp_sso_url="https://idp/sso", sp_entity_id="sp", assertion_flow="manual",
                             manual_input=lambda prompt: "  pasted  ")
    assert get_saml_assertion(settings) == "pasted"

    settings.manual_input = lambda prompt: "   "
    with pytest.raises(SamlError, match="Missing SAMLResponse"):
        get_saml_assertion(settings)


# Test intent: settings validation reports every missing field in one error
# and rejects unknown assertion flows.
def test_saml_settings_validation():
    with pytest.raises(ValidationError) as exc:
        Saml2BearerProvider(uaa_url="https://uaa")
    assert exc.value.missing_fields == ["idp_sso_url", "sp_entity_id"]

    with pytest.raises(ValidationError):
        Saml2BearerProvider(idp_sso_url="https://idp/sso", sp_entity_id="sp", assertion_flow="popup",
                            uaa_url="https://uaa")

    with pytest.raises(ValidationError) as exc:
        Saml2BearerProvider(idp_sso_url="https://idp/sso", sp_entity_id="sp")
    assert exc.value.missing_fields == ["token_url"]

    with pytest.raises(ValidationError) as exc:
        Saml2BearerProvider()
    assert exc.value.missing_fields == ["idp_sso_url", "sp_entity_id", "token_url"]

    with pytest.raises(ValidationError) as exc:
        Saml2PureProvider(None)
    assert exc.value.missing_fields == ["cookie_provider", "idp_sso_url", "sp_entity_id"]


# Test intent: the bearer provider trades the assertion at the UAA token
# endpoint using the saml2-bearer grant.
def test_saml2_bearer_provider_exchanges_assertion():
    def fake_post(url, data=None, headers=None, timeout=None):
        assert url == "https://uaa.example.com/oauth/token"
        assert data["grant_type"] == "urn:ietf:params:oauth:grant-type:saml2-bearer"
        assert data["assertion"] == ASSERTION_2030
        return _Resp(200, {"access_token": "bearer-at", "expires_in": 600})

    p = Saml2BearerProvider(assertion_flow="assertion", assertion_provider=lambda: ASSERTION_2030,
                            uaa_url="https://uaa.example.com", client_id="cid", client_secret="secret")
    with mock.patch("requests.post", side_effect=fake_post):
        result = p.get_tokens()
    assert result.authorization_token == "bearer-at"
    assert result.auth_type == AuthType.SAML2_BEARER
    assert result.token_type == "jwt"
    assert result.expires_in == 600


# Test intent: the pure SAML provider returns the session cookies as the
# credential, expiring at the assertion's NotOnOrAfter, and caches them.
def test_saml2_pure_provider_uses_not_on_or_after():
    seen = []

    def cookie_provider(assertion):
        seen.append(assertion)
        return "JSESSIONID=abc123; Path=/"

    p = Saml2PureProvider(cookie_provider, assertion_flow="assertion", assertion_provider=lambda: ASSERTION_2030)
    result = p.get_tokens()
    assert result.authorization_token == "JSESSIONID=abc123; Path=/"
    assert result.token_type == "saml"
    assert result.auth_type == AuthType.USER_TOKEN
    assert result.expires_at == EXPIRES_2030_MS
    assert result.refresh_token is None

    cached = p.get_tokens()
    assert cached.expires_at == EXPIRES_2030_MS
    assert seen == [ASSERTION_2030]


# Test intent: an empty cookie string is a SAML error, not a credential.
def test_saml2_pure_provider_empty_cookies():
    p = Saml2PureProvider(lambda assertion: "", assertion_flow="assertion",
                          assertion_provider=lambda: ASSERTION_2030)
    with pytest.raises(SamlError):
        p.get_tokens()
