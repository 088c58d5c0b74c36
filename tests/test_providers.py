import base64
import http.client
import json
import socket
from datetime import datetime, timezone, timedelta
from unittest import mock
from urllib.parse import parse_qs, urlencode, urlparse

import pytest

from auth_providers.browser import BrowserLauncher
from auth_providers.discovery import DiscoveryCache
from auth_providers.errors import BrowserAuthError, CallbackPortError, ValidationError
from auth_providers.factory import PROVIDERS, create_provider
from auth_providers.models import AuthType, CallbackResult
from auth_providers.pkce import generate_challenge
from auth_providers.providers import (AuthorizationCodeProvider, CfPasscodeProvider, ClientCredentialsProvider,
                                      DeviceFlowProvider, OidcBrowserProvider, OidcDeviceFlowProvider,
                                      OidcPasswordProvider, OidcTokenExchangeProvider, Saml2BearerProvider,
                                      Saml2PureProvider)


def _make_jwt_with_exp(exp_ts: int) -> str:
    header = base64.urlsafe_b64encode(b"{}").decode().rstrip("=")
    payload = base64.urlsafe_b64encode(json.dumps({"exp": exp_ts}).encode()).decode().rstrip("=")
    return f"{header}.{payload}.sig"


def _jwt_expiring_in(seconds: int) -> str:
    return _make_jwt_with_exp(int((datetime.now(timezone.utc) + timedelta(seconds=seconds)).timestamp()))


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


# Helper intent: stand in for the user's browser by following the
# authorization URL straight to its redirect_uri with a code (and the state).
class _RedirectingLauncher(BrowserLauncher):
    def __init__(self, code="the-code"):
        super().__init__()
        self.code = code
        self.urls = []
        self.status = None

    def launch(self, url, browser="system"):
        self.urls.append(url)
        query = parse_qs(urlparse(url).query)
        redirect = urlparse(query["redirect_uri"][0])
        params = {"code": self.code}
        if "state" in query:
            params["state"] = query["state"][0]
        conn = http.client.HTTPConnection("127.0.0.1", redirect.port, timeout=5)
        try:
            conn.request("GET", f"{redirect.path}?{urlencode(params)}")
            self.status = conn.getresponse().status
        finally:
            conn.close()


class _Resp:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload)

    def json(self):
        return self._payload

    def raise_for_status(self):
        return None


DISCOVERY_DOC = {
    "issuer": "https://idp.example.com",
    "authorization_endpoint": "https://idp.example.com/authorize",
    "token_endpoint": "https://idp.example.com/token",
    "device_authorization_endpoint": "https://idp.example.com/device",
}


# Test intent: the OIDC browser flow sends a PKCE challenge and state in the
# authorization URL and the matching verifier in the code exchange.
def test_oidc_browser_with_code_provider_uses_pkce():
    captured = {}
    token = _jwt_expiring_in(3600)

    def code_provider(url):
        captured["url"] = url
        return "the-code"

    p = OidcBrowserProvider(client_id="cid", authorization_endpoint="https://idp/authorize",
                            token_endpoint="https://idp/token", code_provider=code_provider)
    body = {"access_token": token, "refresh_token": "rt", "expires_in": 3600}
    with mock.patch("requests.post", return_value=_Resp(200, body)) as m_post:
        result = p.get_tokens()

    query = parse_qs(urlparse(captured["url"]).query)
    assert query["code_challenge_method"] == ["S256"]
    assert query["scope"] == ["openid profile email"]
    assert query["redirect_uri"] == ["http://localhost:3001/callback"]
    assert query["state"][0]

    assert m_post.call_args.args[0] == "https://idp/token"
    data = m_post.call_args.kwargs["data"]
    assert data["code"] == "the-code"
    assert data["redirect_uri"] == "http://localhost:3001/callback"
    assert generate_challenge(data["code_verifier"]) == query["code_challenge"][0]
    assert result.auth_type == AuthType.AUTHORIZATION_CODE_PKCE
    assert result.token_type == "jwt"
    assert result.refresh_token == "rt"


# Test intent: endpoints come from discovery when only the issuer is set,
# and the browser callback's state must match the one that was sent.
def test_oidc_browser_discovery_and_state_check():
    cache = DiscoveryCache()
    sent = {}

    def fake_start_callback(build_url, **kwargs):
        url = build_url(3005)
        sent["query"] = parse_qs(urlparse(url).query)
        assert url.startswith("https://idp.example.com/authorize?")
        return CallbackResult(code="c", state=sent["query"]["state"][0],
                              redirect_uri="http://localhost:3005/callback")

    p = OidcBrowserProvider(client_id="cid", issuer_url="https://idp.example.com", discovery_cache=cache,
                            browser="headless")
    with mock.patch("requests.get", return_value=_Resp(200, DISCOVERY_DOC)) as m_get, \
            mock.patch("requests.post", return_value=_Resp(200, {"access_token": "at", "expires_in": 60})) as m_post, \
            mock.patch("auth_providers.providers.oidc_browser.start_callback", side_effect=fake_start_callback):
        p.get_tokens()
    assert m_get.call_count == 1
    assert m_post.call_args.args[0] == "https://idp.example.com/token"
    assert m_post.call_args.kwargs["data"]["redirect_uri"] == "http://localhost:3005/callback"

    def forged_state_callback(build_url, **kwargs):
        build_url(3005)
        return CallbackResult(code="c", state="forged", redirect_uri="http://localhost:3005/callback")

    p2 = OidcBrowserProvider(client_id="cid", issuer_url="https://idp.example.com", discovery_cache=cache)
    with mock.patch("auth_providers.providers.oidc_browser.start_callback", side_effect=forged_state_callback), \
            mock.patch("requests.post") as m_post:
        with pytest.raises(BrowserAuthError, match="state mismatch") as exc:
            p2.get_tokens()
    m_post.assert_not_called()
    assert exc.value.authorization_url.startswith("https://idp.example.com/authorize?")
    assert "localhost%3A3005" in exc.value.authorization_url


# Test intent: a non-localhost redirect URI cannot be served by the local
# listener, so a code provider is required.
def test_oidc_browser_non_local_redirect_needs_code_provider():
    with pytest.raises(ValidationError):
        OidcBrowserProvider(client_id="cid", issuer_url="https://idp", redirect_uri="https://app.example.com/cb")
    OidcBrowserProvider(client_id="cid", issuer_url="https://idp", redirect_uri="https://app.example.com/cb",
                        code_provider=lambda url: "code")

    with pytest.raises(ValidationError) as exc:
        OidcBrowserProvider(client_id="")
    assert exc.value.missing_fields == ["client_id", "issuer_url"]


# Test intent: an explicit localhost redirect with a custom path is served by
# the listener on exactly that port and path, and the code exchange posts the
# same redirect URI.
def test_oidc_browser_explicit_redirect_custom_path():
    port = _free_port()
    redirect_uri = f"http://127.0.0.1:{port}/oauth2/cb"
    launcher = _RedirectingLauncher()
    p = OidcBrowserProvider(client_id="cid", authorization_endpoint="https://idp/authorize",
                            token_endpoint="https://idp/token", redirect_uri=redirect_uri,
                            browser="system", timeout=10, launcher=launcher)
    with mock.patch("requests.post", return_value=_Resp(200, {"access_token": "at", "expires_in": 60})) as m_post:
        result = p.get_tokens()
    assert launcher.status == 200
    assert parse_qs(urlparse(launcher.urls[0]).query)["redirect_uri"] == [redirect_uri]
    data = m_post.call_args.kwargs["data"]
    assert data["code"] == "the-code"
    assert data["redirect_uri"] == redirect_uri
    assert result.authorization_token == "at"


# Test intent: when the port of an explicit localhost redirect is taken the
# login fails fast instead of listening somewhere the server never redirects to.
def test_oidc_browser_explicit_redirect_busy_port():
    port = _free_port()
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", port))
    blocker.listen(1)
    launcher = _RedirectingLauncher()
    p = OidcBrowserProvider(client_id="cid", authorization_endpoint="https://idp/authorize",
                            token_endpoint="https://idp/token", redirect_uri=f"http://localhost:{port}/callback",
                            browser="system", timeout=10, launcher=launcher)
    try:
        with mock.patch("requests.post") as m_post:
            with pytest.raises(CallbackPortError, match=str(port)):
                p.get_tokens()
    finally:
        blocker.close()
    assert launcher.urls == []
    m_post.assert_not_called()


# Test intent: constructors report every missing field in one error.
def test_missing_fields_reported_together():
    with pytest.raises(ValidationError) as exc:
        OidcPasswordProvider(client_id="cid", username="", password="")
    assert exc.value.missing_fields == ["username", "password", "issuer_url"]

    with pytest.raises(ValidationError) as exc:
        OidcDeviceFlowProvider(client_id="", device_authorization_endpoint="https://idp/device")
    assert exc.value.missing_fields == ["client_id", "issuer_url"]

    with pytest.raises(ValidationError) as exc:
        OidcTokenExchangeProvider(client_id="cid", subject_token="", subject_token_type="t", actor_token="actor")
    assert exc.value.missing_fields == ["subject_token", "issuer_url", "actor_token_type"]

    with pytest.raises(ValidationError) as exc:
        OidcBrowserProvider(client_id="", authorization_endpoint="https://idp/authorize")
    assert exc.value.missing_fields == ["client_id", "issuer_url"]


# Test intent: the UAA device flow initiates, prompts, polls through a
# pending answer and returns the issued tokens.
def test_device_flow_provider_end_to_end():
    token = _jwt_expiring_in(3600)
    responses = [
        _Resp(200, {"device_code": "dc", "user_code": "WDJB-MJHT", "verification_uri": "https://uaa/device",
                    "interval": 1}),
        _Resp(400, {"error": "authorization_pending"}),
        _Resp(200, {"access_token": token, "refresh_token": "rt"}),
    ]
    prompts, sleeps = [], []
    p = DeviceFlowProvider("https://uaa.example.com", "cid", prompt=prompts.append, sleep=sleeps.append)
    with mock.patch("requests.post", side_effect=responses) as m_post:
        result = p.get_tokens()

    urls = [c.args[0] for c in m_post.call_args_list]
    assert urls == ["https://uaa.example.com/oauth/device_authorization",
                    "https://uaa.example.com/oauth/token",
                    "https://uaa.example.com/oauth/token"]
    assert m_post.call_args.kwargs["data"]["grant_type"] == "urn:ietf:params:oauth:grant-type:device_code"
    assert prompts[0].user_code == "WDJB-MJHT"
    assert sleeps == [1]
    assert result.authorization_token == token
    assert result.refresh_token == "rt"
    assert result.auth_type == AuthType.AUTHORIZATION_CODE


# Test intent: the OIDC device flow discovers its device and token endpoints.
def test_oidc_device_flow_discovers_endpoints():
    responses = [
        _Resp(200, {"device_code": "dc", "user_code": "U", "verification_uri": "https://idp/device"}),
        _Resp(200, {"access_token": "at", "expires_in": 300}),
    ]
    p = OidcDeviceFlowProvider(client_id="cid", issuer_url="https://idp.example.com", scopes=["openid"],
                               discovery_cache=DiscoveryCache(), sleep=lambda s: None)
    with mock.patch("requests.get", return_value=_Resp(200, DISCOVERY_DOC)), \
            mock.patch("requests.post", side_effect=responses) as m_post:
        result = p.get_tokens()
    assert m_post.call_args_list[0].args[0] == "https://idp.example.com/device"
    assert m_post.call_args_list[0].kwargs["data"]["scope"] == "openid"
    assert m_post.call_args_list[1].args[0] == "https://idp.example.com/token"
    assert result.token_type == "jwt"


# Test intent: client credentials never hold a refresh token and refreshing
# repeats the grant.
def test_client_credentials_provider():
    body = {"access_token": "cc-token", "refresh_token": "ignored", "expires_in": 3600}
    p = ClientCredentialsProvider("https://uaa.example.com", "cid", "secret", scope="read")
    with mock.patch("requests.post", return_value=_Resp(200, body)) as m_post:
        result = p.get_tokens()
        refreshed = p.perform_refresh()
    assert result.refresh_token is None
    assert p.refresh_token is None
    assert result.auth_type == AuthType.CLIENT_CREDENTIALS
    assert refreshed.authorization_token == "cc-token"
    assert m_post.call_count == 2
    assert m_post.call_args.kwargs["headers"]["Authorization"] == \
        "Basic " + base64.b64encode(b"cid:secret").decode()


# Test intent: the OIDC password grant posts the user's credentials to the
# discovered token endpoint.
def test_oidc_password_provider():
    p = OidcPasswordProvider(client_id="cid", username="alice", password="pw",
                             issuer_url="https://idp.example.com", discovery_cache=DiscoveryCache())
    with mock.patch("requests.get", return_value=_Resp(200, DISCOVERY_DOC)), \
            mock.patch("requests.post", return_value=_Resp(200, {"access_token": "at", "expires_in": 60})) as m_post:
        result = p.get_tokens()
    data = m_post.call_args.kwargs["data"]
    assert m_post.call_args.args[0] == "https://idp.example.com/token"
    assert (data["grant_type"], data["username"], data["password"]) == ("password", "alice", "pw")
    assert result.auth_type == AuthType.PASSWORD

    with pytest.raises(ValidationError) as exc:
        OidcPasswordProvider(client_id="cid", username="", password="", token_endpoint="https://t")
    assert exc.value.missing_fields == ["username", "password"]


# Test intent: an explicit passcode wins over the passcode provider, the
# provider is used otherwise, and a missing passcode is a validation error.
def test_cf_passcode_resolution():
    provider_calls = []

    def passcode_provider():
        provider_calls.append(1)
        return "from-provider"

    p = CfPasscodeProvider("https://uaa", "cf", passcode="explicit", passcode_provider=passcode_provider)
    assert p.resolve_passcode() == "explicit"
    assert provider_calls == []

    p = CfPasscodeProvider("https://uaa", "cf", passcode_provider=passcode_provider)
    assert p.resolve_passcode() == "from-provider"

    with pytest.raises(ValidationError, match="Passcode provider returned empty value"):
        CfPasscodeProvider("https://uaa", "cf", passcode_provider=lambda: "").resolve_passcode()

    with pytest.raises(ValidationError, match="Passcode is required for CF SSO flow"):
        CfPasscodeProvider("https://uaa", "cf").resolve_passcode()


# Test intent: the passcode login is a password grant with username "passcode".
def test_cf_passcode_login():
    p = CfPasscodeProvider("https://uaa.example.com", "cf", passcode="123456")
    with mock.patch("requests.post", return_value=_Resp(200, {"access_token": "at", "expires_in": 60})) as m_post:
        result = p.get_tokens()
    data = m_post.call_args.kwargs["data"]
    assert m_post.call_args.args[0] == "https://uaa.example.com/oauth/token"
    assert data["username"] == "passcode"
    assert data["password"] == "123456"
    assert "Authorization" not in m_post.call_args.kwargs["headers"]
    assert result.auth_type == AuthType.PASSWORD


# Test intent: token exchange has no refresh grant; an expired token is
# re-exchanged with the subject token.
def test_token_exchange_refresh_re_exchanges():
    p = OidcTokenExchangeProvider(client_id="cid", subject_token="subj",
                                  subject_token_type="urn:ietf:params:oauth:token-type:access_token",
                                  token_endpoint="https://idp/token", access_token=_jwt_expiring_in(-60),
                                  refresh_token="rt")
    with mock.patch("requests.post", return_value=_Resp(200, {"access_token": "exchanged"})) as m_post:
        result = p.get_tokens()
    assert m_post.call_count == 1
    assert m_post.call_args.kwargs["data"]["grant_type"] == "urn:ietf:params:oauth:grant-type:token-exchange"
    assert result.authorization_token == "exchanged"
    assert result.auth_type == AuthType.USER_TOKEN

    with pytest.raises(ValidationError) as exc:
        OidcTokenExchangeProvider(client_id="cid", subject_token="s", subject_token_type="t",
                                  token_endpoint="https://idp/token", actor_token="actor")
    assert exc.value.missing_fields == ["actor_token_type"]


# Test intent: the authorization code login exchanges the callback code
# using the redirect URI the listener actually bound.
def test_authorization_code_login_uses_bound_redirect_uri():
    def fake_start_callback(build_url, **kwargs):
        query = parse_qs(urlparse(build_url(3002)).query)
        assert query["redirect_uri"] == ["http://localhost:3002/callback"]
        assert kwargs["base_port"] == 3001
        return CallbackResult(code="auth-code", redirect_uri="http://localhost:3002/callback")

    p = AuthorizationCodeProvider("https://uaa.example.com", "cid", "secret", browser="headless")
    with mock.patch("auth_providers.providers.authorization_code.start_callback", side_effect=fake_start_callback), \
            mock.patch("requests.post", return_value=_Resp(200, {"access_token": "at", "refresh_token": "rt",
                                                                 "expires_in": 3600})) as m_post:
        result = p.get_tokens()
    data = m_post.call_args.kwargs["data"]
    assert data["code"] == "auth-code"
    assert data["redirect_uri"] == "http://localhost:3002/callback"
    assert result.refresh_token == "rt"


# Test intent: a pre-built authorization URL is opened as is, its redirect
# port is the one the listener binds, and the code exchange posts the
# redirect URI that URL carries.
def test_authorization_code_prebuilt_url_uses_its_redirect():
    port = _free_port()
    redirect_uri = f"http://localhost:{port}/callback"
    authorization_url = "https://uaa.example.com/oauth/authorize?" + urlencode(
        {"client_id": "cid", "response_type": "code", "redirect_uri": redirect_uri})
    launcher = _RedirectingLauncher(code="prebuilt-code")
    p = AuthorizationCodeProvider("https://uaa.example.com", "cid", "secret", authorization_url=authorization_url,
                                  timeout=10, launcher=launcher)
    with mock.patch("requests.post", return_value=_Resp(200, {"access_token": "at", "expires_in": 3600})) as m_post:
        p.get_tokens()
    assert launcher.urls == [authorization_url]
    data = m_post.call_args.kwargs["data"]
    assert data["code"] == "prebuilt-code"
    assert data["redirect_uri"] == redirect_uri


# Test intent: every (protocol, flow) pair maps to its provider class.
@pytest.mark.parametrize("protocol, flow, cls", [
    ("oidc", "browser", OidcBrowserProvider),
    ("oidc", "device", OidcDeviceFlowProvider),
    ("oidc", "password", OidcPasswordProvider),
    ("oidc", "token_exchange", OidcTokenExchangeProvider),
    ("saml2", "bearer", Saml2BearerProvider),
    ("saml2", "pure", Saml2PureProvider),
    ("uaa", "authorization_code", AuthorizationCodeProvider),
    ("uaa", "device", DeviceFlowProvider),
    ("uaa", "client_credentials", ClientCredentialsProvider),
    ("uaa", "passcode", CfPasscodeProvider),
])
def test_factory_mapping(protocol, flow, cls):
    assert PROVIDERS[(protocol, flow)] is cls


# Test intent: the factory builds a configured provider and rejects unknown
# pairs or unknown options as validation errors.
def test_create_provider():
    p = create_provider({"protocol": "uaa", "flow": "client_credentials",
                         "config": {"uaa_url": "https://uaa", "client_id": "cid", "client_secret": "s"}})
    assert isinstance(p, ClientCredentialsProvider)

    with pytest.raises(ValidationError, match="Unsupported provider"):
        create_provider({"protocol": "ldap", "flow": "bind"})

    with pytest.raises(ValidationError, match="Invalid configuration"):
        create_provider({"protocol": "uaa", "flow": "client_credentials",
                         "config": {"uaa_url": "https://uaa", "client_id": "cid", "client_secret": "s",
                                    "colour": "blue"}})

    with pytest.raises(ValidationError) as exc:
        create_provider({"protocol": "uaa", "flow": "client_credentials", "config": {"uaa_url": "https://uaa"}})
    assert "client_id" in str(exc.value)
