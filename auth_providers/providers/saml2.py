# MIT License
# Copyright (c) 2025 Gordon Trevorrow
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
# Author: Gordon Trevorrow

import logging
from typing import Callable, Optional

from ..browser import BrowserLauncher
from ..callback import DEFAULT_CALLBACK_PORT, DEFAULT_CALLBACK_TIMEOUT_SECONDS
from ..errors import SamlError
from ..jwt_utils import mask_token, now_ms
from ..lifecycle import TokenProvider
from ..models import TOKEN_TYPE_JWT, TOKEN_TYPE_SAML, AuthType, TokenResult
from ..oauth import exchange_saml_assertion
from ..saml2 import Saml2Settings, get_saml_assertion, parse_saml_not_on_or_after, resolve_token_url

LOG = logging.getLogger(__name__)


def _settings(idp_sso_url, sp_entity_id, assertion_flow, acs_url, relay_state, authorization_url,
              browser, redirect_port, timeout, assertion_provider, manual_input, launcher) -> Saml2Settings:
    return Saml2Settings(
        idp_sso_url=idp_sso_url,
        sp_entity_id=sp_entity_id,
        assertion_flow=assertion_flow,
        acs_url=acs_url,
        relay_state=relay_state,
        authorization_url=authorization_url,
        browser=browser,
        redirect_port=redirect_port,
        timeout=timeout,
        assertion_provider=assertion_provider,
        manual_input=manual_input,
        launcher=launcher,
    )


class Saml2BearerProvider(TokenProvider):
    """Trades a SAML assertion for an OAuth2 token (saml2-bearer grant)."""

    auth_type = AuthType.SAML2_BEARER
    token_type = TOKEN_TYPE_JWT

    def __init__(self, idp_sso_url: Optional[str] = None, sp_entity_id: Optional[str] = None,
                 assertion_flow: str = "browser", token_url: Optional[str] = None,
                 uaa_url: Optional[str] = None, client_id: Optional[str] = None,
                 client_secret: Optional[str] = None, acs_url: Optional[str] = None,
                 relay_state: Optional[str] = None, authorization_url: Optional[str] = None,
                 browser: str = "auto", redirect_port: int = DEFAULT_CALLBACK_PORT,
                 timeout: float = DEFAULT_CALLBACK_TIMEOUT_SECONDS,
                 assertion_provider: Optional[Callable[[], str]] = None,
                 manual_input: Optional[Callable[[str], str]] = None,
                 access_token: Optional[str] = None, refresh_token: Optional[str] = None,
                 launcher: Optional[BrowserLauncher] = None, clock: Callable[[], int] = now_ms):
        self.settings = _settings(idp_sso_url, sp_entity_id, assertion_flow, acs_url, relay_state,
                                  authorization_url, browser, redirect_port, timeout, assertion_provider,
                                  manual_input, launcher)
        self.settings.check_assertion_flow(type(self).__name__)
        missing = self.settings.missing_fields()
        if not token_url and not uaa_url:
            missing.append("token_url")
        self._require(*missing)
        super().__init__(access_token, refresh_token, clock)
        self.token_url = resolve_token_url(token_url, uaa_url)
        self.client_id = client_id
        self.client_secret = client_secret

    def perform_login(self) -> TokenResult:
        assertion = get_saml_assertion(self.settings)
        tokens = exchange_saml_assertion(self.token_url, assertion, self.client_id, self.client_secret)
        return self._from_response(tokens)

    def perform_refresh(self) -> TokenResult:
        return self.perform_login()


class Saml2PureProvider(TokenProvider):
    """Uses the session cookie minted from a SAML assertion as the credential.

    ``cookie_provider(saml_response)`` turns the assertion into the cookie
    string. Expiry comes from the assertion's ``NotOnOrAfter``.
    """

    auth_type = AuthType.USER_TOKEN
    token_type = TOKEN_TYPE_SAML

    def __init__(self, cookie_provider: Callable[[str], str], idp_sso_url: Optional[str] = None,
                 sp_entity_id: Optional[str] = None, assertion_flow: str = "browser",
                 acs_url: Optional[str] = None, relay_state: Optional[str] = None,
                 authorization_url: Optional[str] = None, browser: str = "auto",
                 redirect_port: int = DEFAULT_CALLBACK_PORT,
                 timeout: float = DEFAULT_CALLBACK_TIMEOUT_SECONDS,
                 assertion_provider: Optional[Callable[[], str]] = None,
                 manual_input: Optional[Callable[[str], str]] = None,
                 launcher: Optional[BrowserLauncher] = None, clock: Callable[[], int] = now_ms):
        self.settings = _settings(idp_sso_url, sp_entity_id, assertion_flow, acs_url, relay_state,
                                  authorization_url, browser, redirect_port, timeout, assertion_provider,
                                  manual_input, launcher)
        self.settings.check_assertion_flow(type(self).__name__)
        self._require(*self.settings.missing_fields(), cookie_provider=cookie_provider)
        super().__init__(clock=clock)
        self.cookie_provider = cookie_provider

    def perform_login(self) -> TokenResult:
        assertion = get_saml_assertion(self.settings)
        expires_at = parse_saml_not_on_or_after(assertion)
        if expires_at is None:
            LOG.warning("SAML assertion has no readable NotOnOrAfter; session will not be cached")
        cookies = self.cookie_provider(assertion)
        if not cookies:
            raise SamlError("Cookie provider returned no session cookies")
        LOG.debug("SAML session cookies obtained: %s", mask_token(cookies))
        return self._result(cookies, expires_at=expires_at)

    def perform_refresh(self) -> TokenResult:
        return self.perform_login()
