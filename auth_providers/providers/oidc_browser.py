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
from typing import Callable, List, Optional

from ..browser import BrowserLauncher
from ..callback import DEFAULT_CALLBACK_PORT, DEFAULT_CALLBACK_TIMEOUT_SECONDS, local_redirect, start_callback
from ..discovery import DiscoveryCache, resolve_endpoint
from ..errors import BrowserAuthError, ValidationError
from ..jwt_utils import now_ms
from ..lifecycle import TokenProvider
from ..models import TOKEN_TYPE_JWT, AuthType, TokenResult
from ..oauth import build_authorization_url, exchange_code_for_token, refresh_access_token
from ..pkce import generate_state, pkce_pair

LOG = logging.getLogger(__name__)

DEFAULT_OIDC_SCOPES = ("openid", "profile", "email")


class OidcBrowserProvider(TokenProvider):
    """OIDC authorization code flow with PKCE.

    The authorization code comes either from the local browser callback or,
    when ``code_provider`` is set, from ``code_provider(authorization_url)``.
    Endpoints not configured explicitly are read from the issuer's discovery
    document.
    """

    auth_type = AuthType.AUTHORIZATION_CODE_PKCE
    token_type = TOKEN_TYPE_JWT

    def __init__(self, client_id: str, issuer_url: Optional[str] = None, client_secret: Optional[str] = None,
                 scopes: Optional[List[str]] = None, authorization_endpoint: Optional[str] = None,
                 token_endpoint: Optional[str] = None, redirect_uri: Optional[str] = None,
                 code_provider: Optional[Callable[[str], str]] = None, browser: str = "auto",
                 redirect_port: int = DEFAULT_CALLBACK_PORT,
                 timeout: float = DEFAULT_CALLBACK_TIMEOUT_SECONDS,
                 discovery_cache: Optional[DiscoveryCache] = None,
                 access_token: Optional[str] = None, refresh_token: Optional[str] = None,
                 launcher: Optional[BrowserLauncher] = None, clock: Callable[[], int] = now_ms):
        missing = [] if issuer_url or (authorization_endpoint and token_endpoint) else ["issuer_url"]
        self._require(*missing, client_id=client_id)
        if redirect_uri and code_provider is None and local_redirect(redirect_uri) is None:
            raise ValidationError(
                f"{type(self).__name__}: redirect_uri {redirect_uri} is not a localhost URL with a port; "
                "a code_provider is required to capture the authorization code")
        super().__init__(access_token, refresh_token, clock)
        self.client_id = client_id
        self.issuer_url = issuer_url
        self.client_secret = client_secret
        self.scope = " ".join(scopes or DEFAULT_OIDC_SCOPES)
        self.authorization_endpoint = authorization_endpoint
        self.token_endpoint = token_endpoint
        self.redirect_uri = redirect_uri
        self.code_provider = code_provider
        self.browser = browser
        self.redirect_port = redirect_port
        self.timeout = timeout
        self.discovery_cache = discovery_cache
        self.launcher = launcher

    def _endpoint(self, explicit: Optional[str], attribute: str) -> str:
        return resolve_endpoint(explicit, self.issuer_url, attribute, self.discovery_cache)

    def perform_login(self) -> TokenResult:
        authorization_endpoint = self._endpoint(self.authorization_endpoint, "authorization_endpoint")
        token_endpoint = self._endpoint(self.token_endpoint, "token_endpoint")
        verifier, challenge = pkce_pair()
        state = generate_state()

        authorization_url = None

        def build_url(port: int) -> str:
            nonlocal authorization_url
            redirect = self.redirect_uri or f"http://localhost:{port}/callback"
            authorization_url = build_authorization_url(authorization_endpoint, self.client_id, redirect,
                                                        scope=self.scope, code_challenge=challenge, state=state)
            return authorization_url

        if self.code_provider is not None:
            redirect_uri = self.redirect_uri or f"http://localhost:{self.redirect_port}/callback"
            build_url(self.redirect_port)
            LOG.info("Requesting authorization code from code provider")
            code = self.code_provider(authorization_url)
            if not code:
                raise BrowserAuthError("Code provider returned no authorization code",
                                       authorization_url=authorization_url)
        else:
            # an explicit redirect_uri is registered as is; the listener must serve exactly it
            target = build_url(self.redirect_port) if self.redirect_uri else build_url
            callback = start_callback(target, browser=self.browser, timeout=self.timeout,
                                      base_port=self.redirect_port, launcher=self.launcher)
            if callback.state != state:
                raise BrowserAuthError("Authorization failed: state mismatch", authorization_url=authorization_url)
            code = callback.code
            redirect_uri = callback.redirect_uri

        tokens = exchange_code_for_token(token_endpoint, self.client_id, self.client_secret, code,
                                         redirect_uri, code_verifier=verifier)
        return self._from_response(tokens)

    def perform_refresh(self) -> TokenResult:
        token_endpoint = self._endpoint(self.token_endpoint, "token_endpoint")
        tokens = refresh_access_token(token_endpoint, self.client_id, self.client_secret, self.refresh_token)
        return self._from_response(tokens)
