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

from ..discovery import DiscoveryCache, resolve_endpoint
from ..errors import ValidationError
from ..jwt_utils import now_ms
from ..lifecycle import TokenProvider
from ..models import TOKEN_TYPE_JWT, AuthType, TokenResult
from ..oauth import password_grant, refresh_access_token, uaa_token_url

LOG = logging.getLogger(__name__)

CF_PASSCODE_USERNAME = "passcode"


class OidcPasswordProvider(TokenProvider):
    """Resource-owner password grant against an OIDC token endpoint."""

    auth_type = AuthType.PASSWORD
    token_type = TOKEN_TYPE_JWT

    def __init__(self, client_id: str, username: str, password: str, issuer_url: Optional[str] = None,
                 token_endpoint: Optional[str] = None, client_secret: Optional[str] = None,
                 scopes: Optional[List[str]] = None, discovery_cache: Optional[DiscoveryCache] = None,
                 access_token: Optional[str] = None, refresh_token: Optional[str] = None,
                 clock: Callable[[], int] = now_ms):
        missing = [] if issuer_url or token_endpoint else ["issuer_url"]
        self._require(*missing, client_id=client_id, username=username, password=password)
        super().__init__(access_token, refresh_token, clock)
        self.client_id = client_id
        self.username = username
        self.password = password
        self.issuer_url = issuer_url
        self.token_endpoint = token_endpoint
        self.client_secret = client_secret
        self.scope = " ".join(scopes) if scopes else None
        self.discovery_cache = discovery_cache

    def token_endpoint_url(self) -> str:
        return resolve_endpoint(self.token_endpoint, self.issuer_url, "token_endpoint", self.discovery_cache)

    def perform_login(self) -> TokenResult:
        tokens = password_grant(self.token_endpoint_url(), self.client_id, self.client_secret,
                                self.username, self.password, self.scope)
        return self._from_response(tokens)

    def perform_refresh(self) -> TokenResult:
        tokens = refresh_access_token(self.token_endpoint_url(), self.client_id, self.client_secret,
                                      self.refresh_token)
        return self._from_response(tokens)


class CfPasscodeProvider(TokenProvider):
    """Cloud Foundry one-time passcode login (password grant, username ``passcode``).

    The passcode is taken from ``passcode`` if set, otherwise from
    ``passcode_provider()`` at login time.
    """

    auth_type = AuthType.PASSWORD
    token_type = TOKEN_TYPE_JWT

    def __init__(self, uaa_url: str, client_id: str, client_secret: Optional[str] = None,
                 passcode: Optional[str] = None, passcode_provider: Optional[Callable[[], str]] = None,
                 username: str = CF_PASSCODE_USERNAME, scope: Optional[str] = None,
                 access_token: Optional[str] = None, refresh_token: Optional[str] = None,
                 clock: Callable[[], int] = now_ms):
        self._require(uaa_url=uaa_url, client_id=client_id)
        super().__init__(access_token, refresh_token, clock)
        self.uaa_url = uaa_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.passcode = passcode
        self.passcode_provider = passcode_provider
        self.username = username or CF_PASSCODE_USERNAME
        self.scope = scope

    def resolve_passcode(self) -> str:
        if self.passcode:
            return self.passcode
        if self.passcode_provider is not None:
            LOG.debug("Requesting passcode from passcode provider")
            code = self.passcode_provider()
            if not code:
                raise ValidationError("Passcode provider returned empty value", ["passcode"])
            return code
        raise ValidationError("Passcode is required for CF SSO flow", ["passcode"])

    def perform_login(self) -> TokenResult:
        passcode = self.resolve_passcode()
        tokens = password_grant(uaa_token_url(self.uaa_url), self.client_id, self.client_secret,
                                self.username, passcode, self.scope)
        return self._from_response(tokens)

    def perform_refresh(self) -> TokenResult:
        tokens = refresh_access_token(uaa_token_url(self.uaa_url), self.client_id, self.client_secret,
                                      self.refresh_token)
        return self._from_response(tokens)
