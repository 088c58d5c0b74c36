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

import requests

from ..browser import BrowserLauncher
from ..callback import DEFAULT_CALLBACK_PORT, DEFAULT_CALLBACK_TIMEOUT_SECONDS, start_callback
from ..jwt_utils import mask_token, now_ms
from ..lifecycle import TokenProvider
from ..models import AuthType, TokenResult
from ..oauth import (HTTP_TIMEOUT_SECONDS, build_authorization_url, exchange_code_for_token,
                     refresh_access_token, uaa_authorize_url, uaa_token_url)

LOG = logging.getLogger(__name__)


class AuthorizationCodeProvider(TokenProvider):
    """UAA authorization-code login through the local browser callback."""

    auth_type = AuthType.AUTHORIZATION_CODE

    def __init__(self, uaa_url: str, client_id: str, client_secret: str,
                 authorization_url: Optional[str] = None, browser: str = "system",
                 redirect_port: int = DEFAULT_CALLBACK_PORT,
                 timeout: float = DEFAULT_CALLBACK_TIMEOUT_SECONDS,
                 scope: Optional[str] = None,
                 access_token: Optional[str] = None, refresh_token: Optional[str] = None,
                 launcher: Optional[BrowserLauncher] = None, clock: Callable[[], int] = now_ms):
        self._require(uaa_url=uaa_url, client_id=client_id, client_secret=client_secret)
        super().__init__(access_token, refresh_token, clock)
        self.uaa_url = uaa_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.authorization_url = authorization_url
        self.browser = browser
        self.redirect_port = redirect_port
        self.timeout = timeout
        self.scope = scope
        self.launcher = launcher
        LOG.debug("AuthorizationCodeProvider created: uaa_url=%s client_id=%s access_token=%s refresh_token=%s",
                  self.uaa_url, client_id, mask_token(access_token), mask_token(refresh_token))

    def build_url(self, port: int) -> str:
        return build_authorization_url(uaa_authorize_url(self.uaa_url), self.client_id,
                                       f"http://localhost:{port}/callback", scope=self.scope)

    def perform_login(self) -> TokenResult:
        LOG.info("Performing login via browser (%s)", self.browser)
        callback = start_callback(self.authorization_url or self.build_url, browser=self.browser,
                                  timeout=self.timeout, base_port=self.redirect_port, launcher=self.launcher)
        tokens = exchange_code_for_token(uaa_token_url(self.uaa_url), self.client_id, self.client_secret,
                                         callback.code, callback.redirect_uri)
        return self._from_response(tokens)

    def perform_refresh(self) -> TokenResult:
        tokens = refresh_access_token(uaa_token_url(self.uaa_url), self.client_id, self.client_secret,
                                      self.refresh_token)
        return self._from_response(tokens)

    def validate_token(self, token: str, service_url: Optional[str] = None) -> bool:
        if not super().validate_token(token):
            return False
        if not service_url:
            return True
        try:
            resp = requests.get(service_url, headers={"Authorization": f"Bearer {token}"},
                                timeout=HTTP_TIMEOUT_SECONDS)
        except requests.exceptions.RequestException as e:
            LOG.warning("Token validation request to %s failed: %s", service_url, e)
            return False
        if resp.status_code in (401, 403):
            LOG.info("Token rejected by %s (%d)", service_url, resp.status_code)
            return False
        return True
