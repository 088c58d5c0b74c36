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
import time
from typing import Callable, List, Optional

from ..device import poll_for_tokens
from ..discovery import DiscoveryCache, resolve_endpoint
from ..jwt_utils import now_ms
from ..lifecycle import TokenProvider
from ..models import TOKEN_TYPE_JWT, AuthType, DeviceFlowSession, TokenResult
from ..oauth import (initiate_device_authorization, poll_device_token, refresh_access_token,
                     uaa_device_url, uaa_token_url)

LOG = logging.getLogger(__name__)


def log_device_prompt(session: DeviceFlowSession) -> None:
    LOG.warning("Device authorization: go to %s", session.verification_uri)
    if session.verification_uri_complete:
        LOG.warning("Or open: %s", session.verification_uri_complete)
    LOG.warning("Enter code: %s", session.user_code)
    LOG.warning("Waiting for authorization (code expires in %ds)...", session.expires_in)


class _DeviceFlowBase(TokenProvider):
    auth_type = AuthType.AUTHORIZATION_CODE

    def __init__(self, client_id: str, client_secret: Optional[str], scope: Optional[str],
                 access_token: Optional[str], refresh_token: Optional[str],
                 prompt: Optional[Callable[[DeviceFlowSession], None]],
                 sleep: Callable[[float], None], clock: Callable[[], int]):
        super().__init__(access_token, refresh_token, clock)
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.prompt = prompt
        self.sleep = sleep

    def device_endpoint(self) -> str:
        raise NotImplementedError

    def token_endpoint_url(self) -> str:
        raise NotImplementedError

    def perform_login(self) -> TokenResult:
        session = initiate_device_authorization(self.device_endpoint(), self.client_id, self.scope)
        log_device_prompt(session)
        if self.prompt is not None:
            self.prompt(session)
        token_url = self.token_endpoint_url()
        tokens = poll_for_tokens(
            lambda device_code: poll_device_token(token_url, self.client_id, self.client_secret, device_code),
            session.device_code, session.interval, sleep=self.sleep)
        return self._from_response(tokens)

    def perform_refresh(self) -> TokenResult:
        tokens = refresh_access_token(self.token_endpoint_url(), self.client_id, self.client_secret,
                                      self.refresh_token)
        return self._from_response(tokens)


class DeviceFlowProvider(_DeviceFlowBase):
    """UAA device authorization grant; ``client_secret`` is optional for public clients."""

    def __init__(self, uaa_url: str, client_id: str, client_secret: Optional[str] = None,
                 scope: Optional[str] = None, access_token: Optional[str] = None,
                 refresh_token: Optional[str] = None,
                 prompt: Optional[Callable[[DeviceFlowSession], None]] = None,
                 sleep: Callable[[float], None] = time.sleep, clock: Callable[[], int] = now_ms):
        self._require(uaa_url=uaa_url, client_id=client_id)
        super().__init__(client_id, client_secret, scope, access_token, refresh_token, prompt, sleep, clock)
        self.uaa_url = uaa_url.rstrip("/")

    def device_endpoint(self) -> str:
        return uaa_device_url(self.uaa_url)

    def token_endpoint_url(self) -> str:
        return uaa_token_url(self.uaa_url)


class OidcDeviceFlowProvider(_DeviceFlowBase):
    token_type = TOKEN_TYPE_JWT

    def __init__(self, client_id: str, issuer_url: Optional[str] = None, client_secret: Optional[str] = None,
                 scopes: Optional[List[str]] = None, device_authorization_endpoint: Optional[str] = None,
                 token_endpoint: Optional[str] = None, discovery_cache: Optional[DiscoveryCache] = None,
                 access_token: Optional[str] = None, refresh_token: Optional[str] = None,
                 prompt: Optional[Callable[[DeviceFlowSession], None]] = None,
                 sleep: Callable[[float], None] = time.sleep, clock: Callable[[], int] = now_ms):
        missing = [] if issuer_url or (device_authorization_endpoint and token_endpoint) else ["issuer_url"]
        self._require(*missing, client_id=client_id)
        scope = " ".join(scopes) if scopes else None
        super().__init__(client_id, client_secret, scope, access_token, refresh_token, prompt, sleep, clock)
        self.issuer_url = issuer_url
        self.device_authorization_endpoint = device_authorization_endpoint
        self.token_endpoint = token_endpoint
        self.discovery_cache = discovery_cache

    def device_endpoint(self) -> str:
        return resolve_endpoint(self.device_authorization_endpoint, self.issuer_url,
                                "device_authorization_endpoint", self.discovery_cache)

    def token_endpoint_url(self) -> str:
        return resolve_endpoint(self.token_endpoint, self.issuer_url, "token_endpoint", self.discovery_cache)
