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

from typing import Callable, Optional

from ..discovery import DiscoveryCache, resolve_endpoint
from ..jwt_utils import now_ms
from ..lifecycle import TokenProvider
from ..models import TOKEN_TYPE_JWT, AuthType, TokenResult
from ..oauth import token_exchange


class OidcTokenExchangeProvider(TokenProvider):
    """RFC 8693 token exchange. There is no refresh; an expired token is re-exchanged."""

    auth_type = AuthType.USER_TOKEN
    token_type = TOKEN_TYPE_JWT

    def __init__(self, client_id: str, subject_token: str, subject_token_type: str,
                 issuer_url: Optional[str] = None, token_endpoint: Optional[str] = None,
                 client_secret: Optional[str] = None, scope: Optional[str] = None,
                 audience: Optional[str] = None, actor_token: Optional[str] = None,
                 actor_token_type: Optional[str] = None, requested_token_type: Optional[str] = None,
                 discovery_cache: Optional[DiscoveryCache] = None,
                 access_token: Optional[str] = None, refresh_token: Optional[str] = None,
                 clock: Callable[[], int] = now_ms):
        missing = [] if issuer_url or token_endpoint else ["issuer_url"]
        if actor_token and not actor_token_type:
            missing.append("actor_token_type")
        self._require(*missing, client_id=client_id, subject_token=subject_token,
                      subject_token_type=subject_token_type)
        super().__init__(access_token, refresh_token, clock)
        self.client_id = client_id
        self.subject_token = subject_token
        self.subject_token_type = subject_token_type
        self.issuer_url = issuer_url
        self.token_endpoint = token_endpoint
        self.client_secret = client_secret
        self.scope = scope
        self.audience = audience
        self.actor_token = actor_token
        self.actor_token_type = actor_token_type
        self.requested_token_type = requested_token_type
        self.discovery_cache = discovery_cache

    def perform_login(self) -> TokenResult:
        token_url = resolve_endpoint(self.token_endpoint, self.issuer_url, "token_endpoint", self.discovery_cache)
        tokens = token_exchange(token_url, self.client_id, self.client_secret, self.subject_token,
                                self.subject_token_type, scope=self.scope, audience=self.audience,
                                actor_token=self.actor_token, actor_token_type=self.actor_token_type,
                                requested_token_type=self.requested_token_type)
        return self._from_response(tokens)

    def perform_refresh(self) -> TokenResult:
        return self.perform_login()
