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

from ..jwt_utils import now_ms
from ..lifecycle import TokenProvider
from ..models import AuthType, TokenResult
from ..oauth import client_credentials_grant, uaa_token_url


class ClientCredentialsProvider(TokenProvider):
    """Service-to-service tokens; refreshing simply repeats the grant."""

    auth_type = AuthType.CLIENT_CREDENTIALS

    def __init__(self, uaa_url: str, client_id: str, client_secret: str, scope: Optional[str] = None,
                 clock: Callable[[], int] = now_ms):
        self._require(uaa_url=uaa_url, client_id=client_id, client_secret=client_secret)
        super().__init__(clock=clock)
        self.uaa_url = uaa_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope

    def perform_login(self) -> TokenResult:
        tokens = client_credentials_grant(uaa_token_url(self.uaa_url), self.client_id, self.client_secret,
                                          self.scope)
        return self._result(tokens.access_token, expires_in=tokens.expires_in)

    def perform_refresh(self) -> TokenResult:
        return self.perform_login()
