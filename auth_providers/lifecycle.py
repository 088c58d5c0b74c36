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

"""Token caching and the refresh-or-relogin policy shared by every provider."""

import abc
import dataclasses
import logging
from typing import Callable, Optional

from .errors import RefreshError, ValidationError
from .jwt_utils import is_expiry_valid, jwt_expires_at_ms, jwt_expires_in, mask_token, now_ms
from .models import AuthType, TokenResponse, TokenResult

LOG = logging.getLogger(__name__)


class TokenLifecycle:
    """Cached credential state plus the three-step ``get_tokens`` policy.

    1. A cached token valid for more than the expiry buffer is returned as is.
    2. Otherwise a held refresh token is tried once. Any failure discards it.
    3. Otherwise (or after a failed refresh) a full login runs.

    A token without a known expiry is never served from cache.
    """

    def __init__(self, auth_type: AuthType, access_token: Optional[str] = None,
                 refresh_token: Optional[str] = None, token_type: Optional[str] = None,
                 clock: Callable[[], int] = now_ms):
        self.auth_type = auth_type
        self.token_type = token_type
        self.clock = clock
        self.authorization_token = access_token or None
        self.refresh_token = refresh_token or None
        self.expires_at = jwt_expires_at_ms(access_token) if access_token else None

    def is_token_valid(self) -> bool:
        if not self.authorization_token or not self.expires_at:
            LOG.debug("Token invalid: token=%s expires_at=%s",
                      bool(self.authorization_token), self.expires_at)
            return False
        return is_expiry_valid(self.expires_at, self.clock())

    def cached_result(self) -> TokenResult:
        remaining = None
        if self.expires_at:
            remaining = max(0, (self.expires_at - self.clock()) // 1000)
        return TokenResult(
            authorization_token=self.authorization_token,
            auth_type=self.auth_type,
            refresh_token=self.refresh_token,
            expires_in=remaining,
            expires_at=self.expires_at,
            token_type=self.token_type,
        )

    def update(self, result: TokenResult) -> None:
        self.authorization_token = result.authorization_token
        self.refresh_token = result.refresh_token
        if result.expires_at:
            self.expires_at = result.expires_at
        elif result.expires_in:
            self.expires_at = self.clock() + result.expires_in * 1000
        else:
            self.expires_at = jwt_expires_at_ms(result.authorization_token)
        if result.token_type:
            self.token_type = result.token_type

    def get_tokens(self, perform_login: Callable[[], TokenResult],
                   perform_refresh: Callable[[], TokenResult]) -> TokenResult:
        if self.is_token_valid():
            LOG.debug("Returning cached token %s", mask_token(self.authorization_token))
            return self.cached_result()

        if self.refresh_token:
            LOG.info("Token missing or expired; attempting refresh")
            try:
                result = self._refresh(perform_refresh)
            except RefreshError as e:
                LOG.warning("Refresh failed, falling back to login: %s", e)
                self.refresh_token = None
            else:
                LOG.info("Token refreshed successfully")
                return result

        LOG.info("No usable token or refresh token; performing login")
        result = perform_login()
        self.update(result)
        LOG.info("Login completed")
        return result

    def _refresh(self, perform_refresh: Callable[[], TokenResult]) -> TokenResult:
        previous = self.refresh_token
        try:
            result = perform_refresh()
        except Exception as e:
            raise RefreshError(f"Token refresh failed: {e}", cause=e) from e
        if not result.refresh_token and previous:
            result = dataclasses.replace(result, refresh_token=previous)
        self.update(result)
        return result


class TokenProvider(abc.ABC):
    """Base class for every credential strategy.

    Subclasses supply ``auth_type``, ``perform_login`` and ``perform_refresh``;
    caching and the refresh fallback live in the composed ``TokenLifecycle``.
    """

    auth_type: AuthType
    token_type: Optional[str] = None

    def __init__(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None,
                 clock: Callable[[], int] = now_ms):
        self.lifecycle = TokenLifecycle(self.auth_type, access_token, refresh_token,
                                        self.token_type, clock)

    @abc.abstractmethod
    def perform_login(self) -> TokenResult:
        ...

    @abc.abstractmethod
    def perform_refresh(self) -> TokenResult:
        ...

    @property
    def refresh_token(self) -> Optional[str]:
        return self.lifecycle.refresh_token

    def is_token_valid(self) -> bool:
        return self.lifecycle.is_token_valid()

    def get_tokens(self) -> TokenResult:
        return self.lifecycle.get_tokens(self.perform_login, self.perform_refresh)

    def validate_token(self, token: str, service_url: Optional[str] = None) -> bool:
        expires_at = jwt_expires_at_ms(token)
        if not expires_at:
            LOG.warning("Token validation failed: cannot parse expiration")
            return False
        valid = is_expiry_valid(expires_at, self.lifecycle.clock())
        LOG.debug("Token validation result: valid=%s expires_in=%ss", valid,
                  (expires_at - self.lifecycle.clock()) // 1000)
        return valid

    def _result(self, authorization_token: str, refresh_token: Optional[str] = None,
                expires_in: Optional[int] = None, expires_at: Optional[int] = None) -> TokenResult:
        return TokenResult(
            authorization_token=authorization_token,
            auth_type=self.auth_type,
            refresh_token=refresh_token,
            expires_in=expires_in,
            expires_at=expires_at,
            token_type=self.token_type,
        )

    def _from_response(self, tokens: TokenResponse) -> TokenResult:
        return self._result(tokens.access_token, tokens.refresh_token,
                            expires_in=tokens.expires_in or jwt_expires_in(tokens.access_token))

    def _require(self, *missing_names: str, **fields) -> None:
        """Raise one ValidationError naming every empty ``fields`` entry plus ``missing_names``."""
        missing = [name for name, value in fields.items() if not value] + list(missing_names)
        if missing:
            raise ValidationError.for_missing(type(self).__name__, missing)
