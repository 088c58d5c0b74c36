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

"""Error types raised by token providers and their helpers."""

from typing import Any, Iterable, Optional

VALIDATION_ERROR = "VALIDATION_ERROR"
REFRESH_ERROR = "REFRESH_ERROR"
SESSION_DATA_ERROR = "SESSION_DATA_ERROR"
SERVICE_KEY_ERROR = "SERVICE_KEY_ERROR"
BROWSER_AUTH_ERROR = "BROWSER_AUTH_ERROR"
TOKEN_ENDPOINT_ERROR = "TOKEN_ENDPOINT_ERROR"
DISCOVERY_ERROR = "DISCOVERY_ERROR"
DEVICE_FLOW_ERROR = "DEVICE_FLOW_ERROR"
CALLBACK_ERROR = "CALLBACK_ERROR"
SAML_ERROR = "SAML_ERROR"


class TokenProviderError(Exception):
    code = "TOKEN_PROVIDER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ValidationError(TokenProviderError):
    """Configuration is incomplete; ``missing_fields`` lists every gap."""

    code = VALIDATION_ERROR

    def __init__(self, message: str, missing_fields: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.missing_fields = list(missing_fields or [])

    @classmethod
    def for_missing(cls, owner: str, missing: Iterable[str]) -> "ValidationError":
        missing = list(missing)
        return cls(f"{owner}: missing required fields: {', '.join(missing)}", missing)


class RefreshError(TokenProviderError):
    code = REFRESH_ERROR

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class SessionDataError(TokenProviderError):
    code = SESSION_DATA_ERROR

    def __init__(self, message: str, missing_fields: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.missing_fields = list(missing_fields or [])


class ServiceKeyError(TokenProviderError):
    code = SERVICE_KEY_ERROR

    def __init__(self, message: str, missing_fields: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.missing_fields = list(missing_fields or [])


class BrowserAuthError(TokenProviderError):
    """Browser launch or callback failure.

    The authorization URL is kept on the error so the user can still finish the
    flow by hand.
    """

    code = BROWSER_AUTH_ERROR

    def __init__(self, message: str, authorization_url: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.authorization_url = authorization_url
        self.cause = cause


class TokenEndpointError(TokenProviderError):
    code = TOKEN_ENDPOINT_ERROR

    def __init__(self, message: str, status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def error(self) -> Optional[str]:
        """OAuth2 ``error`` value from the response body, if any."""
        if isinstance(self.body, dict):
            value = self.body.get("error")
            return value if isinstance(value, str) else None
        return None


class DiscoveryError(TokenProviderError):
    code = DISCOVERY_ERROR


class DeviceFlowError(TokenProviderError):
    code = DEVICE_FLOW_ERROR


class CallbackPortError(TokenProviderError):
    code = CALLBACK_ERROR


class CallbackTimeoutError(TokenProviderError):
    code = CALLBACK_ERROR


class SamlError(TokenProviderError):
    code = SAML_ERROR
