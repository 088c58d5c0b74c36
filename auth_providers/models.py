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

"""Value types shared by the providers, transports and the callback listener."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional


class AuthType(str, Enum):
    AUTHORIZATION_CODE = "authorization_code"
    AUTHORIZATION_CODE_PKCE = "authorization_code_pkce"
    CLIENT_CREDENTIALS = "client_credentials"
    PASSWORD = "password"
    USER_TOKEN = "user_token"
    SAML2_BEARER = "saml2_bearer"


TOKEN_TYPE_JWT = "jwt"
TOKEN_TYPE_SAML = "saml"


@dataclass(frozen=True)
class TokenResult:
    """Credential handed back by ``get_tokens()``.

    ``expires_at`` is epoch milliseconds and is only set by strategies that know
    the absolute expiry (SAML assertions). ``expires_in`` is seconds.
    """

    authorization_token: str
    auth_type: AuthType
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    expires_at: Optional[int] = None
    token_type: Optional[str] = None

    def __post_init__(self):
        if not self.authorization_token:
            raise ValueError("authorization_token must be a non-empty string")


@dataclass
class AuthorizationConfig:
    uaa_url: str
    client_id: str
    client_secret: Optional[str] = None
    refresh_token: Optional[str] = None

    def missing_fields(self, require_secret: bool = True) -> List[str]:
        missing = [k for k in ("uaa_url", "client_id") if not getattr(self, k)]
        if require_secret and not self.client_secret:
            missing.append("client_secret")
        return missing


@dataclass
class TokenResponse:
    """Parsed body of a successful token endpoint call."""

    access_token: str
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "TokenResponse":
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            id_token=data.get("id_token"),
            expires_in=int(expires_in) if expires_in is not None else None,
            token_type=data.get("token_type"),
        )


@dataclass
class DiscoveryDocument:
    issuer: Optional[str]
    token_endpoint: str
    authorization_endpoint: Optional[str] = None
    device_authorization_endpoint: Optional[str] = None
    jwks_uri: Optional[str] = None
    end_session_endpoint: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "DiscoveryDocument":
        return cls(
            issuer=data.get("issuer"),
            token_endpoint=data["token_endpoint"],
            authorization_endpoint=data.get("authorization_endpoint"),
            device_authorization_endpoint=data.get("device_authorization_endpoint"),
            jwks_uri=data.get("jwks_uri"),
            end_session_endpoint=data.get("end_session_endpoint"),
            raw=dict(data),
        )


@dataclass(frozen=True)
class DeviceFlowSession:
    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: Optional[str] = None
    expires_in: int = 1800
    interval: int = 5


class PkceChallenge(NamedTuple):
    verifier: str
    challenge: str


@dataclass(frozen=True)
class CallbackResult:
    code: Optional[str] = None
    state: Optional[str] = None
    saml_response: Optional[str] = None
    redirect_uri: Optional[str] = None
