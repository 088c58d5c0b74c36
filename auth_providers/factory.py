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

"""Build a provider from a ``{"protocol", "flow", "config"}`` descriptor."""

from typing import Any, Dict, Mapping, Tuple, Type

from .errors import ValidationError
from .lifecycle import TokenProvider
from .providers import (AuthorizationCodeProvider, CfPasscodeProvider, ClientCredentialsProvider,
                        DeviceFlowProvider, OidcBrowserProvider, OidcDeviceFlowProvider,
                        OidcPasswordProvider, OidcTokenExchangeProvider, Saml2BearerProvider,
                        Saml2PureProvider)

PROVIDERS: Dict[Tuple[str, str], Type[TokenProvider]] = {
    ("oidc", "browser"): OidcBrowserProvider,
    ("oidc", "device"): OidcDeviceFlowProvider,
    ("oidc", "password"): OidcPasswordProvider,
    ("oidc", "token_exchange"): OidcTokenExchangeProvider,
    ("saml2", "bearer"): Saml2BearerProvider,
    ("saml2", "pure"): Saml2PureProvider,
    ("uaa", "authorization_code"): AuthorizationCodeProvider,
    ("uaa", "device"): DeviceFlowProvider,
    ("uaa", "client_credentials"): ClientCredentialsProvider,
    ("uaa", "passcode"): CfPasscodeProvider,
}


def create_provider(descriptor: Mapping[str, Any]) -> TokenProvider:
    protocol = descriptor.get("protocol")
    flow = descriptor.get("flow")
    provider_cls = PROVIDERS.get((protocol, flow))
    if provider_cls is None:
        raise ValidationError(f"Unsupported provider: protocol={protocol!r} flow={flow!r}")
    config = descriptor.get("config") or {}
    try:
        return provider_cls(**config)
    except TypeError as e:
        raise ValidationError(f"Invalid configuration for {protocol}/{flow}: {e}") from e
