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

"""Obtain, cache and refresh OAuth2 / OIDC / SAML2 bearer credentials."""

from .discovery import DiscoveryCache, discover_oidc
from .errors import (BrowserAuthError, CallbackPortError, CallbackTimeoutError, DeviceFlowError,
                     DiscoveryError, RefreshError, SamlError, ServiceKeyError, SessionDataError,
                     TokenEndpointError, TokenProviderError, ValidationError)
from .factory import create_provider
from .lifecycle import TokenLifecycle, TokenProvider
from .models import AuthorizationConfig, AuthType, DiscoveryDocument, TokenResult
from .providers import (AuthorizationCodeProvider, CfPasscodeProvider, ClientCredentialsProvider,
                        DeviceFlowProvider, OidcBrowserProvider, OidcDeviceFlowProvider,
                        OidcPasswordProvider, OidcTokenExchangeProvider, Saml2BearerProvider,
                        Saml2PureProvider)

__version__ = "0.1.0"
