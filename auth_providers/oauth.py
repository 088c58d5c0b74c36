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

"""One HTTP exchange per OAuth2 operation.

Every function here is stateless: it posts a single form-encoded request and
returns a parsed ``TokenResponse`` (or ``DeviceFlowSession``). HTTP and
transport failures surface as ``TokenEndpointError`` carrying the status code
and the decoded response body, so callers such as the device poller can read
the OAuth2 ``error`` value.
"""

import base64
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests

from .errors import TokenEndpointError
from .jwt_utils import mask_token
from .models import DeviceFlowSession, TokenResponse

LOG = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 30

GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"
GRANT_CLIENT_CREDENTIALS = "client_credentials"
GRANT_PASSWORD = "password"
GRANT_DEVICE_CODE = "urn:ietf:params:oauth:grant-type:device_code"
GRANT_TOKEN_EXCHANGE = "urn:ietf:params:oauth:grant-type:token-exchange"
GRANT_SAML2_BEARER = "urn:ietf:params:oauth:grant-type:saml2-bearer"


def b64_basic(client_id: str, client_secret: str) -> str:
    return base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()


def uaa_token_url(uaa_url: str) -> str:
    return f"{uaa_url.rstrip('/')}/oauth/token"


def uaa_authorize_url(uaa_url: str) -> str:
    return f"{uaa_url.rstrip('/')}/oauth/authorize"


def uaa_device_url(uaa_url: str) -> str:
    return f"{uaa_url.rstrip('/')}/oauth/device_authorization"


def build_authorization_url(authorization_endpoint: str, client_id: str, redirect_uri: str,
                            scope: Optional[str] = None, code_challenge: Optional[str] = None,
                            state: Optional[str] = None) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
    }
    if scope:
        params["scope"] = scope
    if state:
        params["state"] = state
    if code_challenge:
        params["code_challenge"] = code_challenge
        params["code_challenge_method"] = "S256"
    return authorization_endpoint + "?" + urlencode(params)


def _response_body(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _form_headers(client_id: Optional[str], client_secret: Optional[str]) -> Dict[str, str]:
    headers = {"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"}
    if client_id and client_secret:
        headers["Authorization"] = f"Basic {b64_basic(client_id, client_secret)}"
    return headers


def post_form(url: str, data: Dict[str, str], client_id: Optional[str] = None,
              client_secret: Optional[str] = None, operation: str = "Token request") -> Dict[str, Any]:
    """POST ``data`` to ``url`` and return the decoded JSON body."""
    try:
        resp = requests.post(url, data=data, headers=_form_headers(client_id, client_secret),
                             timeout=HTTP_TIMEOUT_SECONDS)
    except requests.exceptions.RequestException as e:
        raise TokenEndpointError(f"{operation} failed: {e}") from e
    if resp.status_code >= 400:
        body = _response_body(resp)
        raise TokenEndpointError(f"{operation} failed ({resp.status_code}): {body}",
                                 status=resp.status_code, body=body)
    body = _response_body(resp)
    if not isinstance(body, dict):
        raise TokenEndpointError(f"{operation} returned a non-JSON body", status=resp.status_code, body=body)
    return body


def _token_response(body: Dict[str, Any], operation: str) -> TokenResponse:
    if not body.get("access_token"):
        LOG.error("%s failed: error=%s", operation, body.get("error", "unknown"))
        raise TokenEndpointError("Response does not contain access_token", body=body)
    tokens = TokenResponse.from_json(body)
    LOG.debug("%s succeeded: access_token=%s refresh_token=%s", operation,
              mask_token(tokens.access_token), mask_token(tokens.refresh_token))
    return tokens


# ---------- Grants ----------

def exchange_code_for_token(token_url: str, client_id: str, client_secret: Optional[str], code: str,
                            redirect_uri: str, code_verifier: Optional[str] = None) -> TokenResponse:
    data = {
        "grant_type": GRANT_AUTHORIZATION_CODE,
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_id,
    }
    if code_verifier:
        data["code_verifier"] = code_verifier
    LOG.info("Exchanging authorization code for tokens at %s", token_url)
    body = post_form(token_url, data, client_id, client_secret, "Authorization code exchange")
    return _token_response(body, "Authorization code exchange")


def refresh_access_token(token_url: str, client_id: str, client_secret: Optional[str],
                         refresh_token: str) -> TokenResponse:
    """Run a refresh_token grant; keeps the old refresh token when none is returned."""
    data = {
        "grant_type": GRANT_REFRESH_TOKEN,
        "refresh_token": refresh_token,
        "client_id": client_id,
    }
    LOG.info("Refreshing access token at %s", token_url)
    body = post_form(token_url, data, client_id, client_secret, "Token refresh")
    tokens = _token_response(body, "Token refresh")
    if not tokens.refresh_token:
        tokens.refresh_token = refresh_token
    return tokens


def client_credentials_grant(token_url: str, client_id: str, client_secret: str,
                             scope: Optional[str] = None) -> TokenResponse:
    data = {"grant_type": GRANT_CLIENT_CREDENTIALS, "client_id": client_id}
    if scope:
        data["scope"] = scope
    LOG.info("Requesting client_credentials token at %s", token_url)
    body = post_form(token_url, data, client_id, client_secret, "Client credentials authentication")
    tokens = _token_response(body, "Client credentials authentication")
    # this grant never issues refresh tokens, even if a server sends one
    tokens.refresh_token = None
    return tokens


def password_grant(token_url: str, client_id: str, client_secret: Optional[str], username: str,
                   password: str, scope: Optional[str] = None) -> TokenResponse:
    data = {
        "grant_type": GRANT_PASSWORD,
        "username": username,
        "password": password,
        "client_id": client_id,
    }
    if scope:
        data["scope"] = scope
    LOG.info("Performing password grant at %s for user %s", token_url, username)
    body = post_form(token_url, data, client_id, client_secret, "Password grant")
    return _token_response(body, "Password grant")


def token_exchange(token_url: str, client_id: str, client_secret: Optional[str], subject_token: str,
                   subject_token_type: str, scope: Optional[str] = None, audience: Optional[str] = None,
                   actor_token: Optional[str] = None, actor_token_type: Optional[str] = None,
                   requested_token_type: Optional[str] = None) -> TokenResponse:
    data = {
        "grant_type": GRANT_TOKEN_EXCHANGE,
        "subject_token": subject_token,
        "subject_token_type": subject_token_type,
        "client_id": client_id,
    }
    optional = {
        "scope": scope,
        "audience": audience,
        "actor_token": actor_token,
        "actor_token_type": actor_token_type,
        "requested_token_type": requested_token_type,
    }
    data.update({k: v for k, v in optional.items() if v})
    LOG.info("Performing token exchange at %s", token_url)
    body = post_form(token_url, data, client_id, client_secret, "Token exchange")
    return _token_response(body, "Token exchange")


def exchange_saml_assertion(token_url: str, assertion: str, client_id: Optional[str] = None,
                            client_secret: Optional[str] = None) -> TokenResponse:
    data = {"grant_type": GRANT_SAML2_BEARER, "assertion": assertion}
    if client_id:
        data["client_id"] = client_id
    LOG.info("Exchanging SAML assertion for token at %s", token_url)
    body = post_form(token_url, data, client_id, client_secret, "SAML assertion exchange")
    return _token_response(body, "SAML assertion exchange")


# ---------- Device authorization ----------

def initiate_device_authorization(device_url: str, client_id: str,
                                  scope: Optional[str] = None) -> DeviceFlowSession:
    data = {"client_id": client_id}
    if scope:
        data["scope"] = scope
    LOG.info("Initiating device authorization at %s", device_url)
    body = post_form(device_url, data, operation="Device flow initiation")
    missing = [k for k in ("device_code", "user_code", "verification_uri") if not body.get(k)]
    if missing:
        raise TokenEndpointError(
            f"Device authorization response missing required fields: {', '.join(missing)}", body=body)
    return DeviceFlowSession(
        device_code=body["device_code"],
        user_code=body["user_code"],
        verification_uri=body["verification_uri"],
        verification_uri_complete=body.get("verification_uri_complete"),
        expires_in=int(body.get("expires_in") or 1800),
        interval=int(body.get("interval") or 5),
    )


def poll_device_token(token_url: str, client_id: str, client_secret: Optional[str],
                      device_code: str) -> TokenResponse:
    """A single device_code poll; pending states raise ``TokenEndpointError``."""
    data = {
        "grant_type": GRANT_DEVICE_CODE,
        "device_code": device_code,
        "client_id": client_id,
    }
    body = post_form(token_url, data, client_id, client_secret, "Device token poll")
    return _token_response(body, "Device token poll")
