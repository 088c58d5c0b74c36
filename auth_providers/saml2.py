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

"""SAML 2.0 helpers: AuthnRequest construction and assertion acquisition."""

import base64
import binascii
import logging
import re
import uuid
import zlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional
from urllib.parse import quote
from xml.sax.saxutils import escape, quoteattr

from .browser import BrowserLauncher
from .callback import DEFAULT_CALLBACK_PORT, DEFAULT_CALLBACK_TIMEOUT_SECONDS, start_callback
from .errors import SamlError, ValidationError
from .oauth import uaa_token_url

LOG = logging.getLogger(__name__)

SAML_PROTOCOL_NS = "urn:oasis:names:tc:SAML:2.0:protocol"
SAML_ASSERTION_NS = "urn:oasis:names:tc:SAML:2.0:assertion"
HTTP_POST_BINDING = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"

ASSERTION_FLOWS = ("browser", "manual", "assertion")

_NOT_ON_OR_AFTER = re.compile(r'NotOnOrAfter="([^"]+)"')
_FRACTION = re.compile(r"\.(\d+)")


def build_authn_request_xml(sp_entity_id: str, acs_url: str) -> str:
    issue_instant = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    request_id = f"_{uuid.uuid4()}"
    return "".join([
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<samlp:AuthnRequest xmlns:samlp="{SAML_PROTOCOL_NS}"',
        f' xmlns:saml="{SAML_ASSERTION_NS}"',
        f' ID="{request_id}"',
        ' Version="2.0"',
        f' IssueInstant="{issue_instant}"',
        f' ProtocolBinding="{HTTP_POST_BINDING}"',
        f" AssertionConsumerServiceURL={quoteattr(acs_url)}>",
        f"<saml:Issuer>{escape(sp_entity_id)}</saml:Issuer>",
        "</samlp:AuthnRequest>",
    ])


def build_saml_authorization_url(idp_sso_url: str, sp_entity_id: str, acs_url: str,
                                 relay_state: Optional[str] = None,
                                 authorization_url: Optional[str] = None) -> str:
    """HTTP-Redirect binding URL; an explicit ``authorization_url`` wins."""
    if authorization_url:
        return authorization_url
    xml = build_authn_request_xml(sp_entity_id, acs_url)
    # raw DEFLATE (no zlib header), as the redirect binding requires
    compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -15)
    deflated = compressor.compress(xml.encode("utf-8")) + compressor.flush()
    saml_request = quote(base64.b64encode(deflated).decode(), safe="")
    url = f"{idp_sso_url}?SAMLRequest={saml_request}"
    if relay_state:
        url += f"&RelayState={quote(relay_state, safe='')}"
    return url


def parse_saml_not_on_or_after(saml_response: str) -> Optional[int]:
    """Epoch milliseconds of the first ``NotOnOrAfter`` in a base64 SAMLResponse."""
    try:
        decoded = base64.b64decode(saml_response).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return None
    match = _NOT_ON_OR_AFTER.search(decoded)
    if not match:
        return None
    value = match.group(1).strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def resolve_acs_url(acs_url: Optional[str], port: int = DEFAULT_CALLBACK_PORT) -> str:
    return acs_url or f"http://localhost:{port}/callback"


def resolve_token_url(token_url: Optional[str], uaa_url: Optional[str]) -> str:
    if token_url:
        return token_url
    if uaa_url:
        return uaa_token_url(uaa_url)
    raise ValidationError("Missing token_url or uaa_url for SAML bearer exchange",
                          ["token_url", "uaa_url"])


@dataclass
class Saml2Settings:
    """How a SAML assertion is obtained from the identity provider."""

    idp_sso_url: Optional[str] = None
    sp_entity_id: Optional[str] = None
    assertion_flow: str = "browser"
    acs_url: Optional[str] = None
    relay_state: Optional[str] = None
    authorization_url: Optional[str] = None
    browser: str = "auto"
    redirect_port: int = DEFAULT_CALLBACK_PORT
    timeout: float = DEFAULT_CALLBACK_TIMEOUT_SECONDS
    assertion_provider: Optional[Callable[[], str]] = None
    manual_input: Optional[Callable[[str], str]] = None
    launcher: Optional[BrowserLauncher] = None

    def missing_fields(self) -> List[str]:
        if self.assertion_flow == "assertion":
            return [] if self.assertion_provider else ["assertion_provider"]
        if self.authorization_url:
            return []
        return [k for k in ("idp_sso_url", "sp_entity_id") if not getattr(self, k)]

    def check_assertion_flow(self, owner: str) -> None:
        if self.assertion_flow not in ASSERTION_FLOWS:
            raise ValidationError(
                f"{owner}: unsupported assertion_flow {self.assertion_flow!r} "
                f"(expected one of {', '.join(ASSERTION_FLOWS)})")

    def authorization_url_for(self, port: int) -> str:
        return build_saml_authorization_url(self.idp_sso_url, self.sp_entity_id,
                                            resolve_acs_url(self.acs_url, port),
                                            self.relay_state, self.authorization_url)


def get_saml_assertion(settings: Saml2Settings) -> str:
    """Obtain a base64 SAMLResponse using the configured assertion flow."""
    if settings.assertion_flow == "assertion":
        if settings.assertion_provider is None:
            raise ValidationError("assertion_provider is required for assertion flow", ["assertion_provider"])
        assertion = settings.assertion_provider()
    elif settings.assertion_flow == "manual":
        url = settings.authorization_url_for(settings.redirect_port)
        LOG.warning("Open this URL to authenticate: %s", url)
        read = settings.manual_input or input
        assertion = read("Paste SAMLResponse: ").strip()
    else:
        result = start_callback(settings.authorization_url_for, browser=settings.browser,
                                timeout=settings.timeout, base_port=settings.redirect_port,
                                saml=True, launcher=settings.launcher)
        assertion = result.saml_response
    if not assertion:
        raise SamlError("Missing SAMLResponse")
    return assertion
