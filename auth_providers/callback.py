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

"""Ephemeral localhost listener that captures the browser redirect.

The listener binds 127.0.0.1 on the first free port at or after ``base_port``
(or exactly the port of a pre-set local redirect URI), serves the callback
path from a daemon thread, and hands the first completing
request to the waiting caller through a one-shot future. Leaving the
``CallbackListener`` context always shuts the server down, closes the socket
and restores any signal handlers it installed.
"""

import dataclasses
import html
import logging
import signal
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Callable, Dict, Optional, Tuple, Union
from urllib.parse import parse_qs, urlparse

from .browser import BROWSER_MODES, BrowserLauncher, default_launcher
from .errors import (BrowserAuthError, CallbackPortError, CallbackTimeoutError, SamlError,
                     ValidationError)
from .models import CallbackResult

LOG = logging.getLogger(__name__)

DEFAULT_CALLBACK_PORT = 3001
DEFAULT_CALLBACK_TIMEOUT_SECONDS = 300
CALLBACK_PATH = "/callback"
PORT_SCAN_RANGE = 10
BIND_HOST = "127.0.0.1"
LOCAL_HOSTS = ("localhost", "127.0.0.1")

_SUCCESS_PAGE = ("<html><head><title>Authentication successful</title></head><body>"
                 "<h1>Authentication successful</h1>"
                 "<p>You can close this window and return to the application.</p></body></html>")

_ERROR_PAGE = ("<html><head><title>Authentication failed</title></head><body>"
               "<h1>Authentication failed</h1><p>{message}</p></body></html>")


def _first(params: Dict[str, list], name: str) -> Optional[str]:
    values = params.get(name)
    return values[0] if values else None


class CallbackHandler(BaseHTTPRequestHandler):
    server_version = "AuthCallback/1.0"

    def do_GET(self):
        parsed = urlparse(self.path)
        if parsed.path != self.server.callback_path:
            self._reply(404, "<html><body>Not found</body></html>")
            return
        self._complete(parse_qs(parsed.query))

    def do_POST(self):
        parsed = urlparse(self.path)
        if parsed.path != self.server.callback_path:
            self._reply(404, "<html><body>Not found</body></html>")
            return
        if not self.server.saml:
            self._reply(405, "<html><body>Method not allowed</body></html>")
            return
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length).decode("utf-8", errors="replace") if length else ""
        params = parse_qs(parsed.query)
        params.update(parse_qs(body))
        self._complete(params)

    def _complete(self, params: Dict[str, list]) -> None:
        server: CallbackServer = self.server
        with server.lock:
            if server.result.done():
                self._reply(409, "<html><body>Authentication already completed</body></html>")
                return
            status, page, outcome = self._evaluate(params)
            if isinstance(outcome, BaseException):
                server.result.set_exception(outcome)
            else:
                server.result.set_result(outcome)
        self._reply(status, page)

    def _evaluate(self, params: Dict[str, list]):
        error = _first(params, "error")
        if error:
            description = _first(params, "error_description")
            detail = f"{error}: {description}" if description else error
            LOG.error("Callback error: %s", detail)
            message = f"OAuth2 authentication failed: {detail}"
            return 400, _ERROR_PAGE.format(message=html.escape(message)), BrowserAuthError(message)
        if self.server.saml:
            saml_response = _first(params, "SAMLResponse")
            if not saml_response:
                LOG.error("Callback SAMLResponse missing")
                message = "SAMLResponse missing from callback"
                return 400, _ERROR_PAGE.format(message=message), SamlError(message)
            return 200, _SUCCESS_PAGE, CallbackResult(saml_response=saml_response,
                                                      state=_first(params, "RelayState"))
        code = _first(params, "code")
        if not code:
            LOG.error("Callback code missing")
            message = "Authorization code missing from callback"
            return 400, _ERROR_PAGE.format(message=message), BrowserAuthError(message)
        return 200, _SUCCESS_PAGE, CallbackResult(code=code, state=_first(params, "state"))

    def _reply(self, status: int, page: str) -> None:
        payload = page.encode()
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, fmt, *args):
        # silence default HTTP server log
        return


class CallbackServer(HTTPServer):
    def __init__(self, host: str, port: int, callback_path: str = CALLBACK_PATH, saml: bool = False):
        super().__init__((host, port), CallbackHandler)
        self.callback_path = callback_path
        self.saml = saml
        self.lock = threading.Lock()
        self.result: Future = Future()


class CallbackListener:
    """Context manager owning one ``CallbackServer`` and its serving thread."""

    def __init__(self, base_port: int = DEFAULT_CALLBACK_PORT, saml: bool = False,
                 host: str = BIND_HOST, callback_path: str = CALLBACK_PATH,
                 port_range: int = PORT_SCAN_RANGE):
        self.base_port = base_port
        self.saml = saml
        self.host = host
        self.callback_path = callback_path
        self.port_range = port_range
        self._server: Optional[CallbackServer] = None
        self._thread: Optional[threading.Thread] = None
        self._previous_handlers: Dict[int, object] = {}
        self._closed = False
        self._close_lock = threading.RLock()

    @property
    def port(self) -> int:
        if self._server is None:
            raise RuntimeError("Callback listener is not started")
        return self._server.server_address[1]

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.port}{self.callback_path}"

    def __enter__(self) -> "CallbackListener":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _bind(self) -> CallbackServer:
        last_error = None
        for port in range(self.base_port, self.base_port + self.port_range + 1):
            try:
                server = CallbackServer(self.host, port, self.callback_path, self.saml)
            except OSError as e:
                LOG.debug("Port %d unavailable: %s", port, e)
                last_error = e
                continue
            if port != self.base_port:
                LOG.info("Port %d in use; callback listener using port %d", self.base_port, port)
            return server
        if self.port_range == 0:
            raise CallbackPortError(f"Callback port {self.base_port} is unavailable: {last_error}")
        raise CallbackPortError(
            f"No free callback port in range {self.base_port}-{self.base_port + self.port_range}: {last_error}")

    def start(self) -> None:
        self._server = self._bind()
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        self._install_signal_handlers()
        LOG.debug("Callback listener started on port %d", self.port)

    def wait(self, timeout: Optional[float] = DEFAULT_CALLBACK_TIMEOUT_SECONDS) -> CallbackResult:
        if self._server is None:
            raise RuntimeError("Callback listener is not started")
        try:
            return self._server.result.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise CallbackTimeoutError("Authentication timeout") from e

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            if self._server is not None:
                self._server.shutdown()
                self._server.server_close()
            if self._thread is not None:
                self._thread.join(timeout=1)
            self._restore_signal_handlers()
            LOG.debug("Callback listener closed")

    # ---------- Signal handling ----------

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for name in ("SIGINT", "SIGTERM", "SIGHUP"):
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            self._previous_handlers[signum] = signal.signal(signum, self._on_signal)

    def _restore_signal_handlers(self) -> None:
        for signum, previous in self._previous_handlers.items():
            signal.signal(signum, previous)
        self._previous_handlers = {}

    def _on_signal(self, signum, frame):
        previous = self._previous_handlers.get(signum)
        LOG.warning("Received signal %d; closing callback listener", signum)
        self.close()
        if callable(previous):
            previous(signum, frame)
        elif signum == signal.SIGINT:
            raise KeyboardInterrupt
        elif previous != signal.SIG_IGN:
            raise SystemExit(128 + signum)


def redirect_uri_of(authorization_url: str) -> Optional[str]:
    return _first(parse_qs(urlparse(authorization_url).query), "redirect_uri")


def local_redirect(redirect_uri: str) -> Optional[Tuple[int, str]]:
    """Return ``(port, path)`` when the listener can serve ``redirect_uri`` itself."""
    parsed = urlparse(redirect_uri)
    if parsed.hostname not in LOCAL_HOSTS or parsed.port is None:
        return None
    return parsed.port, parsed.path or "/"


def dispatch_browser(authorization_url: str, browser: str,
                     launcher: Optional[BrowserLauncher] = None) -> None:
    if browser not in BROWSER_MODES:
        raise ValidationError(f"Unsupported browser mode: {browser}")
    if browser == "none":
        LOG.info("Open this URL in your browser to authenticate: %s", authorization_url)
        raise BrowserAuthError(
            f"Browser opening disabled (browser=none). Please open manually: {authorization_url}",
            authorization_url=authorization_url)
    if browser == "headless":
        LOG.warning("Open this URL in your browser to authenticate: %s", authorization_url)
        return
    launcher = launcher or default_launcher()
    if browser == "auto":
        try:
            launcher.launch(authorization_url, browser)
        except BrowserAuthError as e:
            LOG.warning("Could not open browser automatically: %s", e)
            LOG.warning("Open this URL in your browser to authenticate: %s", authorization_url)
        return
    launcher.launch(authorization_url, browser)


def start_callback(build_url: Union[str, Callable[[int], str]], browser: str = "system",
                   timeout: Optional[float] = DEFAULT_CALLBACK_TIMEOUT_SECONDS,
                   base_port: int = DEFAULT_CALLBACK_PORT, saml: bool = False,
                   launcher: Optional[BrowserLauncher] = None) -> CallbackResult:
    """Run one browser round trip and return the captured callback.

    ``build_url`` receives the bound port so the redirect URI matches it. A
    pre-built URL string is used as is; when its ``redirect_uri`` points at a
    local port, the listener binds exactly that port and path, and a busy port
    raises ``CallbackPortError`` instead of moving elsewhere.
    """
    callback_path, port_range = CALLBACK_PATH, PORT_SCAN_RANGE
    fixed_redirect = None
    if not callable(build_url):
        fixed_redirect = redirect_uri_of(build_url)
        target = local_redirect(fixed_redirect) if fixed_redirect else None
        if target is not None:
            base_port, callback_path = target
            port_range = 0
        elif fixed_redirect:
            LOG.warning("Authorization URL redirects to %s, which the local listener cannot receive",
                        fixed_redirect)
            fixed_redirect = None
    with CallbackListener(base_port, saml=saml, callback_path=callback_path, port_range=port_range) as listener:
        authorization_url = build_url(listener.port) if callable(build_url) else build_url
        dispatch_browser(authorization_url, browser, launcher)
        LOG.info("Waiting for callback on %s", listener.redirect_uri)
        try:
            result = listener.wait(timeout)
        except BrowserAuthError as e:
            if e.authorization_url is None:
                e.authorization_url = authorization_url
            raise
        return dataclasses.replace(result, redirect_uri=fixed_redirect or listener.redirect_uri)
