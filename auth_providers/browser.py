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

"""Opening the authorization URL in a local browser."""

import logging
import shutil
import subprocess
import sys
import webbrowser
from typing import Dict, List, Optional, Sequence

from .errors import BrowserAuthError

LOG = logging.getLogger(__name__)

LAUNCH_MODES = ("system", "chrome", "edge", "firefox", "auto")
BROWSER_MODES = LAUNCH_MODES + ("headless", "none")

# webbrowser registry names tried for each named browser
_WEBBROWSER_NAMES: Dict[str, Sequence[str]] = {
    "chrome": ("chrome", "google-chrome", "chromium", "chromium-browser"),
    "edge": ("microsoft-edge", "msedge"),
    "firefox": ("firefox",),
}

_LINUX_BINARIES: Dict[str, Sequence[str]] = {
    "system": ("xdg-open",),
    "chrome": ("google-chrome", "google-chrome-stable", "chromium", "chromium-browser"),
    "edge": ("microsoft-edge", "microsoft-edge-stable"),
    "firefox": ("firefox", "firefox-esr"),
}

_MACOS_APPS = {
    "chrome": "Google Chrome",
    "edge": "Microsoft Edge",
    "firefox": "Firefox",
}

_WINDOWS_APPS = {
    "chrome": "chrome",
    "edge": "msedge",
    "firefox": "firefox",
}


class BrowserLauncher:
    """Launches a URL with ``webbrowser`` and falls back to the platform shell."""

    def __init__(self, platform: Optional[str] = None):
        self.platform = platform or sys.platform

    def launch(self, url: str, browser: str = "system") -> None:
        if browser not in LAUNCH_MODES:
            raise ValueError(f"Unsupported browser mode for launch: {browser}")
        kind = "system" if browser == "auto" else browser
        try:
            if self._open_with_webbrowser(url, kind):
                return
        except webbrowser.Error as e:
            LOG.debug("webbrowser could not open %s: %s", kind, e)
        LOG.warning("webbrowser did not open the URL; attempting platform fallback.")
        command = self.shell_command(url, kind)
        if not command:
            raise BrowserAuthError(f"No browser command available for {kind}. Please open manually: {url}",
                                   authorization_url=url)
        try:
            subprocess.run(command, check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise BrowserAuthError(f"Browser opening failed: {e}. Please open manually: {url}",
                                   authorization_url=url, cause=e) from e

    def _open_with_webbrowser(self, url: str, kind: str) -> bool:
        if kind == "system":
            return webbrowser.open(url)
        for name in _WEBBROWSER_NAMES[kind]:
            try:
                controller = webbrowser.get(name)
            except webbrowser.Error:
                continue
            return controller.open(url)
        return False

    def shell_command(self, url: str, kind: str) -> Optional[List[str]]:
        if self.platform == "darwin":
            app = _MACOS_APPS.get(kind)
            return ["open", "-a", app, url] if app else ["open", url]
        if self.platform.startswith("win"):
            app = _WINDOWS_APPS.get(kind)
            return ["cmd", "/c", "start", "", app, url] if app else ["cmd", "/c", "start", "", url]
        for binary in _LINUX_BINARIES[kind]:
            if shutil.which(binary):
                return [binary, url]
        return None


_DEFAULT_LAUNCHER: Optional[BrowserLauncher] = None


def default_launcher() -> BrowserLauncher:
    global _DEFAULT_LAUNCHER
    if _DEFAULT_LAUNCHER is None:
        _DEFAULT_LAUNCHER = BrowserLauncher()
    return _DEFAULT_LAUNCHER
