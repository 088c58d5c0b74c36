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

"""OpenID Connect discovery with an explicit, thread-safe cache.

Documents are cached per normalized ``.well-known/openid-configuration`` URL.
Concurrent lookups of the same URL share one fetch: the first caller holds a
per-URL lock while the others wait and then read the cached document.
"""

import logging
import threading
import time
from typing import Dict, Optional, Tuple

import requests

from .errors import DiscoveryError, ValidationError
from .models import DiscoveryDocument

LOG = logging.getLogger(__name__)

WELL_KNOWN_SUFFIX = "/.well-known/openid-configuration"
DISCOVERY_TIMEOUT_SECONDS = 30


def normalize_discovery_url(issuer_or_discovery_url: str) -> str:
    url = issuer_or_discovery_url.rstrip("/")
    if url.endswith(WELL_KNOWN_SUFFIX):
        return url
    return url + WELL_KNOWN_SUFFIX


class DiscoveryCache:
    """Discovery documents keyed by normalized URL.

    ``ttl_seconds=None`` keeps entries for the life of the cache.
    """

    def __init__(self, ttl_seconds: Optional[float] = None):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, Tuple[DiscoveryDocument, float]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, url: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(url)
            if lock is None:
                lock = self._locks[url] = threading.Lock()
            return lock

    def get(self, url: str) -> Optional[DiscoveryDocument]:
        with self._guard:
            entry = self._entries.get(url)
        if entry is None:
            return None
        document, stored_at = entry
        if self.ttl_seconds is not None and time.monotonic() - stored_at >= self.ttl_seconds:
            return None
        return document

    def put(self, url: str, document: DiscoveryDocument) -> None:
        with self._guard:
            self._entries[url] = (document, time.monotonic())

    def clear(self) -> None:
        with self._guard:
            self._entries.clear()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def discover(self, issuer_or_discovery_url: str) -> DiscoveryDocument:
        url = normalize_discovery_url(issuer_or_discovery_url)
        cached = self.get(url)
        if cached is not None:
            return cached
        with self._lock_for(url):
            cached = self.get(url)
            if cached is not None:
                return cached
            document = fetch_discovery_document(url)
            self.put(url, document)
            return document


def fetch_discovery_document(discovery_url: str) -> DiscoveryDocument:
    LOG.info("Fetching OIDC discovery document: %s", discovery_url)
    try:
        resp = requests.get(discovery_url, headers={"Accept": "application/json"},
                            timeout=DISCOVERY_TIMEOUT_SECONDS)
        resp.raise_for_status()
        data = resp.json()
    except requests.exceptions.RequestException as e:
        raise DiscoveryError(f"OIDC discovery failed for {discovery_url}: {e}") from e
    except ValueError as e:
        raise DiscoveryError(f"OIDC discovery returned invalid JSON from {discovery_url}") from e
    if not isinstance(data, dict) or not data.get("token_endpoint"):
        raise DiscoveryError("OIDC discovery document missing token_endpoint")
    return DiscoveryDocument.from_json(data)


# Process-wide default used when callers do not pass their own cache.
DEFAULT_CACHE = DiscoveryCache()


def discover_oidc(issuer_or_discovery_url: str, cache: Optional[DiscoveryCache] = None) -> DiscoveryDocument:
    if cache is None:
        cache = DEFAULT_CACHE
    return cache.discover(issuer_or_discovery_url)


def resolve_endpoint(explicit: Optional[str], issuer_url: Optional[str], attribute: str,
                     cache: Optional[DiscoveryCache] = None) -> str:
    """An explicitly configured endpoint, else the one named ``attribute`` from discovery."""
    if explicit:
        return explicit
    if not issuer_url:
        raise ValidationError(f"OIDC issuer_url is required when {attribute} is not configured",
                              ["issuer_url"])
    value = getattr(discover_oidc(issuer_url, cache), attribute)
    if not value:
        raise DiscoveryError(f"OIDC discovery missing {attribute}")
    return value
