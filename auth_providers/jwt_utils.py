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

"""Local JWT inspection: read the ``exp`` claim without verifying the signature."""

import base64
import json
import time
from datetime import datetime, timezone
from typing import Optional

# Tokens are treated as expired this long before their real expiry
# (clock skew plus request latency).
EXPIRY_BUFFER_MS = 60_000


def now_ms() -> int:
    return int(time.time() * 1000)


def decode_jwt_claims(token_str: str) -> Optional[dict]:
    parts = token_str.split(".") if token_str else []
    if len(parts) != 3:
        return None
    payload_b64 = parts[1]
    pad = "=" * (-len(payload_b64) % 4)  # JWT segments drop their padding
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload_b64 + pad))
    except (ValueError, TypeError):
        return None
    return claims if isinstance(claims, dict) else None


def decode_jwt_exp(token_str: str) -> Optional[datetime]:
    claims = decode_jwt_claims(token_str)
    if not claims:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(int(exp), tz=timezone.utc)


def jwt_expires_at_ms(token_str: str) -> Optional[int]:
    exp = decode_jwt_exp(token_str)
    if exp is None:
        return None
    return int(exp.timestamp()) * 1000


def jwt_expires_in(token_str: str) -> Optional[int]:
    """Seconds until ``exp``, or None when unknown or already past."""
    expires_at = jwt_expires_at_ms(token_str)
    if expires_at is None:
        return None
    remaining = (expires_at - now_ms()) // 1000
    return remaining if remaining > 0 else None


def is_expiry_valid(expires_at_ms: Optional[int], now: Optional[int] = None) -> bool:
    if not expires_at_ms:
        return False
    current = now_ms() if now is None else now
    return current < expires_at_ms - EXPIRY_BUFFER_MS


def is_jwt_valid(token_str: str) -> bool:
    return is_expiry_valid(jwt_expires_at_ms(token_str))


def mask_token(token: Optional[str]) -> str:
    if not token:
        return "<none>"
    if len(token) <= 12:
        return "***"
    return f"{token[:4]}...{token[-4:]} ({len(token)} chars)"
