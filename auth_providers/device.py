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

"""Device authorization grant polling loop (RFC 8628 section 3.5)."""

import logging
import time
from typing import Callable, TypeVar

from .errors import DeviceFlowError, TokenEndpointError

LOG = logging.getLogger(__name__)

MAX_POLL_ATTEMPTS = 120
SLOW_DOWN_INCREMENT_SECONDS = 5

T = TypeVar("T")


def poll_for_tokens(poll_once: Callable[[str], T], device_code: str, interval: int = 5,
                    sleep: Callable[[float], None] = time.sleep,
                    max_attempts: int = MAX_POLL_ATTEMPTS) -> T:
    """Poll ``poll_once(device_code)`` until the user approves the device.

    ``poll_once`` performs one token request and either returns tokens or
    raises ``TokenEndpointError`` whose ``error`` is the OAuth2 error code.
    ``authorization_pending`` waits ``interval`` seconds; ``slow_down`` grows
    the interval by five seconds first. Any other error ends the loop.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return poll_once(device_code)
        except TokenEndpointError as e:
            error = e.error
            if error == "authorization_pending":
                LOG.debug("Authorization pending (attempt %d/%d); waiting %ds", attempt, max_attempts, interval)
            elif error == "slow_down":
                interval += SLOW_DOWN_INCREMENT_SECONDS
                LOG.debug("Server asked to slow down; polling interval now %ds", interval)
            elif error == "expired_token":
                raise DeviceFlowError("Device code expired - please restart device flow") from e
            elif error == "access_denied":
                raise DeviceFlowError("User denied device authorization") from e
            else:
                raise
        if attempt < max_attempts:
            sleep(interval)
    raise DeviceFlowError(f"Device flow timed out after {max_attempts} polling attempts")
