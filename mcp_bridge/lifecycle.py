# ============================================================================
#  SpiralReality Proprietary
#  Copyright (c) 2025 SpiralReality. All Rights Reserved.
#
#  NOTICE: This file contains confidential and proprietary information of
#  SpiralReality. ANY USE, COPYING, MODIFICATION, DISTRIBUTION, DISPLAY,
#  OR DISCLOSURE OF THIS FILE, IN WHOLE OR IN PART, IS STRICTLY PROHIBITED
#  WITHOUT THE PRIOR WRITTEN CONSENT OF SPIRALREALITY.
#
#  NO LICENSE IS GRANTED OR IMPLIED BY THIS FILE. THIS SOFTWARE IS PROVIDED
#  "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED, INCLUDING BUT
#  NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A PARTICULAR
#  PURPOSE AND NON-INFRINGEMENT. IN NO EVENT SHALL SPIRALREALITY OR ITS
#  SUPPLIERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN
#  AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN
#  CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE SOFTWARE.
# ============================================================================


from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, TextIO

logger = logging.getLogger(__name__)


def _isatty(stream: Optional[TextIO]) -> bool:
    try:
        return bool(stream is not None and stream.isatty())
    except (AttributeError, ValueError):
        return False


def detect_continuous_mode(
    stdin: Optional[TextIO],
    stdout: Optional[TextIO],
    *,
    override: Optional[bool] = None,
) -> bool:
    """Stay resident when forced, or when either end of stdio is not a terminal."""

    if override is not None:
        return override
    return not (_isatty(stdin) and _isatty(stdout))


class LifecycleController:
    """Decides when an idle bridge process should exit.

    In continuous ("pipe") mode the bridge stays up indefinitely.  In
    standalone mode an exit timer is armed each time the last in-flight
    request finishes and disarmed as soon as a new one starts.
    """

    def __init__(
        self,
        *,
        continuous: bool,
        exit_delay: float = 300.0,
        on_expire: Optional[Callable[[], None]] = None,
    ):
        self.continuous = continuous
        self.exit_delay = exit_delay
        self.on_expire = on_expire
        self.in_flight = 0
        self.completed = 0
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> str:
        return "processing" if self.in_flight else "idle"

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    def request_started(self) -> None:
        self.in_flight += 1
        self._disarm()

    def request_finished(self, *, success: bool = True) -> None:
        self.in_flight = max(0, self.in_flight - 1)
        self.completed += 1
        logger.debug("Request complete (success=%s, in flight=%d)", success, self.in_flight)
        if self.in_flight:
            return
        if self.continuous:
            logger.debug("Pipe mode: staying alive for additional requests")
            return
        self._arm()

    def close(self) -> None:
        self._disarm()

    def _arm(self) -> None:
        self._disarm()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.exit_delay, self._expire)
        logger.info("Standalone mode: exiting in %.0fs unless a new request arrives", self.exit_delay)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self) -> None:
        self._timer = None
        logger.info("Idle timeout reached, exiting (standalone mode)")
        if self.on_expire is not None:
            self.on_expire()
