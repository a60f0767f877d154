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

import logging
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Iterator, Optional, TypeVar

from .transport_models import RequestId

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class DedupStore(Generic[K, V]):
    """Insertion-ordered mapping that evicts its oldest entries past ``capacity``."""

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: "OrderedDict[K, V]" = OrderedDict()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[K]:
        return iter(self._entries)

    def get(self, key: K) -> Optional[V]:
        return self._entries.get(key)

    def put(self, key: K, value: V) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def discard(self, key: K) -> None:
        self._entries.pop(key, None)

    def purge(self, predicate: Callable[[K, V], bool]) -> int:
        stale = [key for key, value in self._entries.items() if predicate(key, value)]
        for key in stale:
            del self._entries[key]
        return len(stale)


def fingerprint(prompt: str) -> str:
    return prompt.strip().lower()


class DuplicateSuppressor:
    """Rejects replayed correlation ids and rapid repeats of the same prompt.

    Correlation ids guard against the transport delivering one message twice.
    Prompt fingerprints catch callers that fire the same plain-text prompt
    several times in quick succession without distinct ids; a request flagged
    as a retry skips that second check.
    """

    def __init__(
        self,
        *,
        window_seconds: float = 2.0,
        expiry_seconds: float = 60.0,
        capacity: int = 100,
        clock: Callable[[], float] = time.monotonic,
        seen_ids: Optional[DedupStore[str, float]] = None,
        seen_prompts: Optional[DedupStore[str, float]] = None,
    ):
        self.window_seconds = window_seconds
        self.expiry_seconds = expiry_seconds
        self._clock = clock
        self.seen_ids: DedupStore[str, float] = seen_ids if seen_ids is not None else DedupStore(capacity)
        self.seen_prompts: DedupStore[str, float] = seen_prompts if seen_prompts is not None else DedupStore(capacity)

    def should_process(
        self,
        correlation_id: RequestId,
        prompt: Optional[str] = None,
        is_retry: bool = False,
    ) -> bool:
        now = self._clock()
        id_key = str(correlation_id)
        if id_key in self.seen_ids:
            logger.info("Duplicate request id %s skipped", correlation_id)
            return False
        self.seen_ids.put(id_key, now)

        if not prompt or not prompt.strip() or is_retry:
            return True

        self.seen_prompts.purge(lambda _key, seen_at: now - seen_at > self.expiry_seconds)
        key = fingerprint(prompt)
        last_seen = self.seen_prompts.get(key)
        if last_seen is not None and now - last_seen < self.window_seconds:
            logger.info("Duplicate prompt within %.1fs skipped: %r", self.window_seconds, key[:30])
            return False
        self.seen_prompts.put(key, now)
        return True
