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
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import aiohttp

from .config import GENERATE_PATH, BridgeConfig
from .schemas import SEED_MAX, promote_placeholder, sanitize_parameters
from .transport_models import (
    DATA_URL_PREFIX,
    ErrorKind,
    GenerationFailure,
    GenerationResult,
    GenerationSuccess,
)

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "DrawThingsMCP/1.0",
    "Accept": "application/json",
    "Content-Type": "application/json",
}

UNAVAILABLE_MESSAGE = (
    "Draw Things API is not running or cannot be connected. "
    "Please make sure Draw Things is running and the API is enabled."
)


@dataclass
class ConnectionState:
    established: bool = False
    last_checked_at: float = 0.0
    active_base_url: Optional[str] = None

    def is_fresh(self, now: float, ttl: float) -> bool:
        return self.established and now - self.last_checked_at < ttl


def with_data_prefix(image: str) -> str:
    if image.startswith("data:image/"):
        return image
    return f"{DATA_URL_PREFIX}{image}"


def _error_detail(data: Any) -> str:
    if isinstance(data, dict):
        for key in ("error", "detail", "message"):
            if data.get(key):
                return str(data[key])
        return "Unknown error"
    if isinstance(data, str) and data.strip():
        return data.strip()[:200]
    return "Unknown error"


class GenerationClient:
    """Async client for a Stable-Diffusion style ``txt2img`` endpoint.

    The client owns the connection state: it probes the candidate base URLs
    before the first generation (and whenever the cached state is older than
    ``connection_ttl_seconds``), resolves parameters against the defaults and
    runs the bounded retry loop.  Every call returns a
    :class:`GenerationResult`; transport errors never escape.
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.state = ConnectionState()
        self._clock = clock
        self._rng = rng or random.Random()
        self._probe_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Connection management
    async def probe(self, base_url: str) -> bool:
        """Return ``True`` once any probe path on ``base_url`` answers."""

        attempts = max(1, self.config.probe_attempts)
        for path in self.config.probe_paths:
            url = f"{base_url.rstrip('/')}{path}"
            for attempt in range(1, attempts + 1):
                timeout = aiohttp.ClientTimeout(total=attempt * self.config.probe_timeout_seconds)
                try:
                    async with aiohttp.ClientSession(timeout=timeout, headers=DEFAULT_HEADERS) as session:
                        async with session.get(url) as resp:
                            logger.debug("Probe %s -> %s (attempt %d)", url, resp.status, attempt)
                            if resp.status >= 200:
                                return True
                except (asyncio.TimeoutError, aiohttp.ClientError) as exc:
                    logger.debug("Probe attempt %d failed for %s: %s", attempt, url, exc or exc.__class__.__name__)
                if attempt < attempts:
                    await asyncio.sleep(attempt * self.config.probe_backoff_seconds)
        return False

    async def ensure_connection(self, *, force: bool = False) -> bool:
        async with self._probe_lock:
            # Another request may have finished probing while we waited.
            if not force and self.state.is_fresh(self._clock(), self.config.connection_ttl_seconds):
                return True

            for base_url in self.config.candidate_base_urls():
                logger.info("Trying Draw Things API at %s", base_url)
                if await self.probe(base_url):
                    self.state = ConnectionState(
                        established=True,
                        last_checked_at=self._clock(),
                        active_base_url=base_url,
                    )
                    logger.info("Connected to Draw Things API at %s", base_url)
                    return True

            logger.warning("Draw Things API is not reachable at any candidate endpoint")
            self.state.established = False
            self.state.last_checked_at = self._clock()
            return False

    def invalidate_connection(self) -> None:
        self.state.established = False

    # ------------------------------------------------------------------
    # Parameters
    def resolve_parameters(self, parameters: Mapping[str, Any]) -> Dict[str, Any]:
        cleaned, errors = sanitize_parameters(promote_placeholder(parameters))
        for message in errors:
            logger.warning("Ignoring invalid parameter: %s", message)

        merged: Dict[str, Any] = dict(self.config.default_parameters)
        merged.update(cleaned)
        if not str(cleaned.get("prompt") or "").strip():
            merged["prompt"] = self.config.default_parameters.get("prompt", "")
        if "seed" not in cleaned:
            merged["seed"] = self._rng.randint(0, SEED_MAX)
        return merged

    # ------------------------------------------------------------------
    # Generation
    async def _post_json(self, url: str, payload: Dict[str, Any], timeout_seconds: float) -> Tuple[int, Any]:
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout, headers=DEFAULT_HEADERS) as session:
            async with session.post(url, json=payload) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    # Also covers bodies that are not valid in their declared charset.
                    data = (await resp.read()).decode("utf-8", errors="replace")
                return resp.status, data

    async def generate(self, parameters: Mapping[str, Any]) -> GenerationResult:
        if not self.state.is_fresh(self._clock(), self.config.connection_ttl_seconds):
            if not await self.ensure_connection():
                return GenerationFailure(ErrorKind.SERVICE_UNAVAILABLE, UNAVAILABLE_MESSAGE)

        payload = self.resolve_parameters(parameters)
        base_url = self.state.active_base_url or self.config.candidate_base_urls()[0]
        url = f"{base_url}{GENERATE_PATH}"
        max_retries = max(1, self.config.max_retries)
        logger.debug("Generation parameters: %s", payload)

        failure = GenerationFailure(ErrorKind.UPSTREAM_SERVER_ERROR, "Unknown error after multiple retries")
        for attempt in range(1, max_retries + 1):
            timeout_seconds = self.config.request_timeout_seconds + attempt * self.config.timeout_step_seconds
            logger.info("API request attempt %d of %d", attempt, max_retries)
            try:
                status, data = await self._post_json(url, payload, timeout_seconds)
            except asyncio.TimeoutError:
                self.invalidate_connection()
                failure = GenerationFailure(
                    ErrorKind.TIMEOUT,
                    f"Connection to Draw Things API timed out after {timeout_seconds:.0f}s",
                )
            except aiohttp.ClientConnectorError as exc:
                self.invalidate_connection()
                failure = GenerationFailure(ErrorKind.SERVICE_UNAVAILABLE, f"{UNAVAILABLE_MESSAGE} ({exc})")
            except aiohttp.ClientError as exc:
                failure = GenerationFailure(
                    ErrorKind.UPSTREAM_SERVER_ERROR,
                    f"{exc.__class__.__name__}: {exc}",
                )
            else:
                if status >= 500:
                    failure = GenerationFailure(
                        ErrorKind.UPSTREAM_SERVER_ERROR,
                        f"API returned error status: {status}: {_error_detail(data)}",
                    )
                elif status >= 400:
                    logger.warning("API rejected request with status %d", status)
                    return GenerationFailure(
                        ErrorKind.UPSTREAM_CLIENT_ERROR,
                        f"API returned error status: {status}: {_error_detail(data)}",
                    )
                else:
                    images = data.get("images") if isinstance(data, dict) else None
                    if not isinstance(images, list) or not images or not isinstance(images[0], str) or not images[0]:
                        return GenerationFailure(ErrorKind.EMPTY_RESULT, "No images were generated by the API")
                    self.state.established = True
                    self.state.last_checked_at = self._clock()
                    return GenerationSuccess(image_base64=with_data_prefix(images[0]), parameters=payload)

            logger.warning("Request attempt %d failed: %s", attempt, failure.message)
            if attempt < max_retries:
                await asyncio.sleep(attempt * self.config.retry_backoff_seconds)

        logger.error("All API request attempts failed: %s", failure.message)
        return failure
