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


"""STDIO JSONL bridge between MCP clients and the Draw Things HTTP API.

Protocol (1 item per line):
Request:  a JSON-RPC 2.0 envelope
          {"jsonrpc": "2.0", "id": "...", "method": "mcp.invoke",
           "params": {"tool": "generateImage", "parameters": {...}}},
          a loose JSON object carrying ``prompt`` or ``parameters``,
          or bare text used as the prompt.
Response: {"jsonrpc": "2.0", "id": "...", "result": {"content": [...]}}
          or {"jsonrpc": "2.0", "id": "...", "error": {"code": ..., ...}}
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any, Awaitable, Optional, Set, TextIO

from .classifier import classify_line
from .config import BridgeConfig
from .dedup import DuplicateSuppressor
from .emitter import ResponseEmitter
from .generation_client import GenerationClient
from .lifecycle import LifecycleController, detect_continuous_mode
from .line_reader import LineReader
from .normalizer import normalize
from .transport_models import (
    ErrorKind,
    NormalizationFailure,
    NormalizedRequest,
    PassThrough,
    RequestId,
)

logger = logging.getLogger(__name__)

_BANNER = """
---------------------------------------------
| Draw Things MCP - Image Generation Service |
---------------------------------------------

Attempting to connect to Draw Things API at:
    {candidates}

TROUBLESHOOTING TIPS:
1. Ensure Draw Things is running on your computer
2. Make sure the API is enabled in Draw Things settings
3. If you changed the default port in Draw Things, set DRAW_THINGS_API_PORT
   (or DRAW_THINGS_API_URL=http://127.0.0.1:YOUR_PORT)
"""


def _preview(text: str, limit: int = 100) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."


class BridgeServer:
    def __init__(
        self,
        config: BridgeConfig,
        *,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        client: Optional[GenerationClient] = None,
        suppressor: Optional[DuplicateSuppressor] = None,
        emitter: Optional[ResponseEmitter] = None,
        lifecycle: Optional[LifecycleController] = None,
    ):
        self.config = config
        self.client = client or GenerationClient(config)
        self.suppressor = suppressor or DuplicateSuppressor(
            window_seconds=config.dedup_window_seconds,
            expiry_seconds=config.dedup_expiry_seconds,
            capacity=config.dedup_capacity,
        )
        self.emitter = emitter or ResponseEmitter(
            config.images_dir,
            stream=stdout,
            on_pipe_closed=self.shutdown,
        )
        self.reader = LineReader(stdin)
        self.lifecycle = lifecycle or LifecycleController(
            continuous=detect_continuous_mode(
                stdin if stdin is not None else sys.stdin,
                stdout if stdout is not None else sys.stdout,
                override=config.pipe_mode,
            ),
            exit_delay=config.exit_delay_seconds,
            on_expire=self.shutdown,
        )
        self._tasks: Set[asyncio.Task[None]] = set()
        self._stopping = asyncio.Event()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def stopped(self) -> bool:
        return self._stopping.is_set()

    def shutdown(self) -> None:
        if not self._stopping.is_set():
            logger.info("Shutting down bridge")
        self._stopping.set()

    # ------------------------------------------------------------------
    # Request boundary
    def handle_line(self, line: str) -> Optional[asyncio.Task[None]]:
        """Classify, normalize and de-duplicate one line.

        Accepted generation requests are scheduled as tasks and returned;
        everything else is answered (or dropped) before this returns.
        """

        text = line.strip()
        if not text:
            return None

        logger.info("Received line input: %s", _preview(text))
        self.lifecycle.request_started()
        correlation_id: Optional[RequestId] = None
        success = False
        try:
            outcome = normalize(classify_line(text))
            correlation_id = outcome.correlation_id
            if isinstance(outcome, PassThrough):
                self.emitter.forward(outcome.raw)
                success = True
            elif isinstance(outcome, NormalizationFailure):
                logger.warning("Rejected input (%s): %s", outcome.kind.value, outcome.message)
                self.emitter.emit_error(outcome.correlation_id, outcome.kind, outcome.message)
            elif not self.suppressor.should_process(outcome.correlation_id, outcome.prompt, outcome.is_retry):
                logger.info("Dropped duplicate request %s", outcome.correlation_id)
            else:
                task = asyncio.create_task(self._process(outcome))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                return task
        except Exception as exc:
            logger.exception("Error processing request")
            self.emitter.emit_error(correlation_id, ErrorKind.INTERNAL_ERROR, f"Internal error: {exc}")
        self.lifecycle.request_finished(success=success)
        return None

    async def _process(self, request: NormalizedRequest) -> None:
        success = False
        try:
            logger.info(
                "Handling image generation request %s: %s",
                request.correlation_id,
                _preview(str(request.parameters)),
            )
            result = await self.client.generate(request.parameters)
            success = result.ok
            await self.emitter.emit(request.correlation_id, result, request.prompt)
        except Exception as exc:
            logger.exception("Error handling image generation for %s", request.correlation_id)
            self.emitter.emit_error(request.correlation_id, ErrorKind.INTERNAL_ERROR, f"Internal error: {exc}")
        finally:
            self.lifecycle.request_finished(success=success)

    # ------------------------------------------------------------------
    # Main loop
    async def _until_stopped(self, awaitable: Awaitable[Any]) -> Any:
        """Await ``awaitable`` unless shutdown is requested first (then ``None``)."""

        work = asyncio.ensure_future(awaitable)
        stop = asyncio.ensure_future(self._stopping.wait())
        try:
            done, _ = await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
        if work in done:
            return work.result()
        work.cancel()
        return None

    async def _check_connection(self) -> None:
        logger.info(_BANNER.format(candidates="\n    ".join(self.config.candidate_base_urls())))
        if await self.client.ensure_connection():
            logger.info("Successfully connected to Draw Things API; ready to generate images")
        else:
            logger.warning(
                "Failed to connect to Draw Things API. The bridge keeps running and "
                "will retry the connection on each request."
            )

    async def run(self, *, check_connection: bool = False, install_signal_handlers: bool = False) -> int:
        loop = asyncio.get_running_loop()
        handled_signals = []
        if install_signal_handlers:
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, self.shutdown)
                except (NotImplementedError, RuntimeError):
                    continue
                handled_signals.append(sig)

        mode = "pipe" if self.lifecycle.continuous else "standalone"
        logger.info("Starting Draw Things MCP bridge (%s mode)", mode)
        startup: Optional[asyncio.Task[None]] = None
        if check_connection:
            startup = asyncio.create_task(self._check_connection())

        try:
            while not self._stopping.is_set():
                line = await self._until_stopped(self.reader.readline())
                if line is None:
                    break
                self.handle_line(line)

            if not self._stopping.is_set() and self._tasks:
                logger.info("Input closed; waiting for %d in-flight request(s)", len(self._tasks))
                await self._until_stopped(asyncio.gather(*list(self._tasks), return_exceptions=True))
        finally:
            self.lifecycle.close()
            self.reader.close()
            pending = [task for task in self._tasks if not task.done()]
            if startup is not None and not startup.done():
                pending.append(startup)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            for sig in handled_signals:
                loop.remove_signal_handler(sig)
        logger.info("Bridge stopped")
        return 0
