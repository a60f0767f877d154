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
import sys
from typing import Optional, TextIO

logger = logging.getLogger(__name__)

LINE_LIMIT = 4 * 1024 * 1024


class LineReader:
    """Reads newline-delimited UTF-8 text from stdin without blocking the loop.

    Pipes and terminals are attached to an asyncio ``StreamReader``.  Streams
    that cannot be (regular files, in-memory buffers) are read line by line on
    a worker thread instead.
    """

    def __init__(self, stream: Optional[TextIO] = None, *, limit: int = LINE_LIMIT):
        self.stream = stream if stream is not None else sys.stdin
        self.limit = limit
        self._reader: Optional[asyncio.StreamReader] = None
        self._transport: Optional[asyncio.ReadTransport] = None
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=self.limit)
        try:
            transport, _ = await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), self.stream)
        except (OSError, ValueError, AttributeError, NotImplementedError) as exc:
            logger.debug("stdin is not a pipe (%s); reading on a worker thread", exc)
            return
        self._reader = reader
        self._transport = transport

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    async def readline(self) -> Optional[str]:
        """Next line without its terminator, or ``None`` at end of input."""

        await self.start()
        while True:
            if self._reader is None:
                line = await asyncio.to_thread(self.stream.readline)
                if not line:
                    return None
                if len(line) > self.limit:
                    logger.warning("Skipping input line longer than %d characters", self.limit)
                    continue
                return line.rstrip("\r\n")
            try:
                raw = await self._reader.readuntil(b"\n")
            except asyncio.IncompleteReadError as exc:
                raw = exc.partial
            except asyncio.LimitOverrunError:
                logger.warning("Skipping input line longer than %d bytes", self.limit)
                await self._discard_line()
                continue
            if not raw:
                return None
            return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    async def _discard_line(self) -> None:
        """Drop buffered and incoming bytes up to and including the next newline."""

        assert self._reader is not None
        while True:
            try:
                await self._reader.readuntil(b"\n")
                return
            except asyncio.LimitOverrunError as exc:
                await self._reader.read(exc.consumed)
            except asyncio.IncompleteReadError:
                return

