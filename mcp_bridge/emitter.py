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


"""Write JSON-RPC responses to stdout.

Each response is a single JSON object followed by a newline.  A reader that
closes the pipe is treated as a request to shut down, not as an error.
"""

from __future__ import annotations

import asyncio
import errno
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TextIO

from .image_store import image_filename, save_image
from .transport_models import (
    ErrorKind,
    GenerationFailure,
    GenerationResult,
    GenerationSuccess,
    RequestId,
    error_envelope,
    success_envelope,
)

logger = logging.getLogger(__name__)


def _is_pipe_closed(exc: BaseException) -> bool:
    return isinstance(exc, BrokenPipeError) or getattr(exc, "errno", None) == errno.EPIPE


class ResponseEmitter:
    def __init__(
        self,
        images_dir: str | Path = "images",
        *,
        stream: Optional[TextIO] = None,
        on_pipe_closed: Optional[Callable[[], None]] = None,
    ):
        self.images_dir = Path(images_dir)
        self.stream = stream if stream is not None else sys.stdout
        self.on_pipe_closed = on_pipe_closed
        self.pipe_closed = False

    def write_line(self, text: str) -> bool:
        if self.pipe_closed:
            return False
        try:
            self.stream.write(text + "\n")
            self.stream.flush()
        except OSError as exc:
            if _is_pipe_closed(exc):
                self.pipe_closed = True
                logger.info("Pipe has been closed by the reader, shutting down")
                if self.on_pipe_closed is not None:
                    self.on_pipe_closed()
            else:
                logger.error("Error writing to stdout: %s", exc)
            return False
        return True

    def write_envelope(self, envelope: Dict[str, Any]) -> bool:
        return self.write_line(json.dumps(envelope, ensure_ascii=False))

    def forward(self, raw_line: str) -> bool:
        return self.write_line(raw_line.strip())

    def emit_error(self, correlation_id: Optional[RequestId], kind: ErrorKind, message: str) -> bool:
        envelope = error_envelope(correlation_id, kind, message)
        logger.info("Sending %s error for id %s: %s", kind.value, envelope["id"], message)
        return self.write_envelope(envelope)

    async def persist(self, result: GenerationSuccess, prompt: Optional[str]) -> Optional[str]:
        """Write the image to disk; returns the path or ``None`` when saving failed."""

        path = self.images_dir / image_filename(prompt, mime_type=result.mime_type)
        try:
            saved = await asyncio.to_thread(save_image, result.bare_base64, path)
        except (OSError, ValueError) as exc:
            logger.error("Failed to save image to %s: %s", path, exc)
            return None
        return str(saved)

    async def emit(self, correlation_id: RequestId, result: GenerationResult, prompt: Optional[str] = None) -> bool:
        if isinstance(result, GenerationFailure):
            return self.emit_error(correlation_id, result.kind, result.message)

        saved_path = await self.persist(result, prompt or result.parameters.get("prompt"))
        logger.info("Sending image response for id %s", correlation_id)
        return self.write_envelope(success_envelope(correlation_id, result, saved_path=saved_path))
