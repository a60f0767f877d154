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

import base64
import itertools
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^a-zA-Z0-9]")
_EXTENSIONS = {"image/png": ".png", "image/jpeg": ".jpg", "image/webp": ".webp"}
_SEQUENCE = itertools.count(1)


def image_filename(prompt: Optional[str], *, mime_type: str = "image/png", now: Optional[datetime] = None) -> str:
    """``<first 30 prompt chars, sanitised>_<ISO timestamp>-<sequence>.<ext>``

    The sequence number keeps names distinct for images of the same prompt
    saved within one millisecond.
    """

    stamp = (now or datetime.now(timezone.utc)).isoformat(timespec="milliseconds")
    stamp = stamp.replace("+00:00", "Z").replace(":", "-").replace(".", "-")
    safe_prompt = _UNSAFE.sub("_", (prompt or "generated-image")[:30]) or "image"
    return f"{safe_prompt}_{stamp}-{next(_SEQUENCE)}{_EXTENSIONS.get(mime_type, '.png')}"


def save_image(base64_data: str, output_path: str | Path) -> Path:
    """Decode ``base64_data`` and write it to ``output_path``, creating parents."""

    path = Path(output_path)
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Created images directory: %s", path.parent)
    payload = base64.b64decode(base64_data, validate=False)
    path.write_bytes(payload)
    logger.info("Image saved to %s (%d bytes)", path, len(payload))
    return path
