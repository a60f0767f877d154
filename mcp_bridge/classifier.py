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

import json

from .transport_models import JSONRPC_VERSION, ClassifiedLine, Envelope, LooseJSON, PlainText, has_request_id


def is_envelope(value: object) -> bool:
    """True when ``value`` carries the version, method and id of a JSON-RPC request."""

    if not isinstance(value, dict):
        return False
    return value.get("jsonrpc") == JSONRPC_VERSION and bool(value.get("method")) and has_request_id(value.get("id"))


def classify_line(line: str) -> ClassifiedLine:
    """Tag one stripped, non-empty input line with its dialect."""

    try:
        value = json.loads(line)
    except ValueError:
        return PlainText(raw=line)
    if is_envelope(value):
        return Envelope(raw=line, payload=value)
    return LooseJSON(raw=line, value=value)
