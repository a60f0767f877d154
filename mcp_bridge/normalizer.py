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


"""Turn any classified input line into one canonical request.

Callers speak three dialects: full JSON-RPC envelopes, loose JSON objects
such as ``{"prompt": "cat", "seed": 42}`` and bare text prompts.  Everything
downstream only ever sees :class:`NormalizedRequest`; lines that cannot be
turned into one come back as :class:`NormalizationFailure` or, for methods
the bridge does not own, :class:`PassThrough`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping

from .schemas import promote_placeholder
from .transport_models import (
    IMAGE_TOOL,
    INVOKE_METHOD,
    JSONRPC_VERSION,
    ClassifiedLine,
    Envelope,
    ErrorKind,
    LooseJSON,
    NormalizationFailure,
    NormalizationOutcome,
    NormalizedRequest,
    PassThrough,
    PlainText,
    RequestId,
    ensure_object,
    generate_request_id,
    has_request_id,
)

logger = logging.getLogger(__name__)

_ENVELOPE_KEYS = {"jsonrpc", "id", "method", "params", "parameters", "retry"}


def _is_retry(request_id: RequestId, params: Mapping[str, Any]) -> bool:
    if "retry" in str(request_id).lower():
        return True
    return bool(params.get("retry"))


def _from_envelope(payload: Dict[str, Any], raw: str) -> NormalizationOutcome:
    request_id: RequestId = payload["id"]
    method = str(payload.get("method"))
    params = payload.get("params")
    params = params if isinstance(params, dict) else {}
    tool = params.get("tool")

    if method != INVOKE_METHOD or not tool:
        logger.debug("Forwarding %s request %s unmodified", method, request_id)
        return PassThrough(correlation_id=request_id, raw=raw)
    if tool != IMAGE_TOOL:
        return NormalizationFailure(
            correlation_id=request_id,
            kind=ErrorKind.METHOD_NOT_FOUND,
            message=f"Tool not found: {tool}",
        )

    parameters = promote_placeholder(ensure_object(params.get("parameters")))
    return NormalizedRequest(
        correlation_id=request_id,
        parameters=parameters,
        tool_name=IMAGE_TOOL,
        is_retry=_is_retry(request_id, params),
    )


def _from_loose_json(value: Any) -> NormalizationOutcome:
    if not isinstance(value, dict):
        return NormalizationFailure(
            correlation_id=generate_request_id(),
            kind=ErrorKind.INVALID_REQUEST,
            message="No usable parameters found in request",
        )

    request_id: RequestId = value["id"] if has_request_id(value.get("id")) else generate_request_id()
    method = str(value.get("method") or INVOKE_METHOD)

    if isinstance(value.get("params"), dict):
        # Complete the envelope and take the same route as a well-formed one.
        completed = dict(value, jsonrpc=JSONRPC_VERSION, id=request_id, method=method)
        return _from_envelope(completed, json.dumps(completed, ensure_ascii=False))

    has_prompt = value.get("prompt") not in (None, "")
    nested = value.get("parameters")
    if not has_prompt and not isinstance(nested, dict):
        return NormalizationFailure(
            correlation_id=request_id,
            kind=ErrorKind.INVALID_REQUEST,
            message="No usable parameters found in request",
        )

    parameters = {key: item for key, item in value.items() if key not in _ENVELOPE_KEYS}
    parameters.update(ensure_object(nested))
    parameters = promote_placeholder(parameters)
    return NormalizedRequest(
        correlation_id=request_id,
        parameters=parameters,
        tool_name=IMAGE_TOOL,
        is_retry=_is_retry(request_id, value),
    )


def _from_plain_text(text: PlainText) -> NormalizationOutcome:
    prompt = text.text
    if prompt.startswith("{"):
        return NormalizationFailure(
            correlation_id=generate_request_id(),
            kind=ErrorKind.PARSE_ERROR,
            message="Unrecognized input format",
        )
    return NormalizedRequest(correlation_id=generate_request_id(), parameters={"prompt": prompt})


def normalize(classified: ClassifiedLine) -> NormalizationOutcome:
    try:
        if isinstance(classified, Envelope):
            return _from_envelope(classified.payload, classified.raw)
        if isinstance(classified, LooseJSON):
            return _from_loose_json(classified.value)
        if isinstance(classified, PlainText):
            return _from_plain_text(classified)
    except Exception as exc:
        logger.exception("Failed to normalize request")
        return NormalizationFailure(
            correlation_id=generate_request_id(),
            kind=ErrorKind.INVALID_REQUEST,
            message=f"Could not normalize request: {exc}",
        )
    raise TypeError(f"Unsupported input variant: {type(classified)!r}")
