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


"""Typed payloads shared by the stdio bridge components.

Incoming lines arrive in three loose dialects and the generation backend
answers with either an image or a failure.  Passing raw ``dict`` objects
between the classifier, normalizer, client and emitter made every call site
re-probe shapes, so the variants live here as small dataclasses.  The
envelope helpers at the bottom build the JSON-RPC 2.0 objects that are
written back to stdout.
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

JSONRPC_VERSION = "2.0"
INVOKE_METHOD = "mcp.invoke"
IMAGE_TOOL = "generateImage"
DATA_URL_PREFIX = "data:image/png;base64,"

_ID_SEQUENCE = itertools.count(1)

# JSON-RPC ids are echoed back with their original JSON type.
RequestId = Union[str, int, float]


class ErrorKind(str, Enum):
    """Failure categories surfaced to the caller, each with a JSON-RPC code."""

    PARSE_ERROR = "parse_error"
    INVALID_REQUEST = "invalid_request"
    METHOD_NOT_FOUND = "method_not_found"
    INTERNAL_ERROR = "internal_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    UPSTREAM_CLIENT_ERROR = "upstream_client_error"
    UPSTREAM_SERVER_ERROR = "upstream_server_error"
    EMPTY_RESULT = "empty_result"

    @property
    def code(self) -> int:
        return _ERROR_CODES[self]


_ERROR_CODES: Dict[ErrorKind, int] = {
    ErrorKind.PARSE_ERROR: -32700,
    ErrorKind.INVALID_REQUEST: -32600,
    ErrorKind.METHOD_NOT_FOUND: -32601,
    ErrorKind.INTERNAL_ERROR: -32603,
    # Implementation-defined server errors (-32000 .. -32099).
    ErrorKind.SERVICE_UNAVAILABLE: -32001,
    ErrorKind.TIMEOUT: -32002,
    ErrorKind.UPSTREAM_CLIENT_ERROR: -32003,
    ErrorKind.UPSTREAM_SERVER_ERROR: -32004,
    ErrorKind.EMPTY_RESULT: -32005,
}


def generate_request_id() -> str:
    """Return a timestamp based id that stays unique inside this process."""

    return f"{int(time.time() * 1000)}-{next(_ID_SEQUENCE)}"


def has_request_id(value: Any) -> bool:
    """True for a usable JSON-RPC id: a non-empty string or a number (not a bool)."""

    if isinstance(value, bool) or value is None:
        return False
    if isinstance(value, str):
        return value != ""
    return isinstance(value, (int, float))


# ----------------------------------------------------------------------
# Classified input lines


@dataclass(frozen=True, slots=True)
class Envelope:
    """A line that already is a JSON-RPC 2.0 request."""

    raw: str
    payload: Dict[str, Any]

    @property
    def request_id(self) -> RequestId:
        return self.payload["id"]

    @property
    def method(self) -> str:
        return str(self.payload.get("method"))


@dataclass(frozen=True, slots=True)
class LooseJSON:
    """Valid JSON that lacks one or more envelope fields."""

    raw: str
    value: Any


@dataclass(frozen=True, slots=True)
class PlainText:
    """Anything that does not parse as JSON."""

    raw: str

    @property
    def text(self) -> str:
        return self.raw.strip()


ClassifiedLine = Union[Envelope, LooseJSON, PlainText]


# ----------------------------------------------------------------------
# Normalizer outcomes


@dataclass(frozen=True, slots=True)
class NormalizedRequest:
    """Canonical image-generation request built from any input dialect."""

    correlation_id: RequestId
    parameters: Dict[str, Any] = field(default_factory=dict)
    tool_name: str = IMAGE_TOOL
    is_retry: bool = False

    @property
    def prompt(self) -> Optional[str]:
        value = self.parameters.get("prompt")
        if isinstance(value, str) and value.strip():
            return value
        return None


@dataclass(frozen=True, slots=True)
class PassThrough:
    """Envelope for a method this bridge does not handle; forwarded verbatim."""

    correlation_id: RequestId
    raw: str


@dataclass(frozen=True, slots=True)
class NormalizationFailure:
    """A line that cannot become a request; answered with an error envelope."""

    correlation_id: RequestId
    kind: ErrorKind
    message: str


NormalizationOutcome = Union[NormalizedRequest, PassThrough, NormalizationFailure]


# ----------------------------------------------------------------------
# Generation results


@dataclass(frozen=True, slots=True)
class GenerationSuccess:
    image_base64: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True

    @property
    def mime_type(self) -> str:
        if self.image_base64.startswith("data:") and ";" in self.image_base64:
            return self.image_base64[len("data:") : self.image_base64.index(";")]
        return "image/png"

    @property
    def bare_base64(self) -> str:
        """Image payload with any ``data:...;base64,`` prefix removed."""

        data = self.image_base64
        if data.startswith("data:") and "," in data:
            return data.split(",", 1)[1]
        return data


@dataclass(frozen=True, slots=True)
class GenerationFailure:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


GenerationResult = Union[GenerationSuccess, GenerationFailure]


# ----------------------------------------------------------------------
# JSON-RPC envelopes


def success_envelope(
    request_id: RequestId,
    result: GenerationSuccess,
    *,
    saved_path: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "content": [
            {
                "type": "image",
                "data": result.bare_base64,
                "mimeType": result.mime_type,
            }
        ]
    }
    if saved_path:
        payload["imageSavedPath"] = saved_path
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": payload}


def error_envelope(
    request_id: Optional[RequestId],
    kind: ErrorKind,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": kind.code, "message": kind.value}
    if message:
        error["data"] = message
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id if request_id is not None else f"error-{int(time.time() * 1000)}",
        "error": error,
    }


def ensure_object(value: Any) -> Dict[str, Any]:
    """Return a shallow ``dict`` copy for mappings and ``{}`` for anything else."""

    if isinstance(value, Mapping):
        return {str(key): item for key, item in value.items()}
    return {}


__all__ = [
    "DATA_URL_PREFIX",
    "IMAGE_TOOL",
    "INVOKE_METHOD",
    "JSONRPC_VERSION",
    "ClassifiedLine",
    "Envelope",
    "ErrorKind",
    "GenerationFailure",
    "GenerationResult",
    "GenerationSuccess",
    "LooseJSON",
    "NormalizationFailure",
    "NormalizationOutcome",
    "NormalizedRequest",
    "PassThrough",
    "PlainText",
    "RequestId",
    "ensure_object",
    "error_envelope",
    "generate_request_id",
    "has_request_id",
    "success_envelope",
]
