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


"""Validation for the generation parameter bag.

Only recognised keys are checked; anything else is passed through to the
backend untouched.
"""

from __future__ import annotations

import numbers
from typing import Any, Callable, Dict, List, Mapping, Tuple

SEED_MAX = 2**31 - 1


def _is_int(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _positive_int(value: Any) -> bool:
    return _is_int(value) and value > 0


def _positive_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and value > 0


def _string(value: Any) -> bool:
    return isinstance(value, str)


_VALIDATORS: Dict[str, Tuple[Callable[[Any], bool], str]] = {
    "prompt": (_string, "prompt must be a string"),
    "negative_prompt": (_string, "negative_prompt must be a string"),
    "width": (_positive_int, "width must be a positive integer"),
    "height": (_positive_int, "height must be a positive integer"),
    "steps": (_positive_int, "steps must be a positive integer"),
    "seed": (_is_int, "seed must be an integer"),
    "guidance_scale": (_positive_number, "guidance_scale must be a positive number"),
    "model": (_string, "model must be a string"),
    "sampler": (_string, "sampler must be a string"),
}


def sanitize_parameters(params: Mapping[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """Drop ``None`` values and invalid recognised keys.

    Returns the cleaned copy together with one message per dropped key.
    """

    cleaned: Dict[str, Any] = {}
    errors: List[str] = []
    for key, value in params.items():
        if value is None:
            continue
        rule = _VALIDATORS.get(key)
        if rule is not None and not rule[0](value):
            errors.append(rule[1])
            continue
        cleaned[key] = value
    return cleaned, errors


PLACEHOLDER_KEY = "random_string"


def promote_placeholder(parameters: Mapping[str, Any]) -> Dict[str, Any]:
    """Use ``random_string`` as the prompt when it is the only populated key.

    Some MCP clients cannot send a tool call without arguments and fill this
    placeholder instead.  When other keys are present it is simply dropped.
    """

    populated = [key for key, value in parameters.items() if value not in (None, "")]
    if populated == [PLACEHOLDER_KEY]:
        promoted = {key: value for key, value in parameters.items() if key != PLACEHOLDER_KEY}
        promoted["prompt"] = parameters[PLACEHOLDER_KEY]
        return promoted
    return {key: value for key, value in parameters.items() if key != PLACEHOLDER_KEY}
