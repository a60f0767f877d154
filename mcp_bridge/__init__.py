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


"""Stdio bridge that turns loose image prompts into Draw Things API calls."""

from .config import BridgeConfig, load_bridge_config
from .dedup import DedupStore, DuplicateSuppressor
from .generation_client import ConnectionState, GenerationClient
from .stdio_server import BridgeServer
from .transport_models import ErrorKind, GenerationFailure, GenerationSuccess, NormalizedRequest

__all__ = [
    "BridgeConfig",
    "BridgeServer",
    "ConnectionState",
    "DedupStore",
    "DuplicateSuppressor",
    "ErrorKind",
    "GenerationClient",
    "GenerationFailure",
    "GenerationSuccess",
    "NormalizedRequest",
    "load_bridge_config",
]

__version__ = "1.4.3"
