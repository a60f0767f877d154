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

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

DEFAULT_PORT = 7888
DEFAULT_HOST = "127.0.0.1"
GENERATE_PATH = "/sdapi/v1/txt2img"

DEFAULT_PARAMETERS: Dict[str, Any] = {
    "prompt": "A cute kitten sitting on a windowsill, soft morning light",
    "negative_prompt": "low quality, blurry, distorted",
    "width": 512,
    "height": 512,
    "steps": 20,
    "guidance_scale": 7.5,
    "sampler": "DPM++ 2M Karras",
}


@dataclass
class BridgeConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    api_url: Optional[str] = None
    proxy_port: Optional[int] = None
    probe_paths: Tuple[str, ...] = (
        "/sdapi/v1/options",
        "/sdapi/v1/samplers",
        "/sdapi/v1/sd-models",
        "/sdapi/v1/prompt-styles",
        "/",
    )
    probe_attempts: int = 3
    probe_timeout_seconds: float = 3.0
    probe_backoff_seconds: float = 1.0
    connection_ttl_seconds: float = 30.0
    request_timeout_seconds: float = 120.0
    timeout_step_seconds: float = 30.0
    max_retries: int = 3
    retry_backoff_seconds: float = 2.0
    dedup_window_seconds: float = 2.0
    dedup_expiry_seconds: float = 60.0
    dedup_capacity: int = 100
    images_dir: str = "images"
    logs_dir: Optional[str] = "logs"
    exit_delay_seconds: float = 300.0
    pipe_mode: Optional[bool] = None
    debug: bool = False
    default_parameters: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_PARAMETERS))

    def candidate_base_urls(self) -> list[str]:
        """Base URLs to probe, in order: direct, loopback alias, alternates."""

        candidates = [f"http://{self.host}:{self.port}", f"http://localhost:{self.port}"]
        if self.api_url:
            candidates.append(self.api_url.rstrip("/"))
        if self.proxy_port:
            candidates.append(f"http://{self.host}:{self.proxy_port}")
        unique: list[str] = []
        for url in candidates:
            if url not in unique:
                unique.append(url)
        return unique


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def _coerce_bool(value: object, *, default: Optional[bool] = False) -> Optional[bool]:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value: object, *, default: Optional[int]) -> Optional[int]:
    try:
        return int(value)  # type: ignore[arg-type]
    except Exception:
        return default


def _coerce_float(value: object, *, default: float) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except Exception:
        return default


def load_bridge_config(**overrides: Any) -> BridgeConfig:
    """Build a :class:`BridgeConfig` from the environment.

    Unparseable values fall back to the documented defaults instead of
    failing, so a typo in an MCP client's ``env`` block never keeps the bridge
    from starting.  Keyword ``overrides`` (typically CLI flags) win over the
    environment when they are not ``None``.
    """

    config = BridgeConfig(
        host=_env("DRAW_THINGS_API_HOST") or DEFAULT_HOST,
        port=_coerce_int(_env("DRAW_THINGS_API_PORT"), default=DEFAULT_PORT) or DEFAULT_PORT,
        api_url=_env("DRAW_THINGS_API_URL") or None,
        proxy_port=_coerce_int(_env("DRAW_THINGS_PROXY_PORT"), default=None),
        request_timeout_seconds=_coerce_float(_env("MCP_REQUEST_TIMEOUT"), default=120.0),
        max_retries=max(1, _coerce_int(_env("MCP_MAX_RETRIES"), default=3) or 0),
        dedup_window_seconds=_coerce_float(_env("MCP_DEDUP_WINDOW"), default=2.0),
        images_dir=_env("MCP_IMAGES_DIR") or "images",
        logs_dir=_env("MCP_LOGS_DIR") or "logs",
        exit_delay_seconds=_coerce_float(_env("MCP_EXIT_DELAY"), default=300.0),
        pipe_mode=_coerce_bool(_env("MCP_PIPE_MODE"), default=None),
        debug=bool(_coerce_bool(_env("DEBUG_MODE"), default=False)),
    )
    for key, value in overrides.items():
        if value is None:
            continue
        if not hasattr(config, key):
            raise ValueError(f"Unknown config option: {key}")
        setattr(config, key, value)
    return config


__all__ = [
    "BridgeConfig",
    "DEFAULT_PARAMETERS",
    "DEFAULT_PORT",
    "GENERATE_PATH",
    "load_bridge_config",
]
