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

import argparse
import asyncio
from typing import Optional, Sequence

from .config import load_bridge_config
from .logging_setup import configure_logging
from .stdio_server import BridgeServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="draw-things-mcp-bridge",
        description="Bridge plain-text, loose JSON and JSON-RPC image requests on stdio to the Draw Things API.",
    )
    parser.add_argument("--host", default=None, help="Draw Things API host (env DRAW_THINGS_API_HOST, default 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Draw Things API port (env DRAW_THINGS_API_PORT, default 7888)")
    parser.add_argument("--proxy-port", type=int, default=None, help="Alternate/proxy port tried after the direct endpoints")
    parser.add_argument("--api-url", default=None, help="Explicit alternate base URL (env DRAW_THINGS_API_URL)")
    parser.add_argument("--images-dir", default=None, help="Directory for generated images (default ./images)")
    parser.add_argument("--logs-dir", default=None, help="Directory for log files (default ./logs)")
    parser.add_argument("--exit-delay", type=float, default=None, help="Idle seconds before exiting in standalone mode")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--pipe", dest="pipe_mode", action="store_const", const=True, default=None, help="Stay resident for multiple requests")
    mode.add_argument("--standalone", dest="pipe_mode", action="store_const", const=False, help="Exit after the idle delay")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging (env DEBUG_MODE=true)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_bridge_config(
        host=args.host,
        port=args.port,
        proxy_port=args.proxy_port,
        api_url=args.api_url,
        images_dir=args.images_dir,
        logs_dir=args.logs_dir,
        exit_delay_seconds=args.exit_delay,
        pipe_mode=args.pipe_mode,
        debug=True if args.debug else None,
    )
    configure_logging(config.logs_dir, debug=config.debug)
    server = BridgeServer(config)
    try:
        return asyncio.run(server.run(check_connection=True, install_signal_handlers=True))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
