#!/usr/bin/env python3
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

"""Probe every candidate Draw Things endpoint and report which ones answer.

Exit status is 0 when at least one endpoint is reachable, 1 otherwise.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mcp_bridge.config import BridgeConfig, load_bridge_config
from mcp_bridge.generation_client import GenerationClient
from mcp_bridge.logging_setup import configure_logging


async def check_endpoints(config: BridgeConfig) -> List[Dict[str, Any]]:
    client = GenerationClient(config)
    report: List[Dict[str, Any]] = []
    for base_url in config.candidate_base_urls():
        reachable = await client.probe(base_url)
        report.append({"base_url": base_url, "reachable": reachable})
    return report


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--proxy-port", type=int, default=None)
    parser.add_argument("--attempts", type=int, default=None, help="Probe attempts per endpoint")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args(argv)

    config = load_bridge_config(
        host=args.host,
        port=args.port,
        proxy_port=args.proxy_port,
        probe_attempts=args.attempts,
        debug=True if args.debug else None,
    )
    configure_logging(None, debug=config.debug)
    report = asyncio.run(check_endpoints(config))
    print(json.dumps({"endpoints": report}, indent=2))
    return 0 if any(entry["reachable"] for entry in report) else 1


if __name__ == "__main__":
    raise SystemExit(main())
