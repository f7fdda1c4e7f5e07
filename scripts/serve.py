#!/usr/bin/env python3
"""
Start the HTTP API.

Usage:
  python3 scripts/serve.py [--config config.yaml] [--port 5000]
"""

import sys
import argparse
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from livenotes.app import create_app
from livenotes.config import AppConfig, get_config, set_config


def main() -> int:
    parser = argparse.ArgumentParser(description="Serve the live lecture notes API")
    parser.add_argument("--config", type=str, default="", help="YAML configuration file")
    parser.add_argument("--host", type=str, default=None)
    parser.add_argument("--port", type=int, default=None)
    args = parser.parse_args()

    if args.config:
        set_config(AppConfig.from_yaml(Path(args.config)))
    cfg = get_config()

    app = create_app(cfg)
    app.run(
        host=args.host or cfg.web.host,
        port=args.port or cfg.web.port,
        debug=cfg.web.debug,
        use_reloader=False,
        threaded=True,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
