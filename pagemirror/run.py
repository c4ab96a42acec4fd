#!/usr/bin/env python3
"""
pagemirror - Launcher Script
Run this script to start the mirror server.
"""

import logging
import sys

from .app import create_app
from .config import load_config_from_env, set_config


def main():
    """Start the mirror server."""
    config = load_config_from_env()
    set_config(config)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = create_app(config)

    print("=" * 60)
    print("  pagemirror - fetch, rewrite, render")
    print("=" * 60)
    print(f"  Server:    http://{config.host}:{config.port}")
    print(f"  Endpoint:  {config.endpoint}?url=...")
    print(f"  Cookies:   {config.cookie_store}")
    print(f"  Debug:     {config.debug}")
    print("=" * 60)
    print()
    print("  Usage:")
    print(f"    1. Open http://localhost:{config.port} in your browser")
    print("    2. Enter a URL and press Go")
    print(f"    3. Or call http://localhost:{config.port}{config.endpoint}?url=example.com")
    print()
    print("  Press Ctrl+C to stop the server")
    print("=" * 60)

    try:
        app.run(
            host=config.host,
            port=config.port,
            debug=config.debug,
            threaded=True
        )
    except KeyboardInterrupt:
        print("\n\nServer stopped.")
        sys.exit(0)


if __name__ == '__main__':
    main()
