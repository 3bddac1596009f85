# hushroom/main.py
# Main entry point for starting the Hushroom relay server.
# It parses command line overrides, sets up logging, reads configuration from the 'config'
# module, and runs the asynchronous server startup defined in the 'server' module.
#
# Usage:
#   hushroom [--host HOST] [--port PORT] [--debug]
#   python -m hushroom.main

import argparse
import asyncio
import logging

from . import config
from . import server


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Hushroom - passphrase-gated single-room chat relay')
    parser.add_argument('--host', type=str, default=config.HOST,
                        help=f'Host to bind to (default: {config.HOST})')
    parser.add_argument('--port', type=int, default=config.PORT,
                        help=f'Port for WebSocket and HTTP API (default: {config.PORT})')
    parser.add_argument('--debug', action='store_true', default=config.DEBUG,
                        help='Log frame contents, including chat text')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    config.DEBUG = args.debug

    # Timestamp, level name and message, as for every other log line the relay writes.
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    logging.info("Attempting to start server from main.py...")
    try:
        logging.info(f"Using HOST={args.host}, PORT={args.port}")
        asyncio.run(server.start_server(args.host, args.port))
    except KeyboardInterrupt:
        logging.info("Server stopped manually via KeyboardInterrupt.")
    except Exception:
        # Port already in use and other startup failures end up here.
        logging.exception("Server failed to start or crashed in main.py")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
