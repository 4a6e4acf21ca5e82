#!/usr/bin/env python3
"""
AutoExamChecker API
Launcher script

Usage:
    python run.py [--port PORT] [--host HOST] [--debug]

Examples:
    python run.py
    python run.py --port 8080
    python run.py --host 0.0.0.0 --port 5002 --debug
"""

import argparse
import logging
import sys

from app import create_app
from autoexam.core.config import Config


def main():
    """Start the application"""
    parser = argparse.ArgumentParser(description='AutoExamChecker API')
    parser.add_argument('--host', default=Config.HOST, help=f'host address (default: {Config.HOST})')
    parser.add_argument('--port', type=int, default=Config.PORT, help=f'port (default: {Config.PORT})')
    parser.add_argument('--debug', action='store_true', help='run with the debugger and reloader')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else Config.LOG_LEVEL,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    logger = logging.getLogger('autoexam')

    try:
        app = create_app()
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("AutoExamChecker API")
    logger.info(f"URL: http://{args.host}:{args.port}")
    logger.info(f"Storage: {app.storage.mode}")
    logger.info("=" * 60)

    try:
        app.run(host=args.host, port=args.port, debug=args.debug, use_reloader=args.debug)
    except KeyboardInterrupt:
        logger.info("Stopped")
        sys.exit(0)


if __name__ == '__main__':
    main()
