#!/usr/bin/env python
"""
Plugin Chat Service - Interactive CLI

Usage:
    python -m cli.main
    python -m cli.main --server http://127.0.0.1:9090 --max-steps 5
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables FIRST (before importing project modules)
load_dotenv('.env')

from cli.client import DEFAULT_SERVER_URL
from cli.repl import REPLRunner

# Configure logging
log_dir = Path(__file__).parent.parent / "log"
log_dir.mkdir(exist_ok=True)

root_logger = logging.getLogger()
root_logger.setLevel(logging.INFO)

# File handler - everything from INFO up
file_handler = logging.FileHandler(
    log_dir / "cli.log",
    encoding='utf-8'
)
file_handler.setLevel(logging.INFO)
file_formatter = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
file_handler.setFormatter(file_formatter)

# Console handler - WARNING and up only, INFO would clutter the REPL
console_handler = logging.StreamHandler()
console_handler.setLevel(logging.WARNING)
console_formatter = logging.Formatter('%(levelname)s: %(message)s')
console_handler.setFormatter(console_formatter)

root_logger.addHandler(file_handler)
root_logger.addHandler(console_handler)


def parse_args():
    parser = argparse.ArgumentParser(
        description='Plugin Chat Service - Interactive CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        '--server',
        type=str,
        default=DEFAULT_SERVER_URL,
        help=f'Chat service base URL (default: {DEFAULT_SERVER_URL})'
    )
    parser.add_argument(
        '--max-steps',
        type=int,
        default=None,
        help='Step cap per turn (default: server setting)'
    )
    return parser.parse_args()


def main():
    try:
        args = parse_args()
        repl = REPLRunner(server_url=args.server, max_steps=args.max_steps)
        asyncio.run(repl.run())
    except KeyboardInterrupt:
        print("\n\033[33minterrupted\033[0m")
        sys.exit(0)


if __name__ == "__main__":
    main()
