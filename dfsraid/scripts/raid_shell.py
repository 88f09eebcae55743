#!/usr/bin/env python3
"""
Command line client of the RAID node.

    raid-shell -recover <path> <offset> [<path> <offset> ...]
"""

import argparse
import logging
import os
import sys
from typing import List, Optional, Tuple

import requests

from dfsraid.config.base_config import API_PORT

logger = logging.getLogger(__name__)

DEFAULT_URL = os.getenv('RAID_NODE_URL', f'http://localhost:{API_PORT}')


def setup_logging():
    """Configure logging with consistent format."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def parse_args(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(prog='raid-shell', description='RAID node shell')
    parser.add_argument('--url', default=DEFAULT_URL,
                        help='Base URL of the RAID node API')
    parser.add_argument('--timeout', type=float, default=300.0,
                        help='Request timeout in seconds')
    parser.add_argument('-recover', nargs='+', metavar='PATH OFFSET', required=True,
                        help='Reconstruct the stripe containing each offset')
    args = parser.parse_args(argv)
    if len(args.recover) % 2 != 0:
        parser.error('-recover takes pairs of <path> <offset>')
    try:
        args.pairs = [
            (args.recover[i], int(args.recover[i + 1]))
            for i in range(0, len(args.recover), 2)
        ]
    except ValueError:
        parser.error('offsets must be integers')
    return args


def recover(url: str, path: str, offset: int, timeout: float = 300.0) -> dict:
    """Ask the RAID node to recover one stripe.

    Raises:
        RuntimeError: If the node reports an error
    """
    response = requests.post(
        f"{url.rstrip('/')}/raid/recover",
        json={'path': path, 'offset': offset},
        timeout=timeout
    )
    body = response.json()
    if response.status_code != 200:
        raise RuntimeError(body.get('error', {}).get('message', response.text))
    return body


def run_recovery(url: str, pairs: List[Tuple[str, int]], timeout: float) -> int:
    failures = 0
    for path, offset in pairs:
        try:
            result = recover(url, path, offset, timeout)
        except (requests.RequestException, RuntimeError, ValueError) as e:
            logger.error(f"Recovery of {path} at offset {offset} failed: {str(e)}")
            failures += 1
            continue
        print(result['recovered_path'])
    return 1 if failures else 0


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = parse_args(argv)
    return run_recovery(args.url, args.pairs, args.timeout)


if __name__ == '__main__':
    sys.exit(main())
