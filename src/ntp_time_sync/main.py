#!/usr/bin/env python3
"""
ntp-time-sync command line front end.

Queries the configured NTP servers once and prints the local system time
next to the corrected time.

Usage:
    # Default public pool servers
    ntp-time-sync

    # Config file plus explicit servers
    ntp-time-sync --config /etc/ntp-time-sync.toml --server time.example.net:123

    # Machine-readable output
    ntp-time-sync --json
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import toml

from .client import NtpTimeSync
from .config import load_config
from .exceptions import ConfigurationError, ExhaustionError

logger = logging.getLogger('ntp-time-sync')


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Apply command-line overrides to loaded options."""
    if args.server:
        config['servers'] = list(args.server)
    if args.samples is not None:
        config['sample_count'] = args.samples
    if args.timeout is not None:
        config['reply_timeout_ms'] = args.timeout
    if args.retries is not None:
        config['max_retries'] = args.retries
    return config


async def run(options: Dict[str, Any], force: bool = False, as_json: bool = False) -> int:
    """Synchronize once and print the outcome."""
    sync = NtpTimeSync.get_instance(options)

    system_time = datetime.now(timezone.utc)
    called = await sync.now(force=force)
    result = await sync.get_time()

    if as_json:
        print(result.to_json())
        return 0

    print(f"system time             {system_time.isoformat()}")
    print(f"ntp time when called    {called.isoformat()}")
    print(f"ntp time when finished  {result.now.isoformat()}")
    print(f"offset                  {result.offset_ms:+.3f} ms")
    print(f"precision               {result.precision_ms:.3f} ms")
    print(f"samples                 {len(sync.samples)}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='ntp-time-sync: query NTP servers and report the local clock offset',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    ntp-time-sync
    ntp-time-sync --server 0.pool.ntp.org --server time.example.net:10123
    ntp-time-sync --config ntp-time-sync.toml --json
        """
    )

    parser.add_argument(
        '--config', '-c',
        help='Path to TOML configuration file'
    )
    parser.add_argument(
        '--server', '-s',
        action='append',
        help='NTP server as host or host:port (repeatable, overrides config)'
    )
    parser.add_argument(
        '--samples', '-n',
        type=int,
        help='Number of best samples to keep (default: 8)'
    )
    parser.add_argument(
        '--timeout', '-t',
        type=int,
        help='Reply timeout in milliseconds (default: 3000)'
    )
    parser.add_argument(
        '--retries',
        type=int,
        help='Rounds to attempt when no server answers (default: 3)'
    )
    parser.add_argument(
        '--force',
        action='store_true',
        help='Always query the servers'
    )
    parser.add_argument(
        '--json',
        action='store_true',
        help='Print the result as JSON'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    try:
        options = apply_overrides(load_config(args.config), args)
    except toml.TomlDecodeError as e:
        logger.error(f"Invalid configuration file {args.config}: {e}")
        return 1
    except OSError as e:
        logger.error(f"Cannot read configuration file {args.config}: {e}")
        return 1

    try:
        return asyncio.run(run(options, force=args.force, as_json=args.json))
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except ExhaustionError as e:
        logger.error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
