#!/usr/bin/env python3

import argparse
import asyncio
import json
import logging
import sys

from auto_accept import AutoAccept
from automation_config import Constants
from selector_registry import Environment

logger = logging.getLogger("auto_accept_cli")

EXIT_UNAVAILABLE = 2


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Automatically accept AI assistant actions in a code editor')
    parser.add_argument('--ide', '-i', type=str, default='code', help='Editor: cursor, antigravity or code')
    parser.add_argument('--background', '-b', action='store_true', help='Cycle across all open chats')
    parser.add_argument('--frequency', '-f', type=int, default=Constants.POLL_DEFAULT, help='Click poll interval in ms')
    parser.add_argument('--port', '-p', type=int, default=Constants.DEFAULT_PORT, help='Default remote debugging port')
    parser.add_argument('--banned', action='append', default=None, metavar='PATTERN',
                        help='Banned command pattern (repeatable, replaces the defaults)')
    parser.add_argument('--check', action='store_true', help='Report whether the debugging endpoint is reachable and exit')
    parser.add_argument('--probe', action='store_true', help='Print which selectors match on each surface and exit')
    parser.add_argument('--verbose', '-v', action='store_true')
    return parser.parse_args(argv)


async def run(args) -> int:
    auto = await AutoAccept.create(
        environment=Environment.parse(args.ide),
        port=args.port,
        poll_frequency=args.frequency,
        banned_commands=args.banned,
        background_mode=args.background,
    )
    try:
        if args.check:
            if await auto.is_available():
                print('Remote debugging endpoint is reachable.')
                return 0
            print(f'Remote debugging endpoint not reachable on ports {auto.connections.ports}. '
                  f'Start the editor with --remote-debugging-port={args.port}.')
            return EXIT_UNAVAILABLE

        if args.probe:
            result = await auto.sync()
            if not result.available:
                print('Remote debugging endpoint not reachable.')
                return EXIT_UNAVAILABLE
            print(json.dumps(await auto.probe_selectors(), indent=2))
            return 0

        await auto.set_enabled(True)
        logger.info(f'Auto Accept running (session {auto.session_id}); press Ctrl+C to stop')
        while True:
            await asyncio.sleep(Constants.SYNC_INTERVAL)
            logger.debug(
                f'connections={auto.connection_count} clicks={auto.click_count} no_tab_cycles={auto.no_tab_cycles}'
            )
    finally:
        logger.info('Cleaning up...')
        await auto.close()


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(asctime)s] %(levelname)s %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info('Interrupted, stopping.')
        return 0


if __name__ == '__main__':
    sys.exit(main())
