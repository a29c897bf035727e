#!/usr/bin/env python
"""
Command-line interface for working with a message queue.
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, Optional

from mongo_queue.config import Config

logger = logging.getLogger(__name__)


def _load_json(value: Optional[str], default: Any = None) -> Any:
    if value is None:
        return default
    return json.loads(value)


def _open_queue(args):
    config = Config(args.config)
    return config.get_queue()


def cmd_send(args):
    """Send a message."""
    queue = _open_queue(args)
    payload = _load_json(args.payload)

    kwargs: Dict[str, Any] = {'earliest_get': args.earliest_get}
    if args.priority is not None:
        kwargs['priority'] = args.priority

    message_id = queue.send(payload, **kwargs)
    print(f"Sent message {message_id}")
    return 0


def cmd_get(args):
    """Claim a message and print it."""
    queue = _open_queue(args)
    message = queue.get(
        _load_json(args.query, {}),
        args.reset_duration,
        wait_duration_in_millis=args.wait,
        poll_duration_in_millis=args.poll,
    )

    if message is None:
        print("No message")
        return 0

    print(json.dumps(message, default=str, indent=2))

    if args.ack:
        queue.ack(message)
        logger.info(f"Acked message {message['id']}")
    return 0


def cmd_count(args):
    """Count messages."""
    queue = _open_queue(args)
    running = {'true': True, 'false': False}.get(args.running)
    print(queue.count(_load_json(args.query, {}), running))
    return 0


def cmd_ensure_get_index(args):
    """Ensure the get index exists."""
    queue = _open_queue(args)
    queue.ensure_get_index(_load_json(args.before), _load_json(args.after))
    logger.info("Get index ensured")
    return 0


def cmd_ensure_count_index(args):
    """Ensure a count index exists."""
    queue = _open_queue(args)
    queue.ensure_count_index(_load_json(args.index, {}), args.include_running)
    logger.info("Count index ensured")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MongoDB Message Queue")
    parser.add_argument('--config', '-c', default=None,
                        help='Configuration file path (default: $MONGO_QUEUE_CONFIG_PATH or ./config.yaml)')
    parser.add_argument('--log-level', '-l', choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        default="INFO", help='Logging level (default: INFO)')
    parser.add_argument('--log-file', help='Log to file instead of stderr')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # send command
    send_parser = subparsers.add_parser('send', help='Send a message')
    send_parser.add_argument('payload', help='Message payload as JSON')
    send_parser.add_argument('--earliest-get', type=int, default=0,
                             help='Epoch seconds before which the message is hidden')
    send_parser.add_argument('--priority', type=float,
                             help='Priority, lower first (default: current time)')

    # get command
    get_parser = subparsers.add_parser('get', help='Claim a message')
    get_parser.add_argument('--query', help='Payload query as JSON')
    get_parser.add_argument('--reset-duration', type=int, default=300,
                            help='Seconds to hold the claim (default: 300)')
    get_parser.add_argument('--wait', type=int, default=0,
                            help='Milliseconds to wait for a message (default: 0)')
    get_parser.add_argument('--poll', type=int, default=-1,
                            help='Milliseconds between attempts (default: queue setting)')
    get_parser.add_argument('--ack', action='store_true',
                            help='Acknowledge the message after printing it')

    # count command
    count_parser = subparsers.add_parser('count', help='Count messages')
    count_parser.add_argument('--query', help='Payload query as JSON')
    count_parser.add_argument('--running', choices=['true', 'false'],
                              help='Only count claimed (true) or unclaimed (false) messages')

    # ensure-get-index command
    get_index_parser = subparsers.add_parser('ensure-get-index', help='Ensure the get index')
    get_index_parser.add_argument('--before', help='Payload fields before the sort fields, as JSON')
    get_index_parser.add_argument('--after', help='Payload fields after the sort fields, as JSON')

    # ensure-count-index command
    count_index_parser = subparsers.add_parser('ensure-count-index', help='Ensure a count index')
    count_index_parser.add_argument('--index', help='Payload fields as JSON')
    count_index_parser.add_argument('--include-running', action='store_true',
                                    help='Lead the index with the running flag')

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    if args.log_file:
        logging.basicConfig(level=getattr(logging, args.log_level), format=log_format,
                            filename=args.log_file, filemode='a')
    else:
        logging.basicConfig(level=getattr(logging, args.log_level), format=log_format)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        'send': cmd_send,
        'get': cmd_get,
        'count': cmd_count,
        'ensure-get-index': cmd_ensure_get_index,
        'ensure-count-index': cmd_ensure_count_index,
    }

    try:
        return commands[args.command](args)
    except Exception as e:
        logger.error(f"Command failed: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
