#!/usr/bin/env python3
"""Fetch a URL or file through the local cache and print or save its content."""
import argparse
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from webcache import config, expiry  # noqa: E402
from webcache.errors import UsageError, WebCacheError  # noqa: E402
from webcache.listeners import PrettyPrintJsonListener  # noqa: E402
from webcache.resource import CachedResource  # noqa: E402
from webcache.storage import LocalFileStorage  # noqa: E402
from webcache.utils import configure_logging, say  # noqa: E402


def time_of_day(value):
    """argparse type for HH:MM"""
    try:
        hour, minute = (int(part) for part in value.split(':'))
    except ValueError:
        raise argparse.ArgumentTypeError(f'expected HH:MM, not {value!r}')
    return hour, minute


def get_expiry_listener(args):
    if args.always:
        return expiry.always()
    if args.never:
        return expiry.never()
    if args.daily:
        return expiry.daily(*args.daily)
    if args.wait_hours is not None:
        return expiry.wait_hours(args.wait_hours)
    if args.wait_minutes is not None:
        return expiry.wait_minutes(args.wait_minutes)
    return None


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument(
        'source',
        help='URL (http or https) or path of the external resource',
    )
    parser.add_argument(
        '-d', '--directory',
        help='Cache directory (default: $WEBCACHE_DIR or the user cache directory)',
        type=str,
    )
    parser.add_argument(
        '-o', '--output',
        help='Write the body to this file instead of stdout',
        type=str,
    )
    parser.add_argument(
        '-p', '--properties',
        help='Print the cached properties instead of the body',
        action='store_true',
    )
    parser.add_argument(
        '--pretty',
        help='Also keep a pretty printed copy of JSON bodies in the cache',
        action='store_true',
    )
    parser.add_argument(
        '-v', '--verbose',
        help='Debug logging',
        action='store_true',
    )
    policy = parser.add_mutually_exclusive_group()
    policy.add_argument('--always', help='Always check the server', action='store_true')
    policy.add_argument('--never', help='Never check the server once cached', action='store_true')
    policy.add_argument('--daily', help='Check once a day after HH:MM', type=time_of_day, metavar='HH:MM')
    policy.add_argument('--wait-hours', help='Check again after N hours', type=int, metavar='N')
    policy.add_argument('--wait-minutes', help='Check again after N (> 10) minutes', type=int, metavar='N')
    args = parser.parse_args()

    configure_logging(args.verbose)

    storage = LocalFileStorage(args.directory or config.default_cache_dir())
    try:
        if '://' in args.source:
            resource = CachedResource.for_url(args.source, storage)
        else:
            resource = CachedResource.for_file(args.source, storage)
        listener = get_expiry_listener(args)
    except UsageError as e:
        parser.error(str(e))

    if listener is not None:
        resource.add_listener(listener)
    if args.pretty:
        resource.add_listener(PrettyPrintJsonListener())

    try:
        body = resource.read_bytes()
    except WebCacheError as e:
        say(f'Error fetching {resource.name}: {e}')
        sys.exit(1)

    if args.properties:
        print(resource.properties.dumps(), end='')
    elif args.output:
        with open(args.output, 'wb') as f:
            f.write(body)
    else:
        sys.stdout.buffer.write(body)
        sys.stdout.flush()


if __name__ == '__main__':
    main()
