#!/usr/bin/env python3
import argparse
import sys

import cherrypy

from catcache import __version__
from catcache.app import DEFAULT_CORS_ORIGIN, create_app
from catcache.origin import DEFAULT_ORIGIN, make_fetcher
from catcache.storage import open_storage
from catcache.utils import say


def port_number(value):
    try:
        port = int(value)
    except ValueError:
        port = 0
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError('Port must be an integer between 1 and 65535')
    return port


def get_args(argv=None):
    parser = argparse.ArgumentParser(
        prog='catcache',
        description='HTTP server with cache: GET/PUT/DELETE /<code> for JPEG files',
        # -h is the host; help stays available as --help
        conflict_handler='resolve',
    )
    parser.add_argument(
        '-h', '--host',
        help='Server host, e.g. 127.0.0.1',
        type=str,
        required=True,
    )
    parser.add_argument(
        '-p', '--port',
        help='Server port, e.g. 3000',
        type=port_number,
        required=True,
    )
    parser.add_argument(
        '-c', '--cache',
        help='Cache directory (created if missing), or s3://bucket/prefix',
        type=str,
        required=True,
    )
    parser.add_argument(
        '--origin',
        help=f'Remote origin URL template for cache misses (default: {DEFAULT_ORIGIN})',
        type=str,
        default=DEFAULT_ORIGIN,
    )
    parser.add_argument(
        '--no-origin',
        help='Never fetch from a remote origin; misses are 404',
        action='store_true',
    )
    parser.add_argument(
        '--cors-origin',
        help='Value of the Access-Control-Allow-Origin header (default: *)',
        type=str,
        default=DEFAULT_CORS_ORIGIN,
    )
    parser.add_argument(
        '-V', '--version',
        action='version',
        version=f'%(prog)s {__version__}',
    )
    args = parser.parse_args(argv)

    if not args.no_origin and '{code}' not in args.origin:
        parser.error('--origin must contain a {code} placeholder')

    return args


def main(argv=None):
    args = get_args(argv)

    try:
        storage = open_storage(args.cache)
    except OSError as e:
        say(f'Failed to ensure cache directory "{args.cache}": {e}')
        sys.exit(1)

    fetcher = make_fetcher(None if args.no_origin else args.origin)
    api, conf = create_app(storage, fetcher, cors_origin=args.cors_origin)

    cherrypy.tree.mount(api, '/', conf)
    cherrypy.config.update({
        'server.socket_host': args.host,
        'server.socket_port': args.port,
        'environment': 'production',
        'log.screen': True,
    })

    # On failure the engine has already shut itself down
    try:
        cherrypy.engine.start()
    except Exception as e:
        say(f'Server failed to start: {e}')
        sys.exit(1)

    say(f'[STARTED] http://{args.host}:{args.port}  (cache: {args.cache})')
    cherrypy.engine.block()


if __name__ == '__main__':
    main()
