#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import sys
import logging
import traceback
from argparse import ArgumentParser

import smlogging
from smlogging import log, DEBUG, INFO, ERROR, WARNING
from TileStorage import StoreError
from TileMerging import merge, MergeOptions, ConfigError, MergeError
from MergeProgress import MergeProgress, NoProgress


class MergeArgumentParser(ArgumentParser):

    def error(self, message):
        # usage errors exit with 1 like every other failure of this tool
        self.print_usage(sys.stderr)
        self.exit(1, "%s: error: %s\n" % (self.prog, message))


def create_arg_parser():
    parser = MergeArgumentParser(
        prog="merge_mbtiles.py",
        description="Merge all tiles of SOURCE into TARGET. Identical images "
                    "are stored once, tiles already in TARGET are replaced."
    )
    parser.add_argument(
        'source',
        help='MBTiles file to read tiles from'
    )
    parser.add_argument(
        'target',
        help='existing MBTiles file to merge the tiles into'
    )
    parser.add_argument(
        '--read-batch',
        type=int, default=MergeOptions.readBatch, metavar='N',
        help='tiles per page fetch (default: %(default)s)'
    )
    parser.add_argument(
        '--write-concurrency',
        type=int, default=MergeOptions.writeConcurrency, metavar='N',
        help='number of concurrent writers (default: %(default)s)'
    )
    parser.add_argument(
        '--progress-interval',
        type=int, default=MergeOptions.progressInterval, metavar='N',
        help='print progress every N tiles (default: %(default)s)'
    )
    parser.add_argument(
        '--queue-size',
        type=int, default=MergeOptions.queueSize, metavar='N',
        help='tiles waiting for a writer before reading pauses, '
             '0 for %d per writer (default: %%(default)s)' % MergeOptions.queueFactor
    )
    parser.add_argument(
        '--update-metadata',
        action='store_true',
        help='refresh minzoom, maxzoom, bounds and format of TARGET'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='log progress of pages and writers'
    )
    parser.add_argument(
        '-q', '--quiet',
        action='store_true',
        help='do not print progress'
    )
    return parser


def main(args=None):
    parser = create_arg_parser()
    if args is None:
        args = sys.argv[1:]
    if len(args) == 0:
        parser.print_help(sys.stderr)
        return 1
    args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s"
    )
    if args.verbose:
        smlogging.setLogLevel(DEBUG | INFO | ERROR | WARNING)

    try:
        options = MergeOptions(
            readBatch=args.read_batch,
            writeConcurrency=args.write_concurrency,
            progressInterval=args.progress_interval,
            queueSize=args.queue_size,
            updateMetadata=args.update_metadata
        )
        merge(args.source, args.target, options,
              NoProgress if args.quiet else MergeProgress)
    except (ConfigError, StoreError, MergeError) as err:
        print("Error: %s" % err, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted, target is partially merged", file=sys.stderr)
        return 1
    except Exception as err:
        log(DEBUG, traceback.format_exc())
        print("Error: %s" % err, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
