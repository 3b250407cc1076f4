#!/usr/bin/env python3
"""
Batch reindex and repair.

Generates missing lossless WebP derivatives and metadata sidecars, and
rebuilds the image and tag search indexes from the database. Safe to
re-run; an interrupted run picks up where it left off.

Usage:
    python scripts/reindex.py
    python scripts/reindex.py --only lossless-derivative --concurrency 8
    python scripts/reindex.py --only reindex-images,reindex-tags --dry-run
"""

import argparse
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tqdm import tqdm

import config
from app import create_app
from services.system import ALL_TARGETS, ReindexOptions, ReindexTarget


def parse_targets(values):
    """Accept repeated --only flags and comma separated lists."""
    if not values:
        return list(ALL_TARGETS)
    names = [name.strip() for value in values for name in value.split(',') if name.strip()]
    targets = []
    for name in names:
        try:
            target = ReindexTarget(name)
        except ValueError:
            valid = ', '.join(t.value for t in ALL_TARGETS)
            raise argparse.ArgumentTypeError(f"unknown target '{name}' (choose from {valid})")
        if target not in targets:
            targets.append(target)
    # always run in pipeline order
    return [t for t in ALL_TARGETS if t in targets]


def build_parser():
    parser = argparse.ArgumentParser(description='Regenerate derivatives and rebuild search indexes')
    parser.add_argument(
        '--only',
        action='append',
        metavar='TARGET',
        help='Target(s) to run: ' + ', '.join(t.value for t in ALL_TARGETS) + ' (default: all)'
    )
    parser.add_argument(
        '--batch-size',
        type=int,
        default=config.REINDEX_BATCH_SIZE,
        help=f'Images per batch (default: {config.REINDEX_BATCH_SIZE})'
    )
    parser.add_argument(
        '--concurrency',
        type=int,
        default=config.REINDEX_CONCURRENCY,
        help=f'Images processed in parallel within a batch (default: {config.REINDEX_CONCURRENCY})'
    )
    parser.add_argument(
        '--sleep',
        type=int,
        default=config.REINDEX_SLEEP_MS,
        metavar='MS',
        help=f'Pause between batches in milliseconds (default: {config.REINDEX_SLEEP_MS})'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be done without writing anything'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Debug logging, including tracebacks for failed items'
    )
    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable progress bars'
    )
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = ReindexOptions(
            targets=parse_targets(args.only),
            batch_size=args.batch_size,
            concurrency=args.concurrency,
            sleep_ms=args.sleep,
            dry_run=args.dry_run,
        )
    except (argparse.ArgumentTypeError, ValueError) as e:
        parser.error(str(e))

    print("=" * 60)
    print("Reindex" + (" (DRY RUN)" if options.dry_run else ""))
    print("=" * 60)
    print(f"Targets:     {', '.join(t.value for t in options.targets)}")
    print(f"Batch size:  {options.batch_size}")
    print(f"Concurrency: {options.concurrency}")
    print(f"Sleep:       {options.sleep_ms}ms")
    print()

    app = create_app(initialize_indexes=False, simple_logging=True,
                     log_level="DEBUG" if args.verbose else None)
    runner = app.reindex_runner(
        options,
        log=tqdm.write,
        progress=None if args.no_progress else tqdm,
    )
    results = runner.run()

    print()
    print("=" * 60)
    print("Reindex Complete")
    print("=" * 60)
    total_failed = 0
    for target, summary in results.items():
        counts = ', '.join(f"{name}: {count}" for name, count in summary.items())
        print(f"{target:<22} {counts}")
        total_failed += summary['failed']
    print()

    if total_failed > 0:
        print(f"Warning: {total_failed} items failed. Check the log above for details.")
        return 1
    print("All items processed successfully!")
    return 0


if __name__ == '__main__':
    sys.exit(main())
