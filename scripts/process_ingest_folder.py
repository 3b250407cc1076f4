#!/usr/bin/env python3
"""
Process all files currently in the ingest folder.

This script is useful when:
- Files were dropped into the ingest folder while nothing was watching
- You want to manually trigger processing of ingest files
- You want a standalone watcher (--watch) without any other service

Usage:
    python scripts/process_ingest_folder.py
    python scripts/process_ingest_folder.py --watch
"""

import argparse
import os
import sys
import time

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config
from app import create_app
from services import monitor_service


def print_recent_logs(limit=15):
    print("\nRecent processing logs:")
    status = monitor_service.get_status()
    for log in status['logs'][:limit]:
        marker = {"info": "ℹ", "success": "✓", "warning": "⚠", "error": "✗"}.get(log['type'], "•")
        print(f"  {marker} {log['message']}")


def run_once(app, directory, delete_after):
    ingest_files = monitor_service.find_ingest_files(directory)

    if not ingest_files:
        print("✓ No files in ingest folder. All clear!")
        return 0

    print(f"Found {len(ingest_files)} files to process:")
    for f in ingest_files[:10]:
        print(f"  - {os.path.relpath(f, directory)}")
    if len(ingest_files) > 10:
        print(f"  ... and {len(ingest_files) - 10} more")

    print("\nStarting processing...")
    print("-" * 70)
    counts = monitor_service.run_scan(app, directory, delete_after=delete_after)
    print("-" * 70)
    print(f"\n✓ Processed {counts['processed']} new, {counts['duplicates']} duplicates, "
          f"{counts['failed']} failed")

    print_recent_logs()
    return 1 if counts['failed'] else 0


def watch(app, directory, delete_after):
    monitor_service.start_monitor(app, directory, delete_after=delete_after)
    print("Watching for new PNG files. Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        monitor_service.stop_monitor()
    status = monitor_service.get_status()
    print(f"✓ Processed {status['total_processed']} new, {status['total_duplicates']} duplicates, "
          f"{status['total_failed']} failed")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description='Ingest PNG files from the ingest folder')
    parser.add_argument(
        '--directory', '-d',
        default=config.INGEST_DIRECTORY,
        help=f'Folder to ingest from (default: {config.INGEST_DIRECTORY})'
    )
    parser.add_argument(
        '--watch', '-w',
        action='store_true',
        help='Keep running and ingest new files as they arrive'
    )
    delete_group = parser.add_mutually_exclusive_group()
    delete_group.add_argument('--delete', dest='delete_after', action='store_true', default=None,
                              help='Delete files after successful ingest')
    delete_group.add_argument('--keep', dest='delete_after', action='store_false',
                              help='Keep files after ingest')
    args = parser.parse_args(argv)

    delete_after = config.DELETE_AFTER_INGEST if args.delete_after is None else args.delete_after

    print("=" * 70)
    print("Ingest Folder Processing Script")
    print("=" * 70)
    print(f"Ingest directory: {args.directory}")
    print(f"Delete after ingest: {delete_after}\n")

    if not args.watch and not os.path.exists(args.directory):
        print(f"Ingest folder not found: {args.directory}")
        return 1

    app = create_app(simple_logging=True)

    if args.watch:
        return watch(app, args.directory, delete_after)
    return run_once(app, args.directory, delete_after)


if __name__ == '__main__':
    sys.exit(main())
