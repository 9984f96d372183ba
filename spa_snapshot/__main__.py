#!/usr/bin/env python3
"""
SPA Snapshot CLI
================
Generates static HTML snapshots for a published single-page app folder.

All configuration flows through ``SnapshotRunConfig``: flags and
``SPA_SNAPSHOT_*`` environment variables (``.env`` supported) populate it.

Run with: python -m spa_snapshot --folder <path>
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from . import platforms
from .errors import SnapshotError
from .provisioner import RuntimeProvisioner
from .run_config import SnapshotRunConfig
from .runner import SnapshotResult, snapshot_site

logger = logging.getLogger(__name__)

_LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'


def _positive_seconds(value: str) -> float:
    seconds = float(value)
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {value}")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='spa-snapshot',
        description='Static snapshot generator for published single-page app folders',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m spa_snapshot --folder ./dist
  python -m spa_snapshot --folder ./wwwroot --headed --timeout 120
  python -m spa_snapshot --provision-only
        """
    )
    parser.add_argument('--folder', type=str, help='Path to the published app folder (required unless --provision-only)')
    parser.add_argument('--cache-dir', type=str, help='Browser bundle cache directory')
    parser.add_argument('--timeout', type=_positive_seconds, help='Seconds to wait for all snapshots (default: 90)')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('--force-download', action='store_true', help='Ignore the cached browser and download it again')
    parser.add_argument('--no-rules', action='store_true', help='Do not write _headers / _redirects')
    parser.add_argument('--provision-only', action='store_true', help='Only download/verify the browser and print its path')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def print_summary(result: SnapshotResult) -> None:
    print("\n" + "=" * 65)
    print("SNAPSHOT COMPLETE")
    print("=" * 65)
    print(f"  Routes discovered:   {len(result.routes)}")
    print(f"  Snapshots written:   {len(result.written)}")
    print(f"  Total time:          {result.elapsed_s:.1f}s")
    print("=" * 65)


def _provision_only(cfg: SnapshotRunConfig) -> int:
    target = platforms.resolve()
    exe = RuntimeProvisioner(cfg).ensure(target, force_reacquire=cfg.force_download)
    print(exe)
    return 0


def main(argv=None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=_LOG_FORMAT,
        datefmt='%H:%M:%S'
    )

    cfg = SnapshotRunConfig.from_cli_args(args)

    if not args.provision_only and not args.folder:
        parser.print_usage(sys.stderr)
        logger.error("--folder is required")
        return 1

    try:
        if args.provision_only:
            return _provision_only(cfg)
        cfg.log_summary(args.folder)
        result = snapshot_site(Path(args.folder), cfg)
    except SnapshotError as exc:
        logger.error(f"Snapshot failed: {exc}")
        return 1

    print_summary(result)
    return 0


if __name__ == '__main__':
    sys.exit(main())
