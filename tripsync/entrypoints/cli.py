#!/usr/bin/env python3
"""CLI Entrypoint - 運用コマンド

使い方:
    python -m tripsync.entrypoints.cli sweep-orphaned-keys [--dry-run]
    python -m tripsync.entrypoints.cli cleanup-trip <tripId>

環境変数:
    LOG_LEVEL: ログレベル (DEBUG, INFO, WARNING, ERROR) デフォルト: INFO
    K_SERVICE / CLOUD_RUN_JOB: Cloud Run 環境では自動設定されJSON形式ログに切替
"""

import argparse
import logging
import sys

from tripsync.entrypoints.factory import create_services
from tripsync.logging_config import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tripsync", description="TripSync 運用コマンド")
    commands = parser.add_subparsers(dest="command", required=True)

    sweep = commands.add_parser(
        "sweep-orphaned-keys",
        help="旅行ドキュメントが存在しない encryptionKeys を削除する",
    )
    sweep.add_argument(
        "--dry-run", action="store_true", help="検出のみ行い削除しない"
    )

    cleanup = commands.add_parser(
        "cleanup-trip", help="削除済み旅行のサブコレクションを削除する"
    )
    cleanup.add_argument("trip_id", help="旅行ID")
    return parser


def main(argv: list[str] | None = None) -> int:
    """メインエントリーポイント"""
    args = build_parser().parse_args(argv)
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        services = create_services()

        if args.command == "sweep-orphaned-keys":
            report = services.sweeper.sweep_orphaned_keys(dry_run=args.dry_run)
            logger.info(
                "Sweep complete - checked=%d, cleaned=%d, orphaned=%s%s",
                report.checked_trips,
                report.cleaned_keys,
                ",".join(report.orphaned_trip_ids) or "-",
                " (dry run)" if args.dry_run else "",
            )
            return 0

        if args.command == "cleanup-trip":
            deleted = services.sweeper.on_trip_deleted(args.trip_id)
            logger.info("Cleanup complete - trip_id=%s, deleted=%d", args.trip_id, deleted)
            return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except Exception:
        logger.exception("Fatal error")
        return 1

    return 2


if __name__ == "__main__":
    sys.exit(main())
