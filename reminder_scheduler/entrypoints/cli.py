#!/usr/bin/env python3
"""CLI Entrypoint - コマンドラインから実行

ユーザーのリマインダーを rehydrate し、発火イベントをログに出しながら待機する。

使い方:
    python -m reminder_scheduler.entrypoints.cli --owner <uid>

環境変数:
    PROJECT_ID: Firestore の GCP プロジェクト ID（必須）
    LOG_LEVEL: ログレベル (DEBUG, INFO, WARNING, ERROR) デフォルト: INFO
    K_SERVICE / CLOUD_RUN_JOB: Cloud Run 環境では自動設定されJSON形式ログに切替
"""

import argparse
import asyncio
import logging
import sys

from reminder_scheduler.entrypoints.factory import create_coordinator
from reminder_scheduler.logging_config import setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the reminder scheduler for one user")
    parser.add_argument("--owner", required=True, help="Owner (user) ID to rehydrate")
    parser.add_argument(
        "--check-only",
        action="store_true",
        help="Rehydrate, report and exit without waiting for fires",
    )
    return parser.parse_args(argv)


async def run(owner_id: str, check_only: bool = False) -> int:
    """rehydrate して待機する。戻り値は終了コード"""
    coordinator = create_coordinator()
    coordinator.fired.subscribe(
        lambda event: logger.info(
            "FIRED reminder_id=%s source=%s at=%s",
            event.reminder_id,
            event.source.value,
            event.fired_at.isoformat(),
        )
    )

    try:
        report = await coordinator.rehydrate(owner_id)

        for reminder_id, failures in report.failures.items():
            for failure in failures:
                logger.error(
                    "[%s] %s - Error: %s", reminder_id, failure.engine.value, failure.error
                )

        if check_only:
            return 1 if report.failures else 0

        logger.info("Waiting for reminders to fire (Ctrl-C to stop)...")
        await asyncio.Event().wait()
        return 0
    finally:
        await coordinator.shutdown()


def main(argv=None):
    """メインエントリーポイント"""
    setup_logging()
    args = parse_args(argv)

    logger.info("Reminder Scheduler - Starting")

    try:
        exit_code = asyncio.run(run(args.owner, check_only=args.check_only))

        if exit_code:
            logger.warning("Some reminders could not be reactivated")
            sys.exit(exit_code)

        logger.info("Reminder Scheduler - Finished")

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)

    except Exception:
        logger.exception("Fatal error")
        sys.exit(1)


if __name__ == "__main__":
    main()
