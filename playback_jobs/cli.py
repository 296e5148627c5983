import os
import sys
import json
import asyncio
import logging
import argparse

from . import config
from .config import CleanupSettings
from .db.connection import get_database, close_connection
from .db.init_collections import init_collections, seed_test_data, verify_setup
from .jobs.runner import run_job

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="playback-jobs", description="Playback statistics batch jobs")
    parser.add_argument("--test-mode", action="store_true", default=None,
                        help="Use the test-* collections (default: TEST_MODE env)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("stats", help="Aggregate pending playbacks into user stats")
    sub.add_parser("monthly-stats", help="Create the monthly statistic notification")

    cleanup = sub.add_parser("cleanup", help="Delete playbacks older than the retention window")
    cleanup.add_argument("--days", type=int, help="Retention window in days")
    cleanup.add_argument("--batch-size", type=int, help="Deletes per bulk write")

    seed = sub.add_parser("seed", help="Generate test-mode users, stats and playbacks")
    seed.add_argument("--users", type=int, default=100, help="Number of users to generate")
    seed.add_argument("--playbacks-per-user", type=int, default=1000, help="Playback records per user")

    sub.add_parser("init-db", help="Create collection indexes")

    serve = sub.add_parser("serve", help="Run the job trigger API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=5000)

    return parser


def apply_cleanup_overrides(args):
    """Pass --days / --batch-size through the same env settings the job reads"""
    if getattr(args, "days", None) is not None:
        os.environ["CLEANUP_DAYS"] = str(args.days)
    if getattr(args, "batch_size", None) is not None:
        os.environ["CLEANUP_BATCH_SIZE"] = str(args.batch_size)
    return CleanupSettings.from_env()


def main(argv=None) -> int:
    config.load_env()
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    args = build_parser().parse_args(argv)
    test_mode = config.default_test_mode() if args.test_mode is None else args.test_mode

    if args.command == "serve":
        from .main import serve
        serve(host=args.host, port=args.port)
        return 0

    try:
        db = get_database()

        if args.command == "init-db":
            init_collections(db, test_mode=test_mode)
            verify_setup(db, test_mode=test_mode)
            return 0

        if args.command == "seed":
            result = seed_test_data(db, users=args.users, playbacks_per_user=args.playbacks_per_user,
                                    retention_days=CleanupSettings.from_env().days)
            print(json.dumps(result, indent=2))
            return 0

        job_name = args.command
        if args.command == "cleanup":
            apply_cleanup_overrides(args)
            job_name = "playback-cleanup"

        summary = asyncio.run(run_job(job_name, db, test_mode=test_mode, triggered_by="cli"))
        print(json.dumps(summary, indent=2, default=str))
        return 0

    except Exception as e:
        logger.error(f"❌ {args.command} failed: {e}")
        return 1
    finally:
        close_connection()


if __name__ == "__main__":
    sys.exit(main())
