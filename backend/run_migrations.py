from __future__ import annotations

import argparse
import logging
import sys

from bootstrap import BOOTSTRAP_MARKER_ACTION, run_bootstrap

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the database tables and seed the default admin.")
    parser.add_argument(
        "--force",
        action="store_true",
        help=f"Run even if a `{BOOTSTRAP_MARKER_ACTION}` log entry already exists.",
    )
    parser.add_argument("--admin-email", help="Overrides DEFAULT_ADMIN_EMAIL.")
    parser.add_argument("--admin-password", help="Overrides DEFAULT_ADMIN_PASSWORD.")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logger.info("Running backend bootstrap...")
    ran = run_bootstrap(force=args.force, email=args.admin_email, password=args.admin_password)
    if not ran:
        logger.info(
            "Bootstrap marker `%s` already exists. Nothing to do. Use --force to rerun.",
            BOOTSTRAP_MARKER_ACTION,
        )
        return 0
    logger.info("Bootstrap completed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
