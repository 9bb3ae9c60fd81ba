#!/usr/bin/env python3
"""Admin script to recompute rating aggregates from the stored ratings.

Usage:
    python scripts/recompute_scores.py             # every user
    python scripts/recompute_scores.py <user_id>   # one user
"""

import asyncio
import logging
import sys

from orgflow.core import db_client
from orgflow.services import scoring_service


logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


def print_usage() -> None:
    """Print usage information."""
    logger.info(__doc__)


async def main() -> None:
    """Main entry point."""
    args = sys.argv[1:]

    if "--help" in args or "-h" in args:
        print_usage()
        return

    await db_client.init_db()

    try:
        if args:
            summaries = [await scoring_service.recompute(user_id=args[0])]
        else:
            summaries = await scoring_service.recompute_all()

        for summary in summaries:
            logger.info(f"{summary.user_id}: score={summary.rating_score} count={summary.rating_count}")
    finally:
        await db_client.close_connection()


if __name__ == "__main__":
    asyncio.run(main())
