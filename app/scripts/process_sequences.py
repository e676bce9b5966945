"""Run one sequence executor pass from the command line.

Usage:
    python -m app.scripts.process_sequences
    python -m app.scripts.process_sequences --business-id=<uuid> --dry-run

Same work as POST /api/v1/cron/process-sequences, for hosts that schedule
with system cron instead of an HTTP scheduler.
"""

import argparse
import asyncio
import logging
import sys
from uuid import UUID

from sqlalchemy import func, select

from app.core.config import get_engine_config, settings
from app.core.database import async_session, engine
from app.models.enrollment import EnrollmentStatus, SequenceEnrollment
from app.services.sequence_executor import build_executor

logger = logging.getLogger(__name__)


async def count_active(business_id: UUID | None) -> int:
    async with async_session() as db:
        query = select(func.count(SequenceEnrollment.id)).where(
            SequenceEnrollment.status == EnrollmentStatus.ACTIVE.value
        )
        if business_id:
            query = query.where(SequenceEnrollment.business_id == business_id)
        return (await db.execute(query)).scalar_one()


async def run(business_id: UUID | None, dry_run: bool) -> int:
    try:
        if dry_run:
            active = await count_active(business_id)
            print(f"{active} active enrollments would be processed")
            return 0

        executor = build_executor(get_engine_config())
        result = await executor.run(business_id=business_id)
        print(
            f"Processed {result.processed} enrollments: {result.sent} sent, {result.failed} failed, "
            f"{result.advanced} advanced, {result.completed} completed, {result.canceled} canceled, "
            f"{result.errors} errors"
        )
        return 1 if result.errors else 0
    finally:
        await engine.dispose()


def main():
    """Parse CLI arguments and run one executor pass."""
    parser = argparse.ArgumentParser(description="Process due follow-up sequence steps")
    parser.add_argument(
        "--business-id",
        help="Only process enrollments of this business",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Count active enrollments without executing anything",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    business_id = None
    if args.business_id:
        try:
            business_id = UUID(args.business_id)
        except ValueError:
            print(f"Error: invalid business id '{args.business_id}'", file=sys.stderr)
            sys.exit(2)

    sys.exit(asyncio.run(run(business_id, args.dry_run)))


if __name__ == "__main__":
    main()
