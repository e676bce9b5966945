"""Scheduler entry points.

The external scheduler calls this every few minutes with
`Authorization: Bearer <CRON_SECRET>`.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.core.deps import get_sequence_executor, verify_cron_secret
from app.schemas.enrollment import BatchResultOut
from app.services.sequence_executor import SequenceExecutor

router = APIRouter()
logger = logging.getLogger(__name__)


@router.api_route(
    "/process-sequences",
    methods=["GET", "POST"],
    response_model=BatchResultOut,
    dependencies=[Depends(verify_cron_secret)],
)
async def process_sequences(
    business_id: Optional[UUID] = Query(None, description="Limit the pass to one business"),
    executor: SequenceExecutor = Depends(get_sequence_executor),
):
    """Run one batch pass of the sequence executor."""
    result = await executor.run(business_id=business_id)
    logger.info("Cron process-sequences: %s", result.as_dict())
    return BatchResultOut(**result.as_dict())
