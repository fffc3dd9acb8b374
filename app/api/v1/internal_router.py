"""Admin-only triggers for scheduled background work."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.dependencies import (
    get_notification_engine,
    get_summarization_queue,
    require_role,
)
from app.schemas.notification_schema import (
    NotificationBatchRequest,
    NotificationBatchResult,
)
from app.schemas.response_schema import ApiResponse, success_response
from app.schemas.summary_schema import ProcessPendingRequest, SweepResult
from app.services.notification_engine import NotificationEngine
from app.services.summarization_queue import SummarizationQueue

router = APIRouter(
    prefix="/api/v1/internal",
    tags=["internal"],
    dependencies=[Depends(require_role("admin"))],
)

QueueDep = Annotated[SummarizationQueue, Depends(get_summarization_queue)]
NotificationEngineDep = Annotated[NotificationEngine, Depends(get_notification_engine)]


@router.post("/summaries/process", response_model=ApiResponse[SweepResult])
async def process_pending_summaries(
    queue: QueueDep,
    request: ProcessPendingRequest | None = None,
) -> dict:
    """Run one catch-up sweep and report the counts."""
    limit = request.limit if request is not None else None
    result = await queue.process_pending(limit)
    return success_response(result)


@router.post("/notifications/run", response_model=ApiResponse[NotificationBatchResult])
async def run_notifications(
    engine: NotificationEngineDep,
    request: NotificationBatchRequest | None = None,
) -> dict:
    """Decide today's notifications for recently active students."""
    limit = request.limit if request is not None else None
    result = await engine.run_batch(limit)
    return success_response(result)
