"""Conversation lifecycle API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_conversation_service, require_role
from app.schemas.conversation_schema import (
    ActiveConversationResponse,
    EndConversationRequest,
    EndConversationResponse,
)
from app.schemas.response_schema import ApiResponse, success_response
from app.services.conversation_service import ConversationService

router = APIRouter(
    prefix="/api/v1/conversations",
    tags=["conversations"],
    dependencies=[Depends(require_role("student", "admin"))],
)

ConversationServiceDep = Annotated[
    ConversationService, Depends(get_conversation_service)
]


@router.get("/active", response_model=ApiResponse[ActiveConversationResponse])
async def get_active_conversation(
    service: ConversationServiceDep,
    mode: str = Query(default="general", min_length=1, max_length=32),
) -> dict:
    """Resume the active conversation or start a new one."""
    result = await service.open_active(mode)
    return success_response(result)


@router.post("/end", response_model=ApiResponse[EndConversationResponse])
async def end_conversation(
    request: EndConversationRequest,
    service: ConversationServiceDep,
) -> dict:
    """End-of-session signal. Always succeeds; ``ended`` reports the effect."""
    ended = await service.end(request.conversation_id)
    return success_response(EndConversationResponse(ended=ended))
