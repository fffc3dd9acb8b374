"""Chat API router for advisor conversations."""

import json
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.dependencies import (
    CurrentStudent,
    get_chat_service,
    get_greeting_service,
    require_role,
)
from app.schemas.chat_schema import ChatRequest, WelcomeRequest, WelcomeResponse
from app.schemas.response_schema import ApiResponse, success_response
from app.services.chat_service import ChatService, ChatTurn
from app.services.greeting_service import GreetingService

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])

StudentDep = Annotated[CurrentStudent, Depends(require_role("student", "admin"))]
ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]
GreetingServiceDep = Annotated[GreetingService, Depends(get_greeting_service)]


async def event_generator(
    chat_service: ChatService, turn: ChatTurn
) -> AsyncGenerator[str, None]:
    """Generate Server-Sent Events from the advisor stream."""
    async for event in chat_service.stream(turn):
        yield f"data: {json.dumps(event.model_dump())}\n\n"


@router.post("/stream")
async def stream_chat(
    request: ChatRequest,
    current_student: StudentDep,
    chat_service: ChatServiceDep,
) -> StreamingResponse:
    """Stream the advisor reply as Server-Sent Events."""
    turn = await chat_service.start_turn(current_student.id, request)
    return StreamingResponse(
        event_generator(chat_service, turn),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/welcome", response_model=ApiResponse[WelcomeResponse])
async def welcome(
    request: WelcomeRequest,
    current_student: StudentDep,
    greeting_service: GreetingServiceDep,
) -> dict:
    """Generate the opening advisor message."""
    result = await greeting_service.generate(
        current_student.id,
        mode=request.mode,
        conversation_id=request.conversation_id,
    )
    return success_response(result)
