"""Advisor context API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from app.core.tasks import BackgroundTaskRunner
from app.dependencies import (
    CurrentStudent,
    get_context_assembler,
    get_task_runner,
    require_role,
)
from app.schemas.context_schema import SidebarPayload, WarmupAccepted, WarmupRequest
from app.schemas.response_schema import ApiResponse, success_response
from app.services.context_assembler import ContextAssembler

router = APIRouter(prefix="/api/v1/context", tags=["context"])

StudentDep = Annotated[CurrentStudent, Depends(require_role("student", "admin"))]
AssemblerDep = Annotated[ContextAssembler, Depends(get_context_assembler)]
RunnerDep = Annotated[BackgroundTaskRunner, Depends(get_task_runner)]


@router.post(
    "/warmup",
    response_model=ApiResponse[WarmupAccepted],
    status_code=status.HTTP_202_ACCEPTED,
)
async def warmup_context(
    current_student: StudentDep,
    assembler: AssemblerDep,
    runner: RunnerDep,
    request: WarmupRequest | None = None,
) -> dict:
    """Pre-assemble the student's context without waiting for it."""
    mode = request.mode if request is not None else "general"
    runner.spawn(
        assembler.warmup(current_student.id, mode),
        name=f"warmup-context-{current_student.id}",
        student_id=current_student.id,
    )
    return success_response(
        WarmupAccepted(mode=mode), status=status.HTTP_202_ACCEPTED, message="Accepted"
    )


@router.get("/sidebar", response_model=ApiResponse[SidebarPayload])
async def get_sidebar(
    current_student: StudentDep,
    assembler: AssemblerDep,
    mode: str = Query(default="general", min_length=1, max_length=32),
) -> dict:
    """Structured context shown next to the chat."""
    context = await assembler.get_context(current_student.id, mode)
    return success_response(context.sidebar)
