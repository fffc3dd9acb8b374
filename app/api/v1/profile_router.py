"""Profile write-path API router."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.dependencies import CurrentStudent, get_profile_service, require_role
from app.schemas.context_schema import ProfileSnapshot
from app.schemas.profile_schema import (
    ProfileUpdateRequest,
    TaskResponse,
    TaskStatusUpdateRequest,
)
from app.schemas.response_schema import ApiResponse, success_response
from app.services.context_assembler import profile_snapshot
from app.services.profile_service import ProfileService

router = APIRouter(prefix="/api/v1/profile", tags=["profile"])

StudentDep = Annotated[CurrentStudent, Depends(require_role("student", "admin"))]
ProfileServiceDep = Annotated[ProfileService, Depends(get_profile_service)]


@router.patch("", response_model=ApiResponse[ProfileSnapshot])
async def update_profile(
    request: ProfileUpdateRequest,
    current_student: StudentDep,
    service: ProfileServiceDep,
) -> dict:
    """Update profile fields and invalidate cached context."""
    profile = await service.update_profile(current_student.id, request.changes())
    return success_response(profile_snapshot(profile), message="Profile updated")


@router.patch(
    "/goals/{goal_id}/tasks/{task_id}",
    response_model=ApiResponse[TaskResponse],
)
async def update_task_status(
    goal_id: int,
    task_id: int,
    request: TaskStatusUpdateRequest,
    current_student: StudentDep,
    service: ProfileServiceDep,
) -> dict:
    """Change a goal task's status and invalidate cached context."""
    task = await service.update_task_status(
        current_student.id, goal_id, task_id, request.status
    )
    return success_response(TaskResponse.model_validate(task), message="Task updated")
