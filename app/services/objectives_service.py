"""Session objectives and upcoming deadlines for the advisor."""

import math
import re
from collections.abc import Sequence
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, days_between, ensure_utc, utc_now
from app.core.exceptions import LLMGenerationError
from app.models.goal import Goal
from app.models.student_context import StudentContext
from app.models.student_profile import StudentProfile
from app.repositories.profile_repo import ProfileRepository
from app.repositories.student_context_repo import StudentContextRepository
from app.schemas.context_schema import Deadline, DeadlinePriority
from app.services.text_generation import TextGenerator

logger = structlog.get_logger()

GOAL_HORIZON_DAYS = 90
TASK_HORIZON_DAYS = 30
MAX_DEADLINES = 10

FIRST_TIME_OBJECTIVES = (
    "Welcome warmly and learn their name",
    "Understand what grade they're in and their timeline",
    "Find out what brings them here today",
    "Start building rapport and trust",
)

_LIST_ITEM_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+(.*\S)\s*$")


def deadline_priority(days_until: int) -> DeadlinePriority:
    if days_until <= 7:
        return "urgent"
    if days_until <= 30:
        return "soon"
    return "upcoming"


def _days_until(when: datetime, now: datetime) -> int:
    seconds = (ensure_utc(when) - ensure_utc(now)).total_seconds()
    return math.ceil(seconds / 86400)


def compute_upcoming_deadlines(
    goals: Sequence[Goal], now: datetime
) -> list[Deadline]:
    """Goal target dates within 90 days and open task due dates within 30.

    Sorted soonest first and capped at 10.
    """
    deadlines: list[Deadline] = []
    for goal in goals:
        if goal.target_date is not None:
            days = _days_until(goal.target_date, now)
            if 0 <= days <= GOAL_HORIZON_DAYS:
                deadlines.append(
                    Deadline(
                        type="goal",
                        label=goal.title,
                        date=ensure_utc(goal.target_date),
                        days_until=days,
                        priority=deadline_priority(days),
                    )
                )
        for task in goal.tasks:
            if task.due_date is None or task.status == "completed":
                continue
            days = _days_until(task.due_date, now)
            if 0 <= days <= TASK_HORIZON_DAYS:
                deadlines.append(
                    Deadline(
                        type="task",
                        label=task.title,
                        date=ensure_utc(task.due_date),
                        days_until=days,
                        priority=deadline_priority(days),
                    )
                )
    deadlines.sort(key=lambda d: (d.days_until, d.label))
    return deadlines[:MAX_DEADLINES]


def build_session_objectives(
    profile: StudentProfile | None,
    goals: Sequence[Goal],
    context: StudentContext | None,
    now: datetime,
) -> list[str]:
    """Deterministic objectives used when none were generated."""
    if profile is None:
        return list(FIRST_TIME_OBJECTIVES)

    accountability = context.accountability_level if context else "moderate"
    objectives: list[str] = []

    if context is not None and context.open_commitments and accountability != "light":
        objectives.append("Follow up on any open commitments from last session")

    if context is not None and context.last_conversation_at is not None:
        days = days_between(context.last_conversation_at, now)
        if days > 7:
            objectives.append(f"Reconnect warmly ({days} days since last chat)")

    if profile.gpa_unweighted is None and profile.gpa_weighted is None:
        objectives.append("Learn their GPA if it comes up naturally")
    if profile.sat_total is None and profile.act_composite is None:
        objectives.append("Find out about standardized testing plans")
    if not profile.activities:
        objectives.append("Discover their extracurricular activities")
    if not profile.target_schools:
        objectives.append("Explore what schools interest them")

    in_progress = [goal for goal in goals if goal.status == "in_progress"]
    if in_progress:
        objectives.append(f'Check progress on: "{in_progress[0].title}"')

    if not objectives:
        objectives.append("Help with whatever the student needs today")
        objectives.append("Look for opportunities to deepen their profile")
        if accountability == "high":
            objectives.append("Challenge them to take their next step forward")

    return objectives[:4]


def format_objectives(objectives: Sequence[str], accountability: str) -> str:
    numbered = "\n".join(f"{i}. {item}" for i, item in enumerate(objectives, 1))
    if accountability == "high":
        footer = (
            "Note: This student prefers high accountability - "
            "be proactive about follow-ups."
        )
    else:
        footer = (
            "Remember: Focus primarily on what the student wants. "
            "These are secondary goals."
        )
    return f"Session Objectives:\n{numbered}\n{footer}"


def parse_objective_lines(text: str | None) -> list[str]:
    """List items from a generated objectives block."""
    if not text:
        return []
    items = [
        match.group(1)
        for match in (_LIST_ITEM_RE.match(line) for line in text.splitlines())
        if match
    ]
    if items:
        return items
    return [
        line.strip()
        for line in text.splitlines()
        if line.strip() and not line.strip().endswith(":")
    ]


def build_objectives_prompt(
    profile: StudentProfile,
    goals: Sequence[Goal],
    context: StudentContext | None,
    deadlines: Sequence[Deadline],
    now: datetime,
) -> str:
    profile_parts = [f"{profile.display_name}, {profile.grade or 'unknown grade'}"]
    if profile.gpa_unweighted is not None:
        profile_parts.append(f"GPA: {profile.gpa_unweighted}")
    if profile.sat_total is not None:
        profile_parts.append(f"SAT: {profile.sat_total}")
    if profile.act_composite is not None:
        profile_parts.append(f"ACT: {profile.act_composite}")
    if profile.activities:
        profile_parts.append(f"Activities: {', '.join(profile.activities[:3])}")
    if profile.target_schools:
        profile_parts.append(
            f"Target schools: {', '.join(profile.target_schools[:3])}"
        )
    if goals:
        profile_parts.append(f"Working on: {', '.join(g.title for g in goals)}")

    deadline_lines = (
        "\n".join(
            f"- {d.label}: {d.days_until} days ({d.priority})" for d in deadlines[:5]
        )
        or "No upcoming deadlines tracked."
    )

    if context is not None and context.last_conversation_at is not None:
        days = days_between(context.last_conversation_at, now)
        session_line = {
            0: "Last conversation: earlier today",
            1: "Last conversation: yesterday",
        }.get(days, f"Last conversation: {days} days ago")
    else:
        session_line = "First conversation ever"

    accountability = context.accountability_level if context else "moderate"
    accountability_note = {
        "high": "Student prefers HIGH ACCOUNTABILITY - be proactive about follow-ups.",
        "light": "Student prefers LIGHT TOUCH - gentle suggestions only.",
    }.get(accountability, "")

    understanding = (
        context.student_understanding if context else None
    ) or "No prior understanding yet - still getting to know them."
    commitments = (
        context.open_commitments if context else None
    ) or "No open commitments tracked."
    total = context.total_conversations if context else 0

    return f"""You are setting objectives for an AI college counselor's next session with a student.

STUDENT PROFILE:
{". ".join(profile_parts)}

UNDERSTANDING OF STUDENT:
{understanding}

OPEN COMMITMENTS:
{commitments}

UPCOMING DEADLINES:
{deadline_lines}

SESSION CONTEXT:
{session_line}
Total conversations so far: {total}
{accountability_note}

Generate 3-5 specific, actionable objectives for the next conversation. These should be
personalized to this student, aware of upcoming deadlines, and build on previous
conversations. Format as a numbered list. Be specific, not generic.

Objectives:"""


class ObjectivesService:
    """Regenerates stored objectives and deadlines for one student."""

    def __init__(
        self,
        session: AsyncSession,
        generator: TextGenerator,
        clock: Clock = utc_now,
    ) -> None:
        self._session = session
        self._generator = generator
        self._clock = clock
        self._profiles = ProfileRepository(session)
        self._contexts = StudentContextRepository(session)

    async def refresh(self, student_id: int) -> str | None:
        """Generate and store objectives. Returns them, or ``None`` without a profile."""
        now = self._clock()
        profile = await self._profiles.find_profile(student_id)
        if profile is None:
            logger.info("No profile for objectives", student_id=student_id)
            return None

        goals = await self._profiles.find_active_goals(student_id)
        context = await self._contexts.find_by_student(student_id)
        deadlines = compute_upcoming_deadlines(goals, now)

        try:
            objectives = await self._generator.generate(
                build_objectives_prompt(profile, goals, context, deadlines, now)
            )
        except LLMGenerationError as exc:
            logger.warning(
                "Objective generation failed, using defaults",
                student_id=student_id,
                error=exc.message,
            )
            objectives = format_objectives(
                build_session_objectives(profile, goals, context, now),
                context.accountability_level if context else "moderate",
            )

        await self._contexts.save_objectives(
            student_id,
            objectives=objectives,
            deadlines=[d.model_dump(mode="json") for d in deadlines],
            now=now,
        )
        await self._session.commit()
        logger.info(
            "Objectives refreshed",
            student_id=student_id,
            deadlines=len(deadlines),
        )
        return objectives
