"""Advisor context assembly and warmup.

``render_context`` turns loaded rows into the advisor system prompt and the
sidebar payload and touches nothing. ``ContextAssembler`` loads the rows in
its own read session and fronts the result with the context cache.
"""

import time
from collections.abc import Sequence
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, days_between, utc_now
from app.models.goal import Goal
from app.models.student_context import StudentContext
from app.models.student_profile import StudentProfile
from app.repositories.profile_repo import ProfileRepository
from app.repositories.student_context_repo import StudentContextRepository
from app.schemas.context_schema import (
    AssembledContext,
    GoalProgress,
    ProfileSnapshot,
    SidebarPayload,
    WarmupResult,
)
from app.services.context_cache import ContextCache
from app.services.objectives_service import (
    build_session_objectives,
    compute_upcoming_deadlines,
    format_objectives,
    parse_objective_lines,
)
from app.services.summarization_service import build_quick_context

logger = structlog.get_logger()

ADVISOR_PREAMBLE = (
    "You are a warm, knowledgeable college admissions advisor for a high school "
    "student. Be encouraging and specific, and keep the student's own goals first."
)

FIRST_CONVERSATION_CONTEXT = """## Session Context
This is a new student or first conversation. No previous context is available.

Focus on:
- Learning about the student's background and goals
- Understanding their current stage in the college journey
- Building rapport and trust
- Identifying immediate needs and priorities"""

MODE_CONTEXT: dict[str, str] = {
    "onboarding": (
        "Student is in ONBOARDING. Get to know them through a natural "
        "conversation, not a form. Always end with a follow-up question."
    ),
    "chances": (
        "Student came from CHANCES. They want to know their odds at specific "
        "schools. Be realistic but encouraging and name what would help."
    ),
    "schools": (
        "Student is building their SCHOOL LIST. Help them balance reaches, "
        "targets and safeties that fit their preferences and stats."
    ),
    "planning": (
        "Student is in PLANNING. Help them pick milestones and concrete next "
        "steps with timing and deadlines in mind."
    ),
    "profile": (
        "Student is building their PROFILE. Help them articulate experiences "
        "and capture the details that matter for applications."
    ),
    "story": (
        "Student is in STORY mode. Listen deeply and help them find themes "
        "in their experiences. Do not rush to data collection."
    ),
}
GENERAL_MODE_CONTEXT = (
    "General conversation. Be ready to help with whatever the student needs."
)

ACCOUNTABILITY_STYLES: dict[str, str] = {
    "light": "Light accountability - give gentle suggestions without pushing too hard",
    "moderate": "Moderate accountability - balanced encouragement with clear expectations",
    "high": "High accountability - proactive follow-ups and direct challenge when needed",
}

_BULLET_PREFIXES = ("- ", "* ", "• ")


def calculate_goal_progress(total_tasks: int, completed_tasks: int) -> int | None:
    """Percent of tasks completed, or ``None`` when there are no tasks."""
    if total_tasks <= 0:
        return None
    return round(100 * completed_tasks / total_tasks)


def goal_progress(goals: Sequence[Goal]) -> list[GoalProgress]:
    results = []
    for goal in goals:
        total = len(goal.tasks)
        completed = sum(1 for task in goal.tasks if task.status == "completed")
        results.append(
            GoalProgress(
                goal_id=goal.id,
                title=goal.title,
                status=goal.status,
                total_tasks=total,
                completed_tasks=completed,
                progress=calculate_goal_progress(total, completed),
            )
        )
    return results


def build_entry_context(
    mode: str,
    days_since_last_session: int | None,
    is_new_student: bool,
    opening_question: str | None = None,
) -> str:
    """How and where the student entered this conversation."""
    parts: list[str] = []
    if is_new_student:
        parts.append("This is a NEW student - their first time talking with you.")
    elif days_since_last_session is not None:
        if days_since_last_session == 0:
            parts.append("Returning student - last session was earlier today.")
        elif days_since_last_session == 1:
            parts.append("Returning student - last session was yesterday.")
        elif days_since_last_session <= 7:
            parts.append(
                "Returning student - last session was "
                f"{days_since_last_session} days ago."
            )
        else:
            parts.append(
                "Returning student - hasn't been active in "
                f"{days_since_last_session} days."
            )
    parts.append(MODE_CONTEXT.get(mode, GENERAL_MODE_CONTEXT))
    if opening_question:
        parts.append(f'Student\'s opening question: "{opening_question}"')
    return "\n".join(parts)


def build_advisor_preferences(context: StudentContext | None) -> str | None:
    if context is None:
        return None
    parts: list[str] = []
    level = context.accountability_level or "moderate"
    if level != "moderate":
        style = ACCOUNTABILITY_STYLES.get(level, ACCOUNTABILITY_STYLES["moderate"])
        parts.append(f"Coaching style: {style}")
    if context.advisor_preferences:
        parts.append(context.advisor_preferences)
    if not parts:
        return None
    return "## Advisor Preferences\n" + "\n".join(parts)


def commitment_items(open_commitments: str | None) -> list[str]:
    """Split the commitments prose into list items for the sidebar."""
    if not open_commitments:
        return []
    items = []
    for raw in open_commitments.splitlines():
        line = raw.strip()
        for prefix in _BULLET_PREFIXES:
            if line.startswith(prefix):
                line = line[len(prefix) :].strip()
                break
        if line and not line.endswith(":"):
            items.append(line)
    return items


def profile_snapshot(profile: StudentProfile | None) -> ProfileSnapshot:
    if profile is None:
        return ProfileSnapshot()
    return ProfileSnapshot(
        name=profile.preferred_name or profile.first_name,
        grade=profile.grade,
        high_school=profile.high_school_name,
        gpa=profile.gpa_unweighted or profile.gpa_weighted,
        sat=profile.sat_total,
        act=profile.act_composite,
        target_schools=list(profile.target_schools or []),
    )


def render_context(
    student_id: int,
    mode: str,
    profile: StudentProfile | None,
    goals: Sequence[Goal],
    context: StudentContext | None,
    now: datetime,
    recent_messages: Sequence[dict[str, str]] = (),
) -> AssembledContext:
    """Render stored state into the advisor prompt and sidebar.

    Every input may be missing; a student with no profile or master summary
    gets the first-conversation context.
    """
    days_since = (
        days_between(context.last_conversation_at, now)
        if context is not None and context.last_conversation_at is not None
        else None
    )
    total_conversations = context.total_conversations if context else 0
    is_new_student = profile is None or (
        total_conversations <= 1
        and (context is None or context.master_summary_updated_at is None)
    )
    opening_question = next(
        (m.get("content") for m in recent_messages if m.get("role") == "user"),
        None,
    )

    progress = goal_progress(goals)
    deadlines = compute_upcoming_deadlines(goals, now)
    accountability = context.accountability_level if context else "moderate"

    generated = parse_objective_lines(context.generated_objectives if context else None)
    fallback_objectives = build_session_objectives(profile, goals, context, now)
    objectives = generated or fallback_objectives

    sections: list[str] = [
        ADVISOR_PREAMBLE,
        f"Current date: {now:%B} {now.day}, {now.year}",
        "## How This Session Started\n"
        + build_entry_context(mode, days_since, is_new_student, opening_question),
    ]

    quick_context = context.quick_context if context else None
    if not quick_context:
        quick_context = build_quick_context(profile)
    sections.append(f"## Student At-a-Glance\n{quick_context}")

    if context is not None and context.master_summary_updated_at is not None:
        if context.recent_sessions:
            sections.append(f"## Recent Sessions\n{context.recent_sessions}")
        if context.student_understanding:
            sections.append(
                "## Your Understanding of This Student\n"
                f"{context.student_understanding}"
            )
        if context.open_commitments:
            sections.append(f"## Open Commitments\n{context.open_commitments}")
    else:
        sections.append(FIRST_CONVERSATION_CONTEXT)

    if progress:
        lines = []
        for item in progress:
            if item.progress is None:
                lines.append(f"- {item.title} ({item.status}): no tasks yet")
            else:
                lines.append(
                    f"- {item.title} ({item.status}): {item.progress}% "
                    f"({item.completed_tasks}/{item.total_tasks} tasks)"
                )
        sections.append("## Active Goals\n" + "\n".join(lines))

    if deadlines:
        sections.append(
            "## Upcoming Deadlines\n"
            + "\n".join(
                f"- {d.label}: in {d.days_until} days ({d.priority})"
                for d in deadlines
            )
        )

    if context is not None and context.generated_objectives:
        sections.append(context.generated_objectives.strip())
    else:
        sections.append(format_objectives(fallback_objectives, accountability))

    preferences = build_advisor_preferences(context)
    if preferences:
        sections.append(preferences)

    if days_since is not None and days_since > 0:
        plural = "s" if days_since > 1 else ""
        sections.append(
            f"---\n_Last conversation: {days_since} day{plural} ago. "
            f"Total sessions: {total_conversations or 1}_"
        )

    sidebar = SidebarPayload(
        profile=profile_snapshot(profile),
        objectives=objectives[:4],
        deadlines=deadlines[:4],
        commitments=commitment_items(context.open_commitments if context else None)[:3],
        goals=progress,
        days_since_last_session=days_since,
        total_conversations=total_conversations,
    )
    return AssembledContext(
        student_id=student_id,
        mode=mode,
        advisor_prompt="\n\n".join(sections),
        sidebar=sidebar,
        assembled_at=now,
    )


class ContextAssembler:
    """Loads stored state, renders context, and fronts it with the cache."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: ContextCache,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._cache = cache
        self._clock = clock

    async def assemble(
        self,
        student_id: int,
        mode: str = "general",
        recent_messages: Sequence[dict[str, str]] = (),
        now: datetime | None = None,
    ) -> AssembledContext:
        """Build context from the store. Reads only."""
        async with self._session_factory() as session:
            profiles = ProfileRepository(session)
            profile = await profiles.find_profile(student_id)
            goals = await profiles.find_active_goals(student_id)
            context = await StudentContextRepository(session).find_by_student(
                student_id
            )
        return render_context(
            student_id=student_id,
            mode=mode,
            profile=profile,
            goals=goals,
            context=context,
            now=now or self._clock(),
            recent_messages=recent_messages,
        )

    async def get_context(
        self,
        student_id: int,
        mode: str = "general",
        recent_messages: Sequence[dict[str, str]] = (),
    ) -> AssembledContext:
        """Read-through: a cached entry for another mode counts as a miss."""
        cached = self._cache.get(student_id)
        if cached is not None and cached.mode == mode:
            logger.debug("Context cache hit", student_id=student_id, mode=mode)
            return cached
        version = self._cache.version(student_id)
        context = await self.assemble(student_id, mode, recent_messages)
        if not self._cache.set(student_id, context, version=version):
            logger.info("Context invalidated during assembly", student_id=student_id)
        return context

    async def warmup(self, student_id: int, mode: str = "general") -> WarmupResult:
        """Pre-assemble context into the cache. Never raises."""
        started = time.perf_counter()
        try:
            cached = self._cache.get(student_id)
            if cached is not None and cached.mode == mode:
                logger.info("Context already cached", student_id=student_id)
                return WarmupResult(warmed=True, cached=True)

            version = self._cache.version(student_id)
            context = await self.assemble(student_id, mode)
            if not self._cache.set(student_id, context, version=version):
                logger.info(
                    "Context invalidated during warmup", student_id=student_id
                )
                return WarmupResult(warmed=False, reason="invalidated")
        except Exception:
            logger.exception("Context warmup failed", student_id=student_id)
            return WarmupResult(warmed=False, reason="failed")

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Context assembled and cached",
            student_id=student_id,
            mode=mode,
            elapsed_ms=elapsed_ms,
        )
        return WarmupResult(warmed=True, cached=False, elapsed_ms=elapsed_ms)
