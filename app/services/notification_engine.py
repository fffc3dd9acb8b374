"""LLM-assisted daily notification decisions.

For each recently active student the engine assembles a small context
bundle and asks the model whether to notify today. Anything other than a
valid decision to send means no notification. Delivery is handled elsewhere;
this engine only records what it decided to send.
"""

from collections.abc import Sequence
from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, days_between, ensure_utc, utc_now
from app.models.goal import Goal
from app.models.notification import Notification
from app.models.student_context import StudentContext
from app.models.student_profile import StudentProfile
from app.repositories.notification_repo import NotificationRepository
from app.repositories.profile_repo import ProfileRepository
from app.repositories.student_context_repo import StudentContextRepository
from app.schemas.notification_schema import (
    NotificationBatchResult,
    NotificationDecision,
    do_not_send,
)
from app.services.context_assembler import goal_progress
from app.services.llm_parsing import Fallback
from app.services.objectives_service import compute_upcoming_deadlines
from app.services.text_generation import TextGenerator

logger = structlog.get_logger()

ACTIVE_STUDENT_DAYS = 30
RECENT_NOTIFICATIONS = 5

NOTIFICATION_SYSTEM_PROMPT = """You are a warm, supportive notification engine for a college admissions preparation app for high school students.

Decide whether to send a notification TODAY (most days need none), and if so which type
and what it should say for mobile push and email. Be warm and encouraging, never
guilt-tripping. Do not repeat a message type sent in the last 2-3 days. When a
student has many urgent deadlines, silence can be supportive. Use their first name.
Keep mobile messages at or under 160 characters."""

OUTPUT_FORMAT_INSTRUCTIONS = """Respond with valid JSON in exactly this format:
{
  "shouldSend": true or false,
  "reasoning": "Brief explanation of your decision (1-2 sentences)",
  "notificationType": "deadline_reminder" | "encouragement" | "check_in" | "celebration" | "gentle_nudge" | "weekly_summary" | "milestone" | "none",
  "urgency": "high" | "medium" | "low",
  "channels": "email" | "mobile" | "both",
  "messages": {
    "mobile": "Short push notification message",
    "email": {"subject": "Email subject line", "body": "Email body"}
  }
}

If shouldSend is false, use placeholder values for the other fields."""


def time_of_year(now: datetime) -> str:
    """Admissions season for a date."""
    month = now.month
    if 9 <= month <= 11:
        return "early_application_season"
    if month in (12, 1):
        return "regular_decision_season"
    if 2 <= month <= 4:
        return "decision_season"
    if month == 5:
        return "commitment_month"
    return "summer_planning"


def build_notification_prompt(
    profile: StudentProfile,
    goals: Sequence[Goal],
    context: StudentContext | None,
    recent: Sequence[Notification],
    now: datetime,
) -> str:
    deadlines = compute_upcoming_deadlines(goals, now)
    deadline_lines = (
        "\n".join(
            f"- {d.label}: {d.days_until} days ({d.priority})" for d in deadlines[:5]
        )
        or "No upcoming deadlines."
    )

    goal_lines = []
    for item in goal_progress(goals)[:5]:
        progress = (
            "no tasks yet" if item.progress is None else f"{item.progress}% complete"
        )
        goal_lines.append(f"- {item.title} ({progress})")

    overdue = sum(
        1
        for goal in goals
        for task in goal.tasks
        if task.status != "completed"
        and task.due_date is not None
        and ensure_utc(task.due_date) < now
    )

    days_inactive = (
        str(days_between(profile.last_active_at, now))
        if profile.last_active_at is not None
        else "Unknown"
    )
    last_chat = (
        f"{ensure_utc(context.last_conversation_at):%Y-%m-%d}"
        if context is not None and context.last_conversation_at is not None
        else "Never"
    )
    recent_lines = (
        "\n".join(
            f'- {n.notification_type} on {ensure_utc(n.created_at):%Y-%m-%d}: '
            f'"{n.email_subject or n.mobile_message or ""}"'
            for n in recent
        )
        or "No recent notifications sent."
    )
    commitments = (
        context.open_commitments if context else None
    ) or "No open commitments tracked."

    return f"""## Current Context
Date: {now:%Y-%m-%d} ({now:%A})
Time of Year: {time_of_year(now)}

## Student
Name: {profile.display_name}
Grade: {profile.grade or "Unknown"}

## Upcoming Deadlines
{deadline_lines}

## Active Goals
{chr(10).join(goal_lines) or "No active goals."}

## Open Commitments
{commitments}

## Engagement
- Days since last active: {days_inactive}
- Last advisor chat: {last_chat}
- Overdue tasks: {overdue}

## Recent Notifications Sent
{recent_lines}

## Your Task
Based on all this context, decide whether to send a notification today and what it should say.

{OUTPUT_FORMAT_INSTRUCTIONS}"""


class NotificationEngine:
    """Decides, per student, whether to send a notification today."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        generator: TextGenerator,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._generator = generator
        self._clock = clock

    async def process_student(self, student_id: int) -> NotificationDecision | None:
        """Decide for one student and record a notification if sending.

        Returns ``None`` when the student has no profile.
        """
        now = self._clock()
        async with self._session_factory() as session:
            profiles = ProfileRepository(session)
            profile = await profiles.find_profile(student_id)
            if profile is None:
                logger.info("No profile for notifications", student_id=student_id)
                return None
            goals = await profiles.find_active_goals(student_id)
            context = await StudentContextRepository(session).find_by_student(
                student_id
            )
            notifications = NotificationRepository(session)
            recent = await notifications.find_recent(student_id, RECENT_NOTIFICATIONS)

            result = await self._generator.generate_object(
                build_notification_prompt(profile, goals, context, recent, now),
                schema=NotificationDecision,
                default=do_not_send("LLM call failed, skipping to be safe"),
                system=NOTIFICATION_SYSTEM_PROMPT,
            )
            decision = result.value
            if isinstance(result, Fallback):
                decision = do_not_send(f"No usable decision: {result.reason}")

            if not decision.sendable:
                logger.info(
                    "Skipping notification",
                    student_id=student_id,
                    reasoning=decision.reasoning[:100],
                )
                return decision

            await notifications.create(
                student_id=student_id,
                notification_type=decision.notification_type,
                urgency=decision.urgency,
                channel=decision.channels,
                mobile_message=decision.messages.mobile or None,
                email_subject=decision.messages.email.subject or None,
                email_body=decision.messages.email.body or None,
                reasoning=decision.reasoning or None,
                now=now,
            )
            await session.commit()

        logger.info(
            "Notification recorded",
            student_id=student_id,
            notification_type=decision.notification_type,
            urgency=decision.urgency,
        )
        return decision

    async def run_batch(self, limit: int | None = None) -> NotificationBatchResult:
        """Process every recently active student sequentially."""
        since = self._clock() - timedelta(days=ACTIVE_STUDENT_DAYS)
        async with self._session_factory() as session:
            student_ids = await ProfileRepository(session).find_active_student_ids(
                since
            )
        if limit is not None:
            student_ids = student_ids[:limit]

        sent = skipped = failed = 0
        for student_id in student_ids:
            try:
                decision = await self.process_student(student_id)
            except Exception:
                logger.exception(
                    "Notification processing failed", student_id=student_id
                )
                failed += 1
                continue
            if decision is not None and decision.sendable:
                sent += 1
            else:
                skipped += 1

        logger.info(
            "Notification batch complete",
            processed=len(student_ids),
            sent=sent,
            skipped=skipped,
            failed=failed,
        )
        return NotificationBatchResult(
            processed=len(student_ids),
            sent=sent,
            skipped=skipped,
            failed=failed,
        )
