"""Per-conversation summaries and the student's master summary merge."""

from collections.abc import Sequence
from datetime import datetime
from enum import StrEnum

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, ensure_utc, utc_now
from app.models.conversation import Conversation
from app.models.message import Message
from app.models.student_context import StudentContext
from app.models.student_profile import StudentProfile
from app.repositories.conversation_repo import ConversationRepository, PriorSummary
from app.repositories.profile_repo import ProfileRepository
from app.repositories.student_context_repo import StudentContextRepository
from app.schemas.summary_schema import (
    ConversationDigest,
    MasterSummaryUpdate,
    StudentSummary,
)
from app.services.llm_parsing import Fallback
from app.services.text_generation import TextGenerator

logger = structlog.get_logger()

ROLE_LABELS = {"user": "Student", "assistant": "Advisor"}

FALLBACK_EXCERPT_CHARS = 200
FALLBACK_RECENT_SESSIONS_CHARS = 1200
DEFAULT_UNDERSTANDING = "Understanding being developed."
DEFAULT_COMMITMENTS = "No known commitments."

SUMMARY_SYSTEM_PROMPT = (
    "You summarize conversations between a college admissions advisor and a "
    "high school student. Respond with a single JSON object and nothing else."
)


class SummarizationOutcome(StrEnum):
    """What a single summarization attempt did."""

    SUMMARIZED = "summarized"
    ALREADY_SUMMARIZED = "already_summarized"
    EMPTY = "empty"
    MISSING = "missing"
    FAILED = "failed"


def build_quick_context(profile: StudentProfile | None) -> str:
    """One factual line about the student. Deterministic, no LLM."""
    if profile is None:
        return "New student - no profile details yet."

    name = profile.first_name or "Student"
    grade = profile.grade or "unknown grade"
    school = profile.high_school_name or "their high school"
    stats = ", ".join(
        part
        for part in (
            f"{profile.gpa_unweighted} GPA" if profile.gpa_unweighted else None,
            f"{profile.sat_total} SAT" if profile.sat_total else None,
            f"{profile.act_composite} ACT" if profile.act_composite else None,
        )
        if part
    )
    line = f"{name}, {grade} at {school}."
    if stats:
        line += f" {stats}."
    if profile.target_schools:
        line += f" Targeting: {', '.join(profile.target_schools[:3])}"
    return line


def short_date(value: datetime) -> str:
    """``Dec 26`` style date used in recent-session lines."""
    value = ensure_utc(value)
    return f"{value:%b} {value.day}"


def format_transcript(messages: Sequence[Message]) -> str:
    return "\n\n".join(
        f"{ROLE_LABELS.get(message.role, message.role.title())}: {message.content}"
        for message in messages
    )


def conversation_summary_prompt(transcript: str) -> str:
    return f"""You are summarizing a conversation between a college admissions advisor and a high school student.

CONVERSATION:
{transcript}

Generate two summaries:

1. ADVISOR SUMMARY (for AI context, ~150-200 words):
A prose summary of the key topics, decisions or commitments the student made,
their emotional state, any data they shared (scores, activities), and
unresolved questions or next steps.

2. STUDENT SUMMARY (structured, for display):
- headline: a short title (e.g. "Planned Stanford essay timeline")
- topicsDiscussed: 2-4 main topics
- decisionsReached: decisions made (or empty)
- actionItems: next steps or commitments (or empty)

Respond in JSON:
{{
  "advisorSummary": "...",
  "studentSummary": {{
    "headline": "...",
    "topicsDiscussed": ["..."],
    "decisionsReached": ["..."],
    "actionItems": ["..."]
  }}
}}"""


def master_summary_prompt(
    quick_context: str,
    context: StudentContext | None,
    new_summary: str,
    conversation_date: datetime,
    prior: Sequence[PriorSummary],
) -> str:
    understanding = (
        context.student_understanding if context else None
    ) or "No prior understanding yet."
    commitments = (context.open_commitments if context else None) or DEFAULT_COMMITMENTS
    existing_sessions = (context.recent_sessions if context else None) or "None yet."
    previous = (
        "\n\n".join(f"{short_date(p.started_at)}: {p.summary}" for p in prior)
        or "None yet."
    )

    return f"""You are updating a college counselor's notes about a student after a conversation.

STUDENT QUICK CONTEXT:
{quick_context}

CURRENT UNDERSTANDING OF STUDENT:
{understanding}

CURRENT OPEN COMMITMENTS:
{commitments}

CURRENT RECENT SESSIONS NOTE:
{existing_sessions}

NEW CONVERSATION ({short_date(conversation_date)}):
{new_summary}

PREVIOUS CONVERSATION SUMMARIES:
{previous}

Rewrite the notes. Summarize, do not append: drop stale details so each
field stays within its budget no matter how many sessions there have been.

1. recentSessions (~200 words max): the last 2-3 conversations, most recent
   first, each starting with its date, e.g. "Dec 26: ... Dec 24: ...".
2. studentUnderstanding (~150 words max): strengths, concerns, communication
   preferences. Keep stable facts, update what changed.
3. openCommitments (~100 words max): things they said they would do,
   deadlines they mentioned, follow-ups needed. Remove completed items.

Respond in JSON:
{{
  "recentSessions": "...",
  "studentUnderstanding": "...",
  "openCommitments": "..."
}}"""


def fallback_master_summary(
    context: StudentContext | None,
    new_summary: str,
    conversation_date: datetime,
) -> MasterSummaryUpdate:
    """Deterministic merge used when the LLM merge fails.

    Keeps existing understanding and commitments, and puts a naive dated
    excerpt of the new summary in front of the existing recent sessions.
    """
    line = f"{short_date(conversation_date)}: {new_summary[:FALLBACK_EXCERPT_CHARS]}"
    paragraphs = [line]
    existing = context.recent_sessions if context else None
    if existing:
        used = len(line)
        for paragraph in existing.split("\n\n"):
            used += len(paragraph) + 2
            if used > FALLBACK_RECENT_SESSIONS_CHARS:
                break
            paragraphs.append(paragraph)

    return MasterSummaryUpdate(
        recent_sessions="\n\n".join(paragraphs),
        student_understanding=(
            context.student_understanding if context else None
        ) or DEFAULT_UNDERSTANDING,
        open_commitments=(
            context.open_commitments if context else None
        ) or DEFAULT_COMMITMENTS,
    )


class SummarizationService:
    """Summarizes one finished conversation and folds it into the master summary.

    Safe to run more than once for the same conversation: the summary write
    only lands while ``summary`` is still null, and a run that finds one
    already present does nothing.
    """

    def __init__(
        self,
        session: AsyncSession,
        generator: TextGenerator,
        recent_summaries: int = 3,
        clock: Clock = utc_now,
    ) -> None:
        self._session = session
        self._generator = generator
        self._recent_summaries = recent_summaries
        self._clock = clock
        self._conversations = ConversationRepository(session)
        self._contexts = StudentContextRepository(session)
        self._profiles = ProfileRepository(session)

    async def summarize_one(
        self, conversation_id: int, student_id: int
    ) -> SummarizationOutcome:
        conversation = await self._conversations.find_by_id(conversation_id)
        if conversation is None:
            logger.warning(
                "Conversation to summarize not found",
                conversation_id=conversation_id,
            )
            return SummarizationOutcome.MISSING
        if conversation.summary is not None:
            logger.info(
                "Conversation already summarized",
                conversation_id=conversation_id,
            )
            return SummarizationOutcome.ALREADY_SUMMARIZED

        messages = await self._conversations.find_messages(conversation_id)
        if not messages:
            logger.info("No messages to summarize", conversation_id=conversation_id)
            return SummarizationOutcome.EMPTY

        result = await self._generator.generate_object(
            conversation_summary_prompt(format_transcript(messages)),
            schema=ConversationDigest,
            default=ConversationDigest.model_construct(
                advisor_summary="", student_summary=StudentSummary()
            ),
            system=SUMMARY_SYSTEM_PROMPT,
        )
        if isinstance(result, Fallback):
            logger.warning(
                "Conversation summary unavailable, leaving for retry",
                conversation_id=conversation_id,
                reason=result.reason,
            )
            return SummarizationOutcome.FAILED

        digest = result.value
        now = self._clock()
        quick_context, update = await self._build_master_summary(
            student_id, conversation, digest.advisor_summary
        )

        # Summary and master summary commit as one unit; a failed merge
        # leaves the conversation eligible for the catch-up sweep.
        stored = await self._conversations.save_summary_if_absent(
            conversation_id,
            summary=digest.advisor_summary,
            summary_for_user=digest.student_summary.model_dump(),
            now=now,
        )
        if not stored:
            await self._session.rollback()
            logger.info(
                "Summary landed concurrently, skipping merge",
                conversation_id=conversation_id,
            )
            return SummarizationOutcome.ALREADY_SUMMARIZED

        await self._contexts.save_master_summary(
            student_id,
            quick_context=quick_context,
            recent_sessions=update.recent_sessions,
            student_understanding=update.student_understanding,
            open_commitments=update.open_commitments,
            message_increment=conversation.message_count,
            now=now,
        )
        await self._session.commit()
        logger.info(
            "Conversation summarized",
            conversation_id=conversation_id,
            student_id=student_id,
            message_count=conversation.message_count,
        )
        return SummarizationOutcome.SUMMARIZED

    async def _build_master_summary(
        self,
        student_id: int,
        conversation: Conversation,
        new_summary: str,
    ) -> tuple[str, MasterSummaryUpdate]:
        profile = await self._profiles.find_profile(student_id)
        context = await self._contexts.find_by_student(student_id)
        prior = await self._conversations.find_recent_summaries(
            student_id,
            limit=self._recent_summaries,
            exclude_id=conversation.id,
        )
        quick_context = build_quick_context(profile)

        result = await self._generator.generate_object(
            master_summary_prompt(
                quick_context, context, new_summary, conversation.started_at, prior
            ),
            schema=MasterSummaryUpdate,
            default=fallback_master_summary(
                context, new_summary, conversation.started_at
            ),
            system=SUMMARY_SYSTEM_PROMPT,
        )
        if isinstance(result, Fallback):
            logger.warning(
                "Master summary merge fell back",
                student_id=student_id,
                reason=result.reason,
            )
        return quick_context, result.value
