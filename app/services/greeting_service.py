"""Opening greeting for a chat session."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.conversation_repo import ConversationRepository
from app.repositories.profile_repo import ProfileRepository
from app.schemas.chat_schema import WelcomeResponse
from app.schemas.context_schema import GreetingSnapshot
from app.services.context_cache import ProfileSnapshotCache
from app.services.conversation_lifecycle import ConversationLifecycle
from app.services.text_generation import TextGenerator

logger = structlog.get_logger()

MODE_CONTEXT: dict[str, str] = {
    "onboarding": (
        "The student just signed up. This is their FIRST interaction. "
        "Warmly welcome them and ask for their name."
    ),
    "chances": "The student wants to check their admission chances.",
    "schools": "The student wants to build their college list.",
    "planning": "The student wants to set goals and plan ahead.",
    "profile": "The student wants to update their profile.",
    "story": "The student wants to share their personal story.",
    "general": "General conversation.",
}

FALLBACK_MESSAGES: dict[str, str] = {
    "onboarding": (
        "Hi! I'm your college prep guide. I'm here to help you navigate the "
        "college journey calmly, one step at a time. First things first: "
        "what should I call you?"
    ),
    "chances": (
        "Hi! I'm your college prep advisor. "
        "Ready to explore your chances at some schools?"
    ),
    "schools": (
        "Hi! I'm your college prep advisor. Let's work on your school list!"
    ),
    "planning": (
        "Hi! I'm your college prep advisor. What goals are you working toward?"
    ),
    "profile": "Hi! I'm your college prep advisor. Let's update your profile!",
    "story": "Hi! I'm your college prep advisor. I'd love to hear your story.",
    "general": "Hi! I'm your college prep advisor. What's on your mind today?",
}

ONBOARDING_SYSTEM_PROMPT = """You are a warm college prep guide.
Generate a brief opening message for a BRAND NEW student (2-3 sentences max).
Welcome them, briefly say you help with college prep and keep things calm,
and end by asking for their name. Do not assume you know their name or grade."""


def fallback_message(mode: str) -> str:
    return FALLBACK_MESSAGES.get(mode, FALLBACK_MESSAGES["general"])


def greeting_system_prompt(mode: str, snapshot: GreetingSnapshot | None) -> str:
    if mode == "onboarding":
        return ONBOARDING_SYSTEM_PROMPT

    student = "New student - no profile yet."
    if snapshot is not None and snapshot.name:
        student = f"Student: {snapshot.name}"
        if snapshot.grade:
            student += f", {snapshot.grade}"
        if snapshot.activities:
            student += f". Activities: {', '.join(snapshot.activities)}"

    return f"""You are a warm college admissions advisor.
Generate a brief opening message (2-3 sentences max).

Mode: {MODE_CONTEXT.get(mode, MODE_CONTEXT["general"])}
{student}

Be warm and casual, use their name if known, reference an activity if
available, and end with a question."""


class GreetingService:
    """Generates the first advisor message of a session."""

    def __init__(
        self,
        session: AsyncSession,
        generator: TextGenerator,
        profile_cache: ProfileSnapshotCache,
        lifecycle: ConversationLifecycle,
    ) -> None:
        self._session = session
        self._generator = generator
        self._profile_cache = profile_cache
        self._lifecycle = lifecycle
        self._profiles = ProfileRepository(session)
        self._conversations = ConversationRepository(session)

    async def _snapshot(self, student_id: int) -> GreetingSnapshot | None:
        cached = self._profile_cache.get(student_id)
        if cached is not None:
            return cached
        version = self._profile_cache.version(student_id)
        profile = await self._profiles.find_profile(student_id)
        if profile is None:
            return None
        snapshot = GreetingSnapshot(
            name=profile.preferred_name or profile.first_name,
            grade=profile.grade,
            activities=list(profile.activities or [])[:2],
        )
        self._profile_cache.set(student_id, snapshot, version=version)
        return snapshot

    async def generate(
        self,
        student_id: int,
        mode: str = "general",
        conversation_id: int | None = None,
    ) -> WelcomeResponse:
        """Greeting text; any failure yields the fallback for the mode."""
        try:
            snapshot = await self._snapshot(student_id)
            message = await self._generator.generate(
                "Generate the opening message.",
                system=greeting_system_prompt(mode, snapshot),
            )
            response = WelcomeResponse(message=message)
        except Exception:
            logger.exception(
                "Greeting generation failed", student_id=student_id, mode=mode
            )
            await self._session.rollback()
            response = WelcomeResponse(message=fallback_message(mode), fallback=True)

        if conversation_id is not None:
            await self._save(student_id, conversation_id, response.message)
        return response

    async def _save(self, student_id: int, conversation_id: int, message: str) -> None:
        try:
            conversation = await self._conversations.find_by_id(conversation_id)
            if conversation is None or conversation.student_id != student_id:
                logger.warning(
                    "Greeting target conversation not found",
                    student_id=student_id,
                    conversation_id=conversation_id,
                )
                return
            await self._lifecycle.append_message(
                conversation_id,
                role="assistant",
                content=message,
                model=self._generator.model_name,
            )
            await self._session.commit()
        except Exception:
            logger.exception("Failed to save greeting", conversation_id=conversation_id)
            await self._session.rollback()
