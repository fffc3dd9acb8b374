"""Caller-side wrapper around LangChain chat models.

Every call is bounded by a timeout. Timeouts and provider errors are
raised as ``LLMGenerationError`` so callers handle a single failure type.
"""

import asyncio
from collections.abc import AsyncIterator, Sequence
from typing import Any

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from app.core.exceptions import LLMGenerationError
from app.services.llm_parsing import (
    Fallback,
    ModelT,
    ParseResult,
    parse_json_or_default,
)

logger = structlog.get_logger()


def content_text(content: Any) -> str:
    """Flatten message content (plain string or content blocks) into text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return str(content)


class TextGenerator:
    """Generate plain text, streamed text, or validated objects."""

    def __init__(self, llm: BaseChatModel, timeout_seconds: float) -> None:
        self._llm = llm
        self._timeout = timeout_seconds

    @property
    def model_name(self) -> str | None:
        """Model identifier reported by the underlying chat model, if any."""
        for attr in ("model_name", "model"):
            value = getattr(self._llm, attr, None)
            if isinstance(value, str):
                return value
        return None

    @staticmethod
    def _build_messages(
        prompt: str | None,
        system: str | None,
        history: Sequence[BaseMessage],
    ) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.extend(history)
        if prompt:
            messages.append(HumanMessage(content=prompt))
        return messages

    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        history: Sequence[BaseMessage] = (),
    ) -> str:
        """Single completion. Raises ``LLMGenerationError`` on failure."""
        messages = self._build_messages(prompt, system, history)
        try:
            response = await asyncio.wait_for(
                self._llm.ainvoke(messages), timeout=self._timeout
            )
        except TimeoutError as exc:
            raise LLMGenerationError(
                f"Text generation timed out after {self._timeout:g}s"
            ) from exc
        except Exception as exc:
            raise LLMGenerationError(f"Text generation failed: {exc}") from exc

        text = content_text(response.content).strip()
        if not text:
            raise LLMGenerationError("Text generation returned no content")
        return text

    async def stream(
        self,
        history: Sequence[BaseMessage],
        system: str | None = None,
    ) -> AsyncIterator[str]:
        """Yield text chunks; each chunk must arrive within the timeout."""
        messages = self._build_messages(None, system, history)
        iterator = aiter(self._llm.astream(messages))
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(
                        anext(iterator), timeout=self._timeout
                    )
                except StopAsyncIteration:
                    return
                except TimeoutError as exc:
                    raise LLMGenerationError(
                        f"Stream stalled for more than {self._timeout:g}s"
                    ) from exc
                except Exception as exc:
                    raise LLMGenerationError(f"Streaming failed: {exc}") from exc

                text = content_text(chunk.content)
                if text:
                    yield text
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def generate_object(
        self,
        prompt: str,
        schema: type[ModelT],
        default: ModelT,
        system: str | None = None,
    ) -> ParseResult[ModelT]:
        """Ask for JSON matching ``schema``; never raises."""
        try:
            text = await self.generate(prompt, system=system)
        except LLMGenerationError as exc:
            logger.warning(
                "Structured generation failed",
                schema=schema.__name__,
                error=exc.message,
            )
            return Fallback(value=default, reason=exc.message)

        result = parse_json_or_default(text, schema, default)
        if isinstance(result, Fallback):
            logger.warning(
                "Structured generation fell back to default",
                schema=schema.__name__,
                reason=result.reason,
            )
        return result
