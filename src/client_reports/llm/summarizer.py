"""Per-message summaries via OpenAI chat completions."""

from __future__ import annotations

from typing import Protocol

import structlog
from openai import AsyncOpenAI, OpenAIError

from client_reports.config import Settings
from client_reports.exceptions import SummarizationError
from client_reports.models import Message
from client_reports.sanitizer import sanitize_content

logger = structlog.get_logger()

MAX_SUMMARY_INPUT_CHARS = 4000

SYSTEM_PROMPT = (
    "You summarize business emails for a client status report. Reply with one or two "
    "plain sentences stating what was communicated or decided. Do not greet, do not "
    "speculate and do not mention software products or AI models."
)


def build_summary_prompt(message: Message) -> str:
    body = (message.body or "").strip()[:MAX_SUMMARY_INPUT_CHARS]
    return (
        f"From: {message.from_address}\n"
        f"To: {message.to}\n"
        f"Date: {message.date}\n"
        f"Subject: {message.subject}\n\n"
        f"{body}"
    )


class Summarizer(Protocol):
    async def summarize(self, message: Message) -> str: ...


class OpenAISummarizer:
    """Summarizer backed by the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        timeout_seconds: float = 30.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._model = model
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout_seconds)

    async def summarize(self, message: Message) -> str:
        """Return a sanitized 1-2 sentence summary.

        Raises:
            SummarizationError: On API failure or an empty completion.
        """

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_summary_prompt(message)},
                ],
                temperature=0.2,
                max_tokens=120,
            )
        except OpenAIError as exc:
            raise SummarizationError(f"Summary request failed for {message.id}: {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise SummarizationError(f"Empty summary returned for {message.id}")
        return sanitize_content(content.strip())


def build_summarizer(settings: Settings) -> Summarizer | None:
    """Return the configured summarizer, or None when no API key is set."""

    if not settings.openai_api_key:
        logger.warning("summarizer_not_configured")
        return None
    return OpenAISummarizer(
        settings.openai_api_key,
        model=settings.openai_summary_model,
        timeout_seconds=settings.openai_timeout_seconds,
    )
