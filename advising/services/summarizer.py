"""AI student summaries.

Builds a counselor-facing prompt from a summary payload and sends it to a
hosted summarization model (Hugging Face inference API). Results go through
``SummaryCache`` so an unchanged student is not re-summarized within the
cache TTL.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from advising.core.structured_logging import build_log_context
from advising.schemas.summary import (
    SummaryCommunicationItem,
    SummaryNoteItem,
    SummaryPayload,
    SummaryReminderItem,
    SummaryTimelineItem,
)
from advising.services.record_normalizer import parse_timestamp
from advising.services.summary_cache import SummaryCache, SummaryResult
from advising.services.summary_payload import normalize_summary_payload

logger = logging.getLogger(__name__)

SUMMARY_MAX_LENGTH = 220
SUMMARY_MIN_LENGTH = 80

PROMPT_HEADER = (
    "You are assisting an admissions counselor. Summarize the student's current "
    "situation in 3-4 sentences, highlighting intent, risks, and the next "
    "recommended actions."
)
PROMPT_CLOSING = (
    "Respond with a cohesive narrative paragraph in natural language without "
    "bullet points."
)


# =============================================================================
# Exceptions
# =============================================================================


class SummarizerError(Exception):
    """Base exception for summary failures; carries a suggested HTTP status."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SummarizerConfigurationError(SummarizerError):
    """Provider is not configured or rejected the credentials."""

    def __init__(self, message: str):
        super().__init__(message, status_code=503)


class SummarizerInputError(SummarizerError):
    """Payload cannot be summarized."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class SummarizerProviderError(SummarizerError):
    """Upstream provider failed (rate limits use 429)."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message, status_code=status_code)


# =============================================================================
# Prompt
# =============================================================================


def format_date(value: str) -> str:
    """Render an ISO date as e.g. ``Sep 12, 2025``."""
    if not value:
        return "Unknown date"
    parsed = parse_timestamp(value)
    if parsed is None:
        return value
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def format_list(items: list[str]) -> str:
    return ", ".join(items) if items else "None recorded"


def _format_number(value: float) -> str:
    return f"{value:g}"


def _timeline_section(timeline: list[SummaryTimelineItem]) -> str:
    if not timeline:
        return "- No recent timeline events recorded."
    lines = []
    for event in timeline:
        label = event.label or "No label"
        details = f" - {event.details}" if event.details else ""
        kind = event.type[:1].upper() + event.type[1:]
        lines.append(f"- {format_date(event.date)} · {kind}: {label}{details}")
    return "\n".join(lines)


def _communications_section(communications: list[SummaryCommunicationItem]) -> str:
    if not communications:
        return "- No recent communications logged."
    lines = []
    for entry in communications:
        owner = entry.owner or "Advising Team"
        subject = entry.subject or "General outreach"
        notes = f" - {entry.notes}" if entry.notes else ""
        lines.append(
            f"- {format_date(entry.date)} · {entry.channel} by {owner}: {subject}{notes}"
        )
    return "\n".join(lines)


def _notes_section(notes: list[SummaryNoteItem]) -> str:
    if not notes:
        return "- No internal notes captured."
    return "\n".join(
        f"- {format_date(note.date)} · {note.author or 'Admissions Team'}: {note.content}"
        for note in notes
    )


def _reminders_section(reminders: list[SummaryReminderItem]) -> str:
    if not reminders:
        return "- No upcoming reminders."
    lines = []
    for reminder in reminders:
        owner = reminder.owner or "Advising Team"
        status = "Completed" if reminder.completed else "Pending"
        description = reminder.description or "Task"
        lines.append(
            f"- {format_date(reminder.due_date)} · {owner} ({status}): {description}"
        )
    return "\n".join(lines)


def has_summary_context(student: SummaryPayload) -> bool:
    """A payload with no name and no records gives the model nothing to summarize."""
    return bool(
        student.name
        or student.timeline
        or student.communications
        or student.notes
        or student.reminders
    )


def build_prompt(student: SummaryPayload) -> str:
    facts = [
        f"Student name: {student.name}",
        f"Application status: {student.status}",
        f"Engagement score: {_format_number(student.engagement_score)}",
        f"High intent: {'Yes' if student.high_intent else 'No'}",
        f"Needs essay help: {'Yes' if student.needs_essay_help else 'No'}",
        f"Last active: {format_date(student.last_active)}",
        f"Last contacted: {format_date(student.last_contacted)}",
    ]
    if student.program_interests:
        facts.append(f"Program interests: {format_list(student.program_interests)}")
    if student.tags:
        facts.append(f"Tags: {format_list(student.tags)}")

    sections = [
        PROMPT_HEADER,
        "\n".join(facts),
        "Recent timeline milestones:",
        _timeline_section(student.timeline),
        "Latest communications:",
        _communications_section(student.communications),
        "Key internal notes:",
        _notes_section(student.notes),
        "Upcoming reminders or tasks:",
        _reminders_section(student.reminders),
        PROMPT_CLOSING,
    ]
    return "\n\n".join(sections)


# =============================================================================
# Providers
# =============================================================================


class Summarizer(ABC):
    """Abstract base class for summary providers."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        pass

    @abstractmethod
    async def summarize(self, payload: SummaryPayload) -> str:
        """Generate a narrative summary for a normalized payload."""
        pass


class HuggingFaceSummarizer(Summarizer):
    """Hugging Face inference API summarization provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "facebook/bart-large-cnn",
        base_url: str = "https://api-inference.huggingface.co/models",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def summarize(self, payload: SummaryPayload) -> str:
        if not has_summary_context(payload):
            raise SummarizerInputError(
                "Insufficient context to generate an AI summary for this student."
            )
        if not self.is_configured:
            raise SummarizerConfigurationError(
                "Hugging Face API key is not configured. "
                "Set HUGGINGFACE_API_KEY to enable AI summaries."
            )

        prompt = build_prompt(payload)
        data = await self._request(prompt)
        summary = extract_summary_text(data).strip()
        if not summary:
            raise SummarizerProviderError("Hugging Face summarizer returned an empty response.")
        return summary

    async def _request(self, prompt: str) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/{self.model}",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "inputs": prompt,
                        "parameters": {
                            "max_length": SUMMARY_MAX_LENGTH,
                            "min_length": SUMMARY_MIN_LENGTH,
                        },
                    },
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise classify_status_error(e.response.status_code) from e
        except httpx.TimeoutException as e:
            raise SummarizerProviderError("Hugging Face summarizer timed out.") from e
        except httpx.HTTPError as e:
            raise SummarizerProviderError(f"Failed to generate AI summary: {e}") from e
        except ValueError as e:
            raise SummarizerProviderError(
                "Hugging Face summarizer returned an invalid response."
            ) from e


def classify_status_error(status_code: int) -> SummarizerError:
    """Map a provider HTTP status onto a summarizer error kind."""
    if status_code in (401, 403):
        return SummarizerConfigurationError(
            "Hugging Face API request was unauthorized. Check the API key."
        )
    if status_code == 429:
        return SummarizerProviderError(
            "Hugging Face API rate limit reached. Please try again shortly.",
            status_code=429,
        )
    return SummarizerProviderError(
        f"Failed to generate AI summary: provider responded with HTTP {status_code}"
    )


def extract_summary_text(data: Any) -> str:
    """Pull ``summary_text`` from ``[{"summary_text": ...}]`` or a bare object."""
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        text = data.get("summary_text")
        if isinstance(text, str):
            return text
    return ""


def build_summarizer(config: Any) -> Summarizer:
    """Create the summarizer from settings (unconfigured when no API key is set)."""
    return HuggingFaceSummarizer(
        api_key=config.HUGGINGFACE_API_KEY,
        model=config.HUGGINGFACE_SUMMARY_MODEL,
        base_url=config.HUGGINGFACE_API_URL,
        timeout=config.SUMMARY_TIMEOUT_SECONDS,
    )


# =============================================================================
# Entry point
# =============================================================================


async def summarize_student(
    payload: SummaryPayload | dict[str, Any],
    *,
    cache: SummaryCache,
    summarizer: Summarizer,
) -> SummaryResult:
    """Return a cached or freshly generated summary for a student payload.

    The cache is consulted before the provider, so a cached summary is
    still served when the provider is not configured.
    """
    normalized = (
        payload
        if isinstance(payload, SummaryPayload)
        else normalize_summary_payload(payload)
    )
    if not normalized.id:
        raise SummarizerInputError("Student payload is missing an identifier for caching.")

    started = time.monotonic()
    result = await cache.get_or_compute(normalized.id, normalized, summarizer.summarize)
    if not result.cached:
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Generated AI summary in {elapsed_ms}ms",
            extra=build_log_context(operation="summary", student_id=normalized.id),
        )
    return result
