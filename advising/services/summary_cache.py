"""Summary cache - time-boxed memo of generated summaries per student.

One entry per student id, holding the summary, the signature of the
payload it was generated from, and an expiry. An entry is reused only when
the signature still matches and it has not expired; expiry is checked
lazily on access (there is no background sweep).
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from advising.core.structured_logging import build_log_context
from advising.schemas.summary import SummaryPayload

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600


def create_signature(payload: SummaryPayload) -> str:
    """Stable content hash of a normalized payload."""
    serialized = payload.model_dump_json(by_alias=True)
    return hashlib.sha1(serialized.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SummaryResult:
    summary: str
    cached: bool


@dataclass
class _CacheEntry:
    summary: str
    signature: str
    expires_at: float


class SummaryCache:
    """Process-wide cache keyed by student id."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, student_id: str, signature: str) -> str | None:
        """Return a fresh summary for this exact signature, dropping stale entries."""
        entry = self._entries.get(student_id)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[student_id]
            return None
        if entry.signature != signature:
            return None
        return entry.summary

    def store(self, student_id: str, signature: str, summary: str) -> None:
        self._entries[student_id] = _CacheEntry(
            summary=summary,
            signature=signature,
            expires_at=self._clock() + self.ttl_seconds,
        )

    async def get_or_compute(
        self,
        student_id: str,
        payload: SummaryPayload,
        compute: Callable[[SummaryPayload], Awaitable[str]],
    ) -> SummaryResult:
        """Serve a cached summary or compute, store and return a fresh one.

        Nothing is stored when ``compute`` raises.
        """
        signature = create_signature(payload)
        cached = self.lookup(student_id, signature)
        if cached is not None:
            logger.debug(
                "Summary cache hit",
                extra=build_log_context(operation="summary", student_id=student_id),
            )
            return SummaryResult(summary=cached, cached=True)

        summary = await compute(payload)
        self.store(student_id, signature, summary)
        return SummaryResult(summary=summary, cached=False)

    def clear(self) -> None:
        self._entries.clear()
