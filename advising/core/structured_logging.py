"""Structured logging helpers (PII-safe)."""

import logging
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once at startup."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def build_log_context(
    *,
    operation: str | None = None,
    student_id: str | None = None,
    record_id: str | None = None,
    backend: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict without student contact details or free text."""
    context: dict[str, Any] = {}
    if operation:
        context["operation"] = operation
    if student_id:
        context["student_id"] = student_id
    if record_id:
        context["record_id"] = record_id
    if backend:
        context["backend"] = backend
    return context
