"""Append-only audit log and the sanitizers that keep secrets out of it."""

from .log import AuditLog
from .redaction import redact, summarize_input, summarize_result

__all__ = ["AuditLog", "redact", "summarize_input", "summarize_result"]
