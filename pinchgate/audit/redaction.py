"""Sanitized summaries of ability input and output for audit context.

Audit records must let an operator reconstruct what changed without ever
storing secret values, so inputs and results are reduced to short summaries
before they reach ``AuditLog``.
"""

import re
from typing import Any, Dict, Mapping

_SECRET_PATTERNS = (
    re.compile(r"sk-[A-Za-z0-9]{10,}"),
    re.compile(r"ghp_[A-Za-z0-9]{10,}"),
    re.compile(r"xoxb-[A-Za-z0-9-]{10,}"),
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._~+/=-]{8,}"),
)

_SENSITIVE_KEY = re.compile(r"(?i)(password|passwd|secret|token|api[_-]?key|authorization|credential)")

REDACTED = "[REDACTED]"
MAX_INPUT_KEYS = 5
MAX_SCALAR_CHARS = 80
_RESULT_ID_KEYS = ("post_id", "id")


def redact(text: str) -> str:
    """
    Redact known secrets from text.

    Args:
        text: Free-form text (a message, a scalar value).

    Returns:
        The text with token-shaped substrings replaced by ``[REDACTED]``.
    """
    out = text
    for pat in _SECRET_PATTERNS:
        out = pat.sub(REDACTED, out)
    return out


def _summarize_scalar(value: Any) -> Any:
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    text = redact(str(value))
    if len(text) > MAX_SCALAR_CHARS:
        return text[:MAX_SCALAR_CHARS] + "…"
    return text


def summarize_input(params: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Build a sanitized summary of ability input.

    At most ``MAX_INPUT_KEYS`` keys are kept. Scalars are truncated, nested
    mappings are reduced to their keys, lists to their length, and values under
    secret-looking keys are replaced outright.
    """
    out: Dict[str, Any] = {}
    for key, value in list(params.items())[:MAX_INPUT_KEYS]:
        key = str(key)
        if _SENSITIVE_KEY.search(key):
            out[key] = REDACTED
        elif isinstance(value, Mapping):
            out[key] = sorted(str(k) for k in value.keys())
        elif isinstance(value, (list, tuple, set)):
            out[key] = f"<{len(value)} items>"
        else:
            out[key] = _summarize_scalar(value)
    return out


def summarize_result(result: Any) -> Dict[str, Any]:
    """
    Build a sanitized summary of an ability result.

    Keeps an identifier when the handler returned one, an ``error`` message if
    present, and otherwise the first few scalar fields.
    """
    if not isinstance(result, Mapping):
        return {"type": type(result).__name__}
    out: Dict[str, Any] = {}
    for key in _RESULT_ID_KEYS:
        if key in result and isinstance(result[key], (int, str)):
            out[key] = result[key]
            break
    if "error" in result:
        out["error"] = _summarize_scalar(result["error"])
    for key, value in result.items():
        if len(out) >= 3:
            break
        if key in out or _SENSITIVE_KEY.search(str(key)):
            continue
        if isinstance(value, (str, int, float, bool)):
            out[str(key)] = _summarize_scalar(value)
    return out
