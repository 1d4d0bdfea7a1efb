"""Parsing of completion replies.

Total functions: they never raise, whatever the model returns.
"""

import re

UNKNOWN_OBJECT = "Unknown object"
UNKNOWN_ISSUE = "Unknown issue"
UNKNOWN_TASK_TYPE = "unknown"

# First match wins; "Issue or Intent:" and plain "Issue:" both accepted
_OBJECT_RE = re.compile(r"Object:[ \t]*(.*)", re.IGNORECASE)
_ISSUE_RE = re.compile(r"Issue(?:[ \t]+or[ \t]+Intent)?:[ \t]*(.*)", re.IGNORECASE)


def _first_value(pattern: re.Pattern, text: str, fallback: str) -> str:
    match = pattern.search(text)
    if not match:
        return fallback
    value = match.group(1).strip()
    return value or fallback


def parse_understanding(text: str | None) -> tuple[str, str]:
    """Extract (object, issue) from the understanding reply.

    Args:
        text: Raw completion text, expected to contain "Object: ..." and
            "Issue or Intent: ..." lines.

    Returns:
        Trimmed object and issue, or the fixed fallbacks when a line is missing.
    """
    if not text:
        return UNKNOWN_OBJECT, UNKNOWN_ISSUE
    return _first_value(_OBJECT_RE, text, UNKNOWN_OBJECT), _first_value(_ISSUE_RE, text, UNKNOWN_ISSUE)


def normalize_task_type(reply: str | None) -> str:
    """Lower-case and trim the classifier reply. Empty replies become "unknown"."""
    if reply is None:
        return UNKNOWN_TASK_TYPE
    return reply.strip().lower() or UNKNOWN_TASK_TYPE
