"""Input and output guardrails around the completion service.

InputGuard flags user text that looks like a prompt-injection attempt. Callers
log the flag and carry on, since ordinary repair vocabulary ("system override"
on a furnace panel) overlaps the patterns. OutputGuard turns model replies into
the plain text the mobile client renders: markdown markers, invisible
characters and runaway length are removed.
"""

import re
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class GuardrailResult:
    """Result of a guardrail check."""
    passed: bool
    reason: str = ""


_INJECTION_PATTERNS = [
    re.compile(r"ignore\s+(all\s+)?previous\s+instructions?", re.IGNORECASE),
    re.compile(r"you\s+are\s+now\s+(in\s+)?developer\s+mode", re.IGNORECASE),
    re.compile(r"system\s+override", re.IGNORECASE),
    re.compile(r"reveal\s+(your\s+)?(system\s+)?prompt", re.IGNORECASE),
    re.compile(r"disregard\s+(all\s+)?(safety|previous|prior|your)\s+(instructions?|rules?|guidelines?)", re.IGNORECASE),
    re.compile(r"pretend\s+you\s+(are|have)\s+no\s+(restrictions?|rules?|limits?)", re.IGNORECASE),
]

_INVISIBLE_CHARS = re.compile(
    r"[\u200b\u200c\u200d\u200e\u200f\u2060\u2061\u2062\u2063\u2064\ufeff]"
)

# (pattern, replacement) applied in order
_MARKDOWN_RULES = [
    (re.compile(r"^```[^\n]*\n?", re.MULTILINE), ""),
    (re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE), ""),
    (re.compile(r"^\s{0,3}(?:-{3,}|\*{3,}|_{3,})\s*$", re.MULTILINE), ""),
    (re.compile(r"^\s{0,3}>\s?", re.MULTILINE), ""),
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"__(.+?)__"), r"\1"),
    (re.compile(r"(?<![\w*])\*(?!\s)(.+?)(?<!\s)\*(?![\w*])"), r"\1"),
    (re.compile(r"`([^`]*)`"), r"\1"),
    (re.compile(r"!?\[([^\]]+)\]\(([^)\s]+)\)"), r"\1 (\2)"),
    (re.compile(r"^(\s*)[*+]\s+", re.MULTILINE), r"\1- "),
]

MAX_INPUT_LENGTH = 4000
MAX_OUTPUT_LENGTH = 10_000


class InputGuard:
    """Flags suspicious user text. A failed check is advisory."""

    def check(self, text: str) -> GuardrailResult:
        if len(text) > MAX_INPUT_LENGTH:
            return GuardrailResult(False, "input_too_long")

        clean = _INVISIBLE_CHARS.sub("", text)
        for pattern in _INJECTION_PATTERNS:
            if pattern.search(clean):
                logger.warning("guardrail.input_flagged", reason="injection_pattern",
                               pattern=pattern.pattern[:40])
                return GuardrailResult(False, "prompt_injection_detected")

        return GuardrailResult(True)


class OutputGuard:
    """Normalizes model output to plain text."""

    def clean(self, text: str) -> str:
        """Strip markdown and invisible characters, collapse blank runs, cap length."""
        if not text:
            return ""

        cleaned = _INVISIBLE_CHARS.sub("", text)
        for pattern, replacement in _MARKDOWN_RULES:
            cleaned = pattern.sub(replacement, cleaned)
        cleaned = re.sub(r"\n{3,}", "\n\n", cleaned).strip()

        if len(cleaned) > MAX_OUTPUT_LENGTH:
            logger.warning("guardrail.output_truncated", original_len=len(cleaned))
            cleaned = cleaned[:MAX_OUTPUT_LENGTH] + "\n\n[Response truncated]"

        return cleaned
