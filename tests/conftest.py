"""Shared fixtures for all tests."""

import pytest

from toolfix.core.database import init_db
from toolfix.core.session_store import DiagnosisContext


class StubCompletion:
    """Scripted completion service.

    Replies are consumed in call order; an Exception instance in the script is
    raised instead of returned. Every call's messages are recorded.
    """

    def __init__(self, replies=None, default: str = "ok"):
        self.replies = list(replies or [])
        self.default = default
        self.calls: list[list[dict]] = []

    def complete(self, messages: list[dict]) -> str:
        self.calls.append(messages)
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture(autouse=True)
def memory_db():
    """Fresh in-memory database for each test."""
    init_db("sqlite:///:memory:")
    yield


@pytest.fixture
def stub_completion():
    return StubCompletion()


@pytest.fixture
def make_completion():
    """Factory for scripted completion services."""
    return StubCompletion


@pytest.fixture
def drill_replies() -> list[str]:
    """Replies for understand, cause, classify, instructions, tool suggestions."""
    return [
        "Object: Drill\nIssue: Won't spin",
        "The motor brushes are worn out.",
        "Repair",
        "1. Unplug the drill.\n2. Open the housing.\n3. Replace the brushes.",
        "- Brush kit: Carbon brush set for cordless drills",
    ]


@pytest.fixture
def diagnosis_context() -> DiagnosisContext:
    return DiagnosisContext(
        object="Drill",
        issue="Won't spin",
        likely_cause="Worn brushes.",
        task_type="repair",
        skill_level="beginner",
        tool_preference="power",
        owned_tools=("Hammer", "Multimeter"),
    )
