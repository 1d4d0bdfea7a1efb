"""Per-stage outcome tracking for the diagnosis pipeline.

Best-effort stages never raise past their boundary. Their failure is captured
in a StageResult so callers and tests can see which stages degraded without
reading logs.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from toolfix.api.schemas import DiagnosisRecord

logger = structlog.get_logger(__name__)

CAUSE = "cause"
CLASSIFY = "classify"
INSTRUCTIONS = "instructions"
TOOLS = "tool_suggestions"
SESSION = "session"
ARCHIVE = "archive"


@dataclass
class StageResult:
    """Outcome of one pipeline stage.

    Attributes:
        name: Stage identifier.
        ok: Whether the stage produced its own value.
        value: Stage output, or the default when the stage failed.
        error: Error message when the stage failed.
    """
    name: str
    ok: bool
    value: Any = None
    error: str | None = None


@dataclass
class DiagnosisOutcome:
    """Everything a diagnosis run produced."""
    record: DiagnosisRecord
    session_id: str | None = None
    stages: list[StageResult] = field(default_factory=list)
    warnings: list[StageResult] = field(default_factory=list)

    @property
    def degraded(self) -> list[str]:
        """Names of best-effort generation stages that fell back to defaults."""
        return [s.name for s in self.stages if not s.ok]

    @property
    def persistence_failures(self) -> list[str]:
        return [w.name for w in self.warnings]


def run_soft_stage(name: str, fn: Callable[[], Any], default: Any) -> StageResult:
    """Run a best-effort stage, converting any failure into a default value."""
    try:
        return StageResult(name=name, ok=True, value=fn())
    except Exception as e:
        logger.warning("diagnose.stage_failed", stage=name, error=str(e))
        return StageResult(name=name, ok=False, value=default, error=str(e))
