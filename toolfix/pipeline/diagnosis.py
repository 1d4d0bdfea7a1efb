"""Multi-stage diagnosis pipeline.

understand → parse → cause → classify → instructions → tool suggestions
→ create chat session → archive record.

Only the understanding call is fatal: every later prompt is built from its
parsed output. The generation stages after it are best-effort so a partial
diagnosis still reaches the user. Persistence failures are logged and reported
in the outcome but never fail the response.
"""

import time
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from toolfix.api.schemas import DiagnosisRecord, MessageRecord
from toolfix.core.archive import ResultArchive
from toolfix.core.errors import UpstreamError
from toolfix.core.guardrails import InputGuard, OutputGuard
from toolfix.core.llm_adapter import CompletionService
from toolfix.core.session_store import DiagnosisContext, SessionStore
from toolfix.core.user_context import UserContext, load_user_context
from toolfix.pipeline import prompts
from toolfix.pipeline.parser import UNKNOWN_TASK_TYPE, normalize_task_type, parse_understanding
from toolfix.pipeline.request import DiagnosisRequest
from toolfix.pipeline.stages import (
    ARCHIVE,
    CAUSE,
    CLASSIFY,
    INSTRUCTIONS,
    SESSION,
    TOOLS,
    DiagnosisOutcome,
    StageResult,
    run_soft_stage,
)

logger = structlog.get_logger(__name__)


def _user_prompt(text: str) -> list[dict]:
    return [{"role": "user", "content": text}]


class DiagnosisPipeline:
    """Turns a DiagnosisRequest into a DiagnosisRecord and a seeded chat session."""

    def __init__(
        self,
        completion: CompletionService,
        sessions: SessionStore | None = None,
        archive: ResultArchive | None = None,
        context_loader: Callable[[str | None], UserContext] = load_user_context,
    ):
        self.completion = completion
        self.sessions = sessions or SessionStore()
        self.archive = archive or ResultArchive()
        self.context_loader = context_loader
        self._input_guard = InputGuard()
        self._output_guard = OutputGuard()

    def diagnose(self, request: DiagnosisRequest) -> DiagnosisOutcome:
        """Validate, load the caller's context, then run the pipeline.

        A failing profile read is not fatal; the run continues with defaults.
        """
        self._validate(request)
        try:
            user_context = self.context_loader(request.requester_id)
        except Exception as e:
            logger.error("diagnose.user_context_failed", requester_id=request.requester_id, error=str(e))
            user_context = UserContext()
        return self.run(request, user_context)

    def run(self, request: DiagnosisRequest, user_context: UserContext) -> DiagnosisOutcome:
        """Execute all stages for one request.

        Args:
            request: Validated or raw diagnosis input.
            user_context: Personalization snapshot for tool suggestions.

        Returns:
            DiagnosisOutcome with the record, session id and per-stage results.

        Raises:
            InvalidArgumentError: If the request has neither image nor text.
            UpstreamError: If the understanding call fails.
        """
        start = time.monotonic()
        self._validate(request)
        logger.info("diagnose.start", requester_id=request.requester_id,
                    has_text=request.has_text, uses_image=request.uses_image)

        raw_output = self._understand(request)
        object_name, issue = parse_understanding(raw_output)

        cause = run_soft_stage(
            CAUSE,
            lambda: self.completion.complete(_user_prompt(prompts.build_cause_prompt(object_name, issue))).strip(),
            default="",
        )
        classify = run_soft_stage(
            CLASSIFY,
            lambda: normalize_task_type(self.completion.complete(_user_prompt(prompts.build_classify_prompt(issue)))),
            default=UNKNOWN_TASK_TYPE,
        )
        task_type = classify.value

        instructions = run_soft_stage(
            INSTRUCTIONS,
            lambda: self._output_guard.clean(self.completion.complete(
                _user_prompt(prompts.build_instructions_prompt(object_name, issue, task_type))
            )),
            default="",
        )
        tools = run_soft_stage(
            TOOLS,
            lambda: self._output_guard.clean(self.completion.complete(_user_prompt(prompts.build_tool_prompt(
                user_context.skill_level,
                user_context.tool_preference,
                user_context.owned_tools,
                issue,
                instructions.value,
            )))),
            default="",
        )

        record = DiagnosisRecord(
            object=object_name,
            issue=issue,
            likely_cause=cause.value,
            task_type=task_type,
            instructions=instructions.value,
            tool_suggestions=tools.value,
            raw_model_output=raw_output,
            requester_id=request.requester_id,
            created_at=datetime.now(timezone.utc),
        )
        outcome = DiagnosisOutcome(record=record, stages=[cause, classify, instructions, tools])

        outcome.session_id = self._create_session(request, record, user_context, outcome)
        self._archive(record, outcome)

        logger.info("diagnose.complete", requester_id=request.requester_id, task_type=task_type,
                    degraded=outcome.degraded, persistence_failures=outcome.persistence_failures,
                    latency_ms=int((time.monotonic() - start) * 1000))
        return outcome

    def _validate(self, request: DiagnosisRequest) -> None:
        request.validate()
        if request.has_text:
            screen = self._input_guard.check(request.text_description)
            if not screen.passed:
                logger.info("diagnose.input_flagged", requester_id=request.requester_id, reason=screen.reason)

    def _understand(self, request: DiagnosisRequest) -> str:
        description = request.text_description if request.has_text else None
        content = [{"type": "text", "text": prompts.build_understanding_text(description)}]
        if request.uses_image:
            content.append({"type": "image_url", "image_url": {"url": request.image_data_url()}})

        try:
            return self.completion.complete([{"role": "user", "content": content}])
        except Exception as e:
            logger.error("diagnose.understanding_failed", requester_id=request.requester_id, error=str(e))
            raise UpstreamError("Could not analyze the request. Please try again.") from e

    def _create_session(
        self,
        request: DiagnosisRequest,
        record: DiagnosisRecord,
        user_context: UserContext,
        outcome: DiagnosisOutcome,
    ) -> str | None:
        if not request.requester_id:
            logger.info("diagnose.session_skipped", reason="anonymous")
            return None

        context = DiagnosisContext(
            object=record.object,
            issue=record.issue,
            likely_cause=record.likely_cause,
            task_type=record.task_type,
            skill_level=user_context.skill_level,
            tool_preference=user_context.tool_preference,
            owned_tools=tuple(sorted(user_context.owned_tools)),
        )
        seed = [
            MessageRecord(role="user", content=request.seed_message()),
            MessageRecord(role="assistant", content=record.instructions),
        ]
        try:
            return self.sessions.create(request.requester_id, context, seed)
        except Exception as e:
            logger.error("diagnose.session_persist_failed", requester_id=request.requester_id, error=str(e))
            outcome.warnings.append(StageResult(name=SESSION, ok=False, error=str(e)))
            return None

    def _archive(self, record: DiagnosisRecord, outcome: DiagnosisOutcome) -> None:
        try:
            self.archive.add(record)
        except Exception as e:
            logger.error("diagnose.archive_failed", requester_id=record.requester_id, error=str(e))
            outcome.warnings.append(StageResult(name=ARCHIVE, ok=False, error=str(e)))
