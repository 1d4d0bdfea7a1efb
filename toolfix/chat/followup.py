"""Follow-up chat protocol.

Each turn replays the complete stored transcript, prefixed by a system message
rendered from the session's frozen diagnosis context. Unlike the diagnosis
pipeline, a failed completion fails the whole turn and leaves the session
untouched.
"""

import time

import structlog

from toolfix.core.errors import (
    InvalidArgumentError,
    PermissionDeniedError,
    UnauthenticatedError,
    UpstreamError,
)
from toolfix.core.guardrails import InputGuard, OutputGuard
from toolfix.core.llm_adapter import CompletionService
from toolfix.core.session_store import ChatSession, SessionStore
from toolfix.pipeline.prompts import build_chat_system_prompt

logger = structlog.get_logger(__name__)


class FollowUpChat:
    """Appends question/answer turns to an existing chat session."""

    def __init__(self, completion: CompletionService, sessions: SessionStore | None = None):
        self.completion = completion
        self.sessions = sessions or SessionStore()
        self._input_guard = InputGuard()
        self._output_guard = OutputGuard()

    def load_owned(self, session_id: str, owner_id: str | None) -> ChatSession:
        """Load a session after checking the caller may use it.

        Raises:
            UnauthenticatedError: No caller identity.
            InvalidArgumentError: Blank session id.
            NotFoundError: Unknown session.
            PermissionDeniedError: Caller does not own the session.
        """
        if not owner_id:
            raise UnauthenticatedError("User must be signed in.")
        if not session_id or not session_id.strip():
            raise InvalidArgumentError("sessionId is required.")

        chat = self.sessions.get(session_id)
        if chat.owner_id != owner_id:
            logger.warning("chat.ownership_mismatch", session_id=session_id, caller=owner_id)
            raise PermissionDeniedError("This chat session belongs to another user.")
        return chat

    def send(self, session_id: str, owner_id: str | None, user_message: str) -> str:
        """Run one follow-up turn.

        Args:
            session_id: Session returned by the diagnosis call.
            owner_id: Authenticated caller id.
            user_message: The new question.

        Returns:
            The assistant reply.

        Raises:
            UnauthenticatedError, InvalidArgumentError, NotFoundError,
            PermissionDeniedError: Before any completion call.
            UpstreamError: If the completion service fails; nothing is written.
            ConcurrentUpdateError: If the transcript could not be written.
        """
        start = time.monotonic()
        if not owner_id:
            raise UnauthenticatedError("User must be signed in.")
        if not session_id or not session_id.strip() or not user_message or not user_message.strip():
            raise InvalidArgumentError("sessionId and userMessage are required.")
        screen = self._input_guard.check(user_message)
        if not screen.passed:
            logger.info("chat.input_flagged", session_id=session_id, reason=screen.reason)

        chat = self.load_owned(session_id, owner_id)

        working = [{"role": "system", "content": build_chat_system_prompt(chat.diagnosis_context)}]
        working.extend({"role": m.role, "content": m.content} for m in chat.messages)
        working.append({"role": "user", "content": user_message})

        logger.info("chat.request", session_id=session_id, history=len(chat.messages), msg_len=len(user_message))

        try:
            reply = self._output_guard.clean(self.completion.complete(working))
        except Exception as e:
            logger.error("chat.completion_failed", session_id=session_id, error=str(e))
            raise UpstreamError("Could not get a reply. Please try again.") from e

        updated = self.sessions.append_turn(chat, user_message, reply)

        logger.info("chat.response", session_id=session_id, messages=len(updated.messages),
                    latency_ms=int((time.monotonic() - start) * 1000))
        return reply
