"""Chat session persistence with optimistic concurrency.

Transcripts are append-only. Every write is a compare-and-swap on the row's
version column; a writer that loses the race reloads the latest transcript and
appends its turn to that instead of overwriting it.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

import structlog

from toolfix.api.schemas import MessageRecord
from toolfix.core.database import ChatSessionRow, get_session
from toolfix.core.errors import ConcurrentUpdateError, NotFoundError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DiagnosisContext:
    """Snapshot of the diagnosis and user context taken when the session is created.

    Never refreshed from the live profile or inventory afterwards.
    """
    object: str
    issue: str
    likely_cause: str
    task_type: str
    skill_level: str
    tool_preference: str
    owned_tools: tuple[str, ...] = ()

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "DiagnosisContext":
        data = json.loads(raw)
        data["owned_tools"] = tuple(data.get("owned_tools", ()))
        return cls(**data)


@dataclass
class ChatSession:
    """Loaded view of a chat_sessions row."""
    id: str
    owner_id: str
    diagnosis_context: DiagnosisContext
    messages: list[MessageRecord] = field(default_factory=list)
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None


def _dump_messages(messages: list[MessageRecord]) -> str:
    return json.dumps([m.model_dump() for m in messages])


def _load_messages(raw: str) -> list[MessageRecord]:
    return [MessageRecord(**m) for m in json.loads(raw)]


def _row_to_session(row: ChatSessionRow) -> ChatSession:
    return ChatSession(
        id=row.id,
        owner_id=row.owner_id,
        diagnosis_context=DiagnosisContext.from_json(row.diagnosis_context),
        messages=_load_messages(row.messages),
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SessionStore:
    """Creates, loads, and appends to chat sessions."""

    def __init__(self, max_write_attempts: int | None = None):
        self.max_write_attempts = max_write_attempts or int(os.environ.get("SESSION_WRITE_RETRIES", "3"))

    def create(
        self,
        owner_id: str,
        context: DiagnosisContext,
        messages: list[MessageRecord],
    ) -> str:
        """Persist a new session seeded with the given messages.

        Returns:
            Generated session id.
        """
        now = datetime.now(timezone.utc)
        with get_session() as session:
            row = ChatSessionRow(
                owner_id=owner_id,
                diagnosis_context=context.to_json(),
                messages=_dump_messages(messages),
                version=1,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            logger.info("session.created", session_id=row.id, owner_id=owner_id, messages=len(messages))
            return row.id

    def get(self, session_id: str) -> ChatSession:
        """Load a session.

        Raises:
            NotFoundError: If no session has this id.
        """
        with get_session() as session:
            row = session.get(ChatSessionRow, session_id)
            if row is None:
                raise NotFoundError(f"Chat session {session_id} not found.")
            return _row_to_session(row)

    def append_turn(self, chat: ChatSession, user_message: str, reply: str) -> ChatSession:
        """Append one user message and one assistant reply.

        The write only lands if the stored version still matches the version the
        caller read. On a mismatch the latest transcript is reloaded and the turn
        is appended to it, up to max_write_attempts times.

        Args:
            chat: Session as loaded by the caller.
            user_message: The follow-up question.
            reply: The completion service's answer.

        Returns:
            The session as written.

        Raises:
            NotFoundError: If the session disappeared between read and write.
            ConcurrentUpdateError: If every attempt lost the race.
        """
        turn = [
            MessageRecord(role="user", content=user_message),
            MessageRecord(role="assistant", content=reply),
        ]
        current = chat

        for attempt in range(1, self.max_write_attempts + 1):
            messages = list(current.messages) + turn
            now = datetime.now(timezone.utc)

            with get_session() as session:
                updated = (
                    session.query(ChatSessionRow)
                    .filter(ChatSessionRow.id == current.id, ChatSessionRow.version == current.version)
                    .update(
                        {
                            ChatSessionRow.messages: _dump_messages(messages),
                            ChatSessionRow.version: current.version + 1,
                            ChatSessionRow.updated_at: now,
                        },
                        synchronize_session=False,
                    )
                )
                session.commit()

            if updated == 1:
                logger.debug("session.turn_appended", session_id=current.id,
                             version=current.version + 1, messages=len(messages))
                return ChatSession(
                    id=current.id,
                    owner_id=current.owner_id,
                    diagnosis_context=current.diagnosis_context,
                    messages=messages,
                    version=current.version + 1,
                    created_at=current.created_at,
                    updated_at=now,
                )

            logger.warning("session.write_conflict", session_id=current.id,
                           attempt=attempt, expected_version=current.version)
            current = self.get(current.id)

        raise ConcurrentUpdateError(
            f"Chat session {chat.id} was modified concurrently; gave up after {self.max_write_attempts} attempts."
        )
