"""SQLAlchemy persistence for profiles, inventory, diagnosis results and chat sessions.

The engine is created once by init_db(). Domain-level access lives in
user_context.py, archive.py and session_store.py; this module only owns the
table definitions and session factory.
"""

import os
import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class Profile(Base):
    """One row per user: skill level and tool preference."""
    __tablename__ = "profiles"

    user_id = Column(String, primary_key=True)
    skill_level = Column(String, nullable=False, default="")
    tool_preference = Column(String, nullable=False, default="")
    updated_at = Column(DateTime, nullable=False, default=_utcnow)


class InventoryItem(Base):
    """A tool the user owns."""
    __tablename__ = "inventory"
    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_inventory_user_slug"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    slug = Column(String, nullable=False)
    name = Column(String, nullable=False)
    owned = Column(Boolean, nullable=False, default=True)


class ProblemResult(Base):
    """Append-only diagnosis record."""
    __tablename__ = "problem_results"

    id = Column(String, primary_key=True, default=_new_id)
    requester_id = Column(String, index=True, nullable=True)
    object = Column(Text, nullable=False)
    issue = Column(Text, nullable=False)
    likely_cause = Column(Text, nullable=False, default="")
    task_type = Column(String, nullable=False, default="unknown")
    raw_model_output = Column(Text, nullable=False, default="")
    instructions = Column(Text, nullable=False, default="")
    tool_suggestions = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, index=True, nullable=False, default=_utcnow)


class ChatSessionRow(Base):
    """Conversation transcript for one diagnosis. `version` guards concurrent writers."""
    __tablename__ = "chat_sessions"

    id = Column(String, primary_key=True, default=_new_id)
    owner_id = Column(String, index=True, nullable=False)
    diagnosis_context = Column(Text, nullable=False)  # JSON string
    messages = Column(Text, nullable=False)  # JSON list of {role, content}
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow)


_engine = None
_SessionLocal = None


def init_db(database_url: str | None = None) -> None:
    """Create engine + tables. Call once at startup.

    Args:
        database_url: SQLAlchemy connection string. Defaults to DATABASE_URL env var.
    """
    global _engine, _SessionLocal

    url = database_url or os.environ.get("DATABASE_URL", "sqlite:///data/toolfix.sqlite")
    if url.startswith("sqlite") and ":memory:" in url:
        # A single shared connection so every thread sees the same in-memory database
        _engine = create_engine(
            url, echo=False, poolclass=StaticPool, connect_args={"check_same_thread": False}
        )
    else:
        if url.startswith("sqlite:///") and not url.startswith("sqlite:////"):
            directory = os.path.dirname(url[len("sqlite:///"):])
            if directory:
                os.makedirs(directory, exist_ok=True)
        _engine = create_engine(url, echo=False)
    _SessionLocal = sessionmaker(bind=_engine)

    Base.metadata.create_all(_engine)
    logger.info("db.initialized", url=url.split("///")[0] + "///***")


def get_engine():
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def get_session() -> Session:
    """Get a new database session."""
    if _SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _SessionLocal()
