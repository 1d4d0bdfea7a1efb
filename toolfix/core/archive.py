"""Result archive: append-only storage of completed diagnoses."""

import structlog

from toolfix.api.schemas import DiagnosisRecord
from toolfix.core.database import ProblemResult, get_session

logger = structlog.get_logger(__name__)


class ResultArchive:
    """Writes one problem_results row per diagnosis and serves owner history."""

    def add(self, record: DiagnosisRecord) -> str:
        """Insert a record.

        Args:
            record: Completed diagnosis.

        Returns:
            Generated row id.
        """
        with get_session() as session:
            row = ProblemResult(
                requester_id=record.requester_id,
                object=record.object,
                issue=record.issue,
                likely_cause=record.likely_cause,
                task_type=record.task_type,
                raw_model_output=record.raw_model_output,
                instructions=record.instructions,
                tool_suggestions=record.tool_suggestions,
                created_at=record.created_at,
            )
            session.add(row)
            session.commit()
            logger.debug("archive.record_saved", record_id=row.id, requester_id=record.requester_id)
            return row.id

    def list_for_owner(self, owner_id: str, limit: int = 50) -> list[tuple[str, DiagnosisRecord]]:
        """Fetch an owner's records, newest first.

        Returns:
            List of (record_id, DiagnosisRecord).
        """
        with get_session() as session:
            rows = (
                session.query(ProblemResult)
                .filter(ProblemResult.requester_id == owner_id)
                .order_by(ProblemResult.created_at.desc())
                .limit(limit)
                .all()
            )
            return [(r.id, _row_to_record(r)) for r in rows]


def _row_to_record(row: ProblemResult) -> DiagnosisRecord:
    return DiagnosisRecord(
        object=row.object,
        issue=row.issue,
        likely_cause=row.likely_cause,
        task_type=row.task_type,
        instructions=row.instructions,
        tool_suggestions=row.tool_suggestions,
        raw_model_output=row.raw_model_output,
        requester_id=row.requester_id,
        created_at=row.created_at,
    )
