import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from .errors import PersistenceError, RecordNotFoundError
from .models import ResumeAnalysis
from .normalizer import normalize_payload
from .schemas import AnalysisResult, StoredAnalysisRecord

logger = logging.getLogger(__name__)


def to_record(row: ResumeAnalysis) -> StoredAnalysisRecord:
    # Older rows were written in the flat score/breakdown shape.
    return StoredAnalysisRecord(
        id=row.id,
        user_id=row.user_id,
        file_name=row.file_name,
        file_url=row.file_url,
        analysis_results=normalize_payload(row.analysis_results or {}),
        created_at=row.created_at,
    )


class AnalysisRecordStore:
    """Insert/select/delete access to the ``resume_analyses`` table."""

    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    async def save(
        self,
        user_id: str,
        file_name: str,
        file_url: str,
        result: AnalysisResult,
        *,
        created_at: Optional[datetime] = None,
    ) -> str:
        row = ResumeAnalysis(
            user_id=user_id,
            file_name=file_name,
            file_url=file_url,
            analysis_results=result.to_payload(),
        )
        if created_at is not None:
            row.created_at = created_at
        try:
            async with self._sessionmaker() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc
        return row.id

    async def list_for_user(self, user_id: str) -> List[StoredAnalysisRecord]:
        stmt = (
            select(ResumeAnalysis)
            .where(ResumeAnalysis.user_id == user_id)
            .order_by(ResumeAnalysis.created_at.desc())
        )
        async with self._sessionmaker() as session:
            rows = (await session.scalars(stmt)).all()
        return [to_record(row) for row in rows]

    async def get(self, user_id: str, analysis_id: str) -> StoredAnalysisRecord:
        async with self._sessionmaker() as session:
            row = await session.get(ResumeAnalysis, analysis_id)
        if row is None or row.user_id != user_id:
            raise RecordNotFoundError()
        return to_record(row)

    async def delete(self, user_id: str, analysis_id: str) -> None:
        async with self._sessionmaker() as session:
            row = await session.get(ResumeAnalysis, analysis_id)
            if row is None or row.user_id != user_id:
                raise RecordNotFoundError()
            await session.delete(row)
            await session.commit()
        logger.info("Deleted analysis %s", analysis_id)
