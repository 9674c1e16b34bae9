import logging
from dataclasses import dataclass
from typing import Callable, List, Protocol

from .errors import UploadError
from .extractor import extract_text
from .gemini import build_prompt
from .normalizer import normalize
from .schemas import AnalysisResult, StoredAnalysisRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedFile:
    file_name: str
    mime_type: str
    data: bytes


class ObjectStore(Protocol):
    async def upload(
        self, user_id: str, file_name: str, data: bytes, content_type: str
    ) -> str: ...

    async def delete(self, file_url: str) -> None: ...


class RecordStore(Protocol):
    async def save(
        self, user_id: str, file_name: str, file_url: str, result: AnalysisResult
    ) -> str: ...

    async def list_for_user(self, user_id: str) -> List[StoredAnalysisRecord]: ...

    async def get(self, user_id: str, analysis_id: str) -> StoredAnalysisRecord: ...

    async def delete(self, user_id: str, analysis_id: str) -> None: ...


class ModelClient(Protocol):
    async def generate(self, prompt: str) -> str: ...


class AnalysisOrchestrator:
    """Upload, extract, analyze, normalize, then save (best effort)."""

    def __init__(
        self,
        storage: ObjectStore,
        model: ModelClient,
        records: RecordStore,
        *,
        extract: Callable[[bytes, str], str] = extract_text,
        parse: Callable[[str], AnalysisResult] = normalize,
    ):
        self._storage = storage
        self._model = model
        self._records = records
        self._extract = extract
        self._parse = parse

    async def analyze(self, user_id: str, upload: UploadedFile) -> AnalysisResult:
        file_url = await self._storage.upload(
            user_id, upload.file_name, upload.data, upload.mime_type
        )
        if not file_url:
            raise UploadError()

        resume_text = self._extract(upload.data, upload.mime_type)
        logger.info("Extracted %d chars from %s", len(resume_text), upload.file_name)

        reply = await self._model.generate(build_prompt(resume_text))
        result = self._parse(reply)

        await self._save_best_effort(user_id, upload.file_name, file_url, result)
        return result

    async def _save_best_effort(
        self, user_id: str, file_name: str, file_url: str, result: AnalysisResult
    ) -> None:
        # The user still gets their analysis if history-keeping fails.
        try:
            analysis_id = await self._records.save(user_id, file_name, file_url, result)
        except Exception:
            logger.exception("Failed to save analysis results for %s", file_name)
            return
        logger.info("Saved analysis %s for user %s", analysis_id, user_id)

    async def list_analyses(self, user_id: str) -> List[StoredAnalysisRecord]:
        return await self._records.list_for_user(user_id)

    async def get_analysis(self, user_id: str, analysis_id: str) -> StoredAnalysisRecord:
        return await self._records.get(user_id, analysis_id)

    async def delete_analysis(self, user_id: str, analysis_id: str) -> None:
        """Remove the stored file, then the record."""
        record = await self._records.get(user_id, analysis_id)
        await self._storage.delete(record.file_url)
        await self._records.delete(user_id, analysis_id)
