import pytest
from fastapi.testclient import TestClient

from resume_analyzer.auth import User
from resume_analyzer.errors import (
    AuthenticationError,
    ModelAuthError,
    ParseError,
    RecordNotFoundError,
    UnsupportedFormatError,
)
from resume_analyzer.extractor import WORD_UNSUPPORTED_MESSAGE
from resume_analyzer.main import app, get_current_user, get_orchestrator
from resume_analyzer.schemas import AnalysisResult, Scores, StoredAnalysisRecord

RESULT = AnalysisResult(
    scores=Scores(overall=85, ats_compatibility=90, keyword_optimization=80, formatting=90, impact=80),
    summary="Strong resume.",
    strengths=["Clear history"],
    improvements=["Add metrics"],
    critical_issues=["Add metrics"],
)
RECORD = StoredAnalysisRecord(
    id="a1",
    user_id="user-1",
    file_name="cv.pdf",
    file_url="https://files/resumes/user-1/cv.pdf",
    analysis_results=RESULT,
    created_at="2025-01-01T00:00:00",
)


class FakeOrchestrator:
    def __init__(self, error=None):
        self.error = error
        self.uploads = []
        self.deleted = []

    async def analyze(self, user_id, upload):
        self.uploads.append((user_id, upload))
        if self.error:
            raise self.error
        return RESULT

    async def list_analyses(self, user_id):
        return [RECORD]

    async def get_analysis(self, user_id, analysis_id):
        if analysis_id != RECORD.id:
            raise RecordNotFoundError()
        return RECORD

    async def delete_analysis(self, user_id, analysis_id):
        if analysis_id != RECORD.id:
            raise RecordNotFoundError()
        self.deleted.append(analysis_id)


@pytest.fixture
def orchestrator():
    fake = FakeOrchestrator()
    app.dependency_overrides[get_orchestrator] = lambda: fake
    app.dependency_overrides[get_current_user] = lambda: User(id="user-1")
    yield fake
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


def _post_resume(client, content=b"Jane Doe resume text", mime="text/plain"):
    return client.post("/analyze", files={"resume": ("cv.txt", content, mime)})


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_analyze_returns_camel_case_result(client, orchestrator) -> None:
    response = _post_resume(client)
    assert response.status_code == 200
    body = response.json()
    assert body["scores"] == {
        "overall": 85,
        "atsCompatibility": 90,
        "keywordOptimization": 80,
        "formatting": 90,
        "impact": 80,
    }
    assert body["criticalIssues"] == ["Add metrics"]
    assert body["suggestions"] == []

    user_id, upload = orchestrator.uploads[0]
    assert user_id == "user-1"
    assert upload.file_name == "cv.txt"
    assert upload.mime_type == "text/plain"
    assert upload.data == b"Jane Doe resume text"


def test_analyze_rejects_empty_file(client, orchestrator) -> None:
    response = _post_resume(client, content=b"")
    assert response.status_code == 400
    assert orchestrator.uploads == []


def test_analyze_rejects_oversized_file(client, orchestrator, monkeypatch) -> None:
    monkeypatch.setattr("resume_analyzer.main.MAX_UPLOAD_BYTES", 10)
    response = _post_resume(client, content=b"x" * 11)
    assert response.status_code == 400
    assert orchestrator.uploads == []


@pytest.mark.parametrize(
    "error, status, detail",
    [
        (UnsupportedFormatError(WORD_UNSUPPORTED_MESSAGE), 415, WORD_UNSUPPORTED_MESSAGE),
        (ModelAuthError(), 502, "Invalid API key. Please check your Gemini API key configuration."),
        (ParseError("malformed payload", raw="{secret"), 502, "Failed to parse analysis results. Please try again."),
    ],
)
def test_analysis_errors_map_to_user_messages(client, orchestrator, error, status, detail) -> None:
    orchestrator.error = error
    response = _post_resume(client)
    assert response.status_code == status
    assert response.json() == {"detail": detail}
    assert "{secret" not in response.text


def test_unexpected_errors_become_502(client, orchestrator) -> None:
    orchestrator.error = RuntimeError("boom")
    response = _post_resume(client)
    assert response.status_code == 502
    assert "boom" not in response.text


def test_list_analyses(client, orchestrator) -> None:
    response = client.get("/analyses")
    assert response.status_code == 200
    body = response.json()
    assert [r["id"] for r in body] == ["a1"]
    assert body[0]["analysis_results"]["scores"]["atsCompatibility"] == 90


def test_get_analysis_not_found(client, orchestrator) -> None:
    assert client.get("/analyses/a1").status_code == 200
    response = client.get("/analyses/nope")
    assert response.status_code == 404
    assert response.json() == {"detail": "Analysis not found."}


def test_delete_analysis(client, orchestrator) -> None:
    response = client.delete("/analyses/a1")
    assert response.status_code == 204
    assert orchestrator.deleted == ["a1"]


def test_missing_bearer_token_is_unauthorized(client) -> None:
    app.dependency_overrides[get_orchestrator] = lambda: FakeOrchestrator()
    try:
        response = _post_resume(client)
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 401


def test_invalid_token_is_unauthorized(client) -> None:
    class RejectingAuth:
        async def get_user(self, token):
            raise AuthenticationError()

    app.state.auth = RejectingAuth()
    app.dependency_overrides[get_orchestrator] = lambda: FakeOrchestrator()
    try:
        response = client.get("/analyses", headers={"Authorization": "Bearer bad"})
    finally:
        app.dependency_overrides.clear()
        del app.state.auth
    assert response.status_code == 401
