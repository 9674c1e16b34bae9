import logging
import os
from contextlib import asynccontextmanager
from typing import List

logger = logging.getLogger(__name__)

import httpx
from fastapi import Depends, FastAPI, File, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .auth import SupabaseAuth, User
from .config import load_settings
from .database import create_engine, create_sessionmaker, create_tables
from .errors import AnalysisError, AuthenticationError
from .gemini import GeminiClient
from .orchestrator import AnalysisOrchestrator, UploadedFile
from .records import AnalysisRecordStore
from .schemas import AnalysisResult, HealthResponse, StoredAnalysisRecord
from .storage import SupabaseStorage

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# --- Rate limiting ---
RATE_LIMIT_PER_IP = os.getenv("RATE_LIMIT_PER_IP", "10/hour")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "1").strip().lower() in {
    "1", "true", "yes", "on"
}

limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_engine(settings.database_url)
    await create_tables(engine)
    http = httpx.AsyncClient()

    app.state.auth = SupabaseAuth(http, settings.supabase_url, settings.supabase_key)
    app.state.orchestrator = AnalysisOrchestrator(
        storage=SupabaseStorage(
            http,
            settings.supabase_url,
            settings.supabase_key,
            bucket=settings.supabase_bucket,
        ),
        model=GeminiClient(
            http,
            settings.gemini_api_key,
            model=settings.gemini_model,
            timeout=settings.gemini_timeout_seconds,
            max_retries=settings.gemini_max_retries,
        ),
        records=AnalysisRecordStore(create_sessionmaker(engine)),
    )
    logger.info("Resume analyzer started with model %s", settings.gemini_model)
    try:
        yield
    finally:
        await http.aclose()
        await engine.dispose()


app = FastAPI(title="Resume Analyzer", lifespan=lifespan)
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        {"detail": "Rate limit exceeded. Please slow down and try again later."},
        status_code=429,
    )


@app.exception_handler(AnalysisError)
async def analysis_error_handler(request: Request, exc: AnalysisError):
    return JSONResponse({"detail": exc.user_message}, status_code=exc.status_code)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    return request.app.state.orchestrator


async def get_current_user(
    request: Request, authorization: str = Header(default="")
) -> User:
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError()
    return await request.app.state.auth.get_user(token.strip())


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse()


@app.post("/analyze", response_model=AnalysisResult)
@limiter.limit(RATE_LIMIT_PER_IP)
async def analyze(
    request: Request,
    resume: UploadFile = File(...),
    user: User = Depends(get_current_user),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    data = await resume.read()

    if len(data) == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")

    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"File must be under {MAX_UPLOAD_BYTES // (1024 * 1024)} MB.",
        )

    upload = UploadedFile(
        file_name=resume.filename or "resume",
        mime_type=resume.content_type or "",
        data=data,
    )

    try:
        return await orchestrator.analyze(user.id, upload)
    except AnalysisError:
        raise
    except Exception as exc:
        logger.exception("Unexpected error during resume analysis")
        raise HTTPException(
            status_code=502,
            detail="Analysis failed due to an upstream error. Please try again.",
        ) from exc


@app.get("/analyses", response_model=List[StoredAnalysisRecord])
async def list_analyses(
    user: User = Depends(get_current_user),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.list_analyses(user.id)


@app.get("/analyses/{analysis_id}", response_model=StoredAnalysisRecord)
async def get_analysis(
    analysis_id: str,
    user: User = Depends(get_current_user),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.get_analysis(user.id, analysis_id)


@app.delete("/analyses/{analysis_id}", status_code=204)
async def delete_analysis(
    analysis_id: str,
    user: User = Depends(get_current_user),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.delete_analysis(user.id, analysis_id)
    return Response(status_code=204)
