import os
from dataclasses import dataclass
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv()


def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}.")


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}.")


@dataclass(frozen=True)
class Settings:
    gemini_api_key: str
    gemini_model: str
    gemini_timeout_seconds: float
    gemini_max_retries: int
    supabase_url: str
    supabase_key: str
    supabase_bucket: str
    database_url: str
    log_level: str


def _validate_supabase_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise RuntimeError(
            f'Invalid SUPABASE_URL: "{url}". It must be a full HTTP or HTTPS URL, '
            'e.g. "https://<project-ref>.supabase.co".'
        )
    return url.rstrip("/")


def load_settings() -> Settings:
    """Read and validate settings from the environment (and ``.env``)."""
    missing = [
        name
        for name in ("GEMINI_API_KEY", "SUPABASE_URL", "SUPABASE_KEY", "DATABASE_URL")
        if not _get_env(name)
    ]
    if missing:
        raise RuntimeError(
            "Missing required environment variables: "
            + ", ".join(missing)
            + ". Set them in the environment or in a .env file at the project root."
        )

    return Settings(
        gemini_api_key=_get_env("GEMINI_API_KEY"),
        gemini_model=_get_env("GEMINI_MODEL", "gemini-2.5-flash"),
        gemini_timeout_seconds=_get_env_float("GEMINI_TIMEOUT_SECONDS", 90.0),
        gemini_max_retries=_get_env_int("GEMINI_MAX_RETRIES", 0),
        supabase_url=_validate_supabase_url(_get_env("SUPABASE_URL")),
        supabase_key=_get_env("SUPABASE_KEY"),
        supabase_bucket=_get_env("SUPABASE_BUCKET", "resumes"),
        database_url=_get_env("DATABASE_URL"),
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
    )
