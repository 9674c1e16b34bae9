import asyncio
import logging
import time

import httpx

from .errors import ModelAuthError, ModelServiceError, ModelUnavailableError, ServiceError

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"
MAX_BACKOFF_SECONDS = 8.0

ATS_ANALYSIS_PROMPT = """\
You are an expert ATS (Applicant Tracking System) resume analyzer. Analyze the \
provided resume text and provide a comprehensive evaluation.

IMPORTANT: You must ONLY respond with a valid JSON object. Do not include any \
explanatory text or additional content outside the JSON.

Respond with a JSON object in this exact format:

```json
{
  "score": 85,
  "breakdown": {
    "keywords": 80,
    "formatting": 90,
    "experience": 85,
    "skills": 75,
    "education": 95
  },
  "improvements": {
    "critical": ["Add more industry-specific keywords", "Include quantified achievements"],
    "important": ["Add professional summary", "Use consistent formatting"],
    "suggested": ["Include relevant certifications", "Add volunteer experience"]
  },
  "strengths": ["Clear work history", "Good educational background", "Professional formatting"],
  "summary": "<2-3 sentence overall assessment of the resume>"
}
```

All scores are integers from 0 to 100.

Analysis Guidelines:
- Score based on ATS compatibility, keyword optimization, formatting, and content quality
- Critical issues: Problems that would cause ATS rejection or major parsing errors
- Important improvements: Issues that significantly impact ranking and visibility
- Suggested enhancements: Nice-to-have improvements for better presentation
- Strengths: Positive aspects that work well for ATS systems

Consider these ATS factors:
1. Keyword relevance and density
2. Standard section headers (Experience, Education, Skills, etc.)
3. Consistent formatting and structure
4. Contact information placement
5. File format compatibility
6. Use of standard fonts and formatting
7. Quantified achievements
8. Industry-specific terminology
9. Skills section optimization
10. Education credentials formatting

Resume text to analyze:
"""


def build_prompt(resume_text: str) -> str:
    """Append the resume text, unmodified, to the analysis instructions."""
    return ATS_ANALYSIS_PROMPT + resume_text


def classify_error(message: str, status_code: int | None = None) -> ServiceError:
    """Map a Gemini failure onto the service error taxonomy."""
    lowered = (message or "").lower()
    if status_code == 503 or "unavailable" in lowered or "503" in lowered:
        return ModelUnavailableError()
    if status_code in (401, 403) or "api key" in lowered or "api_key" in lowered:
        return ModelAuthError()
    return ModelServiceError()


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json()
        return detail.get("error", {}).get("message", response.text)
    except (ValueError, AttributeError):
        return response.text


def _reply_text(data: dict) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        raise KeyError("candidates")
    parts = candidates[0]["content"]["parts"]
    return "".join(part.get("text", "") for part in parts)


class GeminiClient:
    """Single-shot ``generateContent`` calls against one fixed model.

    The ``httpx.AsyncClient`` is owned by the caller so it can be shared
    across requests and replaced with a mock transport in tests.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        base_url: str = GEMINI_BASE_URL,
        timeout: float = 90.0,
        max_retries: int = 0,
        temperature: float = 0.2,
    ):
        if not api_key:
            raise ValueError("GEMINI_API_KEY is not configured.")
        self._http = http
        self._api_key = api_key
        self.model = model
        self._url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self._timeout = timeout
        self._max_retries = max(0, max_retries)
        self._temperature = temperature

    def _payload(self, prompt: str) -> dict:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": self._temperature},
        }

    async def _generate_once(self, prompt: str) -> str:
        try:
            response = await self._http.post(
                self._url,
                params={"key": self._api_key},
                json=self._payload(prompt),
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            logger.error("Gemini request timed out after %.0fs", self._timeout)
            raise ModelServiceError() from exc
        except httpx.HTTPError as exc:
            logger.error("Gemini request failed: %s", exc)
            raise classify_error(str(exc)) from exc

        if response.is_error:
            detail = _error_detail(response)
            logger.error("Gemini API error (%d): %s", response.status_code, detail)
            raise classify_error(detail, response.status_code)

        try:
            return _reply_text(response.json())
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as exc:
            logger.error("Unexpected response from Gemini API: %s", exc)
            raise ModelServiceError() from exc

    async def generate(self, prompt: str) -> str:
        """Send ``prompt`` and return the model's raw reply text.

        Only ``ModelUnavailableError`` is retried, and only when
        ``max_retries`` is set.
        """
        attempt = 0
        while True:
            started = time.perf_counter()
            try:
                text = await self._generate_once(prompt)
            except ModelUnavailableError:
                if attempt >= self._max_retries:
                    raise
                delay = min(2.0 ** attempt, MAX_BACKOFF_SECONDS)
                logger.warning("Gemini unavailable, retrying in %.0fs", delay)
                await asyncio.sleep(delay)
                attempt += 1
                continue
            logger.info(
                "Gemini %s replied with %d chars in %.2fs",
                self.model,
                len(text),
                time.perf_counter() - started,
            )
            return text
