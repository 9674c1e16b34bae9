class AnalysisError(Exception):
    """Base class for every failure surfaced to API callers.

    ``user_message`` is safe to show to the end user; ``status_code`` is the
    HTTP status the API responds with.
    """

    status_code = 500
    default_message = "An unexpected error occurred."

    def __init__(self, user_message: str | None = None):
        self.user_message = user_message or self.default_message
        super().__init__(self.user_message)


class ExtractionError(AnalysisError):
    """The uploaded file could not be turned into usable text."""

    status_code = 400


class UnsupportedFormatError(ExtractionError):
    status_code = 415


# --- Model service ---------------------------------------------------------


class ServiceError(AnalysisError):
    status_code = 502
    default_message = "Failed to analyze resume. Please try again."


class ModelUnavailableError(ServiceError):
    status_code = 503
    default_message = (
        "Gemini API is temporarily unavailable. Please try again in a few moments."
    )


class ModelAuthError(ServiceError):
    default_message = (
        "Invalid API key. Please check your Gemini API key configuration."
    )


class ModelServiceError(ServiceError):
    """Any model failure that is neither unavailability nor bad credentials."""


# --- Reply parsing ---------------------------------------------------------

NO_PAYLOAD = "no structured payload found"
MALFORMED_PAYLOAD = "malformed payload"


class ParseError(AnalysisError):
    """The model replied, but no usable structured payload could be read.

    ``raw`` holds the untrusted text that failed (the whole reply, or the
    located substring) and is meant for diagnostic logging only.
    """

    status_code = 502
    default_message = "Failed to parse analysis results. Please try again."

    def __init__(self, reason: str, raw: str = ""):
        super().__init__()
        self.reason = reason
        self.raw = raw

    def __str__(self) -> str:
        return self.reason


# --- External collaborators ------------------------------------------------


class UploadError(AnalysisError):
    status_code = 502
    default_message = "Failed to upload resume to storage"


class StorageError(AnalysisError):
    status_code = 502
    default_message = "Storage request failed."


class PersistenceError(AnalysisError):
    status_code = 502
    default_message = "Failed to save analysis results."


class RecordNotFoundError(AnalysisError):
    status_code = 404
    default_message = "Analysis not found."


class AuthenticationError(AnalysisError):
    status_code = 401
    default_message = "Please sign in to analyze your resume"
