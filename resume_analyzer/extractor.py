import codecs
import io
import logging

from pypdf import PdfReader

from .errors import ExtractionError, UnsupportedFormatError

logger = logging.getLogger(__name__)

# Anything at or below this many characters is treated as a failed
# extraction (typically a scanned, image-only PDF).
MIN_TEXT_LENGTH = 50

TEXT_MIME = "text/plain"
PDF_MIME = "application/pdf"
WORD_MIMES = frozenset(
    {
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)
ACCEPTED_MIMES = frozenset({TEXT_MIME, PDF_MIME}) | WORD_MIMES

WORD_UNSUPPORTED_MESSAGE = (
    "Word documents are not supported yet. "
    "Please convert your resume to PDF or text format."
)
UNSUPPORTED_MESSAGE = "Unsupported file type. Please use PDF or text files."
NO_READABLE_TEXT_MESSAGE = (
    "Could not extract readable text from PDF. It is likely a scanned or "
    "image-only document. Please try converting your PDF to a text file or "
    "copy-paste the content."
)
PDF_PARSE_MESSAGE = (
    "Failed to parse PDF. Please try a different PDF or convert to text format."
)


def normalize_mime(mime_type: str | None) -> str:
    """Lower-case a MIME type and drop any parameters (``; charset=...``)."""
    return (mime_type or "").split(";", 1)[0].strip().lower()


def declared_charset(mime_type: str | None) -> str | None:
    """Return the ``charset`` parameter of a MIME type, if it names a known codec."""
    for param in (mime_type or "").split(";")[1:]:
        name, _, value = param.partition("=")
        if name.strip().lower() != "charset":
            continue
        charset = value.strip().strip("\"'").lower()
        try:
            codecs.lookup(charset)
        except LookupError:
            return None
        return charset
    return None


def _decode_text(data: bytes, charset: str | None = None) -> str:
    # utf-8-sig also strips a BOM when the upload declares plain utf-8.
    if charset is None or charset.replace("_", "-") in ("utf-8", "utf8"):
        charset = "utf-8-sig"
    try:
        return bytes(data).decode(charset, errors="replace")
    except TypeError as exc:
        raise ExtractionError("Failed to read text file") from exc


def _extract_pdf(data: bytes) -> str:
    """Return page texts joined by newlines, each page collapsed to one line."""
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = []
        for page in reader.pages:
            fragments = (page.extract_text() or "").split()
            pages.append(" ".join(fragments))
    except Exception as exc:
        logger.warning("PDF parsing failed: %s", exc)
        raise ExtractionError(PDF_PARSE_MESSAGE) from exc

    text = "\n".join(pages).strip()
    if len(text) <= MIN_TEXT_LENGTH:
        raise ExtractionError(NO_READABLE_TEXT_MESSAGE)
    logger.info("Extracted %d chars from %d PDF page(s)", len(text), len(pages))
    return text


def extract_text(data: bytes, mime_type: str | None) -> str:
    """Extract plain text from an uploaded resume.

    Raises ``ExtractionError`` (or its ``UnsupportedFormatError`` subclass)
    with a message that can be shown to the user as-is.
    """
    mime = normalize_mime(mime_type)

    if mime == TEXT_MIME:
        return _decode_text(data, declared_charset(mime_type))

    if mime == PDF_MIME:
        return _extract_pdf(data)

    if mime in WORD_MIMES:
        raise UnsupportedFormatError(WORD_UNSUPPORTED_MESSAGE)

    # Some browsers misreport PDFs, so give the PDF path a try.
    try:
        return _extract_pdf(data)
    except ExtractionError as exc:
        logger.info("Fallback PDF extraction failed for MIME %r", mime)
        raise UnsupportedFormatError(UNSUPPORTED_MESSAGE) from exc
