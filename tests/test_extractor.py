import pytest

from resume_analyzer.errors import ExtractionError, UnsupportedFormatError
from resume_analyzer.extractor import (
    NO_READABLE_TEXT_MESSAGE,
    PDF_PARSE_MESSAGE,
    UNSUPPORTED_MESSAGE,
    WORD_UNSUPPORTED_MESSAGE,
    declared_charset,
    extract_text,
    normalize_mime,
)

PAGE_ONE = "Jane Doe Senior Backend Engineer with ten years of Python experience"
PAGE_TWO = "Education BSc Computer Science State University 2012"


def test_plain_text_is_decoded_verbatim() -> None:
    content = "Jane Doe\nPython, SQL\n"
    assert extract_text(content.encode("utf-8"), "text/plain") == content


def test_plain_text_ignores_mime_parameters_and_bom() -> None:
    data = "\ufeffRésumé".encode("utf-8")
    assert extract_text(data, "Text/Plain; charset=utf-8") == "Résumé"


def test_plain_text_replaces_undecodable_bytes() -> None:
    assert extract_text(b"abc\xff", "text/plain") == "abc\ufffd"


def test_plain_text_unreadable_input_fails() -> None:
    with pytest.raises(ExtractionError, match="Failed to read text file"):
        extract_text(None, "text/plain")  # type: ignore[arg-type]


def test_pdf_pages_are_joined_in_order_with_newlines(make_pdf) -> None:
    data = make_pdf([[PAGE_ONE], [PAGE_TWO]])
    text = extract_text(data, "application/pdf")
    assert text.split("\n") == [PAGE_ONE, PAGE_TWO]


def test_pdf_fragments_on_a_page_are_space_joined(make_pdf) -> None:
    data = make_pdf([["Jane Doe", "Senior Backend Engineer", "Python SQL Docker AWS Kubernetes"]])
    text = extract_text(data, "application/pdf")
    assert "\n" not in text
    assert text == "Jane Doe Senior Backend Engineer Python SQL Docker AWS Kubernetes"


def test_pdf_below_threshold_is_rejected(make_pdf) -> None:
    data = make_pdf([["Jane Doe"]])
    with pytest.raises(ExtractionError) as excinfo:
        extract_text(data, "application/pdf")
    assert excinfo.value.user_message == NO_READABLE_TEXT_MESSAGE


def test_image_only_pdf_is_rejected(make_pdf) -> None:
    data = make_pdf([[], []])
    with pytest.raises(ExtractionError, match="scanned"):
        extract_text(data, "application/pdf")


def test_corrupt_pdf_reports_parse_failure() -> None:
    with pytest.raises(ExtractionError) as excinfo:
        extract_text(b"definitely not a pdf", "application/pdf")
    assert excinfo.value.user_message == PDF_PARSE_MESSAGE


@pytest.mark.parametrize(
    "mime",
    [
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ],
)
@pytest.mark.parametrize("data", [b"", b"%PDF-1.4 looks like a pdf", b"plain words"])
def test_word_documents_are_always_rejected(mime: str, data: bytes) -> None:
    with pytest.raises(UnsupportedFormatError) as excinfo:
        extract_text(data, mime)
    assert excinfo.value.user_message == WORD_UNSUPPORTED_MESSAGE


def test_unknown_mime_falls_back_to_pdf(make_pdf) -> None:
    data = make_pdf([[PAGE_ONE]])
    assert extract_text(data, "application/octet-stream") == PAGE_ONE
    assert extract_text(data, "") == PAGE_ONE


def test_unknown_mime_that_is_not_a_pdf_is_unsupported() -> None:
    with pytest.raises(UnsupportedFormatError) as excinfo:
        extract_text(b"\x89PNG\r\n", "image/png")
    assert excinfo.value.user_message == UNSUPPORTED_MESSAGE


def test_normalize_mime() -> None:
    assert normalize_mime(None) == ""
    assert normalize_mime(" Application/PDF ; name=x ") == "application/pdf"


def test_plain_text_uses_declared_charset() -> None:
    data = "Zoë Müller, Señor Engineer".encode("latin-1")
    assert extract_text(data, "text/plain; charset=latin-1") == "Zoë Müller, Señor Engineer"
    assert extract_text(data, 'text/plain; charset="ISO-8859-1"') == "Zoë Müller, Señor Engineer"


def test_unknown_charset_falls_back_to_utf8() -> None:
    data = "Résumé".encode("utf-8")
    assert extract_text(data, "text/plain; charset=klingon") == "Résumé"


def test_declared_charset() -> None:
    assert declared_charset("text/plain") is None
    assert declared_charset("text/plain; format=flowed; charset=UTF-8") == "utf-8"
