"""
PDF processing utilities for resume text extraction.

Main entry point:
    extract_text: Extract plain text from PDF bytes, failing on scanned/image PDFs.

Helper functions:
    meaningful_char_count: Count characters that carry content.
"""

import io

import pdfplumber

DEFAULT_MIN_TEXT_CHARS = 100
DEFAULT_MAX_PAGES = 20


class InsufficientTextError(Exception):
    """
    Raised when a PDF yields too little text to classify.

    Typically a scanned or image-only PDF. The failure is deterministic, so
    callers finalize the file instead of retrying.

    Attributes:
        char_count: Meaningful characters actually extracted
        min_chars: Threshold that was not met
    """

    def __init__(self, char_count: int, min_chars: int):
        self.char_count = char_count
        self.min_chars = min_chars
        super().__init__(
            f"Insufficient extractable text: {char_count} meaningful chars (need {min_chars})"
        )


def meaningful_char_count(text: str) -> int:
    """Count non-whitespace characters."""
    return sum(1 for c in text if not c.isspace())


def extract_text(
    data: bytes,
    min_chars: int = DEFAULT_MIN_TEXT_CHARS,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> str:
    """
    Extract plain text from PDF bytes.

    Args:
        data: Raw PDF file content
        min_chars: Minimum meaningful characters required (0 disables the check)
        max_pages: Only the first max_pages pages are read

    Returns:
        Extracted text, pages separated by blank lines

    Raises:
        InsufficientTextError: If fewer than min_chars meaningful characters were found
    """
    page_texts = []
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages[:max_pages]:
            page_texts.append(page.extract_text() or "")

    text = "\n\n".join(t for t in page_texts if t)

    count = meaningful_char_count(text)
    if count < min_chars:
        raise InsufficientTextError(count, min_chars)

    return text


class PDFTextExtractor:
    """
    Callable extractor bound to a text threshold.

    The analysis queue depends on ``extract(data) -> str`` only, so tests can
    substitute any object with the same method.
    """

    def __init__(self, min_chars: int = DEFAULT_MIN_TEXT_CHARS, max_pages: int = DEFAULT_MAX_PAGES):
        self.min_chars = min_chars
        self.max_pages = max_pages

    def extract(self, data: bytes) -> str:
        return extract_text(data, min_chars=self.min_chars, max_pages=self.max_pages)
