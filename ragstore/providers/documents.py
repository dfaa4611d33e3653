"""
Text extraction from uploaded bytes, and the content adapter used for
binary documents.
"""

import io
import logging

from ..errors import SummarizationFailed
from .base import MediaDescriber

logger = logging.getLogger(__name__)

# Non-text/* types that are still plain text
TEXT_LIKE_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-yaml",
    "application/toml",
}


def is_text_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in TEXT_LIKE_TYPES


def extract_html_text(html_content: str) -> str:
    """
    Extract readable text from HTML, removing scripts and styles.

    Args:
        html_content: Raw HTML string

    Returns:
        Extracted text with whitespace normalized
    """
    from bs4 import BeautifulSoup

    soup = BeautifulSoup(html_content, "html.parser")

    # Remove script and style elements
    for script in soup(["script", "style"]):
        script.decompose()

    text = soup.get_text()

    # Clean up whitespace
    lines = (line.strip() for line in text.splitlines())
    chunks = (phrase.strip() for line in lines for phrase in line.split("  "))
    return '\n'.join(chunk for chunk in chunks if chunk)


def extract_pdf_text(data: bytes) -> str:
    """
    Extract the embedded text layer of a PDF, page by page.

    Pages without text (scans) contribute nothing; a PDF with no text layer
    at all yields "" and relies on its summary for search.
    """
    from pypdf import PdfReader

    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as e:
        raise IOError(f"Failed to extract text from PDF: {e}") from e
    return "\n\n".join(text for text in pages if text.strip())


def decode_text(data: bytes) -> str:
    """Decode bytes as UTF-8 (BOM tolerated), replacing undecodable bytes."""
    return data.decode("utf-8-sig", errors="replace")


class ContentAdapter:
    """
    Binary content adapter.

    Extracts text from text, HTML and PDF payloads, and asks a media
    describer for a summary of anything that is not text. With no describer
    configured, binary documents are indexed on extracted text only.

    Args:
        describer: Media describer for summaries, or None
    """

    def __init__(self, describer: MediaDescriber | None = None):
        self._describer = describer

    def is_binary(self, mime_type: str) -> bool:
        return not is_text_type(mime_type)

    def extract(self, data: bytes, mime_type: str) -> str:
        if mime_type == "text/html":
            return extract_html_text(decode_text(data))
        if is_text_type(mime_type):
            return decode_text(data)
        if mime_type == "application/pdf":
            return extract_pdf_text(data)
        return ""

    def summarize(self, data: bytes, mime_type: str) -> str | None:
        if self._describer is None:
            return None
        try:
            summary = self._describer.describe(data, mime_type)
        except Exception as e:
            raise SummarizationFailed(f"Summarization failed for {mime_type} content: {e}") from e
        if summary:
            logger.debug("Generated %d-char summary for %s content", len(summary), mime_type)
        return summary
