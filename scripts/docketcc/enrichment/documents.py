"""
Document text extraction through the Jina reader API.

Only PDF attachments hosted by the FCC are processed.
"""

import logging
import re
from typing import List, Optional

import requests

from ..exceptions import DocumentExtractionError

logger = logging.getLogger(__name__)

READER_URL = "https://r.jina.ai/"
REQUEST_TIMEOUT = 60
MIN_TEXT_LENGTH = 100

# The reader occasionally leaks the literal string "undefined" into output
_UNDEFINED_ARTIFACT = re.compile(r"undefined")
_BLANK_LINES = re.compile(r"\n{3,}")


def clean_extracted_text(text: str) -> str:
    text = _UNDEFINED_ARTIFACT.sub("", text or "")
    return _BLANK_LINES.sub("\n\n", text).strip()


def chunk_text(text: str, chunk_size: int = 4000, overlap: int = 200) -> List[str]:
    """
    Split text into overlapping chunks, preferring paragraph boundaries.

    Args:
        text: Text to split.
        chunk_size: Maximum characters per chunk.
        overlap: Characters repeated at the start of the next chunk.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap >= chunk_size:
        raise ValueError("overlap must be smaller than chunk_size")

    text = text or ""
    if len(text) <= chunk_size:
        return [text] if text else []

    chunks = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        if end < len(text):
            boundary = text.rfind("\n\n", start + chunk_size // 2, end)
            if boundary != -1:
                end = boundary
        chunks.append(text[start:end].strip())
        if end >= len(text):
            break
        start = max(end - overlap, start + 1)
    return [c for c in chunks if c]


class DocumentExtractor:
    """Turns a document URL into plain text."""

    def __init__(
        self,
        api_key: Optional[str],
        reader_url: str = READER_URL,
        timeout: int = REQUEST_TIMEOUT,
        min_text_length: int = MIN_TEXT_LENGTH,
    ) -> None:
        self.api_key = api_key
        self.reader_url = reader_url.rstrip("/") + "/"
        self.timeout = timeout
        self.min_text_length = min_text_length
        self.session = requests.Session()

    @classmethod
    def from_config(cls, config) -> "DocumentExtractor":
        return cls(
            api_key=config.secret("jina_api_key"),
            reader_url=config.get("documents.reader_url", READER_URL),
            timeout=config.get("documents.timeout", REQUEST_TIMEOUT),
            min_text_length=config.get("documents.min_text_length", MIN_TEXT_LENGTH),
        )

    @staticmethod
    def is_supported(url: str) -> bool:
        return bool(url) and url.lower().split("?", 1)[0].endswith(".pdf")

    def extract_text(self, url: str) -> str:
        """
        Extract text from a PDF URL.

        Raises:
            DocumentExtractionError: Unsupported URL, transport failure, or
                too little text came back.
        """
        if not self.is_supported(url):
            raise DocumentExtractionError(f"Unsupported document type: {url}")

        headers = {"X-Return-Format": "text", "X-Timeout": str(min(self.timeout, 30))}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = self.session.get(f"{self.reader_url}{url}", headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise DocumentExtractionError(f"Timeout extracting {url}")
        except requests.exceptions.HTTPError as e:
            raise DocumentExtractionError(f"HTTP error {e.response.status_code} extracting {url}")
        except requests.exceptions.RequestException as e:
            raise DocumentExtractionError(f"Extraction request failed for {url}: {e}")

        text = clean_extracted_text(response.text)
        if len(text) <= self.min_text_length:
            raise DocumentExtractionError(
                f"Extracted only {len(text)} characters from {url} (need more than {self.min_text_length})"
            )

        logger.debug("Extracted %d characters from %s", len(text), url)
        return text
