"""
LLM-powered analysis of FCC filings.

Builds a structured prompt from filing metadata and any extracted document
text, sends it to Claude, and parses the sectioned response.
"""

import logging
import re
from typing import List, Optional

import anthropic

from ..exceptions import EnrichmentError
from ..models import Enrichment, Filing

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-5-haiku-latest"
MAX_DOCUMENT_CHARS = 8000

ANALYSIS_PROMPT = """Analyze this FCC filing and provide a regulatory intelligence summary.

FILING METADATA:
- ID: {id}
- Docket: {docket_number}
- Title: {title}
- Author/Filer: {author}
- Filing Type: {filing_type}
- Date: {date_received}

{document_section}
Provide a structured analysis in exactly this format:

SUMMARY:
[2-3 sentence executive summary of the filing's purpose and key message]

KEY_POINTS:
- [Most important regulatory point]
- [Second most important point]
- [Third most important point]

STAKEHOLDERS:
- Primary: [Who filed this and why]
- Affected: [Who this impacts]
- Opposing: [Any opposing viewpoints mentioned]

REGULATORY_IMPACT:
[Scope, timeline and precedent in 1-3 sentences]
{document_analysis_section}
CONFIDENCE: [High/Medium/Low - based on available information]

Focus on regulatory implications and policy impacts relevant to telecommunications
attorneys, policy analysts and business strategists."""

DOCUMENT_SECTION = """DOCUMENT CONTENT:
The following text was extracted from the filing's attachments:

{text}
"""

NO_DOCUMENT_SECTION = """NOTE: No documents were available for content analysis. Base the summary on filing metadata only.
"""

DOCUMENT_ANALYSIS_SECTION = """
DOCUMENT_ANALYSIS:
[Content type, key arguments and supporting data from the documents]
"""

SECTION_NAMES = ("SUMMARY", "KEY_POINTS", "STAKEHOLDERS", "REGULATORY_IMPACT", "DOCUMENT_ANALYSIS", "CONFIDENCE")
_SECTION_HEADER = re.compile(r"^\s*\**\s*(%s)\s*\**\s*:(?:\*+)?\s*" % "|".join(SECTION_NAMES), re.MULTILINE)
_BULLET = re.compile(r"^\s*[-•*]\s*")


def classify_error(error: Exception) -> str:
    """Bucket an exception from the AI call for logging and retry decisions."""
    if isinstance(error, anthropic.RateLimitError):
        return "RATE_LIMIT"
    if isinstance(error, (anthropic.APITimeoutError, anthropic.APIConnectionError)):
        return "NETWORK"
    if isinstance(error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return "AUTH"

    message = str(error).lower()
    if "rate limit" in message or "quota" in message or "overloaded" in message:
        return "RATE_LIMIT"
    if "timeout" in message or "network" in message or "connection" in message:
        return "NETWORK"
    if "invalid" in message or "unauthorized" in message or "api key" in message:
        return "AUTH"
    if "content" in message or "safety" in message or "policy" in message:
        return "CONTENT_POLICY"
    return "UNKNOWN"


def _split_sections(text: str) -> dict:
    sections = {}
    matches = list(_SECTION_HEADER.finditer(text))
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        sections.setdefault(match.group(1), text[match.end() : end].strip())
    return sections


def _bullets(block: Optional[str]) -> List[str]:
    if not block:
        return []
    points = []
    for line in block.splitlines():
        if _BULLET.match(line):
            point = _BULLET.sub("", line).strip()
            if point:
                points.append(point)
    return points


def _confidence(block: Optional[str]) -> str:
    if block:
        for level in ("High", "Medium", "Low"):
            if block.strip().lower().startswith(level.lower()):
                return level
    return "Medium"


def parse_response(text: str, model: str = "") -> Enrichment:
    """
    Parse a sectioned LLM response into an Enrichment.

    Missing sections fall back to defaults rather than failing.
    """
    sections = _split_sections(text or "")
    return Enrichment(
        summary=sections.get("SUMMARY") or "Summary not available",
        key_points=_bullets(sections.get("KEY_POINTS")),
        stakeholders=_bullets(sections.get("STAKEHOLDERS")),
        regulatory_impact=sections.get("REGULATORY_IMPACT") or "",
        document_analysis=sections.get("DOCUMENT_ANALYSIS") or "",
        confidence=_confidence(sections.get("CONFIDENCE")),
        model_used=model,
    )


def build_prompt(filing: Filing, document_text: str = "", max_chars: int = MAX_DOCUMENT_CHARS) -> str:
    if document_text:
        truncated = document_text[:max_chars]
        if len(document_text) > max_chars:
            truncated += "\n... [truncated]"
        document_section = DOCUMENT_SECTION.format(text=truncated)
        analysis_section = DOCUMENT_ANALYSIS_SECTION
    else:
        document_section = NO_DOCUMENT_SECTION
        analysis_section = ""

    return ANALYSIS_PROMPT.format(
        id=filing.id,
        docket_number=filing.docket_number,
        title=filing.title,
        author=filing.author,
        filing_type=filing.filing_type,
        date_received=filing.date_received or "Unknown",
        document_section=document_section,
        document_analysis_section=analysis_section,
    )


class FilingSummarizer:
    """Generates structured analyses of filings using Claude."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        max_tokens: int = 1024,
        max_document_chars: int = MAX_DOCUMENT_CHARS,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.max_document_chars = max_document_chars
        self._client = None

    @classmethod
    def from_config(cls, config) -> "FilingSummarizer":
        return cls(
            api_key=config.secret("anthropic_api_key"),
            model=config.get("enrichment.model", DEFAULT_MODEL),
            max_tokens=config.get("enrichment.max_tokens", 1024),
            max_document_chars=config.get("enrichment.max_document_chars", MAX_DOCUMENT_CHARS),
        )

    def _get_client(self):
        """Get or create the Anthropic client."""
        if self._client is None:
            if not self.api_key:
                raise EnrichmentError("ANTHROPIC_API_KEY is not configured", "AUTH")
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def summarize(self, filing: Filing, document_text: str = "") -> Enrichment:
        """
        Analyze one filing.

        Args:
            filing: Filing to analyze.
            document_text: Extracted attachment text, possibly empty.

        Returns:
            Parsed Enrichment.

        Raises:
            EnrichmentError: The API call failed; `category` holds the classification.
        """
        client = self._get_client()
        prompt = build_prompt(filing, document_text, self.max_document_chars)

        logger.info("Generating analysis for filing %s: %s", filing.id, filing.title[:50])
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            category = classify_error(e)
            raise EnrichmentError(f"AI analysis failed for filing {filing.id}: {e}", category) from e

        text = "".join(block.text for block in response.content if getattr(block, "type", "text") == "text")
        if not text.strip():
            raise EnrichmentError(f"Empty AI response for filing {filing.id}", "CONTENT_POLICY")
        return parse_response(text, self.model)
