"""
Normalization of raw ECFS filing records into Filing objects.

The ECFS API is inconsistent about which fields it populates, so each
canonical field is taken from the first non-empty candidate in a fixed
fallback chain.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from ..database import parse_iso, to_iso
from ..models import Filing, FilingDocument

logger = logging.getLogger(__name__)

FILING_URL_TEMPLATE = "https://www.fcc.gov/ecfs/filing/{id}"
MAX_TEXT_LENGTH = 500

RESTRICTION_MARKERS = ("confidential", "restricted", "sealed", "private")
PUBLIC_STATUSES = ("unrestricted", "public")

_WHITESPACE = re.compile(r"\s+")


def clean_text(text: Any) -> str:
    """Trim, collapse whitespace and cap length."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", str(text).strip())[:MAX_TEXT_LENGTH]


def _first_name(items: Any) -> Optional[str]:
    """Return the 'name' of the first element of a list of dicts, if any."""
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0].get("name") or None
    return None


def _first(*candidates: Any) -> Any:
    for candidate in candidates:
        if candidate:
            return candidate
    return None


def is_restricted(viewing_status: Any) -> bool:
    """
    Whether an ECFS viewingstatus marks the filing as non-public.

    The API returns a single object, occasionally a list; only the first
    element of a list is considered.
    """
    if isinstance(viewing_status, list):
        viewing_status = viewing_status[0] if viewing_status else None
    if not isinstance(viewing_status, dict):
        return False

    description = (viewing_status.get("description") or "").lower()
    if not description or description in PUBLIC_STATUSES:
        return False
    return any(marker in description for marker in RESTRICTION_MARKERS)


def file_type_from_name(filename: Optional[str]) -> str:
    if not filename or "." not in filename:
        return "unknown"
    return filename.rsplit(".", 1)[1].lower() or "unknown"


def estimate_size(filename: Optional[str]) -> str:
    name = (filename or "").lower()
    if "order" in name:
        return "large"
    if "notice" in name:
        return "medium"
    return "small"


def extract_documents(raw: Dict[str, Any]) -> List[FilingDocument]:
    """Build attachment descriptors for a raw filing."""
    restricted = is_restricted(raw.get("viewingstatus"))
    documents = []
    for doc in raw.get("documents") or []:
        if not isinstance(doc, dict):
            continue
        src = doc.get("src") or ""
        filename = doc.get("filename") or ""
        documents.append(
            FilingDocument(
                filename=filename,
                src=src,
                description=doc.get("description") or "",
                file_type=file_type_from_name(filename),
                downloadable=bool(src) and "fcc.gov" in src and not restricted,
                is_confidential=restricted,
                size_estimate=estimate_size(filename),
            )
        )
    return documents


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Convert an ECFS date to the stored timestamp format, keeping unparseable values as-is."""
    if not value:
        return None
    try:
        return to_iso(parse_iso(value))
    except ValueError:
        logger.debug("Unparseable ECFS date: %s", value)
        return value


def normalize_filing(raw: Dict[str, Any], docket_number: str) -> Optional[Filing]:
    """
    Convert one raw ECFS record into a Filing.

    Args:
        raw: Record from the 'filing' array of the ECFS response.
        docket_number: Docket the record was fetched for.

    Returns:
        Normalized Filing, or None if the record has no submission id.
    """
    filing_id = raw.get("id_submission")
    if not filing_id:
        logger.warning("Skipping ECFS record without id_submission in docket %s", docket_number)
        return None
    filing_id = str(filing_id)

    documents = raw.get("documents") or []
    first_filename = documents[0].get("filename") if documents and isinstance(documents[0], dict) else None

    title = _first(
        first_filename,
        raw.get("delegated_authority_number"),
        raw.get("brief_comment_summary"),
        raw.get("description_of_filing"),
    )
    author = _first(
        _first_name(raw.get("filers")),
        _first_name(raw.get("authors")),
        _first_name(raw.get("lawfirms")),
        _first_name(raw.get("bureaus")),
    )
    submission_type = raw.get("submissiontype") or {}
    filing_type = _first(
        submission_type.get("description") if isinstance(submission_type, dict) else None,
        submission_type.get("short") if isinstance(submission_type, dict) else None,
        raw.get("type_of_filing"),
    )

    return Filing(
        id=filing_id,
        docket_number=docket_number,
        title=clean_text(title) or "Untitled Filing",
        author=clean_text(author) or "Unknown Filer",
        filing_type=clean_text(filing_type) or "unknown",
        date_received=normalize_date(
            _first(raw.get("date_disseminated"), raw.get("date_submission"), raw.get("date_received"))
        ),
        filing_url=FILING_URL_TEMPLATE.format(id=filing_id),
        documents=extract_documents(raw),
        raw_data=raw,
    )
