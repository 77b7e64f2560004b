"""
Core data types shared across the pipeline.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class FilingDocument:
    """An attachment on a filing."""

    filename: str
    src: str = ""
    description: str = ""
    file_type: str = "unknown"
    downloadable: bool = False
    is_confidential: bool = False
    size_estimate: str = "small"

    @property
    def is_pdf(self) -> bool:
        return self.file_type == "pdf" or self.src.lower().endswith(".pdf")


@dataclass
class Enrichment:
    """AI-generated analysis attached to a filing."""

    summary: str = "Summary not available"
    key_points: List[str] = field(default_factory=list)
    stakeholders: List[str] = field(default_factory=list)
    regulatory_impact: str = ""
    document_analysis: str = ""
    confidence: str = "Medium"
    documents_processed: int = 0
    model_used: str = ""


@dataclass
class Filing:
    """A single filing in an FCC docket, normalized from the source API."""

    id: str
    docket_number: str
    title: str
    author: str = "Unknown Filer"
    filing_type: str = "unknown"
    date_received: Optional[str] = None
    filing_url: str = ""
    documents: List[FilingDocument] = field(default_factory=list)
    raw_data: Dict[str, Any] = field(default_factory=dict)
    status: str = "pending"
    summary: Optional[str] = None
    key_points: List[str] = field(default_factory=list)
    stakeholders: List[str] = field(default_factory=list)
    regulatory_impact: Optional[str] = None
    document_analysis: Optional[str] = None
    confidence: Optional[str] = None
    documents_processed: int = 0
    ai_enhanced: bool = False

    def to_row(self) -> Dict[str, Any]:
        """Column values for an INSERT into the filings table."""
        return {
            "id": self.id,
            "docket_number": self.docket_number,
            "title": self.title,
            "author": self.author,
            "filing_type": self.filing_type,
            "date_received": self.date_received,
            "filing_url": self.filing_url,
            "documents": json.dumps([asdict(d) for d in self.documents]),
            "raw_data": json.dumps(self.raw_data, default=str),
            "status": self.status,
        }

    @classmethod
    def from_row(cls, row: Any) -> "Filing":
        """Build a Filing from a filings table row."""
        data = dict(row)
        documents = [FilingDocument(**d) for d in json.loads(data.get("documents") or "[]")]
        return cls(
            id=data["id"],
            docket_number=data["docket_number"],
            title=data["title"],
            author=data.get("author") or "Unknown Filer",
            filing_type=data.get("filing_type") or "unknown",
            date_received=data.get("date_received"),
            filing_url=data.get("filing_url") or "",
            documents=documents,
            raw_data=json.loads(data["raw_data"]) if data.get("raw_data") else {},
            status=data.get("status") or "pending",
            summary=data.get("summary"),
            key_points=json.loads(data["key_points"]) if data.get("key_points") else [],
            stakeholders=json.loads(data["stakeholders"]) if data.get("stakeholders") else [],
            regulatory_impact=data.get("regulatory_impact"),
            document_analysis=data.get("document_analysis"),
            confidence=data.get("confidence"),
            documents_processed=data.get("documents_processed") or 0,
            ai_enhanced=bool(data.get("ai_enhanced")),
        )

    def apply_enrichment(self, enrichment: Enrichment) -> None:
        self.summary = enrichment.summary
        self.key_points = list(enrichment.key_points)
        self.stakeholders = list(enrichment.stakeholders)
        self.regulatory_impact = enrichment.regulatory_impact
        self.document_analysis = enrichment.document_analysis
        self.confidence = enrichment.confidence
        self.documents_processed = enrichment.documents_processed
        self.ai_enhanced = True

    @property
    def downloadable_pdfs(self) -> List[FilingDocument]:
        return [d for d in self.documents if d.downloadable and d.is_pdf]
