"""
Filing enrichment: document extraction followed by AI analysis.

Enrichment failures never block notification of a filing: the filing is
marked failed, logged, and still flows downstream with metadata only.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..exceptions import DocketCCError, EnrichmentError
from ..filing_store import FilingStore
from ..models import Enrichment, Filing
from ..system_log import SystemLog
from .circuit_breaker import CircuitBreaker
from .documents import DocumentExtractor
from .summarizer import FilingSummarizer, classify_error

logger = logging.getLogger(__name__)


class FilingEnricher:
    """Coordinates extraction, summarization and the circuit breaker."""

    def __init__(
        self,
        summarizer: FilingSummarizer,
        extractor: Optional[DocumentExtractor],
        filing_store: FilingStore,
        system_log: SystemLog,
        breaker: Optional[CircuitBreaker] = None,
        max_documents: int = 3,
        max_concurrent: int = 2,
        batch_delay_seconds: float = 1.0,
    ) -> None:
        self.summarizer = summarizer
        self.extractor = extractor
        self.filing_store = filing_store
        self.system_log = system_log
        self.breaker = breaker or CircuitBreaker()
        self.max_documents = max_documents
        self.max_concurrent = max_concurrent
        self.batch_delay_seconds = batch_delay_seconds

    @classmethod
    def from_config(cls, config, filing_store: FilingStore, system_log: SystemLog) -> "FilingEnricher":
        return cls(
            summarizer=FilingSummarizer.from_config(config),
            extractor=DocumentExtractor.from_config(config),
            filing_store=filing_store,
            system_log=system_log,
            breaker=CircuitBreaker(
                threshold=config.get("enrichment.circuit_threshold", 3),
                reset_timeout=config.get("enrichment.circuit_reset_seconds", 300),
            ),
            max_documents=config.get("enrichment.max_documents", 3),
            max_concurrent=config.get("enrichment.max_concurrent", 2),
            batch_delay_seconds=config.get("enrichment.batch_delay_seconds", 1.0),
        )

    def _extract_documents(self, filing: Filing) -> tuple[str, int]:
        """Concatenated text of up to max_documents PDFs, and how many succeeded."""
        if self.extractor is None:
            return "", 0
        texts = []
        for document in filing.downloadable_pdfs[: self.max_documents]:
            try:
                texts.append(f"--- {document.filename} ---\n{self.extractor.extract_text(document.src)}")
            except DocketCCError as e:
                logger.warning("Document extraction failed for %s (%s): %s", filing.id, document.filename, e)
        return "\n\n".join(texts), len(texts)

    def enrich(self, filing: Filing) -> Enrichment:
        """
        Produce an Enrichment for a filing.

        Raises:
            EnrichmentError: The AI call failed or the circuit is open.
        """
        document_text, processed = self._extract_documents(filing)
        enrichment = self.breaker.call(self.summarizer.summarize, filing, document_text)
        enrichment.documents_processed = processed
        return enrichment

    def enrich_and_store(self, filing: Filing) -> bool:
        """
        Enrich a stored filing and persist the outcome.

        Returns:
            True if the filing ended up completed, False if failed.
        """
        try:
            self.filing_store.update_status(filing.id, "processing")
            enrichment = self.enrich(filing)
        except Exception as e:
            category = e.category if isinstance(e, EnrichmentError) else classify_error(e)
            logger.warning("Enrichment failed for filing %s (%s): %s", filing.id, category, e)
            self.filing_store.update_status(filing.id, "failed")
            filing.status = "failed"
            self.system_log.warning(
                f"Enrichment failed for filing {filing.id}",
                "enrichment",
                details={"error": str(e), "category": category},
                docket_number=filing.docket_number,
                filing_id=filing.id,
            )
            return False

        self.filing_store.update_status(filing.id, "completed", enrichment)
        filing.apply_enrichment(enrichment)
        filing.status = "completed"
        return True

    def enrich_batch(self, filings: List[Filing]) -> dict:
        """
        Enrich filings in waves of max_concurrent with a pause between waves.

        Returns:
            Counts of completed and failed filings.
        """
        completed = failed = 0
        width = max(1, self.max_concurrent)
        waves = [filings[i : i + width] for i in range(0, len(filings), width)]

        with ThreadPoolExecutor(max_workers=width) as pool:
            for index, wave in enumerate(waves):
                for ok in pool.map(self.enrich_and_store, wave):
                    if ok:
                        completed += 1
                    else:
                        failed += 1
                if index < len(waves) - 1 and self.batch_delay_seconds > 0:
                    time.sleep(self.batch_delay_seconds)

        if filings:
            logger.info("Enrichment batch: %d completed, %d failed", completed, failed)
        return {"completed": completed, "failed": failed}
