"""
Base class for filing source adapters.
"""

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..models import Filing

logger = logging.getLogger(__name__)


@dataclass
class FetchManyResult:
    """Per-docket results from a multi-docket fetch."""

    results: Dict[str, List[Filing]] = field(default_factory=dict)
    errors: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def total_filings(self) -> int:
        return sum(len(filings) for filings in self.results.values())

    def __str__(self) -> str:
        return (
            f"Fetched {self.total_filings} filings from {len(self.results)} dockets"
            f"{f' ({len(self.errors)} errors)' if self.errors else ''}"
        )


@dataclass
class DetectionResult:
    """Filings newer than the last one seen for a docket."""

    new_filings: List[Filing] = field(default_factory=list)
    latest_filing_id: Optional[str] = None
    deluge: bool = False


class FilingSource(ABC):
    """Abstract base class for docket filing sources.

    Implementations raise a DocketCCError subclass on transport or auth
    failure; an empty list always means "nothing in the window".
    """

    max_concurrent: int = 3
    wave_delay_seconds: float = 1.0

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable source name."""
        ...

    @abstractmethod
    def fetch_filings(self, docket_number: str, lookback_hours: int) -> List[Filing]:
        """Fetch filings received within the lookback window."""
        ...

    @abstractmethod
    def fetch_latest(self, docket_number: str, count: int = 1) -> List[Filing]:
        """Fetch the newest `count` filings, newest first."""
        ...

    def fetch_many(self, docket_numbers: Sequence[str], lookback_hours: int) -> FetchManyResult:
        """
        Fetch several dockets in waves of bounded concurrency.

        A failing docket is recorded in `errors` and never aborts the batch.
        Completion order within a wave is not guaranteed.

        Args:
            docket_numbers: Dockets in priority order.
            lookback_hours: Window passed to fetch_filings.

        Returns:
            FetchManyResult keyed by docket number.
        """
        result = FetchManyResult()
        dockets = list(docket_numbers)
        width = max(1, self.max_concurrent)
        waves = [dockets[i : i + width] for i in range(0, len(dockets), width)]

        with ThreadPoolExecutor(max_workers=width) as pool:
            for index, wave in enumerate(waves):
                futures = {d: pool.submit(self.fetch_filings, d, lookback_hours) for d in wave}
                for docket, future in futures.items():
                    try:
                        result.results[docket] = future.result()
                    except Exception as e:
                        logger.error("%s fetch failed for docket %s: %s", self.name, docket, e)
                        result.errors.append((docket, str(e)))
                if index < len(waves) - 1 and self.wave_delay_seconds > 0:
                    time.sleep(self.wave_delay_seconds)

        logger.info("%s: %s", self.name, result)
        return result

    def detect_new_filings(
        self, docket_number: str, latest_known_id: Optional[str], window: int = 7
    ) -> DetectionResult:
        """
        Compare the newest filings against the last id seen for a docket.

        If the known id is not within the fetched window, every fetched filing
        is new and the docket is flagged as a deluge: more filings arrived
        since the last poll than the window can show.
        """
        latest = self.fetch_latest(docket_number, count=window)
        if not latest:
            return DetectionResult()

        newest_id = latest[0].id
        if latest_known_id is None:
            return DetectionResult(new_filings=latest, latest_filing_id=newest_id)
        if newest_id == latest_known_id:
            return DetectionResult(latest_filing_id=newest_id)

        new_filings = []
        for filing in latest:
            if filing.id == latest_known_id:
                break
            new_filings.append(filing)

        deluge = len(new_filings) >= window
        if deluge:
            logger.warning(
                "Docket %s: %d+ new filings since %s (deluge)", docket_number, window, latest_known_id
            )
        return DetectionResult(new_filings=new_filings, latest_filing_id=newest_id, deluge=deluge)
