"""
Monitoring pipeline orchestration.

One invocation: pick a strategy for the current hour, poll the highest
priority dockets, store and enrich new filings, and queue notifications.
Every step is wrapped so that a failure degrades to "logged, zero effect"
for that docket; run() itself never raises.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import validate_docket_number
from .database import utc_now
from .enrichment.enricher import FilingEnricher
from .exceptions import InvalidDocketError
from .filing_store import FilingStore
from .models import Filing
from .notifications.dispatcher import NotificationDispatcher
from .registry import DocketRegistry, PollResult
from .scheduling import DEFAULT_TIMEZONE, ProcessingStrategy, get_next_processing_time, get_processing_strategy
from .seeding import SeedService
from .sources.base import FilingSource
from .system_log import SystemLog
from .users import UserStore

logger = logging.getLogger(__name__)

# Used when an operator forces a run during quiet hours
FORCED_STRATEGY = ProcessingStrategy(True, 2, 5, "forced")


@dataclass
class DocketOutcome:
    """What happened to one docket during a run."""

    docket_number: str
    fetched: int = 0
    stored: int = 0
    duplicates: int = 0
    enriched: int = 0
    queued: int = 0
    error: Optional[str] = None


@dataclass
class PipelineResult:
    """Summary of one monitoring run."""

    skipped: bool = False
    reason: str = ""
    lookback_hours: int = 0
    dockets_checked: int = 0
    filings_found: int = 0
    filings_stored: int = 0
    duplicates: int = 0
    notifications_queued: int = 0
    seeds_queued: int = 0
    trials_expired: int = 0
    reconciled: int = 0
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0
    dockets: List[DocketOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        if self.skipped:
            return f"Run skipped ({self.reason})"
        return (
            f"Checked {self.dockets_checked} dockets: {self.filings_stored} new filings, "
            f"{self.notifications_queued} notifications queued"
            f"{f' ({len(self.errors)} errors)' if self.errors else ''}"
        )


class MonitoringPipeline:
    """Wires the registry, source, store, enricher and dispatcher together."""

    def __init__(
        self,
        registry: DocketRegistry,
        source: FilingSource,
        filing_store: FilingStore,
        dispatcher: NotificationDispatcher,
        users: UserStore,
        seeds: SeedService,
        system_log: SystemLog,
        enricher: Optional[FilingEnricher] = None,
        tz_name: str = DEFAULT_TIMEZONE,
        deluge_threshold: int = 7,
        reconcile_hours: int = 24,
    ) -> None:
        self.registry = registry
        self.source = source
        self.filing_store = filing_store
        self.dispatcher = dispatcher
        self.users = users
        self.seeds = seeds
        self.system_log = system_log
        self.enricher = enricher
        self.tz_name = tz_name
        self.deluge_threshold = deluge_threshold
        self.reconcile_hours = reconcile_hours

    def run(self, now: Optional[datetime] = None, force: bool = False) -> PipelineResult:
        """
        Execute one scheduled monitoring cycle.

        Args:
            now: Reference time (defaults to now).
            force: Run even during quiet hours.

        Returns:
            PipelineResult describing the run.
        """
        started = time.monotonic()
        now = now or utc_now()
        strategy = get_processing_strategy(now, self.tz_name)
        result = PipelineResult(reason=strategy.reason, lookback_hours=strategy.lookback_hours)

        if not strategy.should_process:
            if not force:
                result.skipped = True
                logger.info(
                    "Quiet hours: skipping run. Next processing %s", get_next_processing_time(now, self.tz_name)
                )
                return result
            strategy = FORCED_STRATEGY
            result.reason = strategy.reason
            result.lookback_hours = strategy.lookback_hours

        result.trials_expired = self._guard(result, "trial expirations", self.users.handle_trial_expirations, now) or 0
        result.seeds_queued = self._guard(result, "seeding", self.seeds.process_pending_seeds) or 0

        try:
            dockets = [d["docket_number"] for d in self.registry.list_active()[: strategy.batch_size]]
        except Exception as e:
            logger.exception("Could not list active dockets")
            result.errors.append(f"registry: {e}")
            dockets = []

        if dockets:
            fetched = self.source.fetch_many(dockets, strategy.lookback_hours)
            failed = dict(fetched.errors)
            for docket_number in dockets:
                try:
                    if docket_number in failed:
                        outcome = self._record_fetch_failure(docket_number, failed[docket_number], now)
                    else:
                        outcome = self.process_docket(
                            docket_number,
                            fetched.results.get(docket_number, []),
                            now,
                            max_rows=self.dispatcher.max_notifications_per_run - result.notifications_queued,
                        )
                except Exception as e:
                    logger.exception("Unexpected failure handling docket %s", docket_number)
                    outcome = DocketOutcome(docket_number=docket_number, error=str(e))
                self._accumulate(result, outcome)

        result.reconciled = (
            self._guard(
                result,
                "reconciliation",
                self.dispatcher.reconcile,
                self.reconcile_hours,
                now,
                self.dispatcher.max_notifications_per_run - result.notifications_queued,
            )
            or 0
        )
        result.duration_ms = int((time.monotonic() - started) * 1000)

        logger.info("%s", result)
        self.system_log.info(
            "Monitoring run completed",
            "pipeline",
            details={k: v for k, v in result.to_dict().items() if k != "dockets"},
        )
        return result

    def trigger_docket(self, docket_number: str, now: Optional[datetime] = None) -> DocketOutcome:
        """
        Out-of-band check of a single docket, used by the manual trigger.

        Compares the newest filings against the docket's last seen filing
        rather than a time window.

        Raises:
            InvalidDocketError: Bad docket format.
        """
        docket_number = (docket_number or "").strip()
        valid, error = validate_docket_number(docket_number)
        if not valid:
            raise InvalidDocketError(error)

        now = now or utc_now()
        self.registry.register_or_touch(docket_number)
        row = self.registry.get(docket_number) or {}
        try:
            detection = self.source.detect_new_filings(
                docket_number, row.get("latest_filing_id"), window=self.deluge_threshold
            )
        except Exception as e:
            return self._record_fetch_failure(docket_number, str(e), now)

        outcome = self.process_docket(docket_number, detection.new_filings, now)
        if detection.deluge:
            self.registry.set_mode(docket_number, "deluge")
        self.system_log.info(
            "Manual docket check completed", "pipeline", details=asdict(outcome), docket_number=docket_number
        )
        return outcome

    def process_docket(
        self,
        docket_number: str,
        filings: List[Filing],
        now: datetime,
        max_rows: Optional[int] = None,
    ) -> DocketOutcome:
        """Store, enrich and queue notifications for one docket's fetched filings."""
        outcome = DocketOutcome(docket_number=docket_number, fetched=len(filings))
        try:
            stored = self.filing_store.store_new(filings)
            outcome.stored = stored.stored_count
            outcome.duplicates = stored.duplicate_count

            self.registry.record_poll_result(
                docket_number,
                PollResult(
                    checked_at=now,
                    new_filing_count=stored.stored_count,
                    succeeded=True,
                    latest_filing_id=filings[0].id if filings else None,
                ),
            )
            self.registry.set_mode(docket_number, "deluge" if stored.stored_count >= self.deluge_threshold else "normal")
            if stored.stored_count >= self.deluge_threshold:
                self.system_log.warning(
                    f"Filing deluge: {stored.stored_count} new filings",
                    "pipeline",
                    docket_number=docket_number,
                )

            new_filings = self.filing_store.get_by_ids(stored.stored_ids)
            if self.enricher is not None:
                outcome.enriched = self.enricher.enrich_batch(new_filings)["completed"]
            else:
                for filing in new_filings:
                    self.filing_store.update_status(filing.id, "completed")
                    filing.status = "completed"

            if max_rows is None or max_rows > 0:
                outcome.queued = self.dispatcher.queue_for_filings(docket_number, new_filings, now, max_rows=max_rows)
        except Exception as e:
            logger.exception("Processing failed for docket %s", docket_number)
            outcome.error = str(e)
            self.system_log.error(
                "Docket processing failed", "pipeline", details={"error": str(e)}, docket_number=docket_number
            )
        return outcome

    def _record_fetch_failure(self, docket_number: str, error: str, now: datetime) -> DocketOutcome:
        self.registry.record_poll_result(
            docket_number, PollResult(checked_at=now, new_filing_count=0, succeeded=False, error=error)
        )
        self.system_log.error(
            "Filing fetch failed", "pipeline", details={"error": error}, docket_number=docket_number
        )
        return DocketOutcome(docket_number=docket_number, error=error)

    @staticmethod
    def _accumulate(result: PipelineResult, outcome: DocketOutcome) -> None:
        result.dockets.append(outcome)
        result.dockets_checked += 1
        result.filings_found += outcome.fetched
        result.filings_stored += outcome.stored
        result.duplicates += outcome.duplicates
        result.notifications_queued += outcome.queued
        if outcome.error:
            result.errors.append(f"{outcome.docket_number}: {outcome.error}")

    @staticmethod
    def _guard(result: PipelineResult, label: str, func, *args):
        """Run a housekeeping step, turning any failure into a recorded error."""
        try:
            return func(*args)
        except Exception as e:
            logger.exception("Pipeline step '%s' failed", label)
            result.errors.append(f"{label}: {e}")
            return None
