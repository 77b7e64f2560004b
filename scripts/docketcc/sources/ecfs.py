"""
FCC ECFS (Electronic Comment Filing System) public API client.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import requests

from ..database import parse_iso, utc_now
from ..exceptions import ECFSAuthError, ECFSError
from ..models import Filing
from .base import FilingSource
from .normalize import normalize_filing

logger = logging.getLogger(__name__)

# Request settings
BASE_URL = "https://publicapi.fcc.gov/ecfs/filings"
REQUEST_TIMEOUT = 30
DEFAULT_LIMIT = 50
USER_AGENT = "DocketCC/2.0 (FCC docket monitoring; +https://docketcc.com)"
SORT_ORDER = "date_disseminated,DESC"


class ECFSClient(FilingSource):
    """Fetches and normalizes filings from the ECFS public API."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = BASE_URL,
        timeout: int = REQUEST_TIMEOUT,
        default_limit: int = DEFAULT_LIMIT,
        user_agent: str = USER_AGENT,
        max_concurrent: int = 3,
        wave_delay_seconds: float = 1.0,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_key: api.data.gov key for ECFS.
            base_url: Filings endpoint.
            timeout: Per-request timeout in seconds.
            default_limit: Number of filings requested per docket.
            user_agent: User-Agent header sent with every request.
            max_concurrent: Dockets fetched in parallel by fetch_many.
            wave_delay_seconds: Pause between fetch_many waves.
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.default_limit = default_limit
        self.max_concurrent = max_concurrent
        self.wave_delay_seconds = wave_delay_seconds
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})

    @classmethod
    def from_config(cls, config) -> "ECFSClient":
        return cls(
            api_key=config.secret("ecfs_api_key"),
            base_url=config.get("ecfs.base_url", BASE_URL),
            timeout=config.get("ecfs.timeout", REQUEST_TIMEOUT),
            default_limit=config.get("ecfs.default_limit", DEFAULT_LIMIT),
            user_agent=config.get("ecfs.user_agent", USER_AGENT),
            max_concurrent=config.get("monitoring.max_concurrent_dockets", 3),
            wave_delay_seconds=config.get("monitoring.wave_delay_seconds", 1.0),
        )

    @property
    def name(self) -> str:
        return "FCC ECFS"

    def _request(self, docket_number: str, limit: int) -> List[Dict[str, Any]]:
        """
        Query the filings endpoint for one docket.

        Returns:
            Raw filing records (possibly empty).

        Raises:
            ECFSAuthError: The API key was rejected.
            ECFSError: Any other transport, HTTP or payload failure.
        """
        if not self.api_key:
            raise ECFSAuthError("ECFS_API_KEY is not configured", docket_number=docket_number)

        params = {
            "api_key": self.api_key,
            "proceedings.name": docket_number,
            "limit": limit,
            "sort": SORT_ORDER,
        }
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.Timeout:
            raise ECFSError(f"Timeout fetching docket {docket_number}", docket_number=docket_number)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            error_cls = ECFSAuthError if status in (401, 403) else ECFSError
            raise error_cls(
                f"HTTP error {status} for docket {docket_number}",
                docket_number=docket_number,
                status_code=status,
            )
        except requests.exceptions.RequestException as e:
            raise ECFSError(f"Request failed for docket {docket_number}: {e}", docket_number=docket_number)
        except ValueError:
            raise ECFSError(f"Invalid JSON from ECFS for docket {docket_number}", docket_number=docket_number)

        if not isinstance(payload, dict):
            raise ECFSError(f"Unexpected ECFS payload for docket {docket_number}", docket_number=docket_number)
        records = payload.get("filing") or payload.get("filings") or []
        return [r for r in records if isinstance(r, dict)]

    def _normalize_all(self, records: List[Dict[str, Any]], docket_number: str) -> List[Filing]:
        filings = []
        for raw in records:
            filing = normalize_filing(raw, docket_number)
            if filing is not None:
                filings.append(filing)
        return filings

    def fetch_latest(self, docket_number: str, count: int = 1) -> List[Filing]:
        records = self._request(docket_number, limit=count)
        return self._normalize_all(records, docket_number)[:count]

    def fetch_filings(
        self, docket_number: str, lookback_hours: int, now: Optional[datetime] = None
    ) -> List[Filing]:
        """
        Fetch filings received within the lookback window.

        ECFS dissemination dates are often midnight-stamped, so the window is
        applied at day granularity: anything dated on or after the day the
        window opens is kept. Filings with no parseable date are kept too;
        the store's dedup makes over-inclusion harmless.
        """
        records = self._request(docket_number, limit=self.default_limit)
        filings = self._normalize_all(records, docket_number)

        now = now or utc_now()
        window_start = (now - timedelta(hours=lookback_hours)).date()
        recent = []
        for filing in filings:
            try:
                received = parse_iso(filing.date_received)
            except ValueError:
                received = None
            if received is None or received.date() >= window_start:
                recent.append(filing)

        logger.info(
            "ECFS docket %s: %d filings fetched, %d within %dh", docket_number, len(filings), len(recent), lookback_hours
        )
        return recent

    def ping(self, docket_number: str = "23-108") -> Dict[str, Any]:
        """Lightweight reachability check used by system health."""
        started = time.monotonic()
        try:
            self._request(docket_number, limit=1)
        except ECFSError as e:
            return {
                "status": "error",
                "latency_ms": int((time.monotonic() - started) * 1000),
                "message": str(e),
            }
        return {"status": "healthy", "latency_ms": int((time.monotonic() - started) * 1000), "message": "ok"}
