"""
Exception hierarchy for the DocketCC pipeline.

Adapters raise these; orchestration code catches them per docket or per
filing, logs, and carries on with the rest of the batch.
"""


class DocketCCError(Exception):
    """Base class for all DocketCC errors."""


class InvalidDocketError(DocketCCError, ValueError):
    """Docket number does not match the NN-NNN format."""


class ECFSError(DocketCCError):
    """Transport, HTTP or payload failure talking to the ECFS API."""

    def __init__(self, message: str, docket_number: str = None, status_code: int = None) -> None:
        super().__init__(message)
        self.docket_number = docket_number
        self.status_code = status_code


class ECFSAuthError(ECFSError):
    """ECFS rejected the API key (401/403)."""


class DocumentExtractionError(DocketCCError):
    """A document could not be turned into text."""


class EnrichmentError(DocketCCError):
    """AI summarization failed."""

    def __init__(self, message: str, category: str = "UNKNOWN") -> None:
        super().__init__(message)
        self.category = category


class CircuitOpenError(EnrichmentError):
    """The enrichment circuit breaker is open; the call was not attempted."""


class EmailDeliveryError(DocketCCError):
    """The email provider refused or failed to accept a message."""


class FilingNotFoundError(DocketCCError, LookupError):
    """No filing with the given id exists."""


class SubscriptionLimitError(DocketCCError):
    """User already holds the maximum number of subscriptions for their tier."""
