"""Error taxonomy for chainscope.

Ledger failures abort an analysis run, external risk failures are absorbed
by the risk client, cancellation ends a superseded request.
"""

from typing import Optional


class ForensicsError(Exception):
    """Base class for all chainscope errors."""


class LedgerError(ForensicsError):
    """A ledger/indexer fetch failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class RateLimitedError(LedgerError):
    """The ledger answered with HTTP 429."""

    def __init__(self, message: str = "rate limited by ledger source"):
        super().__init__(message, status_code=429, retryable=True)


class ExternalRiskUnavailable(ForensicsError):
    """One external risk category could not be fetched or parsed."""

    def __init__(self, category: str, reason: str):
        super().__init__(f"{category} unavailable: {reason}")
        self.category = category
        self.reason = reason


class AnalysisCancelled(ForensicsError):
    """The analysis request was superseded or cancelled."""
