"""Clients, pacing, cancellation and validation helpers."""

from .cancellation import AnalysisRegistry, CancellationToken
from .ledger_client import HeliusLedgerClient, LedgerSource, StaticLedgerSource
from .logging_config import configure_logging
from .rate_limiter import RequestPacer, retry_with_backoff
from .risk_client import ExternalRiskClient
from .validation import ExternalRiskAssessment, WalletAddress, validate_wallet_address

__all__ = [
    "AnalysisRegistry",
    "CancellationToken",
    "ExternalRiskAssessment",
    "ExternalRiskClient",
    "HeliusLedgerClient",
    "LedgerSource",
    "RequestPacer",
    "StaticLedgerSource",
    "WalletAddress",
    "configure_logging",
    "validate_wallet_address",
    "retry_with_backoff",
]
