"""
chainscope - blockchain forensics analytics.

Clusters related addresses, detects behavioral anomaly patterns and fuses
pattern and external signals into bounded risk scores.
"""

from .config.settings import ForensicsConfig, HeuristicThresholds
from .exceptions import (
    AnalysisCancelled,
    ExternalRiskUnavailable,
    ForensicsError,
    LedgerError,
    RateLimitedError,
)
from .orchestrator import AnalysisResult, ForensicsOrchestrator

__version__ = "0.1.0"

__all__ = [
    "AnalysisCancelled",
    "AnalysisResult",
    "ExternalRiskUnavailable",
    "ForensicsConfig",
    "ForensicsError",
    "ForensicsOrchestrator",
    "HeuristicThresholds",
    "LedgerError",
    "RateLimitedError",
    "__version__",
]
