"""
Chainscope Configuration
========================
Single source of truth for endpoints, pacing and heuristic constants.

Usage:
    from chainscope.config import ForensicsConfig
    config = ForensicsConfig.get_instance()

    rpc_url = config.helius_rpc_url
    thresholds = config.thresholds

Every heuristic constant lives in HeuristicThresholds. The defaults are
uncalibrated starting points and should be tuned against labelled data.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Any, ClassVar, Dict, Optional


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class HeuristicThresholds:
    """Tunable constants for clustering, pattern detection and scoring."""

    # Clustering
    overlap_threshold: float = 0.3
    relation_threshold: float = 0.1

    # Rapid succession
    rapid_succession_min: int = 5
    rapid_succession_high: int = 10
    rapid_succession_confidence: float = 0.8

    # Circular trading
    frequent_counterparty_min: int = 3
    circular_min_transfers: int = 3
    circular_confidence: float = 0.7

    # Wash trading
    wash_repeat_min: int = 3
    wash_confidence: float = 0.6

    # Layering
    layering_bucket_width: float = 10.0
    layering_range_min: int = 5
    layering_min_ranges: int = 2
    layering_confidence: float = 0.65

    # Severity weights
    severity_high: float = 1.0
    severity_medium: float = 0.6
    severity_low: float = 0.3

    # Internal risk report (weights sum to 1.0)
    pattern_weight: float = 0.4
    volume_weight: float = 0.3
    interaction_weight: float = 0.15
    temporal_weight: float = 0.15
    volume_normalizer: float = 1000.0
    interaction_normalizer: float = 50.0
    temporal_normalizer: float = 20.0
    recommendation_threshold: float = 0.7

    # External risk fusion (weights sum to 1.0)
    threat_weight: float = 0.30
    sanction_weight: float = 0.20
    approval_weight: float = 0.15
    exposure_weight: float = 0.20
    contract_weight: float = 0.15

    # Critical paths
    high_value_threshold: float = 10.0
    frequent_path_min: int = 3

    def validate(self) -> bool:
        """Check that both weight groups sum to 1.0."""
        internal = (
            self.pattern_weight + self.volume_weight +
            self.interaction_weight + self.temporal_weight
        )
        external = (
            self.threat_weight + self.sanction_weight + self.approval_weight +
            self.exposure_weight + self.contract_weight
        )
        return abs(internal - 1.0) < 0.01 and abs(external - 1.0) < 0.01


@dataclass
class ForensicsConfig:
    """
    Runtime configuration built from environment variables.

    API keys are never included in to_dict() output.
    """

    # Ledger (Helius)
    helius_api_key: str = field(default_factory=lambda: os.getenv("HELIUS_API_KEY", ""))
    helius_rpc_url: str = field(default_factory=lambda: os.getenv("HELIUS_RPC_URL", ""))
    helius_api_url: str = field(
        default_factory=lambda: os.getenv("HELIUS_API_URL", "https://api.helius.xyz/v0")
    )

    # External risk service (Webacy)
    risk_api_key: str = field(default_factory=lambda: os.getenv("WEBACY_API_KEY", ""))
    risk_api_url: str = field(
        default_factory=lambda: os.getenv("WEBACY_API_URL", "https://api.webacy.com/v1")
    )

    # HTTP behaviour
    request_timeout_seconds: float = field(
        default_factory=lambda: _env_float("REQUEST_TIMEOUT_SECONDS", 30.0)
    )
    rate_limit_delay_seconds: float = field(
        default_factory=lambda: _env_float("RATE_LIMIT_DELAY_SECONDS", 0.5)
    )
    max_retries: int = field(default_factory=lambda: _env_int("MAX_RETRIES", 3))
    initial_retry_delay_seconds: float = field(
        default_factory=lambda: _env_float("INITIAL_RETRY_DELAY_SECONDS", 1.0)
    )

    # Analysis sizing
    transfer_limit: int = field(default_factory=lambda: _env_int("TRANSFER_LIMIT", 100))
    expansion_limit: int = field(default_factory=lambda: _env_int("EXPANSION_LIMIT", 20))
    expansion_breadth: int = field(default_factory=lambda: _env_int("EXPANSION_BREADTH", 5))
    cluster_depth: int = field(default_factory=lambda: _env_int("CLUSTER_DEPTH", 1))
    cycle_max_depth: int = field(default_factory=lambda: _env_int("CYCLE_MAX_DEPTH", 8))
    flow_window_days: int = field(default_factory=lambda: _env_int("FLOW_WINDOW_DAYS", 30))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_json: bool = field(default_factory=lambda: _env_bool("LOG_JSON", True))

    thresholds: HeuristicThresholds = field(default_factory=HeuristicThresholds)

    # Singleton instance
    _instance: ClassVar[Optional["ForensicsConfig"]] = None

    def __post_init__(self):
        """Derive the RPC URL from the API key when not given explicitly."""
        if not self.helius_rpc_url:
            self.helius_rpc_url = (
                f"https://mainnet.helius-rpc.com/?api-key={self.helius_api_key}"
            )

    @classmethod
    def get_instance(cls) -> "ForensicsConfig":
        """Get singleton instance of ForensicsConfig."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton instance (useful for testing)."""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration with secrets redacted."""
        data = asdict(self)
        for key in ("helius_api_key", "risk_api_key"):
            data[key] = "***" if data[key] else ""
        data["helius_rpc_url"] = data["helius_rpc_url"].split("?")[0]
        return data
