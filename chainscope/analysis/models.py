"""
Forensics Data Models
=====================

Value types shared by the graph, clustering, pattern and scoring stages.

All entities are created fresh per analysis run. Every score, strength and
confidence is clamped into [0, 1] at construction time. ``to_dict()`` emits
the public field names (``from``, ``to``, ``txType``, ``suspicionScore`` ...)
that serialized output must preserve.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    """Clamp a score into [lower, upper]."""
    return max(lower, min(upper, value))


@dataclass(frozen=True)
class TransferRecord:
    """A single observed value movement between two addresses."""
    signature: str
    sender: str
    receiver: str
    amount: float = 0.0
    token: str = "SOL"
    timestamp: int = 0      # unix seconds
    tx_type: str = "TRANSFER"

    @property
    def hour_bucket(self) -> int:
        """Hour-of-epoch bucket (timestamp ms / 3,600,000, floored)."""
        return (self.timestamp * 1000) // 3_600_000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "from": self.sender,
            "to": self.receiver,
            "amount": self.amount,
            "token": self.token,
            "timestamp": self.timestamp,
            "txType": self.tx_type,
        }


# ============================================================================
# Clusters
# ============================================================================

@dataclass
class ClusterRelation:
    """Connection strength from one cluster to another."""
    cluster_id: str
    strength: float

    def __post_init__(self):
        self.strength = clamp(self.strength)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.cluster_id, "strength": round(self.strength, 4)}


@dataclass
class Cluster:
    """A group of addresses hypothesized to be related."""
    cluster_id: str
    label: str
    members: List[str] = field(default_factory=list)
    transaction_count: int = 0
    volume: float = 0.0
    suspicion_score: float = 0.0
    related_clusters: List[ClusterRelation] = field(default_factory=list)

    def __post_init__(self):
        self.suspicion_score = clamp(self.suspicion_score)

    @property
    def size(self) -> int:
        return len(self.members)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.cluster_id,
            "label": self.label,
            "members": list(self.members),
            "transactionCount": self.transaction_count,
            "volume": self.volume,
            "suspicionScore": round(self.suspicion_score, 4),
            "relatedClusters": [r.to_dict() for r in self.related_clusters],
        }


# ============================================================================
# Patterns
# ============================================================================

class PatternType(Enum):
    """Behavioral anomaly heuristics."""
    RAPID_SUCCESSION = "RAPID_SUCCESSION"
    CIRCULAR_TRADING = "CIRCULAR_TRADING"
    WASH_TRADING = "WASH_TRADING"
    LAYERING = "LAYERING"


class Severity(Enum):
    """Pattern severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class RapidSuccessionMetadata:
    hour: int
    count: int
    total_value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"hour": self.hour, "count": self.count, "totalValue": self.total_value}


@dataclass
class CircularTradingMetadata:
    participants: List[str]
    total_interactions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "participants": list(self.participants),
            "totalInteractions": self.total_interactions,
        }


@dataclass
class WashTradingMetadata:
    rounded_amounts: List[float]
    frequency: int
    amount_counts: Dict[float, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roundedAmounts": list(self.rounded_amounts),
            "frequency": self.frequency,
            "amountCounts": {str(k): v for k, v in self.amount_counts.items()},
        }


@dataclass
class LayeringMetadata:
    value_ranges: List[Tuple[float, int]]   # (range start, occurrences)
    total_occurrences: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valueRanges": [[start, count] for start, count in self.value_ranges],
            "totalOccurrences": self.total_occurrences,
        }


PatternMetadata = Union[
    RapidSuccessionMetadata,
    CircularTradingMetadata,
    WashTradingMetadata,
    LayeringMetadata,
]


@dataclass
class Pattern:
    """A named, evidenced anomaly with severity and confidence."""
    pattern_type: PatternType
    severity: Severity
    confidence: float
    evidence: List[str]
    metadata: PatternMetadata
    description: str = ""

    def __post_init__(self):
        self.confidence = clamp(self.confidence)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.pattern_type.value,
            "description": self.description,
            "severity": self.severity.value,
            "confidence": self.confidence,
            "evidence": list(self.evidence),
            "metadata": self.metadata.to_dict(),
        }


# ============================================================================
# Risk
# ============================================================================

class RiskLevel(Enum):
    """Risk level classifications."""
    CRITICAL = "critical"   # >= 0.85
    HIGH = "high"           # >= 0.70
    MEDIUM = "medium"       # >= 0.50
    LOW = "low"             # >= 0.30
    MINIMAL = "minimal"     # < 0.30


@dataclass
class RiskFactor:
    name: str
    score: float
    description: str

    def __post_init__(self):
        self.score = clamp(self.score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "score": round(self.score, 4),
            "description": self.description,
        }


@dataclass
class RiskReport:
    """Fused pattern-based risk for one address."""
    overall_score: float
    factors: List[RiskFactor] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    patterns: List[Pattern] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.MINIMAL

    def __post_init__(self):
        self.overall_score = clamp(self.overall_score)

    def factor(self, name: str) -> Optional[RiskFactor]:
        for factor in self.factors:
            if factor.name == name:
                return factor
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallScore": round(self.overall_score, 4),
            "riskLevel": self.risk_level.value,
            "factors": [f.to_dict() for f in self.factors],
            "recommendations": list(self.recommendations),
            "patterns": [p.to_dict() for p in self.patterns],
        }


# ============================================================================
# Critical paths
# ============================================================================

@dataclass
class SuspiciousPath:
    """A circular fund-flow path found by bounded DFS."""
    addresses: List[str]
    reason: str
    risk_score: float

    def __post_init__(self):
        self.risk_score = clamp(self.risk_score)

    @property
    def length(self) -> int:
        return len(self.addresses)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "addresses": list(self.addresses),
            "reason": self.reason,
            "riskScore": round(self.risk_score, 4),
        }


@dataclass
class CriticalPathReport:
    high_value_paths: List[Tuple[str, str]] = field(default_factory=list)
    frequent_paths: List[Dict[str, Any]] = field(default_factory=list)
    suspicious_patterns: List[SuspiciousPath] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "highValuePaths": [{"from": s, "to": r} for s, r in self.high_value_paths],
            "frequentPaths": list(self.frequent_paths),
            "suspiciousPatterns": [p.to_dict() for p in self.suspicious_patterns],
        }


@dataclass
class ExternalRiskReport:
    """Weighted fusion of the five external risk categories."""
    overall_score: float
    category_scores: Dict[str, float] = field(default_factory=dict)
    failed_categories: List[str] = field(default_factory=list)
    confidence: float = 1.0

    def __post_init__(self):
        self.overall_score = clamp(self.overall_score)
        self.confidence = clamp(self.confidence)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallScore": round(self.overall_score, 4),
            "categoryScores": {k: round(v, 4) for k, v in self.category_scores.items()},
            "failedCategories": list(self.failed_categories),
            "confidence": round(self.confidence, 4),
        }
