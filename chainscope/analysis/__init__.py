"""Graph analytics, pattern heuristics and risk scoring."""

from .activity_profiler import ActivityProfile, profile_wallet
from .cluster_detector import ClusterEngine, RelationshipScorer
from .cycle_detector import CycleDetector
from .entity_labels import KNOWN_ENTITIES, EntityLabel, fetch_entity_labels
from .flow_analyzer import identify_critical_paths
from .graph_builder import GraphBuilder, InteractionGraph
from .models import (
    Cluster,
    ClusterRelation,
    CriticalPathReport,
    ExternalRiskReport,
    Pattern,
    PatternType,
    RiskFactor,
    RiskLevel,
    RiskReport,
    Severity,
    SuspiciousPath,
    TransferRecord,
)
from .pattern_detector import PatternDetector
from .scoring_engine import RiskScorer

__all__ = [
    "KNOWN_ENTITIES",
    "ActivityProfile",
    "Cluster",
    "ClusterEngine",
    "ClusterRelation",
    "CriticalPathReport",
    "CycleDetector",
    "EntityLabel",
    "ExternalRiskReport",
    "GraphBuilder",
    "InteractionGraph",
    "Pattern",
    "PatternDetector",
    "PatternType",
    "RelationshipScorer",
    "RiskFactor",
    "RiskLevel",
    "RiskReport",
    "RiskScorer",
    "Severity",
    "SuspiciousPath",
    "TransferRecord",
    "fetch_entity_labels",
    "identify_critical_paths",
    "profile_wallet",
]
