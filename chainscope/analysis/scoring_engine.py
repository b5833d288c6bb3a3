"""
Risk Scoring Engine - Weighted Risk Fusion
==========================================

Two independent fusion stages:

1. Internal (pattern-based) risk report over the analyzed transfer set:
   - Transaction Patterns: mean of severity weight x confidence
   - Volume Analysis: average transfer amount, normalised
   - Interaction Analysis: unique counterparties, normalised
   - Temporal Analysis: busiest hour bucket, normalised

2. External fusion of the five risk categories (threat, sanction,
   approval, exposure, contract). A failed category contributes its neutral
   zero-risk default and lowers the report confidence.

Every factor and overall score is clamped into [0, 1]. The external score
is monotonic non-decreasing in each category score.
"""

from collections import Counter
from typing import Dict, Optional, Sequence

import structlog

from ..config.settings import HeuristicThresholds
from ..utils.validation import ExternalRiskAssessment
from .models import (
    ExternalRiskReport,
    Pattern,
    RiskFactor,
    RiskLevel,
    RiskReport,
    Severity,
    TransferRecord,
    clamp,
)

logger = structlog.get_logger(__name__)

PATTERN_FACTOR = "Transaction Patterns"
VOLUME_FACTOR = "Volume Analysis"
INTERACTION_FACTOR = "Interaction Analysis"
TEMPORAL_FACTOR = "Temporal Analysis"

RECOMMENDATIONS = {
    PATTERN_FACTOR: "Investigate suspicious transaction patterns",
    VOLUME_FACTOR: "Review high-volume transactions",
    INTERACTION_FACTOR: "Analyze frequent interaction partners",
    TEMPORAL_FACTOR: "Examine unusual transaction timing patterns",
}

EXTERNAL_CATEGORIES = ("threat", "sanction", "approval", "exposure", "contract")


class RiskScorer:
    """
    Fuses pattern and external signals into bounded risk scores.

    Features:
    - Configurable factor weights and normalisers
    - Fixed advisory recommendations per dominant factor
    - Risk level classification
    - Partial-failure isolation for external categories
    """

    # Thresholds for risk levels
    RISK_THRESHOLDS = {
        RiskLevel.CRITICAL: 0.85,
        RiskLevel.HIGH: 0.70,
        RiskLevel.MEDIUM: 0.50,
        RiskLevel.LOW: 0.30,
    }

    def __init__(self, thresholds: Optional[HeuristicThresholds] = None):
        self.thresholds = thresholds or HeuristicThresholds()

        if not self.thresholds.validate():
            logger.warning("Risk weights do not sum to 1.0")

    # ------------------------------------------------------------------
    # Internal report
    # ------------------------------------------------------------------

    def severity_weight(self, severity: Severity) -> float:
        return {
            Severity.HIGH: self.thresholds.severity_high,
            Severity.MEDIUM: self.thresholds.severity_medium,
            Severity.LOW: self.thresholds.severity_low,
        }[severity]

    def pattern_risk(self, patterns: Sequence[Pattern]) -> float:
        total = sum(self.severity_weight(p.severity) * p.confidence for p in patterns)
        return clamp(total / max(len(patterns), 1))

    def volume_risk(self, transfers: Sequence[TransferRecord]) -> float:
        average = sum(tx.amount for tx in transfers) / max(len(transfers), 1)
        return clamp(average / self.thresholds.volume_normalizer)

    def interaction_risk(
        self,
        transfers: Sequence[TransferRecord],
        focal_address: Optional[str] = None,
    ) -> float:
        counterparties = set()
        for tx in transfers:
            for address in (tx.sender, tx.receiver):
                if address and address != focal_address:
                    counterparties.add(address)
        return clamp(len(counterparties) / self.thresholds.interaction_normalizer)

    def temporal_risk(self, transfers: Sequence[TransferRecord]) -> float:
        buckets = Counter(tx.hour_bucket for tx in transfers)
        busiest = max(buckets.values(), default=0)
        return clamp(busiest / self.thresholds.temporal_normalizer)

    def build_report(
        self,
        transfers: Sequence[TransferRecord],
        patterns: Sequence[Pattern],
        focal_address: Optional[str] = None,
    ) -> RiskReport:
        """
        Build the pattern-based risk report.

        Args:
            transfers: Transfers of the analyzed address
            patterns: Output of PatternDetector over the same transfers
            focal_address: Address excluded from the counterparty count

        Returns:
            RiskReport with four factors and recommendations
        """
        t = self.thresholds
        factors = [
            RiskFactor(PATTERN_FACTOR, self.pattern_risk(patterns),
                       "Risk based on detected suspicious patterns"),
            RiskFactor(VOLUME_FACTOR, self.volume_risk(transfers),
                       "Risk based on transaction volumes and frequencies"),
            RiskFactor(INTERACTION_FACTOR, self.interaction_risk(transfers, focal_address),
                       "Risk based on interaction with other addresses"),
            RiskFactor(TEMPORAL_FACTOR, self.temporal_risk(transfers),
                       "Risk based on timing patterns"),
        ]
        weights = {
            PATTERN_FACTOR: t.pattern_weight,
            VOLUME_FACTOR: t.volume_weight,
            INTERACTION_FACTOR: t.interaction_weight,
            TEMPORAL_FACTOR: t.temporal_weight,
        }

        overall = clamp(sum(f.score * weights[f.name] for f in factors))
        recommendations = [
            RECOMMENDATIONS[f.name] for f in factors
            if f.score > t.recommendation_threshold
        ]

        report = RiskReport(
            overall_score=overall,
            factors=factors,
            recommendations=recommendations,
            patterns=list(patterns),
            risk_level=self.determine_risk_level(overall),
        )

        logger.info(
            "Risk report built",
            overall=round(overall, 4),
            level=report.risk_level.value,
            patterns=len(patterns),
        )
        return report

    def determine_risk_level(self, score: float) -> RiskLevel:
        """Determine risk level from score."""
        for level, threshold in self.RISK_THRESHOLDS.items():
            if score >= threshold:
                return level
        return RiskLevel.MINIMAL

    # ------------------------------------------------------------------
    # External fusion
    # ------------------------------------------------------------------

    def external_weights(self) -> Dict[str, float]:
        t = self.thresholds
        return {
            "threat": t.threat_weight,
            "sanction": t.sanction_weight,
            "approval": t.approval_weight,
            "exposure": t.exposure_weight,
            "contract": t.contract_weight,
        }

    def fuse_scores(self, scores: Dict[str, float]) -> float:
        """Weighted sum of category scores; missing categories count as 0."""
        weights = self.external_weights()
        total = sum(weights[name] * clamp(scores.get(name, 0.0)) for name in EXTERNAL_CATEGORIES)
        return clamp(total)

    def fuse_external(self, assessment: ExternalRiskAssessment) -> ExternalRiskReport:
        """
        Fuse the five external risk categories.

        Failed categories already carry their neutral defaults; they count
        as zero risk and reduce confidence proportionally.
        """
        scores = {
            "threat": assessment.threat.risk_score,
            "sanction": assessment.sanction.risk_score,
            "approval": assessment.approval.risk_score,
            "exposure": assessment.exposure.risk_score,
            "contract": assessment.contract.risk_score,
        }
        failed = [c for c in EXTERNAL_CATEGORIES if c in set(assessment.failed_categories)]
        for category in failed:
            scores[category] = 0.0

        report = ExternalRiskReport(
            overall_score=self.fuse_scores(scores),
            category_scores={k: clamp(v) for k, v in scores.items()},
            failed_categories=failed,
            confidence=1.0 - len(failed) / len(EXTERNAL_CATEGORIES),
        )

        if failed:
            logger.warning(
                "External risk fused with missing categories",
                failed=failed,
                overall=round(report.overall_score, 4),
            )
        return report
