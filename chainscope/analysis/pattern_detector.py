"""
Pattern Detector - Behavioral Anomaly Heuristics
================================================

Independent heuristics evaluated over one transfer sequence:

- RAPID_SUCCESSION: hour-of-epoch buckets with many transfers
- CIRCULAR_TRADING: repeated interaction with the same counterparties
- WASH_TRADING: the same whole-number amount moved again and again
- LAYERING: many transfers crowding into several narrow value ranges

Each heuristic is order-insensitive and yields nothing when its data does
not qualify. Rapid succession yields one pattern per qualifying bucket, the
others at most one pattern per pass.
"""

from collections import Counter, defaultdict
from typing import Dict, List, Optional, Sequence

import structlog

from ..config.settings import HeuristicThresholds
from .models import (
    CircularTradingMetadata,
    LayeringMetadata,
    Pattern,
    PatternType,
    RapidSuccessionMetadata,
    Severity,
    TransferRecord,
    WashTradingMetadata,
)

logger = structlog.get_logger(__name__)


def value_range(amount: float, width: float) -> float:
    """Lower bound of the width-sized range containing ``amount``."""
    return (amount // width) * width


class PatternDetector:
    """Runs every anomaly heuristic over a transfer sequence."""

    def __init__(self, thresholds: Optional[HeuristicThresholds] = None):
        self.thresholds = thresholds or HeuristicThresholds()

    def detect(
        self,
        transfers: Sequence[TransferRecord],
        focal_address: Optional[str] = None,
    ) -> List[Pattern]:
        """
        Detect all patterns.

        Args:
            transfers: Transfer sequence of the analyzed address
            focal_address: Address excluded from counterparty counting

        Returns:
            Patterns in heuristic order (rapid succession, circular trading,
            wash trading, layering)
        """
        patterns: List[Pattern] = []
        patterns.extend(self.detect_rapid_succession(transfers))

        circular = self.detect_circular_trading(transfers, focal_address)
        if circular:
            patterns.append(circular)

        wash = self.detect_wash_trading(transfers)
        if wash:
            patterns.append(wash)

        layering = self.detect_layering(transfers)
        if layering:
            patterns.append(layering)

        logger.info(
            "Pattern detection complete",
            transfers=len(transfers),
            patterns=[p.pattern_type.value for p in patterns],
        )
        return patterns

    def detect_rapid_succession(self, transfers: Sequence[TransferRecord]) -> List[Pattern]:
        """One pattern per hour bucket holding at least the minimum count."""
        buckets: Dict[int, List[TransferRecord]] = defaultdict(list)
        for tx in transfers:
            buckets[tx.hour_bucket].append(tx)

        patterns = []
        for hour in sorted(buckets):
            bucket = buckets[hour]
            count = len(bucket)
            if count < self.thresholds.rapid_succession_min:
                continue

            severity = (
                Severity.HIGH if count > self.thresholds.rapid_succession_high
                else Severity.MEDIUM
            )
            patterns.append(Pattern(
                pattern_type=PatternType.RAPID_SUCCESSION,
                severity=severity,
                confidence=self.thresholds.rapid_succession_confidence,
                evidence=[tx.signature for tx in bucket],
                metadata=RapidSuccessionMetadata(
                    hour=hour,
                    count=count,
                    total_value=sum(tx.amount for tx in bucket),
                ),
                description="Multiple transactions executed in rapid succession",
            ))
        return patterns

    def detect_circular_trading(
        self,
        transfers: Sequence[TransferRecord],
        focal_address: Optional[str] = None,
    ) -> Optional[Pattern]:
        """Flag repeated back-and-forth with frequent counterparties."""
        interactions: Counter = Counter()
        for tx in transfers:
            for address in (tx.sender, tx.receiver):
                if address and address != focal_address:
                    interactions[address] += 1

        frequent = [
            address for address, count in interactions.items()
            if count >= self.thresholds.frequent_counterparty_min
        ]
        if not frequent:
            return None

        frequent_set = set(frequent)
        circular = [
            tx for tx in transfers
            if tx.sender in frequent_set or tx.receiver in frequent_set
        ]
        if len(circular) < self.thresholds.circular_min_transfers:
            return None

        return Pattern(
            pattern_type=PatternType.CIRCULAR_TRADING,
            severity=Severity.HIGH,
            confidence=self.thresholds.circular_confidence,
            evidence=[tx.signature for tx in circular],
            metadata=CircularTradingMetadata(
                participants=frequent,
                total_interactions=sum(interactions[a] for a in frequent),
            ),
            description="Potential circular trading pattern detected",
        )

    def detect_wash_trading(self, transfers: Sequence[TransferRecord]) -> Optional[Pattern]:
        """Flag whole-number amounts that recur across several transfers."""
        amount_counts: Counter = Counter(
            tx.amount for tx in transfers if float(tx.amount).is_integer()
        )
        repeated = {
            amount: count for amount, count in amount_counts.items()
            if count >= self.thresholds.wash_repeat_min
        }
        if not repeated:
            return None

        washed = [tx for tx in transfers if tx.amount in repeated]
        return Pattern(
            pattern_type=PatternType.WASH_TRADING,
            severity=Severity.HIGH,
            confidence=self.thresholds.wash_confidence,
            evidence=[tx.signature for tx in washed],
            metadata=WashTradingMetadata(
                rounded_amounts=list(repeated.keys()),
                frequency=len(washed),
                amount_counts=repeated,
            ),
            description="Potential wash trading using round numbers",
        )

    def detect_layering(self, transfers: Sequence[TransferRecord]) -> Optional[Pattern]:
        """Flag transfers concentrated in several narrow value ranges."""
        width = self.thresholds.layering_bucket_width
        range_counts: Counter = Counter(value_range(tx.amount, width) for tx in transfers)

        suspicious = [
            (start, count) for start, count in range_counts.items()
            if count >= self.thresholds.layering_range_min
        ]
        if len(suspicious) < self.thresholds.layering_min_ranges:
            return None

        suspicious_starts = {start for start, _ in suspicious}
        layered = [
            tx for tx in transfers
            if value_range(tx.amount, width) in suspicious_starts
        ]
        return Pattern(
            pattern_type=PatternType.LAYERING,
            severity=Severity.MEDIUM,
            confidence=self.thresholds.layering_confidence,
            evidence=[tx.signature for tx in layered],
            metadata=LayeringMetadata(
                value_ranges=suspicious,
                total_occurrences=sum(count for _, count in suspicious),
            ),
            description="Potential layering pattern with similar value ranges",
        )
