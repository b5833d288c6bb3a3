"""
Activity Profiler - Wallet Behaviour Summary
============================================

Pure functions over one address's transfer list:

- analyze_wallet_activity: counterparties, volume in/out, active range,
  transaction types, first funding source
- build_funding_history: incoming value by source
- analyze_entity_connections: per-counterparty relationship and risk
- analyze_activity_patterns: hour/weekday distributions, bursts, flags
- assess_activity_risk: mean of funding, pattern and connection risk

All timestamps are unix seconds; hours and weekdays are UTC, with
Sunday = 0.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import structlog

from .entity_labels import KNOWN_ENTITIES, label_of
from .models import RiskFactor, TransferRecord, clamp

logger = structlog.get_logger(__name__)

FUNDING_MIN_AMOUNT = 0.1
BURST_WINDOW_SECONDS = 15 * 60
BURST_MIN_TRANSFERS = 5
ASSUMED_DAYS = 30


def _utc(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


# ============================================================================
# Wallet activity
# ============================================================================

@dataclass
class WalletActivity:
    total_transactions: int = 0
    unique_interactions: List[Dict[str, Any]] = field(default_factory=list)
    incoming_volume: float = 0.0
    outgoing_volume: float = 0.0
    first_active: int = 0
    last_active: int = 0
    transactions_by_type: List[Dict[str, Any]] = field(default_factory=list)
    funding_source: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalTransactions": self.total_transactions,
            "uniqueInteractions": list(self.unique_interactions),
            "volumeStats": {"incoming": self.incoming_volume, "outgoing": self.outgoing_volume},
            "firstActive": self.first_active,
            "lastActive": self.last_active,
            "transactionsByType": list(self.transactions_by_type),
            "fundingSource": self.funding_source,
        }


def analyze_wallet_activity(address: str, transfers: Sequence[TransferRecord]) -> WalletActivity:
    """Summarise who an address deals with and how much moves each way."""
    activity = WalletActivity(total_transactions=len(transfers))
    interactions: Counter = Counter()
    types: Counter = Counter()

    for tx in sorted(transfers, key=lambda t: t.timestamp):
        if not activity.first_active or tx.timestamp < activity.first_active:
            activity.first_active = tx.timestamp
        activity.last_active = max(activity.last_active, tx.timestamp)
        types[tx.tx_type or "UNKNOWN"] += 1

        if tx.receiver == address and tx.sender and tx.sender != address:
            interactions[tx.sender] += 1
            activity.incoming_volume += tx.amount
            if activity.funding_source is None and tx.amount > FUNDING_MIN_AMOUNT:
                activity.funding_source = {
                    "address": tx.sender,
                    "amount": tx.amount,
                    "time": tx.timestamp,
                    "label": label_of(tx.sender),
                }
        elif tx.sender == address and tx.receiver and tx.receiver != address:
            interactions[tx.receiver] += 1
            activity.outgoing_volume += tx.amount

    activity.unique_interactions = [
        {"address": counterparty, "count": count, "label": label_of(counterparty)}
        for counterparty, count in interactions.most_common()
    ]
    activity.transactions_by_type = [
        {"type": tx_type, "count": count} for tx_type, count in types.most_common()
    ]
    return activity


# ============================================================================
# Funding history
# ============================================================================

@dataclass
class FundingHistory:
    transactions: List[Dict[str, Any]] = field(default_factory=list)
    total_amount: float = 0.0
    primary_sources: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactions": list(self.transactions),
            "totalAmount": self.total_amount,
            "primarySources": list(self.primary_sources),
        }


def build_funding_history(address: str, transfers: Sequence[TransferRecord]) -> FundingHistory:
    """Incoming value by time and by source, largest source first."""
    funding = sorted(
        (tx for tx in transfers if tx.receiver == address and tx.sender and tx.amount > 0),
        key=lambda t: t.timestamp,
    )

    history = FundingHistory()
    by_source: Dict[str, float] = {}
    for tx in funding:
        entity = KNOWN_ENTITIES.get(tx.sender)
        history.transactions.append({
            "signature": tx.signature,
            "source": tx.sender,
            "amount": tx.amount,
            "timestamp": tx.timestamp,
            "sourceLabel": entity.label if entity else None,
            "sourceType": entity.entity_type if entity else None,
            "isInitial": not history.transactions,
        })
        history.total_amount += tx.amount
        by_source[tx.sender] = by_source.get(tx.sender, 0.0) + tx.amount

    for source, amount in sorted(by_source.items(), key=lambda item: -item[1]):
        entity = KNOWN_ENTITIES.get(source)
        history.primary_sources.append({
            "address": source,
            "amount": amount,
            "percentage": amount / history.total_amount * 100,
            "label": entity.label if entity else None,
            "type": entity.entity_type if entity else None,
        })
    return history


# ============================================================================
# Entity connections
# ============================================================================

@dataclass
class EntityConnection:
    address: str
    label: Optional[str]
    entity_type: Optional[str]
    first_interaction: int
    last_interaction: int
    total_transactions: int = 0
    total_volume: float = 0.0
    direction: str = "incoming"
    risk_score: float = 0.0
    transaction_types: Counter = field(default_factory=Counter)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "label": self.label,
            "type": self.entity_type,
            "firstInteraction": self.first_interaction,
            "lastInteraction": self.last_interaction,
            "totalTransactions": self.total_transactions,
            "totalVolume": self.total_volume,
            "direction": self.direction,
            "riskScore": round(self.risk_score, 4),
            "commonTransactionTypes": [
                {"type": t, "count": c} for t, c in self.transaction_types.most_common()
            ],
        }


def connection_risk(connection: EntityConnection) -> float:
    score = 0.0
    if connection.direction == "bidirectional":
        score += 0.2
    if connection.total_transactions > 50:
        score += 0.3
    if connection.total_volume > 100:
        score += 0.3
    if not connection.label:
        score += 0.2
    return clamp(score)


def analyze_entity_connections(
    address: str,
    transfers: Sequence[TransferRecord],
) -> List[EntityConnection]:
    """Direct counterparties of ``address``, highest volume first."""
    connections: Dict[str, EntityConnection] = {}

    for tx in transfers:
        if tx.sender == address and tx.receiver and tx.receiver != address:
            counterparty, direction = tx.receiver, "outgoing"
        elif tx.receiver == address and tx.sender and tx.sender != address:
            counterparty, direction = tx.sender, "incoming"
        else:
            continue

        connection = connections.get(counterparty)
        if connection is None:
            entity = KNOWN_ENTITIES.get(counterparty)
            connection = EntityConnection(
                address=counterparty,
                label=entity.label if entity else None,
                entity_type=entity.entity_type if entity else None,
                first_interaction=tx.timestamp,
                last_interaction=tx.timestamp,
                direction=direction,
            )
            connections[counterparty] = connection
        elif connection.direction != direction:
            connection.direction = "bidirectional"

        connection.total_transactions += 1
        connection.total_volume += tx.amount
        connection.first_interaction = min(connection.first_interaction, tx.timestamp)
        connection.last_interaction = max(connection.last_interaction, tx.timestamp)
        connection.transaction_types[tx.tx_type] += 1

    for connection in connections.values():
        connection.risk_score = connection_risk(connection)

    return sorted(connections.values(), key=lambda c: -c.total_volume)


# ============================================================================
# Activity patterns
# ============================================================================

@dataclass
class BurstWindow:
    start: int
    duration_minutes: float
    transaction_count: int
    total_value: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.start,
            "duration": self.duration_minutes,
            "transactionCount": self.transaction_count,
            "totalValue": self.total_value,
        }


@dataclass
class ActivityPatterns:
    hourly_distribution: List[int] = field(default_factory=lambda: [0] * 24)
    weekly_distribution: List[int] = field(default_factory=lambda: [0] * 7)
    bursts: List[BurstWindow] = field(default_factory=list)
    common_patterns: List[Dict[str, Any]] = field(default_factory=list)
    avg_transaction_value: float = 0.0
    avg_daily_transactions: float = 0.0
    active_hours: List[int] = field(default_factory=list)
    active_days: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hourlyDistribution": [
                {"hour": h, "count": c} for h, c in enumerate(self.hourly_distribution)
            ],
            "weeklyDistribution": [
                {"day": d, "count": c} for d, c in enumerate(self.weekly_distribution)
            ],
            "burstActivity": [b.to_dict() for b in self.bursts],
            "commonPatterns": list(self.common_patterns),
            "avgTransactionValue": self.avg_transaction_value,
            "avgDailyTransactions": self.avg_daily_transactions,
            "activeHours": list(self.active_hours),
            "activeDays": list(self.active_days),
        }


def find_bursts(transfers: Sequence[TransferRecord]) -> List[BurstWindow]:
    """Windows of 15 minutes from a first transfer holding more than 5 transfers."""
    ordered = sorted(transfers, key=lambda t: t.timestamp)
    bursts: List[BurstWindow] = []
    window: List[TransferRecord] = []

    def flush():
        if len(window) > BURST_MIN_TRANSFERS:
            bursts.append(BurstWindow(
                start=window[0].timestamp,
                duration_minutes=(window[-1].timestamp - window[0].timestamp) / 60,
                transaction_count=len(window),
                total_value=sum(tx.amount for tx in window),
            ))

    for tx in ordered:
        if window and tx.timestamp - window[0].timestamp > BURST_WINDOW_SECONDS:
            flush()
            window = []
        window.append(tx)
    flush()
    return bursts


def analyze_activity_patterns(transfers: Sequence[TransferRecord]) -> ActivityPatterns:
    """Timing profile and coarse behavioural flags."""
    patterns = ActivityPatterns()
    if not transfers:
        return patterns

    for tx in transfers:
        moment = _utc(tx.timestamp)
        patterns.hourly_distribution[moment.hour] += 1
        patterns.weekly_distribution[(moment.weekday() + 1) % 7] += 1

    count = len(transfers)
    patterns.avg_transaction_value = sum(tx.amount for tx in transfers) / count
    patterns.avg_daily_transactions = count / ASSUMED_DAYS
    patterns.active_hours = [
        hour for hour, c in enumerate(patterns.hourly_distribution)
        if c and c > patterns.avg_daily_transactions
    ]
    patterns.active_days = [
        day for day, c in enumerate(patterns.weekly_distribution)
        if c and c > patterns.avg_daily_transactions * 7
    ]
    patterns.bursts = find_bursts(transfers)

    flags = []
    if patterns.bursts:
        flags.append(("Burst Activity", "Multiple transactions in short time windows", 0.6))
    if len(patterns.active_hours) <= 4:
        flags.append(("Time-Restricted Activity",
                      "Activity concentrated in specific time windows", 0.4))
    if float(np.std(patterns.hourly_distribution)) > patterns.avg_daily_transactions * 2:
        flags.append(("Irregular Activity", "High variance in transaction timing", 0.7))

    patterns.common_patterns = [
        {"pattern": name, "frequency": count, "description": description, "riskScore": risk}
        for name, description, risk in flags
    ]
    return patterns


# ============================================================================
# Combined activity risk
# ============================================================================

def assess_activity_risk(
    funding: FundingHistory,
    patterns: ActivityPatterns,
    connections: Sequence[EntityConnection],
) -> List[RiskFactor]:
    """Funding, pattern and connection risk factors (overall = their mean)."""
    sources = funding.primary_sources
    unknown_sources = sum(1 for s in sources if not s["label"])
    pattern_scores = [p["riskScore"] for p in patterns.common_patterns]

    return [
        RiskFactor(
            "Funding Sources",
            unknown_sources / max(len(sources), 1),
            "Percentage of unknown funding sources",
        ),
        RiskFactor(
            "Activity Patterns",
            sum(pattern_scores) / max(len(pattern_scores), 1),
            "Suspicious activity patterns detected",
        ),
        RiskFactor(
            "Entity Connections",
            sum(c.risk_score for c in connections) / max(len(connections), 1),
            "Risk assessment of connected entities",
        ),
    ]


@dataclass
class ActivityProfile:
    activity: WalletActivity
    funding: FundingHistory
    patterns: ActivityPatterns
    connections: List[EntityConnection]
    risk_factors: List[RiskFactor]

    @property
    def overall_score(self) -> float:
        return clamp(sum(f.score for f in self.risk_factors) / max(len(self.risk_factors), 1))

    def to_dict(self) -> Dict[str, Any]:
        data = self.activity.to_dict()
        data.update({
            "fundingHistory": self.funding.to_dict(),
            "activityPatterns": self.patterns.to_dict(),
            "entityConnections": [c.to_dict() for c in self.connections],
            "riskAssessment": {
                "overallScore": round(self.overall_score, 4),
                "factors": [f.to_dict() for f in self.risk_factors],
            },
        })
        return data


def profile_wallet(address: str, transfers: Sequence[TransferRecord]) -> ActivityProfile:
    """Run every activity analysis over one transfer list."""
    funding = build_funding_history(address, transfers)
    patterns = analyze_activity_patterns(transfers)
    connections = analyze_entity_connections(address, transfers)

    profile = ActivityProfile(
        activity=analyze_wallet_activity(address, transfers),
        funding=funding,
        patterns=patterns,
        connections=connections,
        risk_factors=assess_activity_risk(funding, patterns, connections),
    )
    logger.debug(
        "Wallet profiled",
        address=address[:16] + "...",
        counterparties=len(connections),
        bursts=len(patterns.bursts),
    )
    return profile
