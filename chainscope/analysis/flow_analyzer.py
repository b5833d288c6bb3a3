"""
Flow Analyzer - Critical Path Identification
============================================

Summarises the fund flows of an address into:

- high-value paths: single transfers at or above a value threshold
- frequent paths: sender/receiver pairs that repeat at least N times
- suspicious patterns: circular flows from bounded cycle enumeration

Flows are transfers with both endpoints and a non-zero amount. Only flows of
the last ``days`` days (default 30) relative to ``now`` are kept; pass
``days=None`` to keep every flow.
"""

import time
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from ..config.settings import HeuristicThresholds
from .cycle_detector import CycleDetector
from .models import CriticalPathReport, TransferRecord

logger = structlog.get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
DEFAULT_WINDOW_DAYS = 30


def select_flows(
    transfers: Sequence[TransferRecord],
    days: Optional[int] = None,
    now: Optional[float] = None,
) -> List[TransferRecord]:
    """Keep value-carrying transfers, optionally within the last ``days``."""
    cutoff = None
    if days is not None:
        cutoff = (time.time() if now is None else now) - days * SECONDS_PER_DAY

    return [
        tx for tx in transfers
        if tx.sender and tx.receiver and tx.amount
        and (cutoff is None or tx.timestamp >= cutoff)
    ]


def identify_critical_paths(
    transfers: Sequence[TransferRecord],
    high_value_threshold: Optional[float] = None,
    min_frequency: Optional[int] = None,
    include_circular: bool = True,
    cycle_detector: Optional[CycleDetector] = None,
    thresholds: Optional[HeuristicThresholds] = None,
    days: Optional[int] = DEFAULT_WINDOW_DAYS,
    now: Optional[float] = None,
) -> CriticalPathReport:
    """
    Identify high-value, frequent and circular paths.

    Each distinct cycle appears once in ``suspicious_patterns``; rotations
    of the same cycle found from other start addresses are collapsed.

    Args:
        transfers: Transfers of the analyzed address
        high_value_threshold: Minimum amount of a high-value path
        min_frequency: Minimum repetitions of a frequent path
        include_circular: Enumerate circular flows
        cycle_detector: Bounded cycle enumerator
        thresholds: Defaults for the two thresholds above
        days: Restrict to flows of the last ``days`` days (None = no limit)
        now: Reference unix time for ``days`` (defaults to the current time)

    Returns:
        CriticalPathReport
    """
    thresholds = thresholds or HeuristicThresholds()
    if high_value_threshold is None:
        high_value_threshold = thresholds.high_value_threshold
    if min_frequency is None:
        min_frequency = thresholds.frequent_path_min

    flows = select_flows(transfers, days=days, now=now)
    report = CriticalPathReport()

    frequency: Dict[Tuple[str, str], int] = {}
    total_value: Dict[Tuple[str, str], float] = {}
    adjacency: Dict[str, Dict[str, None]] = {}

    for flow in flows:
        key = (flow.sender, flow.receiver)
        frequency[key] = frequency.get(key, 0) + 1
        total_value[key] = total_value.get(key, 0.0) + flow.amount
        adjacency.setdefault(flow.sender, {})[flow.receiver] = None

        if flow.amount >= high_value_threshold:
            report.high_value_paths.append(key)

    for (sender, receiver), count in frequency.items():
        if count >= min_frequency:
            report.frequent_paths.append({
                "from": sender,
                "to": receiver,
                "count": count,
                "totalValue": total_value[(sender, receiver)],
            })

    if include_circular:
        detector = cycle_detector or CycleDetector()
        report.suspicious_patterns = detector.find_circular_paths(
            {address: list(receivers) for address, receivers in adjacency.items()}
        )

    logger.info(
        "Critical paths identified",
        flows=len(flows),
        high_value=len(report.high_value_paths),
        frequent=len(report.frequent_paths),
        circular=len(report.suspicious_patterns),
    )
    return report
