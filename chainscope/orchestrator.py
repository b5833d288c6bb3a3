"""
Forensics Orchestrator
======================

Runs the full analysis pipeline for one address:

    LedgerSource -> GraphBuilder -> ClusterEngine (+ CycleDetector)
                 -> PatternDetector -> RiskScorer
                 -> critical paths, activity profile
    ExternalRiskClient (concurrently) -> external fusion

Each request gets its own CancellationToken. Submitting a new request for
the same requester cancels the previous one; its in-flight fetches are
aborted and its partial results dropped.

analyze() propagates errors. analyze_safely() is the recoverable boundary:
it always returns an AnalysisResult whose status is "completed", "failed"
or "cancelled".
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from .analysis.activity_profiler import ActivityProfile, profile_wallet
from .analysis.cluster_detector import ClusterEngine
from .analysis.cycle_detector import CycleDetector
from .analysis.flow_analyzer import identify_critical_paths
from .analysis.graph_builder import GraphBuilder
from .analysis.models import (
    Cluster,
    CriticalPathReport,
    ExternalRiskReport,
    Pattern,
    RiskReport,
    TransferRecord,
)
from .analysis.pattern_detector import PatternDetector
from .analysis.scoring_engine import RiskScorer
from .config.settings import ForensicsConfig
from .exceptions import AnalysisCancelled, LedgerError
from .utils.cancellation import AnalysisRegistry, CancellationToken
from .utils.ledger_client import HeliusLedgerClient
from .utils.risk_client import ExternalRiskClient
from .utils.validation import validate_wallet_address

logger = structlog.get_logger(__name__)

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"


@dataclass
class AnalysisResult:
    """Everything produced for one analyzed address."""
    address: str
    status: str = STATUS_COMPLETED
    transfers: List[TransferRecord] = field(default_factory=list)
    clusters: List[Cluster] = field(default_factory=list)
    patterns: List[Pattern] = field(default_factory=list)
    risk_report: Optional[RiskReport] = None
    external_risk: Optional[ExternalRiskReport] = None
    critical_paths: Optional[CriticalPathReport] = None
    activity: Optional[ActivityProfile] = None
    error: Optional[str] = None
    retryable: bool = False
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == STATUS_COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "status": self.status,
            "error": self.error,
            "retryable": self.retryable,
            "durationMs": round(self.duration_ms, 2),
            "transactionCount": len(self.transfers),
            "clusters": [c.to_dict() for c in self.clusters],
            "patterns": [p.to_dict() for p in self.patterns],
            "riskReport": self.risk_report.to_dict() if self.risk_report else None,
            "externalRisk": self.external_risk.to_dict() if self.external_risk else None,
            "criticalPaths": self.critical_paths.to_dict() if self.critical_paths else None,
            "activity": self.activity.to_dict() if self.activity else None,
        }


class ForensicsOrchestrator:
    """
    Wires the ledger, analysis components and external risk client.

    Example:
        orchestrator = ForensicsOrchestrator()
        result = await orchestrator.analyze_safely(wallet, depth=2)
        await orchestrator.close()
    """

    def __init__(
        self,
        config: Optional[ForensicsConfig] = None,
        ledger: Any = None,
        risk_client: Optional[ExternalRiskClient] = None,
        registry: Optional[AnalysisRegistry] = None,
    ):
        self.config = config or ForensicsConfig.get_instance()
        thresholds = self.config.thresholds

        self._owns_ledger = ledger is None
        self.ledger = ledger or HeliusLedgerClient(self.config)
        self._owns_risk_client = risk_client is None
        self.risk_client = risk_client or ExternalRiskClient(self.config)
        self.registry = registry or AnalysisRegistry()

        self.cycle_detector = CycleDetector(max_depth=self.config.cycle_max_depth)
        self.cluster_engine = ClusterEngine(
            thresholds=thresholds,
            cycle_detector=self.cycle_detector,
            graph_builder=GraphBuilder(),
            expansion_breadth=self.config.expansion_breadth,
            expansion_limit=self.config.expansion_limit,
        )
        self.pattern_detector = PatternDetector(thresholds)
        self.risk_scorer = RiskScorer(thresholds)

        self.analyses_run = 0
        self.analyses_failed = 0

    async def close(self):
        if self._owns_ledger:
            await self.ledger.close()
        if self._owns_risk_client:
            await self.risk_client.close()

    async def analyze(
        self,
        address: str,
        depth: Optional[int] = None,
        limit: Optional[int] = None,
        include_external: bool = True,
        requester: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> AnalysisResult:
        """
        Analyze one address.

        Args:
            address: Wallet address to analyze
            depth: Cluster expansion depth (1 = no expansion)
            limit: Transfers fetched for the address
            include_external: Query the external risk service
            requester: Key under which superseding requests cancel this one
            cancellation: Explicit token (bypasses the registry)

        Returns:
            Completed AnalysisResult

        Raises:
            ValueError: malformed address
            LedgerError: ledger fetch failed after retries
            AnalysisCancelled: superseded by a newer request
        """
        address = validate_wallet_address(address)

        depth = self.config.cluster_depth if depth is None else depth
        limit = self.config.transfer_limit if limit is None else limit
        requester = requester or address
        token = cancellation or self.registry.issue(requester)

        start_time = time.time()
        self.analyses_run += 1
        external_task = None

        logger.info(
            "Analysis started",
            address=address[:16] + "...",
            depth=depth,
            limit=limit,
            request_id=token.request_id,
        )

        try:
            if include_external:
                external_task = asyncio.ensure_future(
                    token.guard(self.risk_client.assess(address))
                )

            transfers = await token.guard(self.ledger.fetch_transfers(address, limit))

            clusters = await self.cluster_engine.cluster_transactions(
                address, transfers, ledger=self.ledger, depth=depth, cancellation=token,
            )
            token.raise_if_cancelled()

            patterns = self.pattern_detector.detect(transfers, focal_address=address)
            risk_report = self.risk_scorer.build_report(transfers, patterns, focal_address=address)
            critical_paths = identify_critical_paths(
                transfers,
                thresholds=self.config.thresholds,
                cycle_detector=self.cycle_detector,
                days=self.config.flow_window_days,
            )
            activity = profile_wallet(address, transfers)

            external_risk = None
            if external_task is not None:
                assessment = await external_task
                external_risk = self.risk_scorer.fuse_external(assessment)

            token.raise_if_cancelled()
        except BaseException:
            if external_task is not None and not external_task.done():
                external_task.cancel()
                await asyncio.gather(external_task, return_exceptions=True)
            raise
        finally:
            if cancellation is None:
                self.registry.release(requester, token)

        result = AnalysisResult(
            address=address,
            transfers=list(transfers),
            clusters=clusters,
            patterns=patterns,
            risk_report=risk_report,
            external_risk=external_risk,
            critical_paths=critical_paths,
            activity=activity,
            duration_ms=(time.time() - start_time) * 1000,
        )

        logger.info(
            "Analysis complete",
            address=address[:16] + "...",
            transfers=len(transfers),
            clusters=len(clusters),
            patterns=len(patterns),
            overall_risk=round(risk_report.overall_score, 4),
            external_risk=round(external_risk.overall_score, 4) if external_risk else None,
            time_ms=round(result.duration_ms, 2),
        )
        return result

    async def analyze_safely(self, address: str, **kwargs) -> AnalysisResult:
        """analyze() behind a recoverable boundary; never raises."""
        start_time = time.time()
        try:
            return await self.analyze(address, **kwargs)
        except AnalysisCancelled as e:
            return AnalysisResult(
                address=address,
                status=STATUS_CANCELLED,
                error=str(e),
                retryable=True,
                duration_ms=(time.time() - start_time) * 1000,
            )
        except LedgerError as e:
            error, retryable = str(e), e.retryable
        except ValueError as e:
            error, retryable = str(e), False
        except Exception as e:
            logger.exception("Analysis crashed", address=address[:16] + "...")
            error, retryable = f"{type(e).__name__}: {e}", False

        self.analyses_failed += 1
        logger.error(
            "Analysis failed",
            address=address[:16] + "...",
            error=error,
            retryable=retryable,
        )
        return AnalysisResult(
            address=address,
            status=STATUS_FAILED,
            error=error,
            retryable=retryable,
            duration_ms=(time.time() - start_time) * 1000,
        )

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "analyses_run": self.analyses_run,
            "analyses_failed": self.analyses_failed,
            "active_requests": len(self.registry),
        }
        if hasattr(self.ledger, "get_stats"):
            stats["ledger"] = self.ledger.get_stats()
        return stats
