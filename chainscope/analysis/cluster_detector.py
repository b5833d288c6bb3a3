"""
Cluster Engine - Neighbor-Overlap Address Clustering
=====================================================

Groups addresses that transact with overlapping counterparty sets and scores
how strongly the resulting groups are connected.

Algorithm:
- The analyzed center address is always the first, singleton cluster
- Greedy assignment: each unassigned address seeds a cluster and absorbs
  every other unassigned address whose counterparty overlap with the seed
  exceeds the overlap threshold
- Suspicion per cluster comes from CycleDetector.cluster_suspicion
- RelationshipScorer measures direct-edge density between cluster pairs

Optional multi-hop expansion fetches transfers for the most active addresses
and merges them into the same graph before clustering. Fetches run
sequentially so the ledger's shared rate limit is respected.
"""

import time
from typing import Any, Dict, List, Optional, Sequence

import structlog

from ..config.settings import HeuristicThresholds
from .cycle_detector import CycleDetector
from .graph_builder import GraphBuilder, InteractionGraph
from .models import Cluster, ClusterRelation, TransferRecord, clamp

logger = structlog.get_logger(__name__)

CENTER_CLUSTER_ID = "center"
CENTER_CLUSTER_LABEL = "Central Address"


class RelationshipScorer:
    """Scores how strongly two clusters are connected."""

    def __init__(self, threshold: float = 0.1):
        self.threshold = threshold

    def strength(self, source: Cluster, target: Cluster, graph: InteractionGraph) -> float:
        """
        Direct-edge density from ``source`` members to ``target`` members.

        strength = edges / (|source| * |target|), clamped to 1.
        """
        if not source.members or not target.members:
            return 0.0

        connections = 0
        for address in source.members:
            counterparties = graph.neighbors(address)
            for other in target.members:
                if other in counterparties:
                    connections += 1

        return clamp(connections / (len(source.members) * len(target.members)))

    def link(self, clusters: Sequence[Cluster], graph: InteractionGraph):
        """Populate related_clusters for every ordered pair above threshold."""
        for source in clusters:
            source.related_clusters = []
            for target in clusters:
                if source is target:
                    continue
                strength = self.strength(source, target, graph)
                if strength > self.threshold:
                    source.related_clusters.append(
                        ClusterRelation(cluster_id=target.cluster_id, strength=strength)
                    )


class ClusterEngine:
    """
    Partitions graph addresses into clusters via neighbor overlap.

    Features:
    - Deterministic greedy clustering (first-seen order)
    - Cycle-density suspicion scoring
    - Inter-cluster relationship strengths
    - Sequential multi-hop expansion with configurable depth and breadth
    """

    def __init__(
        self,
        thresholds: Optional[HeuristicThresholds] = None,
        cycle_detector: Optional[CycleDetector] = None,
        graph_builder: Optional[GraphBuilder] = None,
        expansion_breadth: int = 5,
        expansion_limit: int = 20,
    ):
        """
        Initialize the cluster engine.

        Args:
            thresholds: Heuristic constants (overlap and relation thresholds)
            cycle_detector: Suspicion scorer
            graph_builder: Graph construction helper
            expansion_breadth: Addresses fetched per expansion round
            expansion_limit: Transfers fetched per expanded address
        """
        self.thresholds = thresholds or HeuristicThresholds()
        self.cycle_detector = cycle_detector or CycleDetector()
        self.graph_builder = graph_builder or GraphBuilder()
        self.relationship_scorer = RelationshipScorer(self.thresholds.relation_threshold)
        self.expansion_breadth = expansion_breadth
        self.expansion_limit = expansion_limit

        logger.debug(
            "ClusterEngine initialized",
            overlap_threshold=self.thresholds.overlap_threshold,
            expansion_breadth=expansion_breadth,
        )

    async def cluster_transactions(
        self,
        center_address: str,
        transfers: Sequence[TransferRecord],
        ledger: Any = None,
        depth: int = 1,
        cancellation: Any = None,
    ) -> List[Cluster]:
        """
        Cluster the counterparties of ``center_address``.

        Args:
            center_address: The analyzed address
            transfers: First-level transfers of the center address
            ledger: LedgerSource used for expansion rounds (depth > 1)
            depth: 1 = no expansion; each extra level adds one round
            cancellation: Optional CancellationToken checked between fetches

        Returns:
            Clusters, center first
        """
        graph = self.graph_builder.build(transfers, focal_address=center_address)

        if depth > 1:
            if ledger is None:
                raise ValueError("multi-hop expansion requires a ledger source")
            await self.expand(graph, ledger, rounds=depth - 1, cancellation=cancellation)

        return self.cluster_graph(graph, center_address, transfers)

    async def expand(
        self,
        graph: InteractionGraph,
        ledger: Any,
        rounds: int = 1,
        cancellation: Any = None,
    ) -> int:
        """
        Fetch and merge transfers of the most active addresses.

        Each round takes the top ``expansion_breadth`` addresses by
        interaction count that were not expanded before. Ledger failures
        propagate.

        Returns:
            Number of addresses expanded
        """
        expanded = {graph.focal_address} if graph.focal_address else set()
        total = 0

        for round_number in range(rounds):
            targets = graph.top_addresses(self.expansion_breadth, exclude=expanded)
            if not targets:
                break

            for address in targets:
                if cancellation is not None:
                    more = await cancellation.guard(
                        ledger.fetch_transfers(address, self.expansion_limit)
                    )
                else:
                    more = await ledger.fetch_transfers(address, self.expansion_limit)
                self.graph_builder.merge(graph, more)
                expanded.add(address)
                total += 1

            logger.info(
                "Expansion round complete",
                round=round_number + 1,
                expanded=len(targets),
                addresses=len(graph),
            )

        return total

    def cluster_graph(
        self,
        graph: InteractionGraph,
        center_address: str,
        center_transfers: Sequence[TransferRecord],
    ) -> List[Cluster]:
        """
        Partition a built graph.

        Args:
            graph: Interaction graph (focal address = center)
            center_address: The analyzed address
            center_transfers: Input set whose totals the center cluster carries

        Returns:
            Clusters, center first, members disjoint
        """
        start_time = time.time()

        clusters: List[Cluster] = [Cluster(
            cluster_id=CENTER_CLUSTER_ID,
            label=CENTER_CLUSTER_LABEL,
            members=[center_address],
            transaction_count=len(center_transfers),
            volume=sum(tx.amount for tx in center_transfers),
        )]
        assigned = {center_address}

        candidates = graph.addresses()
        cluster_number = 0

        for address in candidates:
            if address in assigned:
                continue

            connections = graph.neighbors(address)
            members = [address]
            assigned.add(address)

            if connections:
                for other in candidates:
                    if other in assigned:
                        continue
                    overlap = len(connections & graph.neighbors(other)) / len(connections)
                    if overlap > self.thresholds.overlap_threshold:
                        members.append(other)
                        assigned.add(other)

            cluster_number += 1
            clusters.append(Cluster(
                cluster_id=f"cluster-{cluster_number}",
                label=f"Cluster {cluster_number}",
                members=members,
                transaction_count=sum(graph.nodes[m].interaction_count for m in members),
                volume=sum(graph.nodes[m].volume for m in members),
                suspicion_score=self.cycle_detector.cluster_suspicion(members, graph),
            ))

        self.relationship_scorer.link(clusters, graph)

        logger.info(
            "Clustering complete",
            center=center_address[:16] + "...",
            clusters=len(clusters),
            addresses=len(candidates),
            time_ms=round((time.time() - start_time) * 1000, 2),
        )
        return clusters

    @staticmethod
    def get_summary(clusters: Sequence[Cluster]) -> Dict[str, Any]:
        """Get clustering summary."""
        return {
            "total_clusters": len(clusters),
            "largest_cluster_size": max((c.size for c in clusters), default=0),
            "max_suspicion": round(max((c.suspicion_score for c in clusters), default=0.0), 4),
            "clusters": [
                {
                    "id": c.cluster_id,
                    "size": c.size,
                    "suspicion": round(c.suspicion_score, 2),
                    "related": len(c.related_clusters),
                }
                for c in clusters
            ],
        }
