"""
Cycle Detector - Circular Fund Flow Analysis
============================================

Two views of how circular an address set's fund flows are:

- cluster_suspicion(): a cycle-density estimate over a cluster's members,
  used as the cluster suspicion score
- find_circular_paths(): bounded enumeration of concrete circular paths
  for critical-path reporting

Path enumeration runs an explicit-stack DFS with a single on-path set and
push/pop backtracking. An address visited in one branch stays available to
sibling branches. ``max_depth`` caps the number of addresses per path so
dense graphs terminate.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import structlog

from .graph_builder import InteractionGraph
from .models import SuspiciousPath, clamp

logger = structlog.get_logger(__name__)

CIRCULAR_FLOW_REASON = "circular fund flow detected"


def _canonical_rotation(path: Sequence[str]) -> Tuple[str, ...]:
    """Rotate a cycle so its smallest address comes first."""
    pivot = min(range(len(path)), key=lambda i: path[i])
    return tuple(path[pivot:]) + tuple(path[:pivot])


class CycleDetector:
    """
    Detects circular fund flows in an interaction graph.

    Args:
        max_depth: Maximum addresses in an enumerated path
        max_findings: Stop enumeration after this many distinct cycles
        base_risk: Risk score intercept for a circular path
        risk_per_hop: Risk added per address in the path
    """

    def __init__(
        self,
        max_depth: int = 8,
        max_findings: int = 1000,
        base_risk: float = 0.5,
        risk_per_hop: float = 0.1,
    ):
        if max_depth < 3:
            raise ValueError("max_depth must allow at least a 3-address cycle")
        self.max_depth = max_depth
        self.max_findings = max_findings
        self.base_risk = base_risk
        self.risk_per_hop = risk_per_hop

    def cluster_suspicion(self, members: Sequence[str], graph: InteractionGraph) -> float:
        """
        Cycle-density estimate for a cluster.

        Counts ordered member pairs (i, j), i != j, that transacted directly;
        suspicion = min(pairs / (k * 2), 1). Clusters under 3 members score 0.
        """
        k = len(members)
        if k < 3:
            return 0.0

        cycles = 0
        for i, source in enumerate(members):
            for j, target in enumerate(members):
                if i != j and graph.is_connected(source, target):
                    cycles += 1

        return clamp(cycles / (k * 2))

    def path_risk(self, length: int) -> float:
        return clamp(self.base_risk + self.risk_per_hop * length)

    def find_circular_paths(
        self,
        adjacency: Dict[str, Iterable[str]],
        starts: Optional[Iterable[str]] = None,
    ) -> List[SuspiciousPath]:
        """
        Enumerate circular paths of at least 3 addresses.

        Args:
            adjacency: Directed adjacency (address -> receivers)
            starts: Start addresses (defaults to every key of adjacency)

        Returns:
            One SuspiciousPath per distinct cycle (rotations collapse),
            in discovery order
        """
        ordered: Dict[str, List[str]] = {
            node: list(neighbors) for node, neighbors in adjacency.items()
        }
        seen: Set[Tuple[str, ...]] = set()
        findings: List[SuspiciousPath] = []

        for start in (starts if starts is not None else list(ordered.keys())):
            if len(findings) >= self.max_findings:
                logger.warning(
                    "Circular path enumeration truncated",
                    max_findings=self.max_findings,
                )
                break
            for cycle in self._cycles_from(start, ordered):
                key = _canonical_rotation(cycle)
                if key in seen:
                    continue
                seen.add(key)
                findings.append(SuspiciousPath(
                    addresses=list(cycle),
                    reason=CIRCULAR_FLOW_REASON,
                    risk_score=self.path_risk(len(cycle)),
                ))
                if len(findings) >= self.max_findings:
                    break

        logger.debug("Circular path enumeration complete", cycles=len(findings))
        return findings

    def find_graph_cycles(self, graph: InteractionGraph) -> List[SuspiciousPath]:
        """Enumerate circular paths over an InteractionGraph."""
        return self.find_circular_paths(graph.adjacency())

    def _cycles_from(self, start: str, adjacency: Dict[str, List[str]]) -> Iterable[List[str]]:
        """Yield every bounded cycle that returns to ``start``."""
        path: List[str] = [start]
        on_path: Set[str] = {start}
        stack = [iter(adjacency.get(start, ()))]

        while stack:
            advanced = False
            for neighbor in stack[-1]:
                if neighbor == start:
                    if len(path) > 2:
                        yield list(path)
                    continue
                if neighbor in on_path or len(path) >= self.max_depth:
                    continue
                path.append(neighbor)
                on_path.add(neighbor)
                stack.append(iter(adjacency.get(neighbor, ())))
                advanced = True
                break

            if not advanced:
                stack.pop()
                on_path.discard(path.pop())
