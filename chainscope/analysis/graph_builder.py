"""
Graph Builder - Address Interaction Graph Construction
======================================================

Converts a sequence of TransferRecords into a directed interaction graph
with per-address and per-edge aggregates.

Features:
- NetworkX DiGraph for directed fund flow (sender -> receiver)
- Undirected counterparty sets for overlap-based clustering
- Per-address interaction count and volume
- Per-edge transfer count, volume and time range
- Idempotent merging of later expansion rounds (deduplicated by signature)

The focal address never receives address aggregates: it is represented by
its own singleton cluster carrying the totals of the input set. It still
appears as a counterparty of every address it transacted with.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import networkx as nx
import structlog

from .models import TransferRecord

logger = structlog.get_logger(__name__)


@dataclass
class AddressNode:
    """An address plus its derived aggregates."""
    address: str
    first_seen_order: int = 0

    interaction_count: int = 0
    volume: float = 0.0

    first_timestamp: int = 0
    last_timestamp: int = 0

    def record(self, amount: float, timestamp: int):
        """Account one transfer touching this address."""
        self.interaction_count += 1
        self.volume += amount
        if not self.first_timestamp or timestamp < self.first_timestamp:
            self.first_timestamp = timestamp
        self.last_timestamp = max(self.last_timestamp, timestamp)


@dataclass
class InteractionEdge:
    """Aggregated transfers from one address to another."""
    source: str
    target: str

    transfer_count: int = 0
    total_volume: float = 0.0

    first_timestamp: int = 0
    last_timestamp: int = 0
    signatures: List[str] = field(default_factory=list)

    is_bidirectional: bool = False

    def update(self, transfer: TransferRecord):
        """Update edge with a new transfer."""
        if self.transfer_count == 0 or transfer.timestamp < self.first_timestamp:
            self.first_timestamp = transfer.timestamp
        self.last_timestamp = max(self.last_timestamp, transfer.timestamp)
        self.transfer_count += 1
        self.total_volume += transfer.amount
        self.signatures.append(transfer.signature)


class InteractionGraph:
    """
    Directed address-interaction graph for one analysis run.

    Iteration orders (addresses, successors) follow first-seen order of the
    input, which keeps every downstream computation deterministic.
    """

    def __init__(self, focal_address: Optional[str] = None):
        self.focal_address = focal_address
        self.graph = nx.DiGraph()
        self.nodes: Dict[str, AddressNode] = {}
        self.edges: Dict[Tuple[str, str], InteractionEdge] = {}
        self._signatures: Set[str] = set()

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, address: str) -> bool:
        return address in self.graph

    def add_transfer(self, transfer: TransferRecord) -> bool:
        """
        Add one transfer to the graph.

        Returns:
            False when the transfer was skipped (self-transfer, missing
            endpoint, or already merged), True otherwise
        """
        sender, receiver = transfer.sender, transfer.receiver
        if not sender or not receiver or sender == receiver:
            return False
        if transfer.signature and transfer.signature in self._signatures:
            return False
        if transfer.signature:
            self._signatures.add(transfer.signature)

        for address in (sender, receiver):
            if address == self.focal_address:
                continue
            node = self.nodes.get(address)
            if node is None:
                node = AddressNode(address=address, first_seen_order=len(self.nodes))
                self.nodes[address] = node
            node.record(transfer.amount, transfer.timestamp)

        edge_key = (sender, receiver)
        edge = self.edges.get(edge_key)
        if edge is None:
            edge = InteractionEdge(source=sender, target=receiver)
            self.edges[edge_key] = edge
        edge.update(transfer)

        reverse = self.edges.get((receiver, sender))
        if reverse is not None:
            edge.is_bidirectional = True
            reverse.is_bidirectional = True

        self.graph.add_edge(
            sender,
            receiver,
            transfer_count=edge.transfer_count,
            volume=edge.total_volume,
        )
        return True

    def add_transfers(self, transfers: Iterable[TransferRecord]) -> int:
        """Add many transfers; returns how many were merged."""
        return sum(1 for tx in transfers if self.add_transfer(tx))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def addresses(self) -> List[str]:
        """Non-focal addresses in first-seen order."""
        return list(self.nodes.keys())

    def get_node(self, address: str) -> Optional[AddressNode]:
        return self.nodes.get(address)

    def get_edge(self, source: str, target: str) -> Optional[InteractionEdge]:
        return self.edges.get((source, target))

    def neighbors(self, address: str) -> Set[str]:
        """All counterparties of an address, regardless of direction."""
        if address not in self.graph:
            return set()
        return set(self.graph.successors(address)) | set(self.graph.predecessors(address))

    def is_connected(self, source: str, target: str) -> bool:
        """True when the two addresses transacted in either direction."""
        return self.graph.has_edge(source, target) or self.graph.has_edge(target, source)

    def adjacency(self) -> Dict[str, List[str]]:
        """Directed adjacency list (address -> receivers)."""
        return {node: list(self.graph.successors(node)) for node in self.graph.nodes()}

    def top_addresses(self, count: int, exclude: Optional[Set[str]] = None) -> List[str]:
        """
        Addresses ranked by interaction count.

        Args:
            count: Number of addresses to return
            exclude: Addresses to leave out

        Returns:
            Up to ``count`` addresses, descending interaction count, ties
            broken by first-seen order
        """
        exclude = exclude or set()
        ranked = sorted(
            (node for node in self.nodes.values() if node.address not in exclude),
            key=lambda n: (-n.interaction_count, n.first_seen_order),
        )
        return [node.address for node in ranked[:count]]

    def get_metrics(self) -> Dict[str, Any]:
        """Get graph metrics."""
        degrees = [d for _, d in self.graph.degree()]
        return {
            "total_nodes": self.graph.number_of_nodes(),
            "total_edges": self.graph.number_of_edges(),
            "density": round(nx.density(self.graph), 4) if len(self.graph) > 1 else 0.0,
            "avg_degree": round(sum(degrees) / len(degrees), 2) if degrees else 0.0,
            "max_degree": max(degrees) if degrees else 0,
        }


class GraphBuilder:
    """Builds InteractionGraphs from transfer sequences."""

    def build(
        self,
        transfers: Iterable[TransferRecord],
        focal_address: Optional[str] = None,
    ) -> InteractionGraph:
        """
        Build a fresh graph.

        Args:
            transfers: Ordered transfer records
            focal_address: The analyzed address

        Returns:
            InteractionGraph (empty for empty input)
        """
        graph = InteractionGraph(focal_address=focal_address)
        merged = graph.add_transfers(transfers)
        logger.debug(
            "Interaction graph built",
            focal=(focal_address or "")[:16] + "...",
            transfers=merged,
            addresses=len(graph),
        )
        return graph

    def merge(self, graph: InteractionGraph, transfers: Iterable[TransferRecord]) -> int:
        """Merge an expansion round into an existing graph."""
        merged = graph.add_transfers(transfers)
        logger.debug("Expansion round merged", transfers=merged, addresses=len(graph))
        return merged
