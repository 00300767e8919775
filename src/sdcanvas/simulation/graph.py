"""
Per-run graph index and structural validation.

The engine never walks the SystemGraph lists directly. It builds a
GraphIndex once per run: id -> node/edge maps plus adjacency lists, all in
declaration order so every traversal is deterministic.

Structural checks collect ALL problems (find_structural_errors) so a
validator can report them together; build_graph_index raises the first one
to abort a run.
"""

from dataclasses import dataclass, field
from typing import Collection

from sdcanvas.config import SimulationConfig
from sdcanvas.exceptions import (
    DanglingEdgeError,
    DuplicateElementError,
    SelfLoopError,
    StructuralError,
    UnknownEntryPointError,
    UnknownNodeKindError,
)
from sdcanvas.simulation.behaviors import get_node_behavior
from sdcanvas.types import NodeKind, SystemEdge, SystemGraph, SystemNode


@dataclass
class GraphIndex:
    """
    Lookup structure over a validated graph.

    Attributes:
        nodes: Node id -> node, in declaration order.
        edges: Edge id -> edge, in declaration order.
        outgoing: Node id -> outbound edges, in declaration order.
        incoming: Node id -> inbound edges, in declaration order.
        node_order: Node id -> declaration position.
        edge_order: Edge id -> declaration position.
    """

    nodes: dict[str, SystemNode] = field(default_factory=dict)
    edges: dict[str, SystemEdge] = field(default_factory=dict)
    outgoing: dict[str, list[SystemEdge]] = field(default_factory=dict)
    incoming: dict[str, list[SystemEdge]] = field(default_factory=dict)
    node_order: dict[str, int] = field(default_factory=dict)
    edge_order: dict[str, int] = field(default_factory=dict)

    def participates(self, node_id: str) -> bool:
        """True if the node takes part in the simulation (annotations do not)."""
        return get_node_behavior(self.nodes[node_id].type).participates

    def is_annotation_edge(self, edge: SystemEdge) -> bool:
        """True if either endpoint of the edge is a non-participating node."""
        return not (self.participates(edge.source) and self.participates(edge.target))

    def traffic_edges(
        self, node_id: str, excluded: Collection[str] = ()
    ) -> list[SystemEdge]:
        """Outbound edges that can carry traffic, skipping annotation edges and ``excluded`` ids."""
        return [
            edge
            for edge in self.outgoing[node_id]
            if edge.id not in excluded and not self.is_annotation_edge(edge)
        ]


def is_broadcast(node: SystemNode) -> bool:
    """True if the node sends its full rate down every outbound edge."""
    return node.data.fan_out == "broadcast" and node.kind != NodeKind.LOAD_BALANCER


def split_shares(node: SystemNode, edges: list[SystemEdge]) -> dict[str, float]:
    """
    Fraction of a node's forwarded rate sent down each outbound edge.

    Broadcast nodes send everything down every edge (share 1.0 each).
    Otherwise each edge's weight is the load balancer's weight for the edge
    target, else the edge's own ``weight``, else 1.0; weights are normalised
    to sum to 1. All-zero weights fall back to an even split.

    Args:
        node: Source node
        edges: Its traffic-carrying outbound edges

    Returns:
        Edge id -> share.
    """
    if not edges:
        return {}
    if is_broadcast(node):
        return {edge.id: 1.0 for edge in edges}

    lb_weights = node.data.weights if node.kind == NodeKind.LOAD_BALANCER else {}
    weights: dict[str, float] = {}
    for edge in edges:
        if edge.target in lb_weights:
            weights[edge.id] = max(lb_weights[edge.target], 0.0)
        elif edge.data.weight is not None:
            weights[edge.id] = edge.data.weight
        else:
            weights[edge.id] = 1.0

    total = sum(weights.values())
    if total <= 0:
        return {edge.id: 1.0 / len(edges) for edge in edges}
    return {edge_id: weight / total for edge_id, weight in weights.items()}


def find_structural_errors(graph: SystemGraph) -> list[StructuralError]:
    """
    Check a graph for structural problems without raising.

    Checks, in order: duplicate node ids, unknown node kinds, duplicate edge
    ids, dangling edge endpoints, self-loops. Validated graphs cannot hold an
    unknown kind; that check only fires for graphs built with
    ``model_construct``.

    Args:
        graph: Graph to check

    Returns:
        Every StructuralError found, empty if the graph is valid.
    """
    errors: list[StructuralError] = []
    node_ids: set[str] = set()

    for node in graph.nodes:
        if node.id in node_ids:
            errors.append(DuplicateElementError("node", node.id))
        node_ids.add(node.id)
        try:
            get_node_behavior(node.type)
        except UnknownNodeKindError:
            errors.append(UnknownNodeKindError(str(node.type), node.id))

    edge_ids: set[str] = set()
    for edge in graph.edges:
        if edge.id in edge_ids:
            errors.append(DuplicateElementError("edge", edge.id))
        edge_ids.add(edge.id)

        if edge.source not in node_ids:
            errors.append(DanglingEdgeError(edge.id, "source", edge.source))
        if edge.target not in node_ids:
            errors.append(DanglingEdgeError(edge.id, "target", edge.target))
        if edge.source == edge.target:
            errors.append(SelfLoopError(edge.id, edge.source))

    return errors


def build_graph_index(graph: SystemGraph) -> GraphIndex:
    """
    Validate a graph and build its lookup index.

    Args:
        graph: Graph to index

    Returns:
        GraphIndex over the graph

    Raises:
        StructuralError: The first structural problem found.
    """
    errors = find_structural_errors(graph)
    if errors:
        raise errors[0]

    index = GraphIndex()
    for position, node in enumerate(graph.nodes):
        index.nodes[node.id] = node
        index.node_order[node.id] = position
        index.outgoing[node.id] = []
        index.incoming[node.id] = []

    for position, edge in enumerate(graph.edges):
        index.edges[edge.id] = edge
        index.edge_order[edge.id] = position
        index.outgoing[edge.source].append(edge)
        index.incoming[edge.target].append(edge)

    return index


def find_entry_points(index: GraphIndex, config: SimulationConfig) -> list[str]:
    """
    Resolve the entry points for a run.

    Explicit ``config.entry_points`` win; otherwise every user node is an
    entry point, in declaration order.

    Raises:
        UnknownEntryPointError: If an explicit entry point is not in the graph.
    """
    if config.entry_points is not None:
        for node_id in config.entry_points:
            if node_id not in index.nodes:
                raise UnknownEntryPointError(node_id)
        # Preserve order, drop repeats
        return list(dict.fromkeys(config.entry_points))

    return [
        node_id
        for node_id, node in index.nodes.items()
        if node.kind == NodeKind.USER
    ]


def resolve_entry_rates(
    index: GraphIndex, config: SimulationConfig, entry_points: list[str]
) -> dict[str, float]:
    """
    Compute the rate each entry point injects.

    Precedence: ``config.entry_rates`` > the user node's own
    ``requests_per_second`` > an even share of ``config.requests_per_second``
    across the remaining entry points.
    """
    rates: dict[str, float] = {}
    unassigned: list[str] = []

    for node_id in entry_points:
        node = index.nodes[node_id]
        own_rate = getattr(node.data, "requests_per_second", None)
        if node_id in config.entry_rates:
            rates[node_id] = config.entry_rates[node_id]
        elif own_rate is not None:
            rates[node_id] = own_rate
        else:
            unassigned.append(node_id)

    if unassigned:
        share = config.requests_per_second / len(unassigned)
        for node_id in unassigned:
            rates[node_id] = share

    return {node_id: rates[node_id] for node_id in entry_points}
