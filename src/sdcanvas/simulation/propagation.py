"""
Traffic propagation.

Pushes entry-point rates through the graph in two passes:

1. A depth-first scan classifies back-edges. Scanning starts at the entry
   points, then continues from every remaining node in declaration order so
   cycles unreachable from any entry are found too. Back-edges carry no
   traffic, which leaves a DAG.
2. A Kahn-order walk over that DAG finalises each node's incoming rate only
   after all of its predecessors have forwarded theirs, then applies drops
   (utilization > 1), cache hits and the node's fan-out split.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Collection, Mapping

from sdcanvas.simulation.behaviors import CACHE_KINDS
from sdcanvas.simulation.cache import CacheNodeAnalysis, analyze_cache_node
from sdcanvas.simulation.graph import GraphIndex, split_shares
from sdcanvas.simulation.latency import NodeLoad, compute_node_load
from sdcanvas.types import CDNCacheRule, NodeKind, RedisKey, SystemEdge, SystemNode

logger = logging.getLogger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2


@dataclass
class PropagationState:
    """
    Rates and loads produced by one propagation pass.

    Attributes:
        order: Participating node ids in the order they were finalised.
        incoming_rps: Node id -> rate arriving (edges plus entry traffic).
        forwarded_rps: Node id -> rate sent downstream after drops and cache hits.
        dropped_rps: Node id -> rate rejected for lack of capacity.
        loads: Node id -> NodeLoad at its incoming rate.
        edge_rps: Edge id -> rate carried (0.0 for back-edges).
        shares: Edge id -> share of the source's forwarded rate, traffic edges only.
        caches: Cache node id -> aggregate cache analysis.
        back_edges: Ids of edges broken to remove cycles.
    """

    order: list[str] = field(default_factory=list)
    incoming_rps: dict[str, float] = field(default_factory=dict)
    forwarded_rps: dict[str, float] = field(default_factory=dict)
    dropped_rps: dict[str, float] = field(default_factory=dict)
    loads: dict[str, NodeLoad] = field(default_factory=dict)
    edge_rps: dict[str, float] = field(default_factory=dict)
    shares: dict[str, float] = field(default_factory=dict)
    caches: dict[str, CacheNodeAnalysis] = field(default_factory=dict)
    back_edges: frozenset[str] = frozenset()


def find_back_edges(index: GraphIndex, entry_points: Collection[str] = ()) -> list[SystemEdge]:
    """
    Find the edges that close a cycle.

    An edge is a back-edge when it reaches a node still on the depth-first
    stack. Annotation edges are not traversed.

    Args:
        index: Graph index
        entry_points: Node ids to scan from first

    Returns:
        Back-edges in discovery order.
    """
    state: dict[str, int] = {}
    back_edges: list[SystemEdge] = []

    for root in [*entry_points, *index.nodes]:
        if state.get(root, _WHITE) != _WHITE or not index.participates(root):
            continue

        state[root] = _GRAY
        stack = [(root, iter(index.traffic_edges(root)))]
        while stack:
            node_id, edges = stack[-1]
            edge = next(edges, None)
            if edge is None:
                state[node_id] = _BLACK
                stack.pop()
                continue

            target_state = state.get(edge.target, _WHITE)
            if target_state == _GRAY:
                back_edges.append(edge)
            elif target_state == _WHITE:
                state[edge.target] = _GRAY
                stack.append((edge.target, iter(index.traffic_edges(edge.target))))

    return back_edges


def _cache_patterns(node: SystemNode) -> list[RedisKey] | list[CDNCacheRule]:
    if node.kind == NodeKind.KEY_VALUE_CACHE:
        return node.data.keys
    return node.data.cache_rules


def propagate(
    index: GraphIndex,
    entry_rates: Mapping[str, float],
    back_edges: Collection[str] | None = None,
    extra_latency_ms: Mapping[str, float] | None = None,
) -> PropagationState:
    """
    Propagate entry rates through the graph.

    Args:
        index: Graph index
        entry_rates: Entry node id -> injected rps
        back_edges: Edge ids to treat as broken; found with
            find_back_edges when omitted
        extra_latency_ms: Node id -> latency added to the node's zero-load
            service latency

    Returns:
        PropagationState with per-node and per-edge rates.
    """
    if back_edges is None:
        back_edges = [edge.id for edge in find_back_edges(index, list(entry_rates))]
    extra_latency_ms = extra_latency_ms or {}

    result = PropagationState(back_edges=frozenset(back_edges))
    participants = [node_id for node_id in index.nodes if index.participates(node_id)]

    traffic_edges = {
        node_id: index.traffic_edges(node_id, result.back_edges) for node_id in participants
    }
    in_degree = {node_id: 0 for node_id in participants}
    for edges in traffic_edges.values():
        for edge in edges:
            in_degree[edge.target] += 1

    for node_id in participants:
        result.incoming_rps[node_id] = 0.0
    for node_id, rate in entry_rates.items():
        if node_id in result.incoming_rps:
            result.incoming_rps[node_id] += rate

    # Entry points first, then declaration order
    seeds = [n for n in entry_rates if n in in_degree] + participants
    ready = deque(dict.fromkeys(n for n in seeds if in_degree[n] == 0))

    while ready:
        node_id = ready.popleft()
        node = index.nodes[node_id]
        result.order.append(node_id)

        incoming = result.incoming_rps[node_id]
        load = compute_node_load(node, incoming, extra_latency_ms.get(node_id, 0.0))
        dropped = incoming * load.drop_fraction
        forwarded = incoming - dropped

        if node.kind in CACHE_KINDS:
            cache = analyze_cache_node(_cache_patterns(node), incoming)
            result.caches[node_id] = cache
            forwarded *= 1 - cache.hit_rate

        result.loads[node_id] = load
        result.dropped_rps[node_id] = dropped
        result.forwarded_rps[node_id] = forwarded

        edges = traffic_edges[node_id]
        shares = split_shares(node, edges)
        for edge in edges:
            share = shares[edge.id]
            result.shares[edge.id] = share
            result.edge_rps[edge.id] = forwarded * share
            result.incoming_rps[edge.target] += forwarded * share
            in_degree[edge.target] -= 1
            if in_degree[edge.target] == 0:
                ready.append(edge.target)

    for edge_id in result.back_edges:
        result.edge_rps[edge_id] = 0.0

    logger.debug(
        f"Propagated {sum(entry_rates.values()):.1f} rps across {len(result.order)} nodes "
        f"({len(result.back_edges)} back-edges)"
    )
    return result
