"""
Latency composition.

Node latency follows a simple M/M/1-style load factor: service latency at
zero load inflated by rho / (1 - rho), with rho capped at
UTILIZATION_CEILING so an overloaded node reports a large but finite
latency. P99 is the mean inflated by the kind's tail multiplier and a
further (1 + rho^2).

Round-trip helpers walk the propagated DAG in reverse topological order so
each node's downstream expectation is computed once.
"""

import math
from dataclasses import dataclass
from typing import Collection, Mapping, Sequence

from sdcanvas.simulation.behaviors import (
    capacity_per_instance,
    get_node_behavior,
    get_transport_latency,
    resource_capacity,
)
from sdcanvas.simulation.cache import calculate_cache_through_latency
from sdcanvas.simulation.graph import GraphIndex
from sdcanvas.types import NodeResources, ScalingConfig, SystemEdge, SystemNode

UTILIZATION_CEILING = 0.95
DEFAULT_P99_MULTIPLIER = 3.0


@dataclass(frozen=True)
class NodeLoad:
    """
    Load-dependent state of one node at a given incoming rate.

    Attributes:
        instances: Instance count chosen by the scaling policy.
        capacity_rps: Capacity across all instances (may be ``math.inf``).
        utilization: incoming / capacity, uncapped.
        mean_latency_ms: Mean service latency under this load.
        p99_latency_ms: Tail latency under this load.
        saturated: True when utilization >= 1.
        drop_fraction: Share of incoming traffic rejected (0 unless utilization > 1).
    """

    instances: int
    capacity_rps: float
    utilization: float
    mean_latency_ms: float
    p99_latency_ms: float
    saturated: bool
    drop_fraction: float


def get_instance_count(
    resources: NodeResources | None,
    scaling: ScalingConfig,
    incoming_rate: float,
    capacity: float | None = None,
) -> int:
    """
    Instances a scaling policy runs at a given rate.

    Args:
        resources: Per-instance resources, used when ``capacity`` is omitted
        scaling: Scaling policy
        incoming_rate: Requests per second arriving at the node
        capacity: Per-instance capacity in rps

    Returns:
        1 for single, ``instances`` for fixed; for auto, the smallest count
        keeping per-instance utilization at or below the target, clamped to
        ``[min_instances, max_instances]``.
    """
    if scaling.type == "single":
        return 1
    if scaling.type == "fixed":
        return scaling.instances

    if capacity is None:
        capacity = resource_capacity(resources or NodeResources())
    if incoming_rate <= 0 or math.isinf(capacity):
        return scaling.min_instances

    needed = math.ceil(incoming_rate / (capacity * scaling.target_utilization))
    return max(scaling.min_instances, min(scaling.max_instances, needed))


def _queueing_latency(base_ms: float, utilization: float) -> float:
    rho = min(max(utilization, 0.0), UTILIZATION_CEILING)
    return base_ms * (1 + rho / (1 - rho))


def calculate_p99_latency(
    mean_latency_ms: float,
    utilization: float,
    p99_multiplier: float = DEFAULT_P99_MULTIPLIER,
) -> float:
    """Tail latency from the mean. Never below the mean."""
    rho = min(max(utilization, 0.0), UTILIZATION_CEILING)
    return mean_latency_ms * max(1.0, p99_multiplier) * (1 + rho**2)


def compute_node_load(
    node: SystemNode, incoming_rate: float, extra_latency_ms: float = 0.0
) -> NodeLoad:
    """
    Evaluate a node at a given incoming rate.

    Args:
        node: Node to evaluate
        incoming_rate: Requests per second arriving at the node
        extra_latency_ms: Added to the zero-load service latency (e.g. a
            database's worst query cost)

    Returns:
        NodeLoad for the node.
    """
    behavior = get_node_behavior(node.type)
    per_instance = capacity_per_instance(behavior, node.data.resources)
    scaling = node.data.scaling or behavior.scaling
    instances = get_instance_count(node.data.resources, scaling, incoming_rate, per_instance)

    capacity = per_instance * instances
    if math.isinf(capacity) or capacity <= 0:
        utilization = 0.0
    else:
        utilization = max(incoming_rate, 0.0) / capacity

    mean = _queueing_latency(behavior.latency.base_ms + extra_latency_ms, utilization)
    p99 = calculate_p99_latency(mean, utilization, behavior.latency.p99_multiplier)

    return NodeLoad(
        instances=instances,
        capacity_rps=capacity,
        utilization=utilization,
        mean_latency_ms=mean,
        p99_latency_ms=p99,
        saturated=utilization >= 1,
        drop_fraction=1 - 1 / utilization if utilization > 1 else 0.0,
    )


def calculate_latency(node: SystemNode, incoming_rate: float) -> float:
    """Mean service latency of a node at a given incoming rate."""
    return compute_node_load(node, incoming_rate).mean_latency_ms


def calculate_edge_latency(edge: SystemEdge, destination_latency_ms: float) -> float:
    """Transport latency of the edge plus the destination's latency."""
    return get_transport_latency(edge.data.connection_type) + destination_latency_ms


def calculate_path_latency(edge_latencies: Sequence[float]) -> float:
    """Latency along a chain of edges: the sum of each edge's latency."""
    return sum(edge_latencies)


# =============================================================================
# Round-trip composition over the propagated DAG
# =============================================================================


def expected_latencies(
    index: GraphIndex,
    order: Sequence[str],
    shares: Mapping[str, float],
    node_latency_ms: Mapping[str, float],
    hit_rates: Mapping[str, float],
) -> dict[str, float]:
    """
    Expected latency of one request arriving at each node, including everything downstream.

    Args:
        index: Graph index
        order: Node ids in topological order
        shares: Edge id -> share of the source's forwarded rate; only
            traffic-carrying edges appear
        node_latency_ms: Node id -> latency at the node itself
        hit_rates: Cache node id -> hit rate; misses pay the downstream latency

    Returns:
        Node id -> expected latency in ms.
    """
    expected: dict[str, float] = {}
    for node_id in reversed(order):
        downstream = 0.0
        for edge in index.outgoing[node_id]:
            share = shares.get(edge.id)
            if not share:
                continue
            downstream += share * calculate_edge_latency(edge, expected[edge.target])

        own = node_latency_ms[node_id]
        if node_id in hit_rates:
            expected[node_id] = calculate_cache_through_latency(hit_rates[node_id], own, downstream)
        else:
            expected[node_id] = own + downstream
    return expected


def success_rates(
    index: GraphIndex,
    order: Sequence[str],
    shares: Mapping[str, float],
    drop_fractions: Mapping[str, float],
    hit_rates: Mapping[str, float],
    broadcast: Collection[str],
) -> dict[str, float]:
    """
    Expected fraction of requests arriving at each node that complete.

    A broadcast node needs every downstream call to succeed; a splitting
    node needs the one call it makes. Cache hits complete without going
    downstream.
    """
    rates: dict[str, float] = {}
    for node_id in reversed(order):
        edges = [e for e in index.outgoing[node_id] if shares.get(e.id)]
        if not edges:
            downstream = 1.0
        elif node_id in broadcast:
            downstream = math.prod(rates[e.target] for e in edges)
        else:
            downstream = sum(shares[e.id] * rates[e.target] for e in edges)

        if node_id in hit_rates:
            hit = hit_rates[node_id]
            downstream = hit + (1 - hit) * downstream

        rates[node_id] = (1 - drop_fractions.get(node_id, 0.0)) * downstream
    return rates


def slowest_paths(
    index: GraphIndex,
    order: Sequence[str],
    shares: Mapping[str, float],
    node_latency_ms: Mapping[str, float],
) -> dict[str, tuple[float, list[str]]]:
    """
    Highest-latency path starting at each node.

    Returns:
        Node id -> (path latency in ms, node ids along the path).
        Ties keep the edge declared first.
    """
    paths: dict[str, tuple[float, list[str]]] = {}
    for node_id in reversed(order):
        best_latency = 0.0
        best_path: list[str] = []
        for edge in index.outgoing[node_id]:
            if not shares.get(edge.id):
                continue
            tail_latency, tail_path = paths[edge.target]
            latency = get_transport_latency(edge.data.connection_type) + tail_latency
            if not best_path or latency > best_latency:
                best_latency, best_path = latency, tail_path

        paths[node_id] = (node_latency_ms[node_id] + best_latency, [node_id, *best_path])
    return paths
