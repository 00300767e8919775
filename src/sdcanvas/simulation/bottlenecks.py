"""
Bottleneck detection.

Scans final node and edge metrics for elements that dominate degraded
performance and ranks them by severity score.

Findings:
- cpu_bound: utilization >= SATURATION_THRESHOLD (score = utilization)
- latency_bound: mean latency inflated >= LATENCY_INFLATION_WARNING times
  its zero-load latency (score = inflation / LATENCY_INFLATION_CRITICAL)
- cache_miss_bound: a cold or ineffective cache with traffic in front of a
  backing store (score = 1 - hit rate)
- query_cost_bound: worst declared query at or above QUERY_COST_WARNING_MS
  (score = cost / QUERY_COST_CRITICAL_MS)
- network_bound: edge bandwidth utilization >= SATURATION_THRESHOLD

Everything here is advisory; detection never raises.
"""

from typing import Mapping

from sdcanvas.simulation.behaviors import CACHE_KINDS, get_node_behavior
from sdcanvas.simulation.cache import get_cache_effectiveness
from sdcanvas.simulation.graph import GraphIndex
from sdcanvas.simulation.types import (
    BottleneckInfo,
    BottleneckType,
    CacheEffectiveness,
    EdgeMetrics,
    NodeMetrics,
    QueryAnalysis,
)

SATURATION_THRESHOLD = 0.85
LATENCY_INFLATION_WARNING = 3.0
LATENCY_INFLATION_CRITICAL = 5.0
QUERY_COST_WARNING_MS = 10.0
QUERY_COST_CRITICAL_MS = 100.0

WARNING = "warning"
CRITICAL = "critical"


def _cpu_bound(metrics: NodeMetrics) -> BottleneckInfo | None:
    if metrics.utilization < SATURATION_THRESHOLD:
        return None
    return BottleneckInfo(
        element_id=metrics.node_id,
        element_kind="node",
        type=BottleneckType.CPU_BOUND,
        severity=CRITICAL if metrics.utilization >= 1 else WARNING,
        score=metrics.utilization,
        message=(
            f"{metrics.node_id} at {metrics.utilization:.0%} utilization "
            f"({metrics.incoming_rps:.0f} / {metrics.capacity_rps:.0f} rps)"
        ),
        suggestion="Add instances, enable auto scaling or raise per-instance resources",
    )


def _latency_bound(metrics: NodeMetrics, zero_load_ms: float) -> BottleneckInfo | None:
    if zero_load_ms <= 0:
        return None
    inflation = metrics.mean_latency_ms / zero_load_ms
    if inflation < LATENCY_INFLATION_WARNING:
        return None
    return BottleneckInfo(
        element_id=metrics.node_id,
        element_kind="node",
        type=BottleneckType.LATENCY_BOUND,
        severity=CRITICAL if inflation >= LATENCY_INFLATION_CRITICAL else WARNING,
        score=inflation / LATENCY_INFLATION_CRITICAL,
        message=(
            f"{metrics.node_id} latency {metrics.mean_latency_ms:.1f}ms is "
            f"{inflation:.1f}x its unloaded {zero_load_ms:.1f}ms"
        ),
        suggestion="Reduce load on the node or add capacity to shorten queueing",
    )


def _cache_miss_bound(metrics: NodeMetrics, has_backing_store: bool) -> BottleneckInfo | None:
    if metrics.cache_hit_rate is None or metrics.incoming_rps <= 0 or not has_backing_store:
        return None
    effectiveness = get_cache_effectiveness(metrics.cache_hit_rate)
    if effectiveness not in (CacheEffectiveness.COLD, CacheEffectiveness.INEFFECTIVE):
        return None
    return BottleneckInfo(
        element_id=metrics.node_id,
        element_kind="node",
        type=BottleneckType.CACHE_MISS_BOUND,
        severity=CRITICAL if effectiveness == CacheEffectiveness.INEFFECTIVE else WARNING,
        score=1 - metrics.cache_hit_rate,
        message=(
            f"{metrics.node_id} cache is {effectiveness.value} "
            f"({metrics.cache_hit_rate:.1%} hit rate), backing store sees "
            f"{metrics.effective_rps:.0f} rps"
        ),
        suggestion="Increase key TTLs or reduce key cardinality",
    )


def _query_cost_bound(
    node_id: str, metrics: NodeMetrics, analyses: list[QueryAnalysis]
) -> BottleneckInfo | None:
    # An idle database slows nothing down
    if not analyses or metrics.incoming_rps <= 0:
        return None
    worst = max(analyses, key=lambda a: a.estimated_cost_ms)
    if worst.estimated_cost_ms < QUERY_COST_WARNING_MS:
        return None

    suggestion = next(
        (w.suggestion for w in worst.warnings if w.suggestion),
        "Add an index matching the query's filter columns",
    )
    return BottleneckInfo(
        element_id=node_id,
        element_kind="node",
        type=BottleneckType.QUERY_COST_BOUND,
        severity=CRITICAL if worst.estimated_cost_ms >= QUERY_COST_CRITICAL_MS else WARNING,
        score=worst.estimated_cost_ms / QUERY_COST_CRITICAL_MS,
        message=(
            f"Query {worst.query_id} on {node_id} costs {worst.estimated_cost_ms:.1f}ms "
            f"({worst.scan_type.value})"
        ),
        suggestion=suggestion,
    )


def _network_bound(metrics: EdgeMetrics) -> BottleneckInfo | None:
    if metrics.utilization < SATURATION_THRESHOLD:
        return None
    return BottleneckInfo(
        element_id=metrics.edge_id,
        element_kind="edge",
        type=BottleneckType.NETWORK_BOUND,
        severity=CRITICAL if metrics.utilization >= 1 else WARNING,
        score=metrics.utilization,
        message=(
            f"Edge {metrics.source} -> {metrics.target} at {metrics.utilization:.0%} "
            f"of its bandwidth"
        ),
        suggestion="Raise link bandwidth or shrink payloads",
    )


def detect_bottlenecks(
    index: GraphIndex,
    node_metrics: Mapping[str, NodeMetrics],
    edge_metrics: Mapping[str, EdgeMetrics],
    query_analyses: Mapping[str, list[QueryAnalysis]],
) -> list[BottleneckInfo]:
    """
    Detect and rank bottlenecks.

    Args:
        index: Graph index (for declaration order and zero-load latency)
        node_metrics: Final node metrics by node id
        edge_metrics: Final edge metrics by edge id
        query_analyses: Query analyses by database node id

    Returns:
        Findings sorted by score descending; ties keep declaration order
        with nodes before edges.
    """
    ranked: list[tuple[float, int, int, BottleneckInfo]] = []

    for node_id, metrics in node_metrics.items():
        node = index.nodes[node_id]
        analyses = query_analyses.get(node_id, [])
        worst_cost = max((a.estimated_cost_ms for a in analyses), default=0.0)
        zero_load_ms = get_node_behavior(node.type).latency.base_ms + worst_cost

        has_backing_store = node.kind in CACHE_KINDS and any(
            not edge_metrics[edge.id].cycle_broken
            for edge in index.outgoing[node_id]
            if edge.id in edge_metrics
        )

        findings = [
            _cpu_bound(metrics),
            _latency_bound(metrics, zero_load_ms),
            _cache_miss_bound(metrics, has_backing_store),
            _query_cost_bound(node_id, metrics, analyses),
        ]
        for finding in findings:
            if finding is not None:
                ranked.append((-finding.score, 0, index.node_order[node_id], finding))

    for edge_id, metrics in edge_metrics.items():
        finding = _network_bound(metrics)
        if finding is not None:
            ranked.append((-finding.score, 1, index.edge_order[edge_id], finding))

    ranked.sort(key=lambda item: item[:3])
    return [finding for *_, finding in ranked]
