"""
Simulation engine entry point.

run_simulation ties the pieces together for one run:

    graph index -> entry rates -> cycle scan -> query analysis
        -> steady-state propagation -> timeline -> metrics -> bottlenecks

The engine keeps no state between calls. Jitter draws from a
``random.Random`` seeded by the config, so identical inputs always produce
identical results.
"""

import logging
import random
from typing import Mapping

from sdcanvas.config import SimulationConfig
from sdcanvas.simulation.behaviors import get_node_behavior
from sdcanvas.simulation.bottlenecks import detect_bottlenecks
from sdcanvas.simulation.graph import (
    GraphIndex,
    build_graph_index,
    find_entry_points,
    is_broadcast,
    resolve_entry_rates,
)
from sdcanvas.simulation.latency import (
    calculate_edge_latency,
    expected_latencies,
    slowest_paths,
    success_rates,
)
from sdcanvas.simulation.propagation import PropagationState, find_back_edges, propagate
from sdcanvas.simulation.query_cost import analyze_database_node
from sdcanvas.simulation.types import (
    EdgeMetrics,
    EntryPointMetrics,
    NodeMetrics,
    NodeMetricsSnapshot,
    QueryAnalysis,
    SimulationResult,
    SimulationWarning,
    TimelineSnapshot,
    WarningCode,
)
from sdcanvas.types import NodeKind, SystemGraph

logger = logging.getLogger(__name__)

KB = 1024


def _ramp_factor(config: SimulationConfig, tick: int) -> float:
    """Share of full traffic injected during a tick (linear ramp-up)."""
    if config.ramp_up_seconds <= 0:
        return 1.0
    return min(1.0, (tick + 1) * config.tick_seconds / config.ramp_up_seconds)


def _collect_warnings(
    index: GraphIndex, entry_points: list[str]
) -> list[SimulationWarning]:
    warnings: list[SimulationWarning] = []

    if not entry_points:
        warnings.append(SimulationWarning(
            code=WarningCode.NO_ENTRY_POINTS,
            message="Graph has no entry points; no traffic is injected",
        ))

    for node_id in entry_points:
        if not index.traffic_edges(node_id):
            warnings.append(SimulationWarning(
                code=WarningCode.DISCONNECTED_ENTRY_POINT,
                message=f"Entry point {node_id} has no outbound connections",
                element_id=node_id,
            ))

    for edge in index.edges.values():
        if index.is_annotation_edge(edge):
            warnings.append(SimulationWarning(
                code=WarningCode.ANNOTATION_EDGE,
                message=f"Edge {edge.id} touches an annotation and is ignored",
                element_id=edge.id,
            ))

    return warnings


def _memory(index: GraphIndex, node_id: str, rps: float, latency_ms: float, instances: int) -> tuple[float, float]:
    """(used, total) memory in MB. In-flight requests follow Little's law."""
    node = index.nodes[node_id]
    behavior = get_node_behavior(node.type)
    resources = node.data.resources

    in_flight = rps * latency_ms / 1000
    used = in_flight * behavior.resources.memory_per_request_mb
    if resources is not None:
        used += resources.working_set_mb * instances
        total = resources.memory_mb * instances
    else:
        total = behavior.memory_per_instance_mb * instances
    return used, total


def _node_metrics(
    index: GraphIndex, state: PropagationState, peak_rps: Mapping[str, float]
) -> dict[str, NodeMetrics]:
    metrics: dict[str, NodeMetrics] = {}
    for node_id in index.nodes:
        if node_id not in state.loads:
            continue
        load = state.loads[node_id]
        incoming = state.incoming_rps[node_id]
        cache = state.caches.get(node_id)
        used, total = _memory(index, node_id, incoming, load.mean_latency_ms, load.instances)

        metrics[node_id] = NodeMetrics(
            node_id=node_id,
            node_type=index.nodes[node_id].type,
            incoming_rps=incoming,
            effective_rps=state.forwarded_rps[node_id],
            dropped_rps=state.dropped_rps[node_id],
            instances=load.instances,
            capacity_rps=load.capacity_rps,
            utilization=load.utilization,
            mean_latency_ms=load.mean_latency_ms,
            p99_latency_ms=load.p99_latency_ms,
            saturated=load.saturated,
            peak_rps=peak_rps.get(node_id, incoming),
            cache_hit_rate=cache.hit_rate if cache is not None else None,
            memory_used_mb=used,
            memory_total_mb=total,
        )
    return metrics


def _edge_metrics(index: GraphIndex, state: PropagationState) -> dict[str, EdgeMetrics]:
    metrics: dict[str, EdgeMetrics] = {}
    for edge_id, edge in index.edges.items():
        if index.is_annotation_edge(edge):
            continue
        rps = state.edge_rps.get(edge_id, 0.0)
        target_load = state.loads.get(edge.target)
        target_mean = target_load.mean_latency_ms if target_load else 0.0
        target_p99 = target_load.p99_latency_ms if target_load else 0.0

        bandwidth = edge.data.bandwidth_mbps
        if bandwidth:
            # kb/s -> Mbit/s
            utilization = rps * edge.data.payload_kb * 8 / 1000 / bandwidth
        else:
            utilization = 0.0

        metrics[edge_id] = EdgeMetrics(
            edge_id=edge_id,
            source=edge.source,
            target=edge.target,
            connection_type=edge.data.connection_type,
            rps=rps,
            bytes_per_second=rps * edge.data.payload_kb * KB,
            mean_latency_ms=calculate_edge_latency(edge, target_mean),
            p99_latency_ms=calculate_edge_latency(edge, target_p99),
            utilization=utilization,
            saturated=utilization >= 1,
            cycle_broken=edge_id in state.back_edges,
        )
    return metrics


def _entry_point_metrics(
    index: GraphIndex, state: PropagationState, entry_rates: Mapping[str, float]
) -> dict[str, EntryPointMetrics]:
    hit_rates = {node_id: cache.hit_rate for node_id, cache in state.caches.items()}
    mean_ms = {node_id: load.mean_latency_ms for node_id, load in state.loads.items()}
    p99_ms = {node_id: load.p99_latency_ms for node_id, load in state.loads.items()}
    drops = {node_id: load.drop_fraction for node_id, load in state.loads.items()}
    broadcast = {node_id for node_id in state.order if is_broadcast(index.nodes[node_id])}

    round_trip = expected_latencies(index, state.order, state.shares, mean_ms, hit_rates)
    round_trip_p99 = expected_latencies(index, state.order, state.shares, p99_ms, hit_rates)
    success = success_rates(index, state.order, state.shares, drops, hit_rates, broadcast)
    slowest = slowest_paths(index, state.order, state.shares, mean_ms)

    metrics: dict[str, EntryPointMetrics] = {}
    for node_id, rate in entry_rates.items():
        if node_id not in state.loads:
            continue
        path_latency, path = slowest[node_id]
        metrics[node_id] = EntryPointMetrics(
            node_id=node_id,
            requests_per_second=rate,
            avg_round_trip_ms=round_trip[node_id],
            p99_round_trip_ms=round_trip_p99[node_id],
            success_rate=success[node_id],
            slowest_path=path,
            slowest_path_latency_ms=path_latency,
        )
    return metrics


def _query_analyses(index: GraphIndex) -> dict[str, list[QueryAnalysis]]:
    analyses: dict[str, list[QueryAnalysis]] = {}
    for node_id, node in index.nodes.items():
        if node.kind == NodeKind.DATABASE:
            analyses[node_id] = analyze_database_node(index, node_id)
    return analyses


def run_simulation(graph: SystemGraph, config: SimulationConfig | None = None) -> SimulationResult:
    """
    Run a load simulation over a system design graph.

    Args:
        graph: Graph to simulate
        config: Traffic configuration (defaults to SimulationConfig())

    Returns:
        A fresh SimulationResult owned by the caller.

    Raises:
        StructuralError: If the graph is malformed (duplicate ids, unknown
            node kind, dangling endpoint, self-loop) or an explicit entry
            point is missing from it.

    Example:
        ```python
        result = run_simulation(graph, SimulationConfig(requests_per_second=500))
        for b in result.bottlenecks:
            print(b.element_id, b.type.value, b.severity)
        ```
    """
    config = config or SimulationConfig()
    logger.debug(
        f"Simulation starting: {len(graph.nodes)} nodes, {len(graph.edges)} edges, "
        f"{config.tick_count} ticks"
    )

    index = build_graph_index(graph)
    entry_points = [n for n in find_entry_points(index, config) if index.participates(n)]
    entry_rates = resolve_entry_rates(index, config, entry_points)
    warnings = _collect_warnings(index, entry_points)

    back_edges = find_back_edges(index, entry_points)
    for edge in back_edges:
        logger.info(f"Cycle detected: breaking edge {edge.id} ({edge.source} -> {edge.target})")
        warnings.append(SimulationWarning(
            code=WarningCode.CYCLE_DETECTED,
            message=f"Cycle detected; edge {edge.source} -> {edge.target} carries no traffic",
            element_id=edge.id,
        ))
    back_edge_ids = [edge.id for edge in back_edges]

    query_analyses = _query_analyses(index)
    extra_latency_ms = {
        node_id: max(a.estimated_cost_ms for a in analyses)
        for node_id, analyses in query_analyses.items()
        if analyses
    }

    steady = propagate(index, entry_rates, back_edge_ids, extra_latency_ms)

    # Timeline: re-propagate at the ramped rate, jitter latencies
    rng = random.Random(config.jitter.seed)
    timeline: list[TimelineSnapshot] = []
    peak_rps: dict[str, float] = {}
    for tick in range(config.tick_count):
        factor = _ramp_factor(config, tick)
        if factor >= 1.0:
            state = steady
        else:
            scaled = {node_id: rate * factor for node_id, rate in entry_rates.items()}
            state = propagate(index, scaled, back_edge_ids, extra_latency_ms)

        snapshots: dict[str, NodeMetricsSnapshot] = {}
        for node_id in state.order:
            load = state.loads[node_id]
            rps = state.incoming_rps[node_id]
            jitter = 1.0
            if config.jitter.ratio > 0:
                jitter = 1 + config.jitter.ratio * rng.uniform(-1.0, 1.0)
            snapshots[node_id] = NodeMetricsSnapshot(
                rps=rps,
                latency_ms=load.mean_latency_ms * jitter,
                p99_latency_ms=load.p99_latency_ms * jitter,
                utilization=load.utilization,
                saturated=load.saturated,
            )
            peak_rps[node_id] = max(peak_rps.get(node_id, 0.0), rps)

        timeline.append(TimelineSnapshot(
            tick=tick,
            timestamp_seconds=tick * config.tick_seconds,
            node_metrics=snapshots,
        ))

    node_metrics = _node_metrics(index, steady, peak_rps)
    edge_metrics = _edge_metrics(index, steady)
    bottlenecks = detect_bottlenecks(index, node_metrics, edge_metrics, query_analyses)

    result = SimulationResult(
        config=config,
        duration_seconds=config.duration_seconds,
        total_rps=sum(entry_rates.values()),
        node_metrics=node_metrics,
        edge_metrics=edge_metrics,
        entry_point_metrics=_entry_point_metrics(index, steady, entry_rates),
        cache_analyses={node_id: cache.analyses for node_id, cache in steady.caches.items()},
        query_analyses=query_analyses,
        bottlenecks=bottlenecks,
        timeline=timeline,
        warnings=warnings,
    )

    logger.debug(
        f"Simulation finished: {len(bottlenecks)} bottlenecks, {len(warnings)} warnings"
    )
    return result
