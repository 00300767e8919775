"""
Simulation engine.

- behaviors: Static per-kind behavior models
- propagation: Rate propagation with cycle breaking
- latency: Node, edge and round-trip latency
- cache: Cache hit-rate model
- query_cost: Database query cost model
- bottlenecks: Bottleneck ranking
- engine: run_simulation
"""

from sdcanvas.simulation.behaviors import (
    NODE_BEHAVIOR_MODELS,
    NodeBehaviorModel,
    get_node_behavior,
    get_transport_latency,
)
from sdcanvas.simulation.cache import (
    analyze_cache_key,
    calculate_cache_through_latency,
    estimate_cache_hit_rate,
    get_cache_effectiveness,
    get_cache_suggestions,
)
from sdcanvas.simulation.engine import run_simulation
from sdcanvas.simulation.latency import (
    calculate_latency,
    calculate_p99_latency,
    calculate_path_latency,
    get_instance_count,
)
from sdcanvas.simulation.query_cost import analyze_queries_for_table, analyze_query
from sdcanvas.simulation.types import (
    BottleneckInfo,
    CacheAnalysis,
    EdgeMetrics,
    EntryPointMetrics,
    NodeMetrics,
    QueryAnalysis,
    SimulationResult,
    SimulationWarning,
    TimelineSnapshot,
)

__all__ = [
    # Entry point
    "run_simulation",
    # Registry
    "NODE_BEHAVIOR_MODELS",
    "NodeBehaviorModel",
    "get_node_behavior",
    "get_transport_latency",
    # Latency
    "calculate_latency",
    "calculate_p99_latency",
    "calculate_path_latency",
    "get_instance_count",
    # Cache
    "estimate_cache_hit_rate",
    "analyze_cache_key",
    "calculate_cache_through_latency",
    "get_cache_effectiveness",
    "get_cache_suggestions",
    # Query cost
    "analyze_query",
    "analyze_queries_for_table",
    # Results
    "SimulationResult",
    "NodeMetrics",
    "EdgeMetrics",
    "EntryPointMetrics",
    "CacheAnalysis",
    "QueryAnalysis",
    "BottleneckInfo",
    "SimulationWarning",
    "TimelineSnapshot",
]
