"""
Output types for simulation runs.

Everything here is created fresh by a run and frozen afterwards. A
SimulationResult holds no references back into engine state, so it can be
serialised with ``model_dump_json()`` or handed to another thread as-is.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from sdcanvas.config import SimulationConfig


class ResultModel(BaseModel):
    """Base for computed output: frozen after construction."""

    model_config = ConfigDict(frozen=True)


# =============================================================================
# Cache and query analysis
# =============================================================================


class CacheEffectiveness(str, Enum):
    """Cache effectiveness category derived from the hit rate."""

    HOT = "hot"                  # >= 95% hits
    WARM = "warm"                # >= 50% hits
    COLD = "cold"                # >= 10% hits
    INEFFECTIVE = "ineffective"  # < 10% hits


class CacheAnalysis(ResultModel):
    """Cache behavior for one key pattern at a given request rate."""

    key_pattern: str
    ttl_seconds: float
    cardinality: int
    requests_per_second: float
    estimated_hit_rate: float  # 0.0 - 1.0
    effective_db_rps: float  # rate that falls through to the backing store
    suggestions: list[str] = Field(default_factory=list)


class ScanType(str, Enum):
    """How the database reaches the rows a query touches."""

    SEQ_SCAN = "seq_scan"
    PARTIAL_INDEX_SCAN = "partial_index_scan"
    INDEX_SCAN = "index_scan"
    INDEX_ONLY_SCAN = "index_only_scan"
    NO_SCAN = "no_scan"  # INSERT


class QueryWarningType(str, Enum):
    MISSING_INDEX = "missing_index"
    PARTIAL_INDEX_MATCH = "partial_index_match"
    SEQ_SCAN_LARGE_TABLE = "seq_scan_large_table"
    UNINDEXED_JOIN = "unindexed_join"
    UNBOUNDED_RESULT = "unbounded_result"
    UNBOUNDED_WRITE = "unbounded_write"


class QueryWarning(ResultModel):
    """A potential performance problem with a declared query."""

    type: QueryWarningType
    message: str
    suggestion: str = ""  # e.g. "CREATE INDEX idx_users_email ON users(email)"


class QueryAnalysis(ResultModel):
    """Cost estimate for one declared query. Costs are comparative, not wall-clock."""

    query_id: str
    table_id: str
    query_type: str
    scan_type: ScanType
    estimated_rows_scanned: float
    estimated_cost_ms: float
    used_index: str | None = None
    warnings: list[QueryWarning] = Field(default_factory=list)


# =============================================================================
# Node, edge and entry-point metrics
# =============================================================================


class NodeMetrics(ResultModel):
    """
    Steady-state metrics for one node at full traffic.

    Attributes:
        incoming_rps: Rate arriving over all inbound edges plus entry traffic.
        effective_rps: Rate forwarded downstream after drops and cache hits.
        dropped_rps: Rate rejected because the node is over capacity.
        instances: Instance count chosen by the scaling policy.
        capacity_rps: Total capacity across instances.
        utilization: incoming / capacity (may exceed 1).
        saturated: True when utilization >= 1.
        peak_rps: Highest incoming rate seen across the timeline.
        cache_hit_rate: Aggregate hit rate, only for cache kinds.
    """

    node_id: str
    node_type: str
    incoming_rps: float
    effective_rps: float
    dropped_rps: float
    instances: int
    capacity_rps: float
    utilization: float
    mean_latency_ms: float
    p99_latency_ms: float
    saturated: bool
    peak_rps: float
    cache_hit_rate: float | None = None
    memory_used_mb: float = 0.0
    memory_total_mb: float = 0.0


class EdgeMetrics(ResultModel):
    """Steady-state metrics for one edge. Latency includes the destination node."""

    edge_id: str
    source: str
    target: str
    connection_type: str
    rps: float
    bytes_per_second: float
    mean_latency_ms: float
    p99_latency_ms: float
    utilization: float
    saturated: bool
    cycle_broken: bool = False  # back-edge: carries no traffic


class EntryPointMetrics(ResultModel):
    """
    Expected round-trip behavior for requests issued by one entry point.

    Attributes:
        requests_per_second: Traffic this entry point injects.
        avg_round_trip_ms: Expected end-to-end latency of one request.
        p99_round_trip_ms: Same expectation composed from per-node P99s.
        success_rate: Expected fraction of requests not dropped downstream.
        slowest_path: Node ids along the highest-latency path.
        slowest_path_latency_ms: Summed latency along that path.
    """

    node_id: str
    requests_per_second: float
    avg_round_trip_ms: float
    p99_round_trip_ms: float
    success_rate: float
    slowest_path: list[str] = Field(default_factory=list)
    slowest_path_latency_ms: float = 0.0


# =============================================================================
# Bottlenecks and warnings
# =============================================================================


class BottleneckType(str, Enum):
    CPU_BOUND = "cpu_bound"
    LATENCY_BOUND = "latency_bound"
    CACHE_MISS_BOUND = "cache_miss_bound"
    QUERY_COST_BOUND = "query_cost_bound"
    NETWORK_BOUND = "network_bound"


class BottleneckInfo(ResultModel):
    """
    A node or edge that dominates degraded performance.

    Attributes:
        element_id: Node or edge id.
        element_kind: "node" or "edge".
        type: What the element is bound by.
        severity: "warning" or "critical".
        score: Severity score used for ranking (1.0 is the critical line
            for utilization-style findings).
        message: What was detected.
        suggestion: Advisory remediation.
    """

    element_id: str
    element_kind: str
    type: BottleneckType
    severity: str
    score: float
    message: str
    suggestion: str = ""


class WarningCode(str, Enum):
    CYCLE_DETECTED = "cycle_detected"
    DISCONNECTED_ENTRY_POINT = "disconnected_entry_point"
    NO_ENTRY_POINTS = "no_entry_points"
    ANNOTATION_EDGE = "annotation_edge"


class SimulationWarning(ResultModel):
    """Non-fatal condition absorbed during a run."""

    code: WarningCode
    message: str
    element_id: str | None = None


# =============================================================================
# Timeline and result
# =============================================================================


class NodeMetricsSnapshot(ResultModel):
    rps: float
    latency_ms: float
    p99_latency_ms: float
    utilization: float
    saturated: bool


class TimelineSnapshot(ResultModel):
    """Node metrics at one simulated tick."""

    tick: int
    timestamp_seconds: float
    node_metrics: dict[str, NodeMetricsSnapshot]


class SimulationResult(ResultModel):
    """Complete output of one run, owned by the caller."""

    config: SimulationConfig
    duration_seconds: float
    total_rps: float
    node_metrics: dict[str, NodeMetrics]
    edge_metrics: dict[str, EdgeMetrics]
    entry_point_metrics: dict[str, EntryPointMetrics]
    cache_analyses: dict[str, list[CacheAnalysis]] = Field(default_factory=dict)
    query_analyses: dict[str, list[QueryAnalysis]] = Field(default_factory=dict)
    bottlenecks: list[BottleneckInfo] = Field(default_factory=list)
    timeline: list[TimelineSnapshot] = Field(default_factory=list)
    warnings: list[SimulationWarning] = Field(default_factory=list)
