"""
Behavior models for each node kind.

The registry is the single dispatch point from a node's kind to its static
latency, capacity and resource profile. Propagation and latency code stay
kind-agnostic and ask the registry instead of branching on node types.

The table is built once at import and exposed read-only; values follow
typical real-world characteristics (e.g. an API server serves ~1000 rps per
instance at ~20ms, Redis ~100k rps at ~1ms).
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from sdcanvas.exceptions import UnknownNodeKindError
from sdcanvas.types import NodeKind, NodeResources, ScalingConfig


@dataclass(frozen=True)
class LatencyModel:
    """
    Latency parameters for a node kind.

    Attributes:
        base_ms: Service latency at zero load.
        variance_ms: Typical spread around the base (informational).
        p99_multiplier: Tail inflation of the mean at zero load.
    """

    base_ms: float
    variance_ms: float
    p99_multiplier: float


@dataclass(frozen=True)
class ResourceProfile:
    """Per-request resource cost."""

    cpu_per_request: float  # fraction of one core
    memory_per_request_mb: float


@dataclass(frozen=True)
class NodeBehaviorModel:
    """
    Static behavior of a node kind.

    Attributes:
        kind: The node kind this model describes.
        latency: Latency parameters.
        max_rps_per_instance: Capacity of one instance when the node declares
            no resources. ``math.inf`` for kinds that never saturate.
        resources: Per-request resource profile.
        scaling: Scaling policy used when the node declares none.
        memory_per_instance_mb: Memory assumed per instance without resources.
        participates: False for kinds that are ignored by the simulation.
    """

    kind: NodeKind
    latency: LatencyModel
    max_rps_per_instance: float
    resources: ResourceProfile
    scaling: ScalingConfig = field(default_factory=ScalingConfig)
    memory_per_instance_mb: float = 1024.0
    participates: bool = True


NODE_BEHAVIOR_MODELS: Mapping[NodeKind, NodeBehaviorModel] = MappingProxyType(
    {
        # Clients originate traffic; they never queue
        NodeKind.USER: NodeBehaviorModel(
            kind=NodeKind.USER,
            latency=LatencyModel(base_ms=0, variance_ms=0, p99_multiplier=1),
            max_rps_per_instance=math.inf,
            resources=ResourceProfile(cpu_per_request=0, memory_per_request_mb=0),
            memory_per_instance_mb=0.0,
        ),
        NodeKind.LOAD_BALANCER: NodeBehaviorModel(
            kind=NodeKind.LOAD_BALANCER,
            latency=LatencyModel(base_ms=1, variance_ms=2, p99_multiplier=3),
            max_rps_per_instance=100_000,
            resources=ResourceProfile(cpu_per_request=0.0001, memory_per_request_mb=0.001),
        ),
        NodeKind.CDN: NodeBehaviorModel(
            kind=NodeKind.CDN,
            latency=LatencyModel(base_ms=5, variance_ms=10, p99_multiplier=4),
            max_rps_per_instance=50_000,
            resources=ResourceProfile(cpu_per_request=0.0001, memory_per_request_mb=0.01),
        ),
        # CPU-bound request handlers
        NodeKind.API_SERVER: NodeBehaviorModel(
            kind=NodeKind.API_SERVER,
            latency=LatencyModel(base_ms=20, variance_ms=40, p99_multiplier=5),
            max_rps_per_instance=1_000,
            resources=ResourceProfile(cpu_per_request=0.01, memory_per_request_mb=0.5),
        ),
        NodeKind.DATABASE: NodeBehaviorModel(
            kind=NodeKind.DATABASE,
            latency=LatencyModel(base_ms=10, variance_ms=50, p99_multiplier=10),
            max_rps_per_instance=5_000,
            resources=ResourceProfile(cpu_per_request=0.02, memory_per_request_mb=1),
            memory_per_instance_mb=4096.0,
        ),
        NodeKind.KEY_VALUE_CACHE: NodeBehaviorModel(
            kind=NodeKind.KEY_VALUE_CACHE,
            latency=LatencyModel(base_ms=1, variance_ms=2, p99_multiplier=3),
            max_rps_per_instance=100_000,
            resources=ResourceProfile(cpu_per_request=0.001, memory_per_request_mb=0.01),
        ),
        # S3 enforces per-prefix request limits
        NodeKind.OBJECT_STORE: NodeBehaviorModel(
            kind=NodeKind.OBJECT_STORE,
            latency=LatencyModel(base_ms=50, variance_ms=100, p99_multiplier=4),
            max_rps_per_instance=5_500,
            resources=ResourceProfile(cpu_per_request=0, memory_per_request_mb=0),
        ),
        NodeKind.MESSAGE_QUEUE: NodeBehaviorModel(
            kind=NodeKind.MESSAGE_QUEUE,
            latency=LatencyModel(base_ms=5, variance_ms=10, p99_multiplier=4),
            max_rps_per_instance=10_000,
            resources=ResourceProfile(cpu_per_request=0.001, memory_per_request_mb=0.1),
        ),
        NodeKind.ANNOTATION: NodeBehaviorModel(
            kind=NodeKind.ANNOTATION,
            latency=LatencyModel(base_ms=0, variance_ms=0, p99_multiplier=1),
            max_rps_per_instance=math.inf,
            resources=ResourceProfile(cpu_per_request=0, memory_per_request_mb=0),
            memory_per_instance_mb=0.0,
            participates=False,
        ),
    }
)

# Fixed transport latency by connection type (ms)
TRANSPORT_LATENCY_MS: Mapping[str, float] = MappingProxyType(
    {
        "http": 1.0,
        "websocket": 0.5,
        "database": 0.5,
        "cache": 0.2,
        "queue": 0.5,
    }
)

# Bytes assumed per request when deriving network capacity
DEFAULT_REQUEST_KB = 1.0

# Kinds whose traffic is reduced by cache hits before forwarding
CACHE_KINDS = frozenset({NodeKind.KEY_VALUE_CACHE, NodeKind.CDN})


def get_node_behavior(kind: NodeKind | str) -> NodeBehaviorModel:
    """
    Get the behavior model for a node kind.

    Args:
        kind: NodeKind member or its string value (e.g. "apiServer").

    Returns:
        The kind's NodeBehaviorModel.

    Raises:
        UnknownNodeKindError: If the kind has no model.
    """
    try:
        return NODE_BEHAVIOR_MODELS[NodeKind(kind)]
    except (ValueError, KeyError):
        raise UnknownNodeKindError(str(getattr(kind, "value", kind))) from None


def get_transport_latency(connection_type: str) -> float:
    """Fixed transport latency for a connection type; unknown types cost like http."""
    return TRANSPORT_LATENCY_MS.get(connection_type, TRANSPORT_LATENCY_MS["http"])


def capacity_per_instance(
    behavior: NodeBehaviorModel, resources: NodeResources | None
) -> float:
    """
    Requests per second a single instance can serve.

    Declared resources take precedence: capacity is the lower of CPU
    throughput (cores x per-core rps) and network throughput at
    DEFAULT_REQUEST_KB per request. Otherwise the registry's
    max_rps_per_instance applies.
    """
    if resources is None:
        return behavior.max_rps_per_instance
    return resource_capacity(resources)


def resource_capacity(resources: NodeResources) -> float:
    """Requests per second one instance with the given resources can serve."""
    cpu_rps = resources.cpu_cores * resources.rps_per_core
    network_rps = (resources.bandwidth_mbps * 1000.0) / (DEFAULT_REQUEST_KB * 8.0)
    return min(cpu_rps, network_rps)
