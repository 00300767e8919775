"""
sdcanvas-sim

Headless load simulation for system design canvases. Given a graph of
clients, load balancers, caches, databases, queues, CDNs and object stores
plus a traffic configuration, estimates per-node load, latency, cache hit
rates and query cost, and ranks bottlenecks.

- Graph model: SystemGraph, SystemNode, SystemEdge, NodeKind
- Configuration: SimulationConfig, LatencyJitter
- Engine: run_simulation, SimulationResult
"""

__version__ = "0.1.0"

# Re-export public types for convenient imports
from sdcanvas.config import LatencyJitter, SimulationConfig
from sdcanvas.exceptions import (
    DanglingEdgeError,
    DuplicateElementError,
    SelfLoopError,
    SimulationError,
    StructuralError,
    UnknownEntryPointError,
    UnknownNodeKindError,
)
from sdcanvas.simulation import SimulationResult, run_simulation
from sdcanvas.types import (
    EdgeId,
    NodeId,
    NodeKind,
    SystemEdge,
    SystemGraph,
    SystemNode,
)

__all__ = [
    "__version__",
    # Graph model
    "NodeId",
    "EdgeId",
    "NodeKind",
    "SystemNode",
    "SystemEdge",
    "SystemGraph",
    # Configuration
    "SimulationConfig",
    "LatencyJitter",
    # Engine
    "run_simulation",
    "SimulationResult",
    # Errors
    "SimulationError",
    "StructuralError",
    "UnknownNodeKindError",
    "DuplicateElementError",
    "DanglingEdgeError",
    "SelfLoopError",
    "UnknownEntryPointError",
]
