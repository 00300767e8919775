"""
Structural error classes for simulation runs.

A structural error means the graph handed to the engine is malformed: an
upstream loader or editor let through something it should have rejected.
These abort the run. Degenerate-but-valid input (zero rates, cycles,
disconnected entry points) never raises; it is recorded as a warning on the
result instead.

- SimulationError: Base class for engine failures
- StructuralError: Base class for malformed-graph failures
- UnknownNodeKindError: Node kind absent from the behavior registry
- DuplicateElementError: Two nodes or two edges share an id
- DanglingEdgeError: Edge endpoint references a missing node
- SelfLoopError: Edge connects a node to itself
- UnknownEntryPointError: Config names an entry point missing from the graph
"""


class SimulationError(Exception):
    """Base class for simulation engine failures."""


class StructuralError(SimulationError):
    """Raised when the input graph is structurally invalid."""


class UnknownNodeKindError(StructuralError):
    """
    Raised when a node kind has no behavior model.

    Attributes:
        kind: The unrecognised kind
        node_id: The offending node, if known
    """

    def __init__(self, kind: str, node_id: str | None = None) -> None:
        self.kind = kind
        self.node_id = node_id
        where = f" on node {node_id}" if node_id else ""
        super().__init__(f"Unknown node kind '{kind}'{where}")


class DuplicateElementError(StructuralError):
    """
    Raised when an id is declared twice.

    Attributes:
        element_kind: "node" or "edge"
        element_id: The repeated id
    """

    def __init__(self, element_kind: str, element_id: str) -> None:
        self.element_kind = element_kind
        self.element_id = element_id
        super().__init__(f"Duplicate {element_kind} id '{element_id}'")


class DanglingEdgeError(StructuralError):
    """
    Raised when an edge endpoint does not reference an existing node.

    Attributes:
        edge_id: The offending edge
        endpoint: "source" or "target"
        node_id: The missing node id
    """

    def __init__(self, edge_id: str, endpoint: str, node_id: str) -> None:
        self.edge_id = edge_id
        self.endpoint = endpoint
        self.node_id = node_id
        super().__init__(
            f"Edge '{edge_id}' {endpoint} references missing node '{node_id}'"
        )


class SelfLoopError(StructuralError):
    """
    Raised when an edge starts and ends at the same node.

    Attributes:
        edge_id: The offending edge
        node_id: The node it loops on
    """

    def __init__(self, edge_id: str, node_id: str) -> None:
        self.edge_id = edge_id
        self.node_id = node_id
        super().__init__(f"Edge '{edge_id}' is a self-loop on node '{node_id}'")


class UnknownEntryPointError(StructuralError):
    """
    Raised when the config names an entry point that is not in the graph.

    Attributes:
        node_id: The missing entry point id
    """

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Entry point '{node_id}' does not exist in the graph")
