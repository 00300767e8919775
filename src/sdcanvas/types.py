"""
Graph types for system design canvases.

This module defines the in-memory graph the simulation engine consumes:
- NodeKind: Closed set of node kinds
- SystemNode: Tagged variant (discriminated on ``type``) over per-kind nodes
- SystemEdge: Directed connection between two node ids
- SystemGraph: Nodes and edges as a plain value

Nodes and edges reference each other only by id. Every model is frozen so a
graph handed to the engine cannot change underneath a run.

All models accept both snake_case field names and the camelCase keys used by
canvas documents (e.g. ``estimatedRows``, ``whereColumns``).
"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


NodeId = str
"""Unique identifier for a node within a graph."""

EdgeId = str
"""Unique identifier for an edge within a graph."""


class NodeKind(str, Enum):
    """Node kinds understood by the simulation engine."""

    USER = "user"
    LOAD_BALANCER = "loadBalancer"
    CDN = "cdn"
    API_SERVER = "apiServer"
    DATABASE = "postgresql"
    OBJECT_STORE = "s3Bucket"
    KEY_VALUE_CACHE = "redis"
    MESSAGE_QUEUE = "messageQueue"
    ANNOTATION = "stickyNote"


class CanvasModel(BaseModel):
    """Base model for canvas documents: frozen, camelCase-aware, lenient on extras."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# =============================================================================
# Shared payload types
# =============================================================================


class Position(CanvasModel):
    """Canvas position. Layout only, ignored by the simulation."""

    x: float = 0.0
    y: float = 0.0


class NodeResources(CanvasModel):
    """
    Per-instance capacity description.

    Attributes:
        cpu_cores: Cores per instance.
        rps_per_core: Requests per second one core can serve.
        memory_mb: Memory per instance.
        working_set_mb: Estimated resident working set per instance.
        bandwidth_mbps: Network ceiling per instance.
    """

    cpu_cores: float = Field(default=2.0, gt=0)
    rps_per_core: float = Field(default=500.0, gt=0)
    memory_mb: float = Field(default=1024.0, gt=0)
    working_set_mb: float = Field(default=0.0, ge=0)
    bandwidth_mbps: float = Field(default=1000.0, gt=0)


class ScalingConfig(CanvasModel):
    """
    Instance scaling policy.

    - single: always one instance
    - fixed: exactly ``instances``
    - auto: enough instances to keep per-instance utilization at or below
      ``target_utilization``, clamped to ``[min_instances, max_instances]``
    """

    type: Literal["single", "fixed", "auto"] = "single"
    instances: int = Field(default=1, ge=1)
    min_instances: int = Field(default=1, ge=1)
    max_instances: int = Field(default=10, ge=1)
    target_utilization: float = Field(default=0.7, gt=0, le=1)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ScalingConfig":
        if self.max_instances < self.min_instances:
            raise ValueError(
                f"max_instances ({self.max_instances}) must be >= "
                f"min_instances ({self.min_instances})"
            )
        return self


class BaseNodeData(CanvasModel):
    """
    Fields shared by every node payload.

    Attributes:
        label: Display label.
        description: Free-form notes.
        resources: Optional capacity override for the node's instances.
        scaling: Optional scaling policy (defaults come from the registry).
        fan_out: How traffic leaves the node when it has several outbound
            edges: "split" divides the rate, "broadcast" sends the full rate
            down every edge (one downstream call per dependency).
    """

    label: str = ""
    description: str | None = None
    resources: NodeResources | None = None
    scaling: ScalingConfig | None = None
    fan_out: Literal["split", "broadcast"] = "split"


# =============================================================================
# Database schema types
# =============================================================================


class DatabaseColumn(CanvasModel):
    id: str
    name: str
    type: str = "text"
    is_primary_key: bool = False
    is_foreign_key: bool = False
    is_nullable: bool = True
    is_unique: bool = False


class DatabaseIndex(CanvasModel):
    """A table index. ``columns`` and ``include_columns`` hold column ids."""

    id: str
    name: str
    columns: list[str] = Field(default_factory=list)
    is_unique: bool = False
    type: Literal["btree", "hash", "gin", "gist", "brin"] = "btree"
    include_columns: list[str] = Field(default_factory=list)


class DatabaseTable(CanvasModel):
    id: str
    name: str
    columns: list[DatabaseColumn] = Field(default_factory=list)
    indexes: list[DatabaseIndex] = Field(default_factory=list)
    estimated_rows: int | None = Field(default=None, ge=0)

    def column_name(self, column_id: str) -> str | None:
        """Resolve a column id to its name, or None if the table lacks it."""
        for column in self.columns:
            if column.id == column_id:
                return column.name
        return None


class LinkedQuery(CanvasModel):
    """
    A query declared against a database table.

    Attributes:
        id: Query identifier.
        target_node_id: Database node the query runs on. Optional for queries
            declared on an edge, where the edge target is used.
        target_table_id: Table the query reads or writes.
        query_type: SQL verb.
        where_columns: Column ids filtered on, in predicate order.
        select_columns: Column ids returned.
        join_columns: Column ids of this table used as join keys.
        limit: Row limit, None for unbounded.
    """

    id: str
    target_node_id: str | None = None
    target_table_id: str
    query_type: Literal["SELECT", "INSERT", "UPDATE", "DELETE"] = "SELECT"
    where_columns: list[str] = Field(default_factory=list)
    select_columns: list[str] = Field(default_factory=list)
    join_columns: list[str] = Field(default_factory=list)
    limit: int | None = Field(default=None, ge=0)
    description: str | None = None


# =============================================================================
# Node payloads
# =============================================================================


class UserNodeData(BaseNodeData):
    """Client payload. ``requests_per_second`` overrides the config's even split."""

    client_type: Literal["browser", "mobile", "desktop"] = "browser"
    requests_per_second: float | None = Field(default=None, ge=0)


class LoadBalancerNodeData(BaseNodeData):
    """Load balancer payload. ``weights`` maps target node id to a share weight."""

    algorithm: Literal["round-robin", "least-connections", "ip-hash", "weighted"] = "round-robin"
    weights: dict[str, float] = Field(default_factory=dict)


class CDNCacheRule(CanvasModel):
    id: str
    pattern: str
    ttl: float | None = None
    estimated_cardinality: int | None = None
    description: str | None = None


class CDNNodeData(BaseNodeData):
    provider: Literal["cloudflare", "cloudfront", "akamai", "fastly", "generic"] = "generic"
    cache_rules: list[CDNCacheRule] = Field(default_factory=list)


class APIEndpoint(CanvasModel):
    id: str
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = "GET"
    path: str = "/"
    description: str | None = None
    linked_queries: list[LinkedQuery] = Field(default_factory=list)


class APIServerNodeData(BaseNodeData):
    endpoints: list[APIEndpoint] = Field(default_factory=list)


class PostgreSQLNodeData(BaseNodeData):
    tables: list[DatabaseTable] = Field(default_factory=list)


class S3BucketNodeData(BaseNodeData):
    bucket_name: str = ""
    is_public: bool = False


class RedisKey(CanvasModel):
    """A cache key pattern, e.g. ``user:{user_id}:session``."""

    id: str
    pattern: str
    description: str | None = None
    value_type: Literal["string", "counter", "json", "list", "set", "hash", "sortedSet"] = "string"
    ttl: float | None = None
    estimated_cardinality: int | None = None


class RedisNodeData(BaseNodeData):
    max_memory: str = "256mb"
    eviction_policy: Literal["noeviction", "allkeys-lru", "volatile-lru", "allkeys-random"] = "allkeys-lru"
    keys: list[RedisKey] = Field(default_factory=list)


class MessageQueueTopic(CanvasModel):
    id: str
    name: str
    description: str | None = None


class MessageQueueNodeData(BaseNodeData):
    provider: Literal["sqs", "rabbitmq", "kafka", "pubsub", "generic"] = "generic"
    queue_type: Literal["standard", "fifo"] = "standard"
    topics: list[MessageQueueTopic] = Field(default_factory=list)


class StickyNoteNodeData(BaseNodeData):
    content: str = ""
    color: Literal["yellow", "blue", "green", "pink", "purple"] = "yellow"


# =============================================================================
# Nodes
# =============================================================================


class BaseNode(CanvasModel):
    """Fields common to every node variant."""

    id: NodeId
    position: Position = Field(default_factory=Position)

    @property
    def kind(self) -> NodeKind:
        """The node's kind as a NodeKind member."""
        return NodeKind(self.type)  # type: ignore[attr-defined]


class UserNode(BaseNode):
    type: Literal["user"] = "user"
    data: UserNodeData = Field(default_factory=UserNodeData)


class LoadBalancerNode(BaseNode):
    type: Literal["loadBalancer"] = "loadBalancer"
    data: LoadBalancerNodeData = Field(default_factory=LoadBalancerNodeData)


class CDNNode(BaseNode):
    type: Literal["cdn"] = "cdn"
    data: CDNNodeData = Field(default_factory=CDNNodeData)


class APIServerNode(BaseNode):
    type: Literal["apiServer"] = "apiServer"
    data: APIServerNodeData = Field(default_factory=APIServerNodeData)


class DatabaseNode(BaseNode):
    type: Literal["postgresql"] = "postgresql"
    data: PostgreSQLNodeData = Field(default_factory=PostgreSQLNodeData)


class ObjectStoreNode(BaseNode):
    type: Literal["s3Bucket"] = "s3Bucket"
    data: S3BucketNodeData = Field(default_factory=S3BucketNodeData)


class KeyValueCacheNode(BaseNode):
    type: Literal["redis"] = "redis"
    data: RedisNodeData = Field(default_factory=RedisNodeData)


class MessageQueueNode(BaseNode):
    type: Literal["messageQueue"] = "messageQueue"
    data: MessageQueueNodeData = Field(default_factory=MessageQueueNodeData)


class AnnotationNode(BaseNode):
    type: Literal["stickyNote"] = "stickyNote"
    data: StickyNoteNodeData = Field(default_factory=StickyNoteNodeData)


SystemNode = Annotated[
    Union[
        UserNode,
        LoadBalancerNode,
        CDNNode,
        APIServerNode,
        DatabaseNode,
        ObjectStoreNode,
        KeyValueCacheNode,
        MessageQueueNode,
        AnnotationNode,
    ],
    Field(discriminator="type"),
]
"""A canvas node: one variant per NodeKind, discriminated on ``type``."""


# =============================================================================
# Edges
# =============================================================================


ConnectionType = Literal["http", "websocket", "database", "cache", "queue"]


class ConnectionData(CanvasModel):
    """
    Edge payload.

    Attributes:
        connection_type: Transport kind, selects the fixed transport latency.
        weight: Share weight when the source splits traffic (default even).
        query: Declared query for database edges.
        bandwidth_mbps: Link ceiling; None means the link never saturates.
        payload_kb: Average request size crossing the edge.
    """

    label: str | None = None
    connection_type: ConnectionType = "http"
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] | None = None
    weight: float | None = Field(default=None, ge=0)
    query: LinkedQuery | None = None
    bandwidth_mbps: float | None = Field(default=None, gt=0)
    payload_kb: float = Field(default=1.0, gt=0)
    description: str | None = None


class SystemEdge(CanvasModel):
    """Directed connection from ``source`` to ``target`` (node ids)."""

    id: EdgeId
    source: NodeId
    target: NodeId
    data: ConnectionData = Field(default_factory=ConnectionData)


class SystemGraph(CanvasModel):
    """
    A canvas graph as a plain value.

    Example:
        ```python
        graph = SystemGraph.model_validate_json(path.read_text())
        result = run_simulation(graph, SimulationConfig(requests_per_second=500))
        ```
    """

    nodes: list[SystemNode] = Field(default_factory=list)
    edges: list[SystemEdge] = Field(default_factory=list)
