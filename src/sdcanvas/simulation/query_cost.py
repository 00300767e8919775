"""
Query cost analysis for database nodes.

Inspects declared queries against a table's indexes to pick a scan type,
estimate a relative cost and flag likely problems (missing index, partial
index match, unindexed join, unbounded result set).

Costs are comparative: they order queries and tables, they do not predict
wall-clock timings. B-tree semantics apply: an index serves a filter only
through a prefix match of its leading columns.
"""

import logging
import math
from typing import Literal, Sequence

from sdcanvas.simulation.graph import GraphIndex
from sdcanvas.simulation.types import QueryAnalysis, QueryWarning, QueryWarningType, ScanType
from sdcanvas.types import DatabaseIndex, DatabaseTable, LinkedQuery, NodeKind

logger = logging.getLogger(__name__)

# Cost model (ms per 1K rows for scans)
SEQ_SCAN_COST_PER_1K_ROWS = 10.0
INDEX_SCAN_COST = 0.1  # x log2(rows), B-tree lookup + heap fetch
INDEX_ONLY_SCAN_COST = 0.05  # x log2(rows), no heap access
PARTIAL_RESIDUAL_FRACTION = 0.1  # share of the table re-filtered after a prefix match
INSERT_BASE_COST_MS = 0.1
INDEX_MAINTENANCE_COST_MS = 0.05  # per index, per write

DEFAULT_TABLE_ROWS = 1000
LARGE_TABLE_THRESHOLD = 100_000

Coverage = Literal["full", "partial", "none"]


def _index_coverage(index: DatabaseIndex, where_columns: Sequence[str]) -> Coverage:
    """How well the index's leading columns match the filter columns."""
    if not where_columns:
        return "none"

    matched = 0
    for query_column, index_column in zip(where_columns, index.columns):
        if query_column != index_column:
            break  # B-tree requires a prefix match
        matched += 1

    if matched == 0:
        return "none"
    if matched == len(where_columns):
        return "full"
    return "partial"


def _is_covering(index: DatabaseIndex, query: LinkedQuery) -> bool:
    """True if the index alone answers the query (filter and every selected column)."""
    if not query.select_columns:
        return False
    indexed = set(index.columns) | set(index.include_columns)
    return (
        all(column in indexed for column in query.select_columns)
        and _index_coverage(index, query.where_columns) == "full"
    )


def _find_best_index(
    query: LinkedQuery, table: DatabaseTable
) -> tuple[DatabaseIndex | None, Coverage, bool]:
    """
    Pick the most useful index for a query.

    Preference: covering index, then full coverage, then partial coverage.
    Ties go to the index declared first.

    Returns:
        (index, coverage, is_covering); index is None when nothing applies.
    """
    best: DatabaseIndex | None = None
    best_rank: tuple[bool, bool] = (False, False)
    best_coverage: Coverage = "none"

    for index in table.indexes:
        coverage = _index_coverage(index, query.where_columns)
        if coverage == "none":
            continue
        rank = (_is_covering(index, query), coverage == "full")
        if best is None or rank > best_rank:
            best, best_rank, best_coverage = index, rank, coverage

    return best, best_coverage, best_rank[0]


def _column_names(table: DatabaseTable, column_ids: Sequence[str]) -> list[str]:
    names = (table.column_name(column_id) for column_id in column_ids)
    return [name for name in names if name is not None]


def generate_index_suggestion(query: LinkedQuery, table: DatabaseTable) -> str:
    """
    Suggest a CREATE INDEX statement for the query's filter.

    Selected columns not already in the filter go into an INCLUDE clause so
    the suggested index can serve an index-only scan.
    """
    where_names = _column_names(table, query.where_columns)
    if not where_names:
        return ""

    index_name = f"idx_{table.name}_{'_'.join(where_names)}"
    suggestion = f"CREATE INDEX {index_name} ON {table.name}({', '.join(where_names)})"

    include_names = _column_names(
        table, [c for c in query.select_columns if c not in query.where_columns]
    )
    if include_names:
        suggestion += f" INCLUDE ({', '.join(include_names)})"

    return suggestion


def _has_leading_index(table: DatabaseTable, column_id: str) -> bool:
    return any(index.columns and index.columns[0] == column_id for index in table.indexes)


def _seq_scan_cost(rows: float) -> float:
    return SEQ_SCAN_COST_PER_1K_ROWS * rows / 1000


def _log_rows(rows: float) -> float:
    return max(1.0, math.log2(max(rows, 1)))


def analyze_query(query: LinkedQuery, table: DatabaseTable) -> QueryAnalysis:
    """
    Estimate scan type, cost and warnings for one query against one table.

    Args:
        query: Declared query
        table: Table the query targets

    Returns:
        QueryAnalysis for the query.
    """
    rows = table.estimated_rows or DEFAULT_TABLE_ROWS
    warnings: list[QueryWarning] = []
    used_index: str | None = None
    is_write = query.query_type in ("UPDATE", "DELETE")

    if query.query_type == "INSERT":
        scan_type = ScanType.NO_SCAN
        rows_scanned = 0.0
        cost = INSERT_BASE_COST_MS
    else:
        index, coverage, covering = _find_best_index(query, table)

        if index is None:
            scan_type = ScanType.SEQ_SCAN
            rows_scanned = float(rows)
            if not query.where_columns and query.limit is not None:
                rows_scanned = float(min(rows, query.limit))
            cost = _seq_scan_cost(rows_scanned)

            suggestion = generate_index_suggestion(query, table)
            if query.where_columns and rows >= LARGE_TABLE_THRESHOLD:
                warnings.append(QueryWarning(
                    type=QueryWarningType.SEQ_SCAN_LARGE_TABLE,
                    message=f"Sequential scan on {table.name} with {rows:,} rows",
                    suggestion=suggestion or "Consider adding an index on frequently queried columns",
                ))
            if suggestion:
                warnings.append(QueryWarning(
                    type=QueryWarningType.MISSING_INDEX,
                    message="No index found for WHERE clause columns",
                    suggestion=suggestion,
                ))
        elif coverage == "partial":
            scan_type = ScanType.PARTIAL_INDEX_SCAN
            used_index = index.name
            rows_scanned = _log_rows(rows) * 10 + PARTIAL_RESIDUAL_FRACTION * rows
            cost = INDEX_SCAN_COST * _log_rows(rows) + PARTIAL_RESIDUAL_FRACTION * _seq_scan_cost(rows)
            warnings.append(QueryWarning(
                type=QueryWarningType.PARTIAL_INDEX_MATCH,
                message=f"Index {index.name} only partially matches query",
                suggestion=generate_index_suggestion(query, table),
            ))
        elif covering and not is_write:
            scan_type = ScanType.INDEX_ONLY_SCAN
            used_index = index.name
            rows_scanned = _log_rows(rows) * 10
            cost = INDEX_ONLY_SCAN_COST * _log_rows(rows)
        else:
            scan_type = ScanType.INDEX_SCAN
            used_index = index.name
            rows_scanned = _log_rows(rows) * 10
            cost = INDEX_SCAN_COST * _log_rows(rows)

    # Joins: an unindexed join key re-scans the table
    for column_id in query.join_columns:
        if _has_leading_index(table, column_id):
            cost += INDEX_SCAN_COST * _log_rows(rows)
            continue
        column_name = table.column_name(column_id) or column_id
        cost += _seq_scan_cost(rows)
        warnings.append(QueryWarning(
            type=QueryWarningType.UNINDEXED_JOIN,
            message=f"Join on {table.name}.{column_name} has no index on the join key",
            suggestion=f"CREATE INDEX idx_{table.name}_{column_name} ON {table.name}({column_name})",
        ))

    if query.query_type == "SELECT" and not query.where_columns and query.limit is None:
        warnings.append(QueryWarning(
            type=QueryWarningType.UNBOUNDED_RESULT,
            message=f"Query returns every row of {table.name} ({rows:,} rows)",
            suggestion="Add a WHERE clause or LIMIT / pagination",
        ))

    if is_write and not query.where_columns:
        warnings.append(QueryWarning(
            type=QueryWarningType.UNBOUNDED_WRITE,
            message=f"{query.query_type} without WHERE touches every row of {table.name}",
            suggestion="Restrict the write with a WHERE clause",
        ))

    if query.query_type != "SELECT":
        cost += INDEX_MAINTENANCE_COST_MS * len(table.indexes)

    return QueryAnalysis(
        query_id=query.id,
        table_id=table.id,
        query_type=query.query_type,
        scan_type=scan_type,
        estimated_rows_scanned=rows_scanned,
        estimated_cost_ms=cost,
        used_index=used_index,
        warnings=warnings,
    )


def analyze_queries_for_table(
    table: DatabaseTable, queries: Sequence[LinkedQuery]
) -> list[QueryAnalysis]:
    """
    Analyze every query targeting a table, most expensive first.

    Queries for other tables are ignored. Equal costs keep declaration order.
    """
    analyses = [analyze_query(q, table) for q in queries if q.target_table_id == table.id]
    return sorted(analyses, key=lambda a: -a.estimated_cost_ms)


def collect_queries(index: GraphIndex, db_node_id: str) -> list[LinkedQuery]:
    """
    Gather the queries declared against a database node.

    Sources, in order: API server endpoint ``linked_queries`` that target the
    node, then queries on the node's inbound edges. A query id seen twice is
    kept once (first declaration wins).
    """
    queries: dict[str, LinkedQuery] = {}

    for node in index.nodes.values():
        if node.kind != NodeKind.API_SERVER:
            continue
        for endpoint in node.data.endpoints:
            for query in endpoint.linked_queries:
                if query.target_node_id == db_node_id:
                    queries.setdefault(query.id, query)

    for edge in index.incoming.get(db_node_id, []):
        query = edge.data.query
        if query is None:
            continue
        if query.target_node_id not in (None, db_node_id):
            continue
        queries.setdefault(query.id, query)

    return list(queries.values())


def analyze_database_node(
    index: GraphIndex, db_node_id: str
) -> list[QueryAnalysis]:
    """
    Analyze every query declared against a database node across its tables.

    Returns:
        QueryAnalysis list, most expensive first. Queries naming a table the
        node does not declare are skipped.
    """
    node = index.nodes[db_node_id]
    queries = collect_queries(index, db_node_id)
    table_ids = {table.id for table in node.data.tables}

    for query in queries:
        if query.target_table_id not in table_ids:
            logger.debug(
                f"Query {query.id} targets unknown table {query.target_table_id} "
                f"on {db_node_id} - skipping"
            )

    analyses: list[QueryAnalysis] = []
    for table in node.data.tables:
        analyses.extend(analyze_queries_for_table(table, queries))

    return sorted(analyses, key=lambda a: -a.estimated_cost_ms)
