"""
Tests for query cost analysis.

Covers scan selection (seq, index, index-only, partial), the cost model,
query warnings, per-table ordering and query collection from a graph.
"""

import math

import pytest

from builders import edge, node
from sdcanvas.simulation.graph import build_graph_index
from sdcanvas.simulation.query_cost import (
    analyze_database_node,
    analyze_queries_for_table,
    analyze_query,
    collect_queries,
)
from sdcanvas.simulation.types import QueryWarningType, ScanType
from sdcanvas.types import DatabaseTable, LinkedQuery, SystemGraph


def select(query_id: str = "q", **fields) -> LinkedQuery:
    return LinkedQuery(id=query_id, target_table_id="t-users", **fields)


def warning_types(analysis) -> list[QueryWarningType]:
    return [w.type for w in analysis.warnings]


# =============================================================================
# Scan selection
# =============================================================================


class TestScanSelection:
    """Tests for index matching."""

    def test_indexed_filter_beats_unindexed_filter(self, users_table):
        indexed = analyze_query(select(where_columns=["c-email"], select_columns=["c-id"]), users_table)
        unindexed = analyze_query(select(where_columns=["c-name"], select_columns=["c-id"]), users_table)

        assert indexed.scan_type == ScanType.INDEX_SCAN
        assert indexed.used_index == "idx_users_email"
        assert unindexed.scan_type == ScanType.SEQ_SCAN
        assert unindexed.used_index is None
        assert indexed.estimated_cost_ms < unindexed.estimated_cost_ms

    def test_cost_model(self, users_table):
        indexed = analyze_query(select(where_columns=["c-email"], select_columns=["c-id"]), users_table)
        unindexed = analyze_query(select(where_columns=["c-name"], select_columns=["c-id"]), users_table)

        assert indexed.estimated_cost_ms == pytest.approx(0.1 * math.log2(1000))
        assert unindexed.estimated_cost_ms == pytest.approx(10.0)
        assert unindexed.estimated_rows_scanned == 1000

    def test_covering_index_gives_index_only_scan(self, users_table):
        analysis = analyze_query(select(where_columns=["c-email"], select_columns=["c-email"]), users_table)

        assert analysis.scan_type == ScanType.INDEX_ONLY_SCAN
        assert analysis.estimated_cost_ms == pytest.approx(0.05 * math.log2(1000))

    def test_include_columns_make_index_covering(self):
        table = DatabaseTable.model_validate({
            "id": "t-users", "name": "users",
            "columns": [{"id": "c-id", "name": "id"}, {"id": "c-email", "name": "email"}],
            "indexes": [{
                "id": "i1", "name": "idx_email_inc", "columns": ["c-email"], "includeColumns": ["c-id"],
            }],
        })

        analysis = analyze_query(select(where_columns=["c-email"], select_columns=["c-id", "c-email"]), table)

        assert analysis.scan_type == ScanType.INDEX_ONLY_SCAN

    def test_partial_prefix_match(self, users_table):
        analysis = analyze_query(select(where_columns=["c-email", "c-name"]), users_table)

        assert analysis.scan_type == ScanType.PARTIAL_INDEX_SCAN
        assert analysis.estimated_cost_ms == pytest.approx(0.1 * math.log2(1000) + 0.1 * 10.0)
        assert QueryWarningType.PARTIAL_INDEX_MATCH in warning_types(analysis)

    def test_non_leading_column_is_not_used(self):
        table = DatabaseTable.model_validate({
            "id": "t-users", "name": "users",
            "columns": [{"id": "c-a", "name": "a"}, {"id": "c-b", "name": "b"}],
            "indexes": [{"id": "i1", "name": "idx_a_b", "columns": ["c-a", "c-b"]}],
        })

        analysis = analyze_query(select(where_columns=["c-b"]), table)

        assert analysis.scan_type == ScanType.SEQ_SCAN

    def test_full_match_preferred_over_partial(self):
        table = DatabaseTable.model_validate({
            "id": "t-users", "name": "users",
            "columns": [{"id": "c-a", "name": "a"}, {"id": "c-b", "name": "b"}],
            "indexes": [
                {"id": "i1", "name": "idx_a", "columns": ["c-a"]},
                {"id": "i2", "name": "idx_a_b", "columns": ["c-a", "c-b"]},
            ],
        })

        analysis = analyze_query(select(where_columns=["c-a", "c-b"]), table)

        assert analysis.scan_type == ScanType.INDEX_SCAN
        assert analysis.used_index == "idx_a_b"

    def test_default_table_size(self):
        table = DatabaseTable(id="t-users", name="users")
        analysis = analyze_query(select(where_columns=["c-x"]), table)
        assert analysis.estimated_rows_scanned == 1000


# =============================================================================
# Writes
# =============================================================================


class TestWrites:
    """Tests for INSERT/UPDATE/DELETE costing."""

    def test_insert_is_no_scan(self, users_table):
        analysis = analyze_query(select(query_type="INSERT"), users_table)

        assert analysis.scan_type == ScanType.NO_SCAN
        assert analysis.estimated_rows_scanned == 0
        # base + one index to maintain
        assert analysis.estimated_cost_ms == pytest.approx(0.1 + 0.05)

    def test_update_pays_index_maintenance(self, users_table):
        analysis = analyze_query(select(query_type="UPDATE", where_columns=["c-email"]), users_table)

        assert analysis.scan_type == ScanType.INDEX_SCAN
        assert analysis.estimated_cost_ms == pytest.approx(0.1 * math.log2(1000) + 0.05)

    def test_unbounded_delete(self, users_table):
        analysis = analyze_query(select(query_type="DELETE"), users_table)

        assert analysis.scan_type == ScanType.SEQ_SCAN
        assert QueryWarningType.UNBOUNDED_WRITE in warning_types(analysis)


# =============================================================================
# Warnings
# =============================================================================


class TestWarnings:
    """Tests for query warnings and suggestions."""

    def test_missing_index_suggestion(self, users_table):
        analysis = analyze_query(select(where_columns=["c-name"], select_columns=["c-id"]), users_table)

        warnings = {w.type: w for w in analysis.warnings}
        assert QueryWarningType.MISSING_INDEX in warnings
        assert warnings[QueryWarningType.MISSING_INDEX].suggestion == (
            "CREATE INDEX idx_users_name ON users(name) INCLUDE (id)"
        )

    def test_large_table_seq_scan(self):
        table = DatabaseTable.model_validate({
            "id": "t-users", "name": "users", "estimatedRows": 200_000,
            "columns": [{"id": "c-name", "name": "name"}],
        })

        analysis = analyze_query(select(where_columns=["c-name"]), table)

        assert warning_types(analysis) == [
            QueryWarningType.SEQ_SCAN_LARGE_TABLE,
            QueryWarningType.MISSING_INDEX,
        ]
        assert analysis.estimated_cost_ms == pytest.approx(2000.0)

    def test_unbounded_result(self, users_table):
        analysis = analyze_query(select(select_columns=["c-id"]), users_table)
        assert warning_types(analysis) == [QueryWarningType.UNBOUNDED_RESULT]

    def test_limit_bounds_result(self, users_table):
        analysis = analyze_query(select(select_columns=["c-id"], limit=10), users_table)

        assert analysis.warnings == []
        assert analysis.estimated_rows_scanned == 10

    def test_unindexed_join(self, users_table):
        analysis = analyze_query(
            select(where_columns=["c-email"], join_columns=["c-name"]), users_table
        )

        warnings = {w.type: w for w in analysis.warnings}
        assert QueryWarningType.UNINDEXED_JOIN in warnings
        assert "users.name" in warnings[QueryWarningType.UNINDEXED_JOIN].message
        assert analysis.estimated_cost_ms == pytest.approx(0.1 * math.log2(1000) + 10.0)

    def test_indexed_join(self, users_table):
        analysis = analyze_query(
            select(where_columns=["c-email"], join_columns=["c-email"]), users_table
        )
        assert QueryWarningType.UNINDEXED_JOIN not in warning_types(analysis)


# =============================================================================
# Per-table and per-node analysis
# =============================================================================


class TestAnalyzeQueriesForTable:
    """Tests for per-table ordering."""

    def test_sorted_by_cost_descending(self, users_table):
        queries = [
            select("cheap", where_columns=["c-email"], select_columns=["c-email"]),
            select("expensive", where_columns=["c-name"]),
            select("middle", where_columns=["c-email"], select_columns=["c-id"]),
        ]

        analyses = analyze_queries_for_table(users_table, queries)

        assert [a.query_id for a in analyses] == ["expensive", "middle", "cheap"]

    def test_other_tables_ignored(self, users_table):
        other = LinkedQuery(id="other", target_table_id="t-orders", where_columns=["c-x"])
        assert analyze_queries_for_table(users_table, [other]) == []

    def test_equal_costs_keep_order(self, users_table):
        queries = [select(f"q{i}", where_columns=["c-email"]) for i in range(4)]

        analyses = analyze_queries_for_table(users_table, queries)

        assert [a.query_id for a in analyses] == ["q0", "q1", "q2", "q3"]


class TestCollectQueries:
    """Tests for gathering queries from a graph."""

    @pytest.fixture
    def graph(self, users_table) -> SystemGraph:
        query = {"id": "q-email", "targetNodeId": "db", "targetTableId": "t-users",
                 "queryType": "SELECT", "whereColumns": ["c-email"]}
        return SystemGraph.model_validate({
            "nodes": [
                node("api", "apiServer", endpoints=[{
                    "id": "ep1", "method": "GET", "path": "/users",
                    "linkedQueries": [
                        query,
                        {**query, "id": "q-other-db", "targetNodeId": "replica"},
                    ],
                }]),
                node("worker", "apiServer"),
                node("db", "postgresql", tables=[users_table.model_dump(by_alias=True)]),
                node("replica", "postgresql"),
            ],
            "edges": [
                edge("e-api-db", "api", "db", connectionType="database", query={
                    **query, "id": "q-scan", "targetNodeId": None, "whereColumns": ["c-name"],
                }),
                edge("e-worker-db", "worker", "db", connectionType="database", query=query),
            ],
        })

    def test_collects_endpoint_and_edge_queries(self, graph):
        index = build_graph_index(graph)

        queries = collect_queries(index, "db")

        assert [q.id for q in queries] == ["q-email", "q-scan"]

    def test_other_database_queries_excluded(self, graph):
        index = build_graph_index(graph)
        assert [q.id for q in collect_queries(index, "replica")] == ["q-other-db"]

    def test_analyze_database_node(self, graph):
        index = build_graph_index(graph)

        analyses = analyze_database_node(index, "db")

        assert [a.query_id for a in analyses] == ["q-scan", "q-email"]
        assert analyses[0].scan_type == ScanType.SEQ_SCAN

    def test_unknown_table_skipped(self, graph):
        index = build_graph_index(graph)
        # replica declares no tables
        assert analyze_database_node(index, "replica") == []
