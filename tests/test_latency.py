"""Tests for instance scaling and latency composition."""

import math

import pytest

from sdcanvas.simulation.latency import (
    UTILIZATION_CEILING,
    calculate_edge_latency,
    calculate_latency,
    calculate_p99_latency,
    calculate_path_latency,
    compute_node_load,
    get_instance_count,
)
from sdcanvas.types import APIServerNode, NodeResources, ScalingConfig, SystemEdge, UserNode


def api_node(**data) -> APIServerNode:
    return APIServerNode.model_validate({"id": "api", "data": data})


class TestGetInstanceCount:
    """Tests for scaling policies."""

    def test_single(self):
        assert get_instance_count(None, ScalingConfig(), 50_000, 1000) == 1

    def test_fixed(self):
        scaling = ScalingConfig(type="fixed", instances=4)
        assert get_instance_count(None, scaling, 0, 1000) == 4

    def test_auto_targets_utilization(self):
        # 5000 rps / (1000 * 0.7) = 7.14 -> 8
        scaling = ScalingConfig(type="auto", min_instances=1, max_instances=20)
        assert get_instance_count(None, scaling, 5000, 1000) == 8

    def test_auto_clamped_to_max(self):
        scaling = ScalingConfig(type="auto", min_instances=1, max_instances=5)
        assert get_instance_count(None, scaling, 50_000, 1000) == 5

    def test_auto_clamped_to_min(self):
        scaling = ScalingConfig(type="auto", min_instances=3, max_instances=5)
        assert get_instance_count(None, scaling, 10, 1000) == 3
        assert get_instance_count(None, scaling, 0, 1000) == 3

    def test_auto_capacity_from_resources(self):
        scaling = ScalingConfig(type="auto", max_instances=50, target_utilization=1.0)
        resources = NodeResources(cpu_cores=1, rps_per_core=100)
        assert get_instance_count(resources, scaling, 1000) == 10


class TestNodeLatency:
    """Tests for load-dependent node latency."""

    def test_unloaded_latency_is_base(self):
        assert calculate_latency(api_node(), 0) == pytest.approx(20)

    def test_half_utilization_doubles_latency(self):
        assert calculate_latency(api_node(), 500) == pytest.approx(40)

    def test_latency_grows_with_load(self):
        latencies = [calculate_latency(api_node(), rps) for rps in (0, 200, 400, 600, 800)]
        assert all(a < b for a, b in zip(latencies, latencies[1:]))

    def test_overload_is_capped_and_saturated(self):
        load = compute_node_load(api_node(), 2000)

        cap = 20 * (1 + UTILIZATION_CEILING / (1 - UTILIZATION_CEILING))
        assert load.utilization == pytest.approx(2.0)
        assert load.saturated is True
        assert load.drop_fraction == pytest.approx(0.5)
        assert load.mean_latency_ms == pytest.approx(cap)
        assert math.isfinite(load.mean_latency_ms)

    def test_at_capacity_is_saturated_without_drops(self):
        load = compute_node_load(api_node(), 1000)
        assert load.saturated is True
        assert load.drop_fraction == 0.0

    def test_fixed_instances_add_capacity(self):
        load = compute_node_load(api_node(scaling={"type": "fixed", "instances": 4}), 2000)

        assert load.instances == 4
        assert load.capacity_rps == 4000
        assert load.utilization == pytest.approx(0.5)
        assert load.saturated is False

    def test_extra_latency_added_to_base(self):
        load = compute_node_load(api_node(), 0, extra_latency_ms=5)
        assert load.mean_latency_ms == pytest.approx(25)

    def test_user_nodes_have_no_latency(self):
        load = compute_node_load(UserNode(id="u"), 1_000_000)

        assert load.mean_latency_ms == 0
        assert load.utilization == 0
        assert math.isinf(load.capacity_rps)


class TestP99Latency:
    """Tests for tail latency."""

    def test_formula(self):
        # 10 * 3 * (1 + 0.25)
        assert calculate_p99_latency(10, 0.5, 3) == pytest.approx(37.5)

    def test_default_multiplier(self):
        assert calculate_p99_latency(10, 0) == pytest.approx(30)

    @pytest.mark.parametrize("mean,utilization,multiplier", [
        (10, 0, 0.5),
        (10, 0.9, 1),
        (0, 0.5, 5),
        (20, 3.0, 10),
    ])
    def test_never_below_mean(self, mean, utilization, multiplier):
        assert calculate_p99_latency(mean, utilization, multiplier) >= mean

    def test_node_load_p99_uses_kind_multiplier(self):
        load = compute_node_load(api_node(), 0)
        assert load.p99_latency_ms == pytest.approx(20 * 5)


class TestEdgeAndPathLatency:
    """Tests for edge and path composition."""

    def test_edge_adds_transport(self):
        cache_edge = SystemEdge.model_validate({
            "id": "e", "source": "a", "target": "b", "data": {"connectionType": "cache"},
        })
        assert calculate_edge_latency(cache_edge, 1.0) == pytest.approx(1.2)

    def test_path_is_sum_of_edges(self):
        assert calculate_path_latency([1.5, 2.5, 21.0]) == pytest.approx(25.0)

    def test_empty_path(self):
        assert calculate_path_latency([]) == 0
