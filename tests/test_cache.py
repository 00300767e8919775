"""
Tests for the cache hit-rate model.

Covers the TTL/cardinality/rps estimate, cache-through latency,
effectiveness classification and per-node aggregation.
"""

import pytest

from sdcanvas.simulation.cache import (
    analyze_cache_key,
    analyze_cache_node,
    calculate_cache_through_latency,
    estimate_cache_hit_rate,
    get_cache_effectiveness,
    get_cache_suggestions,
)
from sdcanvas.simulation.types import CacheEffectiveness
from sdcanvas.types import CDNCacheRule, RedisKey


# =============================================================================
# estimate_cache_hit_rate
# =============================================================================


class TestEstimateCacheHitRate:
    """Tests for the steady-state hit-rate estimate."""

    def test_reused_keys_hit(self):
        """60s TTL, 10 keys at 10 rps: each key is read 60 times per TTL."""
        assert estimate_cache_hit_rate(60, 10, 10) == pytest.approx(59 / 60)

    def test_keys_expire_before_reuse(self):
        """1000 keys at 1 rps revisit a key every 1000s, longer than a 10s TTL."""
        assert estimate_cache_hit_rate(10, 1000, 1) == 0.0

    def test_boundary_is_a_miss(self):
        """Reuse interval exactly equal to TTL counts as always-miss."""
        assert estimate_cache_hit_rate(10, 10, 1) == 0.0

    @pytest.mark.parametrize("ttl,cardinality,rps", [
        (0, 10, 10),
        (60, 0, 10),
        (60, 10, 0),
        (-5, 10, 10),
    ])
    def test_non_positive_inputs_give_zero(self, ttl, cardinality, rps):
        assert estimate_cache_hit_rate(ttl, cardinality, rps) == 0.0

    @pytest.mark.parametrize("ttl,cardinality,rps", [
        (1, 1, 1_000_000),
        (3600, 5, 0.01),
        (0.5, 100_000, 250_000),
        (86400, 1, 1),
    ])
    def test_result_in_unit_interval(self, ttl, cardinality, rps):
        hit_rate = estimate_cache_hit_rate(ttl, cardinality, rps)
        assert 0.0 <= hit_rate <= 1.0


# =============================================================================
# analyze_cache_key
# =============================================================================


class TestAnalyzeCacheKey:
    """Tests for single-pattern analysis."""

    def test_redis_key(self):
        key = RedisKey(id="k1", pattern="session:{id}", ttl=60, estimated_cardinality=10)

        analysis = analyze_cache_key(key, 10)

        assert analysis.key_pattern == "session:{id}"
        assert analysis.estimated_hit_rate == pytest.approx(59 / 60)
        assert analysis.effective_db_rps == pytest.approx(10 / 60)

    def test_cdn_rule(self):
        rule = CDNCacheRule(id="r1", pattern="/static/*", ttl=3600, estimated_cardinality=100)

        analysis = analyze_cache_key(rule, 100)

        assert analysis.estimated_hit_rate > 0.99

    def test_missing_ttl_never_caches(self):
        key = RedisKey(id="k1", pattern="x", estimated_cardinality=10)

        analysis = analyze_cache_key(key, 100)

        assert analysis.ttl_seconds == 0
        assert analysis.estimated_hit_rate == 0.0
        assert analysis.effective_db_rps == pytest.approx(100)

    def test_missing_cardinality_defaults_to_one(self):
        key = RedisKey(id="k1", pattern="config", ttl=60)

        analysis = analyze_cache_key(key, 1)

        assert analysis.cardinality == 1
        assert analysis.estimated_hit_rate == pytest.approx(59 / 60)


# =============================================================================
# Cache-through latency and effectiveness
# =============================================================================


class TestCacheThroughLatency:
    """Tests for expected latency of a cache-through read."""

    def test_all_misses(self):
        assert calculate_cache_through_latency(0, 5, 20) == pytest.approx(25)

    def test_all_hits(self):
        assert calculate_cache_through_latency(1, 5, 20) == pytest.approx(5)

    def test_decreases_with_hit_rate(self):
        latencies = [calculate_cache_through_latency(h / 10, 5, 20) for h in range(11)]
        assert all(a > b for a, b in zip(latencies, latencies[1:]))


class TestCacheEffectiveness:
    """Tests for hit-rate classification boundaries."""

    @pytest.mark.parametrize("hit_rate,expected", [
        (0.95, CacheEffectiveness.HOT),
        (0.9499, CacheEffectiveness.WARM),
        (0.5, CacheEffectiveness.WARM),
        (0.4999, CacheEffectiveness.COLD),
        (0.1, CacheEffectiveness.COLD),
        (0.0999, CacheEffectiveness.INEFFECTIVE),
        (0.0, CacheEffectiveness.INEFFECTIVE),
    ])
    def test_boundaries(self, hit_rate, expected):
        assert get_cache_effectiveness(hit_rate) == expected


class TestCacheSuggestions:
    """Tests for advisory suggestions."""

    def test_hot_cache_has_none(self):
        key = RedisKey(id="k1", pattern="x", ttl=60, estimated_cardinality=10)
        assert get_cache_suggestions(analyze_cache_key(key, 10)) == []

    def test_ineffective_short_ttl_high_cardinality(self):
        key = RedisKey(id="k1", pattern="x", ttl=10, estimated_cardinality=500_000)

        suggestions = get_cache_suggestions(analyze_cache_key(key, 1))

        assert len(suggestions) == 3
        assert "increasing TTL from 10s" in suggestions[0]
        assert "500,000 keys" in suggestions[1]
        assert "ineffective" in suggestions[2]

    def test_cold_cache(self):
        # 20 keys at 4 rps: each key read every 5s, 1.2 reads per 6s TTL -> ~17% hits
        key = RedisKey(id="k1", pattern="x", ttl=6, estimated_cardinality=20)

        analysis = analyze_cache_key(key, 4)
        suggestions = get_cache_suggestions(analysis)

        assert get_cache_effectiveness(analysis.estimated_hit_rate) == CacheEffectiveness.COLD
        assert len(suggestions) == 1
        assert "cold" in suggestions[0]

    def test_analysis_carries_suggestions(self):
        key = RedisKey(id="k1", pattern="x", ttl=6, estimated_cardinality=20)

        analysis = analyze_cache_key(key, 4)

        assert analysis.suggestions == get_cache_suggestions(analysis)
        assert len(analysis.suggestions) == 1

    def test_idle_key_has_no_suggestions(self):
        key = RedisKey(id="k1", pattern="x", ttl=6, estimated_cardinality=20)
        assert analyze_cache_key(key, 0).suggestions == []


# =============================================================================
# analyze_cache_node
# =============================================================================


class TestAnalyzeCacheNode:
    """Tests for aggregating patterns on one cache node."""

    def test_rate_split_evenly_across_patterns(self):
        keys = [
            RedisKey(id="k1", pattern="a", ttl=60, estimated_cardinality=10),
            RedisKey(id="k2", pattern="b", ttl=60, estimated_cardinality=10),
        ]

        result = analyze_cache_node(keys, 20)

        assert [a.requests_per_second for a in result.analyses] == [10, 10]
        assert result.hit_rate == pytest.approx(59 / 60)
        assert result.effective_rps == pytest.approx(20 / 60)

    def test_no_patterns_forwards_everything(self):
        result = analyze_cache_node([], 100)

        assert result.analyses == []
        assert result.hit_rate == 0.0
        assert result.effective_rps == 100

    def test_no_traffic(self):
        keys = [RedisKey(id="k1", pattern="a", ttl=60, estimated_cardinality=10)]

        result = analyze_cache_node(keys, 0)

        assert result.hit_rate == 0.0
        assert result.effective_rps == 0.0
        assert len(result.analyses) == 1
