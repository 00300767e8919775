"""
Cache behavior modeling.

Models cache-through patterns: a cache sits in front of a slower backing
store and misses fall through to it. Hit rates are estimated from TTL, key
cardinality and request rate:

- Average time between requests for the same key = cardinality / rps
- If that time >= TTL the key expires before reuse (always miss)
- Otherwise the first request per key per TTL window misses and the rest hit:
  hit rate = (requests_per_key_per_ttl - 1) / requests_per_key_per_ttl
"""

from dataclasses import dataclass
from typing import Sequence

from sdcanvas.simulation.types import CacheAnalysis, CacheEffectiveness
from sdcanvas.types import CDNCacheRule, RedisKey

# Effectiveness thresholds (hit rate lower bounds)
HOT_THRESHOLD = 0.95
WARM_THRESHOLD = 0.50
COLD_THRESHOLD = 0.10

# Advisory thresholds for suggestions
SHORT_TTL_SECONDS = 60
HIGH_CARDINALITY = 100_000


def estimate_cache_hit_rate(ttl_seconds: float, cardinality: float, rps: float) -> float:
    """
    Estimate the steady-state hit rate of one key pattern.

    Args:
        ttl_seconds: Key time-to-live
        cardinality: Distinct keys the pattern may hold
        rps: Requests per second against the pattern

    Returns:
        Hit rate in [0, 1]. 0 when any input is <= 0.
    """
    if ttl_seconds <= 0 or cardinality <= 0 or rps <= 0:
        return 0.0

    avg_time_between_requests = cardinality / rps
    if avg_time_between_requests >= ttl_seconds:
        return 0.0

    requests_per_key_per_ttl = ttl_seconds / avg_time_between_requests
    hit_rate = (requests_per_key_per_ttl - 1) / requests_per_key_per_ttl

    return max(0.0, min(1.0, hit_rate))


def analyze_cache_key(key: RedisKey | CDNCacheRule, rps: float) -> CacheAnalysis:
    """
    Analyze one cache key pattern (a Redis key or a CDN cache rule).

    Missing TTL counts as 0 (never cached); missing cardinality as 1. Keys
    that see traffic carry advisory suggestions; idle keys carry none.
    """
    ttl_seconds = key.ttl or 0.0
    cardinality = key.estimated_cardinality or 1

    hit_rate = estimate_cache_hit_rate(ttl_seconds, cardinality, rps)

    analysis = CacheAnalysis(
        key_pattern=key.pattern,
        ttl_seconds=ttl_seconds,
        cardinality=cardinality,
        requests_per_second=rps,
        estimated_hit_rate=hit_rate,
        effective_db_rps=rps * (1 - hit_rate),
    )
    if rps <= 0:
        return analysis
    return analysis.model_copy(update={"suggestions": get_cache_suggestions(analysis)})


def calculate_cache_through_latency(
    hit_rate: float, cache_latency_ms: float, db_latency_ms: float
) -> float:
    """
    Expected latency of a cache-through read.

    Every request pays the cache latency; only misses also pay the backing
    store latency.
    """
    hit_latency = cache_latency_ms
    miss_latency = cache_latency_ms + db_latency_ms
    return hit_rate * hit_latency + (1 - hit_rate) * miss_latency


def get_cache_effectiveness(hit_rate: float) -> CacheEffectiveness:
    """Classify a hit rate as hot, warm, cold or ineffective."""
    if hit_rate >= HOT_THRESHOLD:
        return CacheEffectiveness.HOT
    if hit_rate >= WARM_THRESHOLD:
        return CacheEffectiveness.WARM
    if hit_rate >= COLD_THRESHOLD:
        return CacheEffectiveness.COLD
    return CacheEffectiveness.INEFFECTIVE


def get_cache_suggestions(analysis: CacheAnalysis) -> list[str]:
    """Human-readable advice for a cache analysis. Advisory only."""
    suggestions: list[str] = []
    effectiveness = get_cache_effectiveness(analysis.estimated_hit_rate)
    hit_percent = analysis.estimated_hit_rate * 100

    if effectiveness == CacheEffectiveness.INEFFECTIVE:
        if analysis.ttl_seconds < SHORT_TTL_SECONDS:
            suggestions.append(
                f"Consider increasing TTL from {analysis.ttl_seconds:g}s - current TTL "
                f"is too short for the request pattern"
            )
        if analysis.cardinality > HIGH_CARDINALITY:
            suggestions.append(
                f"High cardinality ({analysis.cardinality:,} keys) with low RPS leads "
                f"to poor cache efficiency"
            )
        suggestions.append(
            f"Cache is ineffective ({hit_percent:.1f}% hit rate) - backing store sees "
            f"{analysis.effective_db_rps:.0f} RPS"
        )
    elif effectiveness == CacheEffectiveness.COLD:
        suggestions.append(
            f"Cache is cold ({hit_percent:.1f}% hit rate) - consider increasing TTL "
            f"or reducing cardinality"
        )

    return suggestions


@dataclass(frozen=True)
class CacheNodeAnalysis:
    """Aggregate cache behavior for a cache node."""

    analyses: list[CacheAnalysis]
    hit_rate: float
    effective_rps: float


def analyze_cache_node(
    patterns: Sequence[RedisKey | CDNCacheRule], rps: float
) -> CacheNodeAnalysis:
    """
    Analyze every key pattern on a cache node.

    The node's incoming rate is split evenly across its patterns. A node
    without patterns caches nothing and forwards its full rate.

    Args:
        patterns: Redis keys or CDN cache rules declared on the node
        rps: Incoming rate at the node

    Returns:
        Per-pattern analyses plus the node's aggregate hit rate.
    """
    if not patterns or rps <= 0:
        analyses = [analyze_cache_key(p, 0.0) for p in patterns]
        return CacheNodeAnalysis(analyses=analyses, hit_rate=0.0, effective_rps=max(rps, 0.0))

    per_pattern_rps = rps / len(patterns)
    analyses = [analyze_cache_key(p, per_pattern_rps) for p in patterns]
    effective_rps = sum(a.effective_db_rps for a in analyses)
    hit_rate = max(0.0, min(1.0, 1 - effective_rps / rps))

    return CacheNodeAnalysis(analyses=analyses, hit_rate=hit_rate, effective_rps=effective_rps)
