"""
Run configuration and environment settings.

This module provides:
- LatencyJitter: Seeded jitter applied to timeline latencies
- SimulationConfig: Run-wide parameters, immutable for one run
- Settings: Environment-based defaults for the CLI

Example:
    ```python
    config = SimulationConfig(
        requests_per_second=1000,
        duration_seconds=120,
        entry_rates={"mobile-clients": 250},
    )
    ```
"""

import math

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings

MAX_TICKS = 10_000
"""Upper bound on timeline snapshots per run."""


class LatencyJitter(BaseModel):
    """
    Global latency jitter model.

    Each timeline snapshot scales a node's latency by a factor drawn
    uniformly from ``[1 - ratio, 1 + ratio]``. Draws come from
    ``random.Random(seed)`` so identical configs give identical timelines.

    Attributes:
        ratio: Jitter amplitude as a fraction of latency (0 disables jitter).
        seed: Seed for the jitter generator.
    """

    model_config = ConfigDict(frozen=True)

    ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    seed: int = 0


class SimulationConfig(BaseModel):
    """
    Run-wide simulation parameters.

    Attributes:
        duration_seconds: Simulated time covered by the timeline.
        tick_seconds: Timeline granularity; one snapshot per tick.
        requests_per_second: Total traffic split evenly across entry points
            that have no explicit rate.
        entry_points: Explicit entry node ids. None means every user node.
        entry_rates: Per-entry rate overrides (node id -> rps).
        ramp_up_seconds: Linear ramp from zero to full traffic at the start
            of the timeline. Final metrics always use full traffic.
        jitter: Latency jitter applied to timeline snapshots.
    """

    model_config = ConfigDict(frozen=True)

    duration_seconds: float = Field(default=60.0, gt=0)
    tick_seconds: float = Field(default=1.0, gt=0)
    requests_per_second: float = Field(default=100.0, ge=0)
    entry_points: list[str] | None = None
    entry_rates: dict[str, float] = Field(default_factory=dict)
    ramp_up_seconds: float = Field(default=0.0, ge=0)
    jitter: LatencyJitter = Field(default_factory=LatencyJitter)

    @model_validator(mode="after")
    def _check_ticks(self) -> "SimulationConfig":
        if self.tick_count > MAX_TICKS:
            raise ValueError(
                f"duration_seconds / tick_seconds gives {self.tick_count} ticks "
                f"(max {MAX_TICKS})"
            )
        for node_id, rate in self.entry_rates.items():
            if rate < 0:
                raise ValueError(f"entry rate for {node_id} must be >= 0, got {rate}")
        return self

    @property
    def tick_count(self) -> int:
        """Number of timeline snapshots for this run."""
        return max(1, math.ceil(self.duration_seconds / self.tick_seconds))


class Settings(BaseSettings):
    """Simulator defaults.

    All settings can be overridden via environment variables with the
    SDCANVAS_ prefix. For example:
        SDCANVAS_DEFAULT_RPS=1000
        SDCANVAS_LOG_LEVEL=DEBUG
    """

    # Traffic defaults
    default_rps: float = 100.0
    default_duration_seconds: float = 60.0
    default_tick_seconds: float = 1.0

    # Logging
    log_level: str = "WARNING"

    model_config = {"env_prefix": "SDCANVAS_"}


settings = Settings()
