"""Game configuration dataclasses and fixed tables."""
from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction

BASE58_CHARS = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

# Adjacency scan order. Every neighbour scan in the flow engine uses it.
DIRECTIONS: tuple[str, ...] = ("up", "down", "left", "right")

DIRECTION_VECTORS: dict[str, tuple[int, int]] = {
    "up": (0, -1),
    "down": (0, 1),
    "left": (-1, 0),
    "right": (1, 0),
}

# Clockwise rotation cycle.
ROTATION_ORDER: tuple[str, ...] = ("up", "right", "down", "left")


@dataclass(frozen=True)
class TierDef:
    """Immutable tier row.

    Attributes:
        tier: Tier number (>= 1).
        grid_size: Side length of the square grid at this tier.
        characters: Number of base58 characters available (cumulative).
        icons: Number of new icons drawn from the pool on reaching the tier.
    """

    tier: int
    grid_size: int
    characters: int
    icons: int

    def __post_init__(self) -> None:
        if self.tier < 1:
            raise ValueError(f"tier must be >= 1, got {self.tier}")
        if self.grid_size < 1:
            raise ValueError(f"grid_size must be >= 1, got {self.grid_size}")


TIER_TABLE: tuple[TierDef, ...] = (
    TierDef(tier=1, grid_size=5, characters=1, icons=1),
    TierDef(tier=2, grid_size=7, characters=2, icons=2),
    TierDef(tier=3, grid_size=10, characters=3, icons=3),
    TierDef(tier=4, grid_size=12, characters=4, icons=4),
    TierDef(tier=5, grid_size=15, characters=5, icons=5),
    TierDef(tier=6, grid_size=15, characters=6, icons=6),
    TierDef(tier=7, grid_size=18, characters=7, icons=7),
    TierDef(tier=8, grid_size=18, characters=8, icons=8),
    TierDef(tier=9, grid_size=20, characters=9, icons=9),
    TierDef(tier=10, grid_size=20, characters=10, icons=10),
)


@dataclass(frozen=True)
class BuildingTimings:
    """Tick periods for the counter-gated building types.

    Attributes:
        ticks_per_generation: Generator period.
        ticks_per_move: Conveyor period.
        ticks_per_merge: Merger period.
    """

    ticks_per_generation: int = 10
    ticks_per_move: int = 5
    ticks_per_merge: int = 15

    def __post_init__(self) -> None:
        for name in ("ticks_per_generation", "ticks_per_move", "ticks_per_merge"):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be >= 1, got {value}")


@dataclass(frozen=True)
class GameConfig:
    """Immutable configuration for a game instance.

    Attributes:
        tick_rate: Ticks per second for the fixed-rate scheduler.
        initial_grid_size: Grid side length at tier 1.
        max_tier: Highest reachable tier.
        base_experience: Experience needed to leave level 1.
        experience_multiplier: Growth factor of the level requirement.
        required_discovery_percent: Share of recipes that must be discovered
            before the next tier opens.
        starting_count: Units of the first character granted at tier 1.
        timings: Building periods.
        tiers: Tier table, indexed by ``TierDef.tier``.
    """

    tick_rate: int = 10
    initial_grid_size: int = 5
    max_tier: int = 10
    base_experience: int = 100
    experience_multiplier: Fraction = Fraction(3, 2)
    required_discovery_percent: int = 50
    starting_count: int = 10
    timings: BuildingTimings = field(default_factory=BuildingTimings)
    tiers: tuple[TierDef, ...] = TIER_TABLE

    def __post_init__(self) -> None:
        if self.tick_rate <= 0:
            raise ValueError("tick_rate must be positive")
        if self.max_tier < 1:
            raise ValueError(f"max_tier must be >= 1, got {self.max_tier}")
        if self.base_experience < 1:
            raise ValueError(
                f"base_experience must be >= 1, got {self.base_experience}"
            )
        if self.experience_multiplier < 1:
            raise ValueError("experience_multiplier must be >= 1")
        if not 0 <= self.required_discovery_percent <= 100:
            raise ValueError("required_discovery_percent must be within [0, 100]")
