"""Tier progression rules."""
from __future__ import annotations

from typing import Any

from tick_factory.base58 import base58_chars_for_tier
from tick_factory.config import GameConfig, TierDef
from tick_factory.types import TierCheck


class TierRules:
    """Pure gating and lookup over the configured tier table."""

    def __init__(self, config: GameConfig | None = None) -> None:
        self.config: GameConfig = config if config is not None else GameConfig()
        self._tiers: dict[int, TierDef] = {t.tier: t for t in self.config.tiers}

    def can_advance_tier(
        self,
        current_tier: int,
        level: int,
        discovered: int,
        total: int,
    ) -> TierCheck:
        """Check level and discovery requirements for leaving ``current_tier``.

        Needs ``level >= current_tier * 2`` and at least the configured share
        of recipes discovered. An empty catalog counts as fully discovered.
        """
        if current_tier >= self.config.max_tier:
            return TierCheck(False, "Maximum tier reached")

        required_level = current_tier * 2
        if level < required_level:
            return TierCheck(
                False, f"Level {required_level} required (current: {level})"
            )

        required = self.config.required_discovery_percent
        # Integer cross-multiplication keeps the boundary exact.
        if total > 0 and discovered * 100 < required * total:
            percentage = discovered / total * 100
            return TierCheck(
                False,
                f"Need {required}% recipes discovered (current: {percentage:.1f}%)",
            )

        return TierCheck(True)

    def tier_config(self, tier: int) -> TierDef:
        config = self._tiers.get(tier)
        if config is None:
            raise ValueError(f"Invalid tier: {tier}")
        return config

    def all_tier_configs(self) -> list[TierDef]:
        return [self._tiers[t] for t in sorted(self._tiers)]

    def resources_for_tier(self, tier: int) -> tuple[list[str], int]:
        """Characters available at ``tier`` and the number of icons it adds."""
        config = self.tier_config(tier)
        return base58_chars_for_tier(config.characters), config.icons

    def next_tier_requirements(self, current_tier: int) -> dict[str, Any] | None:
        if current_tier >= self.config.max_tier:
            return None
        next_tier = current_tier + 1
        config = self.tier_config(next_tier)
        return {
            "next_tier": next_tier,
            "required_level": current_tier * 2,
            "required_recipe_percentage": self.config.required_discovery_percent,
            "grid_size": config.grid_size,
            "new_characters": config.characters,
            "new_icons": config.icons,
        }
