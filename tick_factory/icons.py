"""Icon unlock pool - a seeded deck of icon resources drawn per tier."""
from __future__ import annotations

import os
from typing import Any, Sequence

import structlog

from tick_factory.rng import SeededRandom, shuffle
from tick_factory.types import IconData

logger = structlog.get_logger(__name__)

DEFAULT_ICON_NAMES: tuple[str, ...] = (
    "Anchor", "Aperture", "Archive", "Atom", "Award", "Axe", "Battery",
    "Beaker", "Bell", "Bike", "Binary", "Bird", "Bolt", "Bomb", "Bone",
    "Book", "Box", "Brain", "Briefcase", "Brush", "Bug", "Building",
    "Cake", "Calculator", "Camera", "Candy", "Car", "Carrot", "Castle",
    "Cat", "Cherry", "Circle", "Citrus", "Clock", "Cloud", "Clover",
    "Code", "Coffee", "Cog", "Coins", "Compass", "Cookie", "Cpu", "Crown",
    "Cylinder", "Database", "Diamond", "Dice", "Dna", "Dog", "Droplet",
    "Drum", "Egg", "Eye", "Factory", "Feather", "Fish", "Flag", "Flame",
    "Flask", "Flower", "Gem", "Ghost", "Gift", "Globe", "Grape", "Hammer",
    "Heart", "Hexagon", "Hourglass", "Key", "Lamp", "Leaf", "Lightbulb",
    "Lock", "Magnet", "Map", "Medal", "Microscope", "Moon", "Mountain",
    "Music", "Nut", "Orbit", "Package", "Palette", "Pencil", "Pickaxe",
    "Pizza", "Plane", "Plug", "Puzzle", "Radio", "Rocket", "Ruler",
    "Satellite", "Scissors", "Shell", "Shield", "Ship", "Shovel", "Skull",
    "Snowflake", "Sparkles", "Sprout", "Square", "Star", "Sun", "Sword",
    "Target", "Tent", "Trophy", "Truck", "Umbrella", "Wand", "Waves",
    "Wheat", "Wind", "Wrench", "Zap",
)


class IconPool:
    """Shuffled deck of unlockable icons.

    The deck order is fully determined by the construction seed and the
    sequence of ``reshuffle_pool`` calls, which is what ``snapshot`` records.
    """

    def __init__(
        self,
        seed: int | None = None,
        catalog: Sequence[str] = DEFAULT_ICON_NAMES,
    ) -> None:
        if seed is None:
            seed = int.from_bytes(os.urandom(4))
        self._catalog = tuple(dict.fromkeys(catalog))
        self._random = SeededRandom(seed)
        self._deck_seed = seed
        self._reshuffles: list[tuple[int, int]] = []
        self._all: list[IconData] = []
        self._pool: list[IconData] = []
        self._unlocked: list[IconData] = []
        self._initialize()

    def _initialize(self) -> None:
        self._all = [IconData(name) for name in self._catalog]
        self._pool = shuffle(self._all, self._random)
        self._unlocked = []

    @property
    def seed(self) -> int:
        return self._random.seed

    @property
    def total_count(self) -> int:
        return len(self._all)

    @property
    def unlocked_count(self) -> int:
        return len(self._unlocked)

    @property
    def remaining_count(self) -> int:
        return len(self._pool)

    def unlock_next(self, tier: int) -> IconData | None:
        """Pop the head of the deck. None once the deck is exhausted."""
        if not self._pool:
            return None
        icon = self._pool.pop(0)
        icon.tier = tier
        icon.unlocked = True
        self._unlocked.append(icon)
        return icon

    def unlocked_icons(self) -> list[IconData]:
        return list(self._unlocked)

    def icons_for_tier(self, tier: int) -> list[IconData]:
        return [icon for icon in self._unlocked if icon.tier == tier]

    def is_unlocked(self, name: str) -> bool:
        return any(icon.name == name for icon in self._unlocked)

    def remaining(self) -> list[str]:
        """Names still in the deck, in draw order."""
        return [icon.name for icon in self._pool]

    def reshuffle_pool(self, seed: int | None = None) -> None:
        """Shuffle the not-yet-unlocked remainder. Unlocked icons are untouched."""
        if seed is not None:
            self._random.reset(seed)
        self._reshuffles.append((self._random.seed, len(self._unlocked)))
        self._pool = shuffle(self._pool, self._random)

    # --- Snapshot / restore ---

    def snapshot(self) -> dict[str, Any]:
        return {
            "unlocked": [{"name": icon.name, "tier": icon.tier} for icon in self._unlocked],
            "seed": self._deck_seed,
            "state": self._random.seed,
            "reshuffles": [[state, drawn] for state, drawn in self._reshuffles],
        }

    def restore(self, data: dict[str, Any]) -> None:
        """Re-derive the deck from the stored seed, then replay the history."""
        saved = data.get("unlocked", [])
        self._deck_seed = data["seed"]
        self._random.reset(self._deck_seed)
        self._initialize()
        self._reshuffles = []

        deck = self._pool
        drawn = 0
        for state, at_count in data.get("reshuffles", []):
            deck = deck[at_count - drawn:]
            drawn = at_count
            self._random.reset(state)
            self._reshuffles.append((state, at_count))
            deck = shuffle(deck, self._random)

        by_name = {icon.name: icon for icon in self._all}
        unlocked_names: set[str] = set()
        for entry in saved:
            icon = by_name.get(entry["name"])
            if icon is None:
                logger.warning("unknown_icon", icon=entry["name"])
                continue
            icon.tier = entry["tier"]
            icon.unlocked = True
            self._unlocked.append(icon)
            unlocked_names.add(icon.name)

        self._pool = [icon for icon in deck if icon.name not in unlocked_names]
        self._random.reset(data.get("state", self._deck_seed))
