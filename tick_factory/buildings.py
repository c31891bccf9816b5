"""Building variants.

The set is closed: Generator, Conveyor, Merger and Output. Each variant is
its own dataclass carrying only the fields it needs, and consumers dispatch
on the concrete class.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union

from tick_factory.config import DIRECTION_VECTORS, ROTATION_ORDER
from tick_factory.types import Recipe


@dataclass
class Generator:
    """Emits one packet of its recipe output every generation period."""

    type_name: ClassVar[str] = "Generator"

    id: str
    x: int
    y: int
    direction: str = "right"
    tier: int = 1
    recipe: Recipe | None = None


@dataclass
class Conveyor:
    """Pushes the packet on its own cell one step forward every move period."""

    type_name: ClassVar[str] = "Conveyor"

    id: str
    x: int
    y: int
    direction: str = "right"
    tier: int = 1


@dataclass
class Merger:
    """Consumes adjacent recipe inputs and emits the recipe output."""

    type_name: ClassVar[str] = "Merger"

    id: str
    x: int
    y: int
    direction: str = "right"
    tier: int = 1
    recipe: Recipe | None = None


@dataclass
class Output:
    """Collects every adjacent packet into the ledger, every tick."""

    type_name: ClassVar[str] = "Output"

    id: str
    x: int
    y: int
    direction: str = "right"
    tier: int = 1


Building = Union[Generator, Conveyor, Merger, Output]

BUILDING_CLASSES: dict[str, type] = {
    cls.type_name: cls for cls in (Generator, Conveyor, Merger, Output)
}

# Variants that carry a recipe field.
RECIPE_BUILDINGS: tuple[type, ...] = (Generator, Merger)


def next_direction(direction: str) -> str:
    """Clockwise successor: up -> right -> down -> left -> up."""
    if direction not in DIRECTION_VECTORS:
        raise ValueError(f"Unknown direction {direction!r}")
    index = ROTATION_ORDER.index(direction)
    return ROTATION_ORDER[(index + 1) % len(ROTATION_ORDER)]


def make_building(
    type_name: str,
    building_id: str,
    x: int,
    y: int,
    direction: str = "right",
    tier: int = 1,
    recipe: Recipe | None = None,
) -> Building:
    """Build a variant by its type tag.

    Raises ValueError for an unknown type, an unknown direction, or a recipe
    passed to a variant that has no recipe slot.
    """
    cls = BUILDING_CLASSES.get(type_name)
    if cls is None:
        raise ValueError(f"Unknown building type {type_name!r}")
    if direction not in DIRECTION_VECTORS:
        raise ValueError(f"Unknown direction {direction!r}")
    if cls in RECIPE_BUILDINGS:
        return cls(id=building_id, x=x, y=y, direction=direction, tier=tier, recipe=recipe)
    if recipe is not None:
        raise ValueError(f"{type_name} does not take a recipe")
    return cls(id=building_id, x=x, y=y, direction=direction, tier=tier)
