"""Grid - 2D cell array holding buildings and transient packets."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

import structlog

from tick_factory.buildings import (
    RECIPE_BUILDINGS,
    Building,
    make_building,
    next_direction,
)
from tick_factory.catalog import decode_recipe, encode_recipe
from tick_factory.types import (
    OutOfBoundsError,
    Packet,
    Recipe,
    ResourceIdentity,
    SnapshotError,
)

logger = structlog.get_logger(__name__)

RecipeResolver = Callable[[str], "Recipe | None"]


@dataclass
class Cell:
    """One grid square. The building and the packet are independent slots."""

    x: int
    y: int
    building: Building | None = None
    resource: Packet | None = None


class Grid:
    def __init__(self, width: int, height: int | None = None) -> None:
        self._width = 0
        self._height = 0
        self._cells: list[list[Cell]] = []
        self.initialize_grid(width, height)

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def size(self) -> tuple[int, int]:
        return (self._width, self._height)

    def is_valid_position(self, x: int, y: int) -> bool:
        return 0 <= x < self._width and 0 <= y < self._height

    def initialize_grid(self, width: int, height: int | None = None) -> None:
        """Replace the cell array, keeping the overlapping origin rectangle.

        Cells (and their buildings and packets) outside the new bounds are
        dropped without notification.
        """
        if height is None:
            height = width
        if width < 1 or height < 1:
            raise ValueError(f"Grid dimensions must be positive, got {width}x{height}")
        old_cells = self._cells
        old_width, old_height = self._width, self._height
        cells = [[Cell(x, y) for x in range(width)] for y in range(height)]
        for y in range(min(old_height, height)):
            for x in range(min(old_width, width)):
                cells[y][x] = old_cells[y][x]
        self._cells = cells
        self._width = width
        self._height = height

    def get_cell(self, x: int, y: int) -> Cell:
        if not self.is_valid_position(x, y):
            raise OutOfBoundsError(
                x, y,
                f"({x}, {y}) out of bounds for {self._width}x{self._height} grid",
            )
        return self._cells[y][x]

    # -- Buildings --

    def get_building(self, x: int, y: int) -> Building | None:
        if not self.is_valid_position(x, y):
            return None
        return self._cells[y][x].building

    def place_building(self, building: Building) -> bool:
        x, y = building.x, building.y
        if not self.is_valid_position(x, y):
            logger.warning("invalid_position", x=x, y=y, building=building.id)
            return False
        cell = self._cells[y][x]
        if cell.building is not None:
            logger.warning("cell_occupied", x=x, y=y, building=building.id)
            return False
        cell.building = building
        return True

    def remove_building(self, x: int, y: int) -> Building | None:
        if not self.is_valid_position(x, y):
            return None
        cell = self._cells[y][x]
        building = cell.building
        cell.building = None
        return building

    def rotate_building(self, x: int, y: int) -> bool:
        building = self.get_building(x, y)
        if building is None:
            return False
        building.direction = next_direction(building.direction)
        return True

    def find_building(self, building_id: str) -> Building | None:
        for building in self.all_buildings():
            if building.id == building_id:
                return building
        return None

    # -- Packets --

    def set_resource(self, x: int, y: int, resource: Packet | None) -> bool:
        if not self.is_valid_position(x, y):
            return False
        self._cells[y][x].resource = resource
        return True

    def get_resource(self, x: int, y: int) -> Packet | None:
        if not self.is_valid_position(x, y):
            return None
        return self._cells[y][x].resource

    def remove_resource(self, x: int, y: int) -> Packet | None:
        if not self.is_valid_position(x, y):
            return None
        cell = self._cells[y][x]
        resource = cell.resource
        cell.resource = None
        return resource

    # -- Views (row-major: y outer, x inner) --

    def all_cells(self) -> list[Cell]:
        return [cell for row in self._cells for cell in row]

    def all_buildings(self) -> list[Building]:
        return [cell.building for cell in self.all_cells() if cell.building is not None]

    # -- Snapshot / restore --

    def snapshot(self) -> dict[str, Any]:
        buildings: list[dict[str, Any]] = []
        resources: list[dict[str, Any]] = []
        for cell in self.all_cells():
            building = cell.building
            if building is not None:
                entry: dict[str, Any] = {
                    "id": building.id,
                    "type": building.type_name,
                    "x": building.x,
                    "y": building.y,
                    "direction": building.direction,
                    "tier": building.tier,
                }
                recipe = getattr(building, "recipe", None)
                if recipe is not None:
                    entry["recipe"] = encode_recipe(recipe)
                buildings.append(entry)
            packet = cell.resource
            if packet is not None:
                resources.append({
                    "x": cell.x,
                    "y": cell.y,
                    "type": packet.identity.kind,
                    "value": packet.identity.value,
                    "tier": packet.tier,
                    "count": str(packet.count),
                })
        return {
            "width": self._width,
            "height": self._height,
            "buildings": buildings,
            "resources": resources,
        }

    def restore(
        self,
        data: dict[str, Any],
        resolve_recipe: RecipeResolver | None = None,
    ) -> None:
        """Rebuild from snapshot data.

        ``resolve_recipe(recipe_id)`` may return a live recipe instance to
        attach instead of a decoded copy.
        """
        self._cells = []
        self._width = self._height = 0
        try:
            width = int(data["width"])
            height = int(data.get("height", width))
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotError(f"Bad grid dimensions: {exc!r}") from exc
        self.initialize_grid(width, height)

        for entry in data.get("buildings", []):
            recipe: Recipe | None = None
            recipe_data = entry.get("recipe")
            if recipe_data is not None:
                if resolve_recipe is not None and recipe_data.get("id"):
                    recipe = resolve_recipe(recipe_data["id"])
                if recipe is None:
                    recipe = decode_recipe(recipe_data, default_tier=entry["tier"])
            try:
                building = make_building(
                    entry["type"],
                    entry["id"],
                    entry["x"],
                    entry["y"],
                    direction=entry["direction"],
                    tier=entry["tier"],
                    recipe=recipe if _takes_recipe(entry["type"]) else None,
                )
            except ValueError as exc:
                raise SnapshotError(f"Bad building entry {entry!r}: {exc}") from exc
            self.place_building(building)

        for entry in data.get("resources", []):
            try:
                identity = ResourceIdentity(entry["type"], entry["value"])
            except ValueError as exc:
                raise SnapshotError(f"Bad resource entry {entry!r}") from exc
            packet = Packet(identity, tier=entry.get("tier", 1), count=int(entry.get("count", "1")))
            if not self.set_resource(entry["x"], entry["y"], packet):
                logger.warning("packet_out_of_bounds", x=entry["x"], y=entry["y"])


def _takes_recipe(type_name: str) -> bool:
    return any(cls.type_name == type_name for cls in RECIPE_BUILDINGS)
