"""Flow engine - per-tick behaviour of every building on the grid.

Buildings run in fixed phases: conveyors, generators, mergers, outputs.
Conveyors clear cells before generators fill them, and collection sees
everything produced earlier in the same tick. Inside a phase, buildings
run in the grid's row-major order.
"""
from __future__ import annotations

from typing import Any, Callable, Iterable

import structlog

from tick_factory.buildings import Building, Conveyor, Generator, Merger, Output
from tick_factory.catalog import RecipeCatalog
from tick_factory.config import DIRECTION_VECTORS, DIRECTIONS, BuildingTimings
from tick_factory.grid import Cell, Grid
from tick_factory.hashing import recipe_id
from tick_factory.ledger import ResourceLedger
from tick_factory.signals import RECIPE_DISCOVERED, RESOURCE_COLLECTED, SignalBus
from tick_factory.types import Packet, ResourceIdentity, SnapshotError

logger = structlog.get_logger(__name__)

ExperienceFn = Callable[[int], None]

_PHASES: tuple[type, ...] = (Conveyor, Generator, Merger, Output)


class FlowEngine:
    def __init__(
        self,
        grid: Grid,
        ledger: ResourceLedger,
        catalog: RecipeCatalog,
        on_experience: ExperienceFn | None = None,
        timings: BuildingTimings | None = None,
        bus: SignalBus | None = None,
    ) -> None:
        self._grid = grid
        self._ledger = ledger
        self._catalog = catalog
        self._on_experience = on_experience
        self._timings = timings if timings is not None else BuildingTimings()
        self._bus = bus
        self._counters: dict[str, int] = {}

    @property
    def timings(self) -> BuildingTimings:
        return self._timings

    def tick(self) -> None:
        buildings = self._grid.all_buildings()
        for phase in _PHASES:
            for building in buildings:
                if type(building) is not phase:
                    continue
                try:
                    self._process(building)
                except Exception:
                    # One broken building must not stall the rest of the tick.
                    logger.exception(
                        "building_step_failed",
                        building=building.id,
                        type=building.type_name,
                    )

    def _process(self, building: Building) -> None:
        if isinstance(building, Conveyor):
            self._process_conveyor(building)
        elif isinstance(building, Generator):
            self._process_generator(building)
        elif isinstance(building, Merger):
            self._process_merger(building)
        elif isinstance(building, Output):
            self._process_output(building)
        else:
            raise TypeError(f"Unknown building variant {type(building).__name__}")

    # --- Per-variant steps ---

    def _process_generator(self, building: Generator) -> None:
        if building.recipe is None:
            return
        period = self._timings.ticks_per_generation
        counter = self._counters.get(building.id, 0) + 1
        if counter < period:
            self._counters[building.id] = counter
            return

        packet = self._make_packet(building.recipe.output)
        if self._place_in_direction(building, packet):
            self._counters[building.id] = 0
        else:
            logger.debug("generator_blocked", building=building.id, x=building.x, y=building.y)
            self._counters[building.id] = period

    def _process_conveyor(self, building: Conveyor) -> None:
        period = self._timings.ticks_per_move
        counter = self._counters.get(building.id, 0) + 1
        if counter < period:
            self._counters[building.id] = counter
            return

        x, y = building.x, building.y
        packet = self._grid.get_resource(x, y)
        if packet is None:
            self._counters[building.id] = 0
            return

        dx, dy = DIRECTION_VECTORS[building.direction]
        tx, ty = x + dx, y + dy
        if self._grid.is_valid_position(tx, ty) and self._grid.get_resource(tx, ty) is None:
            self._grid.remove_resource(x, y)
            self._grid.set_resource(tx, ty, packet)
            self._counters[building.id] = 0
        else:
            logger.debug("conveyor_blocked", building=building.id, x=x, y=y)
            self._counters[building.id] = period

    def _process_merger(self, building: Merger) -> None:
        recipe = building.recipe
        if recipe is None or not recipe.inputs:
            return
        period = self._timings.ticks_per_merge
        counter = self._counters.get(building.id, 0) + 1
        if counter < period:
            self._counters[building.id] = counter
            return
        # Past the threshold: stay pegged so every later tick retries.
        self._counters[building.id] = period

        x, y = building.x, building.y
        needed = list(recipe.inputs)
        matched: list[tuple[int, int]] = []
        for direction in DIRECTIONS:
            if not needed:
                break
            cell = self.get_adjacent_cell(x, y, direction)
            if cell is None or cell.resource is None:
                continue
            identity = cell.resource.identity
            if identity in needed:
                needed.remove(identity)
                matched.append((cell.x, cell.y))
        if needed:
            return

        dx, dy = DIRECTION_VECTORS[building.direction]
        target = (x + dx, y + dy)
        target_free = self._grid.is_valid_position(*target) and (
            self._grid.get_resource(*target) is None or target in matched
        )
        if not target_free and self._grid.get_resource(x, y) is not None:
            logger.debug("merger_blocked", building=building.id, x=x, y=y)
            return

        for mx, my in matched:
            self._grid.remove_resource(mx, my)
        packet = self._make_packet(recipe.output)
        if target_free:
            self._grid.set_resource(target[0], target[1], packet)
        else:
            self._grid.set_resource(x, y, packet)

        self._record_craft(recipe.inputs)
        self._counters[building.id] = 0

    def _process_output(self, building: Output) -> None:
        for direction in DIRECTIONS:
            cell = self.get_adjacent_cell(building.x, building.y, direction)
            if cell is None or cell.resource is None:
                continue
            packet = cell.resource
            self._ledger.produce(packet.identity, 1)
            self._grid.remove_resource(cell.x, cell.y)
            if self._bus is not None:
                self._bus.publish(
                    RESOURCE_COLLECTED,
                    building=building.id,
                    resource=packet.identity.key,
                )
            if self._on_experience is not None:
                self._on_experience(1)

    # --- Helpers ---

    def _record_craft(self, inputs: Iterable[ResourceIdentity]) -> None:
        inputs = tuple(inputs)
        known = self._catalog.get(recipe_id(inputs))
        first_time = known is not None and not known.discovered
        recipe = self._catalog.on_craft(inputs)
        if recipe is not None and first_time and self._bus is not None:
            self._bus.publish(RECIPE_DISCOVERED, recipe=recipe.id)

    def _make_packet(self, identity: ResourceIdentity) -> Packet:
        quantity = self._ledger.get(identity)
        return Packet(identity, tier=quantity.tier if quantity is not None else 1)

    def _place_in_direction(self, building: Building, packet: Packet) -> bool:
        """Place on the faced cell only. False if out of bounds or occupied."""
        cell = self.get_adjacent_cell(building.x, building.y, building.direction)
        if cell is None or cell.resource is not None:
            return False
        cell.resource = packet
        return True

    def get_adjacent_cell(self, x: int, y: int, direction: str) -> Cell | None:
        dx, dy = DIRECTION_VECTORS[direction]
        ax, ay = x + dx, y + dy
        if not self._grid.is_valid_position(ax, ay):
            return None
        return self._grid.get_cell(ax, ay)

    # --- Counters ---

    def counter(self, building_id: str) -> int:
        return self._counters.get(building_id, 0)

    def reset_counters(self) -> None:
        self._counters.clear()

    def prune_counters(self, live_ids: Iterable[str]) -> int:
        """Drop counters of buildings no longer on the grid. Returns the count removed."""
        live = set(live_ids)
        stale = [bid for bid in self._counters if bid not in live]
        for bid in stale:
            del self._counters[bid]
        return len(stale)

    def snapshot(self) -> list[dict[str, Any]]:
        return [
            {"buildingId": bid, "counter": counter}
            for bid, counter in self._counters.items()
        ]

    def restore(self, data: list[dict[str, Any]]) -> None:
        counters: dict[str, int] = {}
        for entry in data:
            try:
                counter = int(entry["counter"])
                counters[entry["buildingId"]] = counter
            except (KeyError, TypeError, ValueError) as exc:
                raise SnapshotError(f"Bad flow counter entry {entry!r}") from exc
            if counter < 0:
                raise SnapshotError(f"Negative flow counter {entry!r}")
        self._counters = counters
