"""GameEngine - owns every subsystem, the progression scalars and the tick loop."""
from __future__ import annotations

import math
import os
import re
from contextlib import contextmanager
from dataclasses import dataclass
from fractions import Fraction
from typing import TYPE_CHECKING, Any, Callable, Iterator, Sequence

import structlog

from tick_factory.buildings import Building, make_building
from tick_factory.catalog import RecipeCatalog
from tick_factory.clock import Clock
from tick_factory.config import GameConfig
from tick_factory.flow import FlowEngine
from tick_factory.grid import Grid
from tick_factory.icons import DEFAULT_ICON_NAMES, IconPool
from tick_factory.ledger import ResourceLedger
from tick_factory.scheduler import TickScheduler
from tick_factory.signals import (
    BUILDING_PLACED,
    BUILDING_REMOVED,
    BUILDING_ROTATED,
    GAME_LOADED,
    LEVEL_UP,
    STATE_CHANGED,
    TIER_ADVANCED,
    Signal,
    SignalBus,
)
from tick_factory.tiers import TierRules
from tick_factory.types import CHARACTER, ICON, Recipe, SnapshotError, TierCheck

if TYPE_CHECKING:
    from tick_factory.saves import SaveStore

logger = structlog.get_logger(__name__)

_SNAPSHOT_VERSION = 1
_BUILDING_ID_RE = re.compile(r"^building-(\d+)$")


@dataclass
class GameContext:
    """Aggregate of the subsystems making up one game instance."""

    config: GameConfig
    clock: Clock
    bus: SignalBus
    grid: Grid
    ledger: ResourceLedger
    icons: IconPool
    catalog: RecipeCatalog
    tiers: TierRules
    flow: FlowEngine


class GameEngine:
    def __init__(
        self,
        config: GameConfig | None = None,
        seed: int | None = None,
        on_state_change: Callable[[], None] | None = None,
        on_signal: Callable[[Signal], None] | None = None,
        icon_names: Sequence[str] = DEFAULT_ICON_NAMES,
    ) -> None:
        self._config = config if config is not None else GameConfig()
        self._icon_names = tuple(icon_names)
        self._bus = SignalBus(coalesce=(STATE_CHANGED,))
        self._scheduler = TickScheduler(self._config.tick_rate, self._tick)
        if on_state_change is not None:
            self._bus.subscribe(STATE_CHANGED, lambda _name, _data: on_state_change())
        if on_signal is not None:
            self._bus.listen(on_signal)
        self._build(seed)

    def _build(self, seed: int | None) -> None:
        if seed is None:
            seed = int.from_bytes(os.urandom(4))
        self._seed = seed
        self._tier = 1
        self._level = 1
        self._experience = 0
        self._next_building_id = 1

        grid = Grid(self._config.initial_grid_size)
        ledger = ResourceLedger()
        catalog = RecipeCatalog(self._icon_names)
        self._ctx = GameContext(
            config=self._config,
            clock=Clock(self._config.tick_rate),
            bus=self._bus,
            grid=grid,
            ledger=ledger,
            icons=IconPool(seed, self._icon_names),
            catalog=catalog,
            tiers=TierRules(self._config),
            flow=FlowEngine(
                grid,
                ledger,
                catalog,
                on_experience=self._grant_experience,
                timings=self._config.timings,
                bus=self._bus,
            ),
        )
        self._unlock_resources_for_tier(1)
        for char in self._ctx.tiers.resources_for_tier(1)[0]:
            ledger.unlock_character(char, 1).count = self._config.starting_count
        self._generate_recipes_for_tier(1)

    # --- Accessors ---

    @property
    def context(self) -> GameContext:
        return self._ctx

    @property
    def config(self) -> GameConfig:
        return self._config

    @property
    def bus(self) -> SignalBus:
        return self._bus

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def grid(self) -> Grid:
        return self._ctx.grid

    @property
    def ledger(self) -> ResourceLedger:
        return self._ctx.ledger

    @property
    def icons(self) -> IconPool:
        return self._ctx.icons

    @property
    def catalog(self) -> RecipeCatalog:
        return self._ctx.catalog

    @property
    def tiers(self) -> TierRules:
        return self._ctx.tiers

    @property
    def flow(self) -> FlowEngine:
        return self._ctx.flow

    @property
    def tier(self) -> int:
        return self._tier

    @property
    def level(self) -> int:
        return self._level

    @property
    def experience(self) -> int:
        return self._experience

    @property
    def tick_count(self) -> int:
        return self._ctx.clock.tick_number

    # --- Tier content ---

    def _unlock_resources_for_tier(self, tier: int) -> None:
        characters, icon_count = self._ctx.tiers.resources_for_tier(tier)
        for char in characters:
            self._ctx.ledger.unlock_character(char, tier)
        for _ in range(icon_count):
            icon = self._ctx.icons.unlock_next(tier)
            if icon is None:
                logger.info("icon_pool_exhausted", tier=tier)
                break
            self._ctx.ledger.unlock_icon(icon.name, tier)

    def _generate_recipes_for_tier(self, tier: int) -> list[Recipe]:
        ledger = self._ctx.ledger
        characters = [q.identity.value for q in ledger.by_kind(CHARACTER) if q.tier <= tier]
        icons = [q.identity.value for q in ledger.by_kind(ICON) if q.tier <= tier]
        return self._ctx.catalog.generate_recipes(characters, icons, tier)

    # --- Lifecycle ---

    def start(self) -> None:
        self._scheduler.start()

    def stop(self) -> None:
        self._scheduler.stop()

    def is_running(self) -> bool:
        return self._scheduler.is_running()

    def set_tick_rate(self, tps: int) -> None:
        self._scheduler.set_tick_rate(tps)
        self._ctx.clock.set_tps(tps)

    def step(self) -> bool:
        """Run one tick synchronously. False if a tick was already running."""
        return self._scheduler.run_tick()

    def run(self, n: int) -> None:
        for _ in range(n):
            self.step()

    def reset(self, seed: int | None = None) -> None:
        """Start a fresh game on the same engine, keeping subscribers."""
        if self._scheduler.in_tick():
            raise RuntimeError("Cannot reset from inside a tick")
        self.stop()
        with self._scheduler.lock:
            self._ctx.flow.reset_counters()
            self._bus.clear()
            self._build(seed)
        self._notify()

    @contextmanager
    def _mutating(self, action: str) -> Iterator[None]:
        """Hold the scheduler lock so a mutation never interleaves with a tick.

        Signals are published under the lock; callers flush after leaving it
        so handlers may call back into the engine.
        """
        if self._scheduler.in_tick():
            raise RuntimeError(f"Cannot {action} from inside a tick")
        with self._scheduler.lock:
            yield

    def _tick(self) -> None:
        self._ctx.clock.advance()
        self._ctx.flow.tick()
        self._notify()

    def _notify(self) -> None:
        self._bus.publish(STATE_CHANGED)
        self._bus.flush()

    # --- Building actions ---

    def place_building(self, building: Building) -> bool:
        with self._mutating("place a building"):
            placed = self._place(building)
        if placed:
            self._notify()
        return placed

    def _place(self, building: Building) -> bool:
        if not self._ctx.grid.place_building(building):
            return False
        self._bus.publish(BUILDING_PLACED, building=building.id, x=building.x, y=building.y)
        return True

    def create_building(
        self,
        type_name: str,
        x: int,
        y: int,
        direction: str = "right",
        recipe: Recipe | None = None,
    ) -> Building | None:
        """Create a building at the current tier and place it. None if placement fails."""
        with self._mutating("create a building"):
            building = make_building(
                type_name,
                f"building-{self._next_building_id}",
                x,
                y,
                direction=direction,
                tier=self._tier,
                recipe=recipe,
            )
            if not self._place(building):
                return None
            self._next_building_id += 1
        self._notify()
        return building

    def remove_building(self, x: int, y: int) -> Building | None:
        with self._mutating("remove a building"):
            building = self._ctx.grid.remove_building(x, y)
            if building is None:
                return None
            self._bus.publish(BUILDING_REMOVED, building=building.id, x=x, y=y)
        self._notify()
        return building

    def rotate_building(self, x: int, y: int) -> bool:
        with self._mutating("rotate a building"):
            if not self._ctx.grid.rotate_building(x, y):
                return False
            building = self._ctx.grid.get_building(x, y)
            self._bus.publish(
                BUILDING_ROTATED, building=building.id, direction=building.direction
            )
        self._notify()
        return True

    # --- Experience ---

    def required_experience(self, level: int) -> int:
        """``floor(base * multiplier ** (level - 1))``, computed exactly."""
        multiplier = Fraction(self._config.experience_multiplier)
        return math.floor(self._config.base_experience * multiplier ** (level - 1))

    def _grant_experience(self, amount: int) -> bool:
        if amount < 0:
            raise ValueError(f"amount must be >= 0, got {amount}")
        self._experience += amount
        leveled = False
        while self._experience >= self.required_experience(self._level):
            required = self.required_experience(self._level)
            self._level += 1
            self._experience -= required
            leveled = True
            logger.info("level_up", level=self._level)
            self._bus.publish(LEVEL_UP, level=self._level)
        return leveled

    def add_experience(self, amount: int) -> None:
        """Add experience, converting it into as many levels as it covers."""
        with self._mutating("add experience"):
            self._grant_experience(amount)
        self._notify()

    # --- Tiers ---

    def can_advance_tier(self) -> TierCheck:
        progress = self._ctx.catalog.progress()
        return self._ctx.tiers.can_advance_tier(
            self._tier, self._level, progress.discovered, progress.total
        )

    def advance_tier(self) -> bool:
        with self._mutating("advance the tier"):
            check = self.can_advance_tier()
            if not check.can_advance:
                logger.warning("tier_advance_refused", tier=self._tier, reason=check.reason)
                return False

            self._tier += 1
            tier_def = self._ctx.tiers.tier_config(self._tier)
            self._ctx.grid.initialize_grid(tier_def.grid_size)
            self._ctx.flow.prune_counters(b.id for b in self._ctx.grid.all_buildings())
            self._unlock_resources_for_tier(self._tier)
            created = self._generate_recipes_for_tier(self._tier)

            logger.info("tier_advanced", tier=self._tier, new_recipes=len(created))
            self._bus.publish(TIER_ADVANCED, tier=self._tier)
        self._notify()
        return True

    # --- Snapshot / restore ---

    def snapshot(self) -> dict[str, Any]:
        """JSON-compatible state. Big integers are decimal strings.

        Inside a tick the tick thread already holds the scheduler lock, so the
        snapshot is taken directly.
        """
        if self._scheduler.in_tick():
            return self._snapshot()
        with self._scheduler.lock:
            return self._snapshot()

    def _snapshot(self) -> dict[str, Any]:
        flow = self._ctx.flow
        flow.prune_counters(b.id for b in self._ctx.grid.all_buildings())
        return {
            "version": _SNAPSHOT_VERSION,
            "tier": self._tier,
            "level": self._level,
            "experience": str(self._experience),
            "tickCount": str(self._ctx.clock.tick_number),
            "nextBuildingId": self._next_building_id,
            "grid": self._ctx.grid.snapshot(),
            "resources": self._ctx.ledger.snapshot(),
            "icons": self._ctx.icons.snapshot(),
            "collection": self._ctx.catalog.snapshot(),
            "flow": flow.snapshot(),
        }

    def restore(self, data: dict[str, Any]) -> None:
        """Replace the game state with ``data``.

        The snapshot is decoded into a fresh set of subsystems which replace
        the live ones only once everything has been read. On SnapshotError
        the engine is left exactly as it was.
        """
        version = data.get("version", _SNAPSHOT_VERSION)
        if version != _SNAPSHOT_VERSION:
            raise SnapshotError(
                f"Unsupported snapshot version {version!r}, expected {_SNAPSHOT_VERSION}"
            )
        try:
            tier = int(data["tier"])
            level = int(data["level"])
            experience = int(data["experience"])
            tick_count = int(data["tickCount"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotError(f"Bad progression scalars: {exc}") from exc
        if experience < 0 or tick_count < 0:
            raise SnapshotError("experience and tickCount must be >= 0")

        with self._mutating("restore a snapshot"):
            ctx = self._decode_context(data, tick_count)
            self._ctx = ctx
            if "icons" in data:
                self._seed = data["icons"]["seed"]
            self._tier = tier
            self._level = level
            self._experience = experience
            self._next_building_id = (
                data.get("nextBuildingId") or _derive_next_building_id(ctx.grid)
            )
            self._bus.publish(GAME_LOADED, tier=tier, level=level)
        self._notify()

    def _decode_context(self, data: dict[str, Any], tick_count: int) -> GameContext:
        grid = Grid(1)
        ledger = ResourceLedger()
        catalog = RecipeCatalog(self._icon_names)
        icons = IconPool(self._seed, self._icon_names)
        try:
            catalog.restore(data.get("collection", []))
            grid.restore(data["grid"], resolve_recipe=catalog.get)
            ledger.restore(data.get("resources", []))
            if "icons" in data:
                icons.restore(data["icons"])
            flow = FlowEngine(
                grid,
                ledger,
                catalog,
                on_experience=self._grant_experience,
                timings=self._config.timings,
                bus=self._bus,
            )
            flow.restore(data.get("flow", []))
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotError(f"Malformed snapshot: {exc!r}") from exc
        clock = Clock(self._ctx.clock.tps)
        clock.reset(tick_count)
        return GameContext(
            config=self._config,
            clock=clock,
            bus=self._bus,
            grid=grid,
            ledger=ledger,
            icons=icons,
            catalog=catalog,
            tiers=self._ctx.tiers,
            flow=flow,
        )

    # --- Persistence ---

    def save(self, store: SaveStore, save_id: str = "autosave") -> None:
        """Write a snapshot to ``store``. Never runs concurrently with a tick."""
        if self._scheduler.in_tick():
            raise RuntimeError("Cannot save from inside a tick")
        store.store(save_id, self.snapshot())
        logger.info("game_saved", save_id=save_id)

    def load(self, store: SaveStore, save_id: str = "autosave") -> bool:
        """Stop the engine and restore from ``store``. False if nothing is saved."""
        if self._scheduler.in_tick():
            raise RuntimeError("Cannot load from inside a tick")
        data = store.load(save_id)
        if data is None:
            logger.warning("save_not_found", save_id=save_id)
            return False
        self.stop()
        self.restore(data)
        logger.info("game_loaded", save_id=save_id)
        return True


def _derive_next_building_id(grid: Grid) -> int:
    highest = 0
    for building in grid.all_buildings():
        match = _BUILDING_ID_RE.match(building.id)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest + 1
