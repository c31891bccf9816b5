"""Tests for GameEngine orchestration, progression and snapshots."""
from __future__ import annotations

import json
import threading
import time

import pytest
from structlog.testing import capture_logs

from tick_factory.buildings import Conveyor, Generator, Output
from tick_factory.catalog import source_recipe
from tick_factory.config import GameConfig
from tick_factory.engine import GameEngine
from tick_factory.saves import JsonFileSaveStore, MemorySaveStore
from tick_factory.signals import (
    BUILDING_PLACED,
    BUILDING_REMOVED,
    BUILDING_ROTATED,
    GAME_LOADED,
    LEVEL_UP,
    STATE_CHANGED,
    TIER_ADVANCED,
    Signal,
)
from tick_factory.types import ResourceIdentity, SnapshotError

ONE = ResourceIdentity("character", "1")
TWO = ResourceIdentity("character", "2")


@pytest.fixture
def engine() -> GameEngine:
    return GameEngine(seed=42)


class TestInitialState:
    def test_start_state(self, engine: GameEngine) -> None:
        """A new game starts at tier 1 with the starting characters and one icon."""
        assert engine.tier == 1
        assert engine.level == 1
        assert engine.experience == 0
        assert engine.tick_count == 0
        assert engine.grid.size == (5, 5)
        assert engine.ledger.count(ONE) == 10
        assert engine.icons.unlocked_count == 1
        assert len(engine.ledger.by_kind("icon")) == 1

    def test_tier_one_recipes(self, engine: GameEngine) -> None:
        """Tier 1 generates one source recipe per unlocked resource."""
        icon = engine.icons.unlocked_icons()[0]
        assert {r.id for r in engine.catalog.all()} == {"character:1", f"icon:{icon.name}"}
        assert engine.catalog.progress().discovered == 0

    def test_context_holds_subsystems(self, engine: GameEngine) -> None:
        """Accessors resolve to the subsystems held by the game context."""
        ctx = engine.context
        assert ctx.grid is engine.grid
        assert ctx.ledger is engine.ledger
        assert ctx.catalog is engine.catalog
        assert ctx.flow is engine.flow
        assert ctx.bus is engine.bus

    def test_same_seed_same_icons(self) -> None:
        """Equal seeds give equal icon decks."""
        a = GameEngine(seed=5)
        b = GameEngine(seed=5)
        assert a.icons.remaining() == b.icons.remaining()

    def test_instances_are_independent(self) -> None:
        """Two engines share no state."""
        a = GameEngine(seed=1)
        b = GameEngine(seed=1)
        a.create_building("Output", 0, 0)
        a.add_experience(500)
        assert b.grid.all_buildings() == []
        assert b.level == 1


class TestBuildings:
    def test_create_assigns_sequential_ids(self, engine: GameEngine) -> None:
        """Ids advance only when placement succeeds."""
        first = engine.create_building("Conveyor", 0, 0, direction="down")
        assert first.id == "building-1"
        assert engine.create_building("Output", 0, 0) is None
        second = engine.create_building("Output", 1, 1)
        assert second.id == "building-2"
        assert second.tier == 1
        assert engine.grid.get_building(0, 0) is first

    def test_create_with_recipe(self, engine: GameEngine) -> None:
        recipe = source_recipe(ONE)
        generator = engine.create_building("Generator", 2, 2, recipe=recipe)
        assert isinstance(generator, Generator)
        assert generator.recipe is recipe

    def test_place_remove_rotate_signals(self, engine: GameEngine) -> None:
        """Each successful building action publishes its signal with its payload."""
        received = []
        for name in (BUILDING_PLACED, BUILDING_REMOVED, BUILDING_ROTATED):
            engine.bus.subscribe(name, lambda n, d: received.append((n, d)))

        assert engine.place_building(Conveyor("c", 1, 1, direction="up")) is True
        assert engine.rotate_building(1, 1) is True
        assert engine.remove_building(1, 1).id == "c"
        assert engine.rotate_building(1, 1) is False
        assert engine.remove_building(1, 1) is None

        assert received == [
            (BUILDING_PLACED, {"building": "c", "x": 1, "y": 1}),
            (BUILDING_ROTATED, {"building": "c", "direction": "right"}),
            (BUILDING_REMOVED, {"building": "c", "x": 1, "y": 1}),
        ]

    def test_place_out_of_bounds(self, engine: GameEngine) -> None:
        assert engine.place_building(Output("o", 9, 9)) is False


class TestTicks:
    def test_step_advances_tick_count(self, engine: GameEngine) -> None:
        assert engine.step() is True
        engine.run(4)
        assert engine.tick_count == 5

    def test_generator_to_output_grants_experience(self, engine: GameEngine) -> None:
        """A packet travelling generator to output is collected and grants experience."""
        engine.create_building("Generator", 0, 2, recipe=source_recipe(ONE))
        engine.create_building("Conveyor", 1, 2, direction="right")
        engine.create_building("Output", 3, 2)
        engine.run(15)
        assert engine.ledger.count(ONE) == 11
        assert engine.experience == 1

    def test_state_change_observer_sees_end_state(self) -> None:
        """The state observer runs after the tick has finished."""
        seen = []
        holder: list[GameEngine] = []
        engine = GameEngine(seed=1, on_state_change=lambda: seen.append(holder[0].tick_count))
        holder.append(engine)
        engine.step()
        engine.step()
        assert seen == [1, 2]

    def test_observer_called_on_mutations(self) -> None:
        """Every mutating call notifies the state observer once."""
        calls = []
        engine = GameEngine(seed=1, on_state_change=lambda: calls.append(1))
        engine.create_building("Output", 0, 0)
        engine.add_experience(1)
        assert len(calls) == 2


class TestExperience:
    def test_required_experience(self, engine: GameEngine) -> None:
        """Required experience grows by 1.5x per level, floored."""
        assert engine.required_experience(1) == 100
        assert engine.required_experience(2) == 150
        assert engine.required_experience(3) == 225
        assert engine.required_experience(4) == 337
        assert engine.required_experience(5) == 506

    def test_required_experience_is_exact_for_large_levels(self, engine: GameEngine) -> None:
        assert engine.required_experience(60) == (100 * 3**59) // 2**59

    def test_level_up_carries_remainder(self, engine: GameEngine) -> None:
        """Experience beyond the threshold carries into the next level."""
        engine.add_experience(150)
        assert engine.level == 2
        assert engine.experience == 50

    def test_threshold_at_level_two(self, engine: GameEngine) -> None:
        engine.add_experience(100)
        assert (engine.level, engine.experience) == (2, 0)
        engine.add_experience(149)
        assert (engine.level, engine.experience) == (2, 149)
        engine.add_experience(1)
        assert (engine.level, engine.experience) == (3, 0)

    def test_carry_over_crosses_next_threshold(self, engine: GameEngine) -> None:
        engine.add_experience(150)
        engine.add_experience(149)
        assert engine.level == 3
        assert engine.experience == 49

    def test_multiple_levels_in_one_call(self, engine: GameEngine) -> None:
        """One large grant can cross several levels, each published."""
        received = []
        engine.bus.subscribe(LEVEL_UP, lambda n, d: received.append(d["level"]))
        engine.add_experience(100 + 150 + 225)
        assert engine.level == 4
        assert engine.experience == 0
        assert received == [2, 3, 4]

    def test_negative_raises(self, engine: GameEngine) -> None:
        with pytest.raises(ValueError, match="amount must be >= 0"):
            engine.add_experience(-1)


class TestTiers:
    def test_refused_below_level(self, engine: GameEngine) -> None:
        """Tier advance is refused and logged below the required level."""
        with capture_logs() as logs:
            assert engine.advance_tier() is False
        assert engine.tier == 1
        assert logs[0]["event"] == "tier_advance_refused"
        assert logs[0]["reason"] == "Level 2 required (current: 1)"

    def test_refused_below_discovery(self, engine: GameEngine) -> None:
        engine.add_experience(100)
        check = engine.can_advance_tier()
        assert not check.can_advance
        assert check.reason == "Need 50% recipes discovered (current: 0.0%)"

    def test_advance(self, engine: GameEngine) -> None:
        """Advancing grows the grid and adds the tier 2 resources and recipes."""
        received = []
        engine.bus.subscribe(TIER_ADVANCED, lambda n, d: received.append(d))
        engine.create_building("Conveyor", 4, 4)
        engine.add_experience(100)
        engine.catalog.discover("character:1")

        assert engine.can_advance_tier().can_advance
        assert engine.advance_tier() is True

        assert engine.tier == 2
        assert engine.grid.size == (7, 7)
        assert engine.grid.get_building(4, 4) is not None
        assert engine.ledger.is_unlocked(TWO)
        assert engine.ledger.count(TWO) == 0
        assert engine.ledger.count(ONE) == 10
        assert engine.icons.unlocked_count == 3
        # 5 singles, 3 character pairs, 6 icon pairs, 6 cross pairs.
        assert len(engine.catalog) == 20
        assert engine.catalog.get("character:1").discovered
        assert received == [{"tier": 2}]

    def test_max_tier(self) -> None:
        engine = GameEngine(config=GameConfig(max_tier=1), seed=1)
        engine.add_experience(100)
        engine.catalog.discover("character:1")
        assert engine.can_advance_tier().reason == "Maximum tier reached"


class TestSnapshot:
    def _busy_engine(self) -> GameEngine:
        engine = GameEngine(seed=42)
        engine.create_building("Generator", 0, 0, recipe=source_recipe(ONE))
        engine.create_building("Conveyor", 1, 0, direction="down")
        engine.create_building("Output", 3, 3)
        engine.add_experience(120)
        engine.run(12)
        return engine

    def test_layout(self) -> None:
        """Snapshot stores big scalars as strings next to every subsystem."""
        data = self._busy_engine().snapshot()
        assert data["version"] == 1
        assert data["tier"] == 1
        assert data["level"] == 2
        assert data["experience"] == "20"
        assert data["tickCount"] == "12"
        assert data["nextBuildingId"] == 4
        assert {"grid", "resources", "icons", "collection", "flow"} <= set(data)
        assert {"buildingId": "building-1", "counter": 2} in data["flow"]

    def test_round_trip_through_json(self) -> None:
        """A snapshot survives JSON encoding and restores to an equal state."""
        source = self._busy_engine()
        data = json.loads(json.dumps(source.snapshot()))
        restored = GameEngine(seed=7)
        restored.restore(data)
        assert restored.snapshot() == source.snapshot()
        assert restored.tick_count == 12
        assert restored.level == 2

    def test_restored_engine_continues_identically(self) -> None:
        """A restored engine ticks in lockstep with its source."""
        source = self._busy_engine()
        restored = GameEngine(seed=7)
        restored.restore(source.snapshot())
        source.run(25)
        restored.run(25)
        assert restored.snapshot() == source.snapshot()

    def test_new_building_ids_continue(self) -> None:
        source = self._busy_engine()
        restored = GameEngine(seed=7)
        restored.restore(source.snapshot())
        assert restored.create_building("Output", 4, 4).id == "building-4"

    def test_missing_next_id_is_derived(self) -> None:
        """Without nextBuildingId the next id is derived from placed buildings."""
        data = self._busy_engine().snapshot()
        del data["nextBuildingId"]
        restored = GameEngine(seed=7)
        restored.restore(data)
        assert restored.create_building("Output", 4, 4).id == "building-4"

    def test_big_integers_survive(self) -> None:
        """Experience and tick count are not limited to 64 bits."""
        data = GameEngine(seed=1).snapshot()
        data["experience"] = "999999999999999999"
        data["tickCount"] = "123456789012345678901234567890"
        restored = GameEngine(seed=2)
        restored.restore(data)
        assert restored.experience == 999999999999999999
        assert restored.tick_count == 123456789012345678901234567890
        assert restored.snapshot()["experience"] == "999999999999999999"

    def test_merger_recipe_relinked_to_catalog(self) -> None:
        """Restored buildings share recipe instances with the catalog."""
        engine = GameEngine(seed=3)
        recipe = engine.catalog.get("character:1")
        engine.create_building("Merger", 2, 2, recipe=recipe)
        restored = GameEngine(seed=4)
        restored.restore(engine.snapshot())
        assert restored.grid.get_building(2, 2).recipe is restored.catalog.get("character:1")

    def test_removed_building_counters_pruned(self, engine: GameEngine) -> None:
        engine.create_building("Conveyor", 0, 0)
        engine.run(2)
        engine.remove_building(0, 0)
        assert engine.snapshot()["flow"] == []

    def test_version_mismatch(self, engine: GameEngine) -> None:
        """An unknown snapshot version is rejected."""
        data = engine.snapshot()
        data["version"] = 99
        with pytest.raises(SnapshotError, match="Unsupported snapshot version"):
            engine.restore(data)

    def test_bad_scalars(self, engine: GameEngine) -> None:
        data = engine.snapshot()
        data["experience"] = "lots"
        with pytest.raises(SnapshotError, match="Bad progression scalars"):
            engine.restore(data)

    def test_restore_publishes_loaded(self, engine: GameEngine) -> None:
        received = []
        engine.bus.subscribe(GAME_LOADED, lambda n, d: received.append(d))
        engine.restore(engine.snapshot())
        assert received == [{"tier": 1, "level": 1}]

    def test_failed_restore_leaves_state_untouched(self) -> None:
        """A snapshot rejected partway through leaves the live game as it was."""
        engine = self._busy_engine()
        before = engine.snapshot()
        grid = engine.grid
        data = engine.snapshot()
        data["level"] = 9
        data["grid"]["buildings"] = []
        data["resources"].append({"type": "character", "value": "9", "tier": 1, "count": "-5"})

        with pytest.raises(SnapshotError, match="Negative count"):
            engine.restore(data)

        assert engine.snapshot() == before
        assert engine.grid is grid
        assert engine.level == 2

    def test_missing_grid_is_snapshot_error(self, engine: GameEngine) -> None:
        data = engine.snapshot()
        del data["grid"]
        with pytest.raises(SnapshotError, match="Malformed snapshot"):
            engine.restore(data)

    def test_bad_flow_counter_is_snapshot_error(self) -> None:
        engine = self._busy_engine()
        before = engine.snapshot()
        data = engine.snapshot()
        data["flow"] = [{"buildingId": "building-1"}]
        with pytest.raises(SnapshotError, match="Bad flow counter entry"):
            engine.restore(data)
        assert engine.snapshot() == before

    def test_restore_adopts_saved_seed(self) -> None:
        """The engine seed follows the icon deck it restored."""
        restored = GameEngine(seed=7)
        restored.restore(GameEngine(seed=99).snapshot())
        assert restored.seed == 99


class TestPersistence:
    def test_save_and_load_memory(self, engine: GameEngine) -> None:
        """Load discards changes made after the save."""
        store = MemorySaveStore()
        engine.save(store)
        engine.create_building("Output", 2, 2)
        assert engine.load(store) is True
        assert engine.grid.get_building(2, 2) is None

    def test_load_missing(self, engine: GameEngine) -> None:
        with capture_logs() as logs:
            assert engine.load(MemorySaveStore(), "nothing") is False
        assert logs[0]["event"] == "save_not_found"

    def test_save_and_load_json_file(self, tmp_path) -> None:
        """A JSON file save loads into a different engine unchanged."""
        source = GameEngine(seed=11)
        source.create_building("Generator", 0, 0, recipe=source_recipe(ONE))
        source.run(3)
        store = JsonFileSaveStore(tmp_path)
        source.save(store, "slot-1")

        other = GameEngine(seed=12)
        assert other.load(store, "slot-1") is True
        assert other.snapshot() == source.snapshot()

    def test_save_inside_tick_rejected(self, engine: GameEngine) -> None:
        """Saving from a tick handler raises instead of deadlocking."""
        store = MemorySaveStore()
        engine.bus.subscribe(STATE_CHANGED, lambda n, d: engine.save(store))
        with pytest.raises(RuntimeError, match="inside a tick"):
            engine.step()
        assert store.list_saves() == []


class TestLifecycle:
    def test_start_and_stop(self) -> None:
        """The background loop ticks while running and stops cleanly."""
        engine = GameEngine(config=GameConfig(tick_rate=200), seed=1)
        engine.start()
        try:
            assert engine.is_running()
            deadline = time.monotonic() + 5.0
            while engine.tick_count < 3 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            engine.stop()
        assert not engine.is_running()
        assert engine.tick_count >= 3
        stopped_at = engine.tick_count
        time.sleep(0.05)
        assert engine.tick_count == stopped_at

    def test_load_stops_running_engine(self) -> None:
        """Load stops the tick loop before replacing state."""
        engine = GameEngine(config=GameConfig(tick_rate=200), seed=1)
        store = MemorySaveStore()
        engine.save(store)
        engine.start()
        assert engine.load(store) is True
        assert not engine.is_running()

    def test_reset_keeps_subscribers(self) -> None:
        """Reset starts a fresh game but keeps bus subscribers."""
        calls = []
        engine = GameEngine(seed=1, on_state_change=lambda: calls.append(1))
        engine.create_building("Output", 1, 1)
        engine.add_experience(300)
        engine.run(3)
        calls.clear()

        engine.reset(seed=2)

        assert calls == [1]
        assert engine.grid.all_buildings() == []
        assert (engine.tier, engine.level, engine.experience, engine.tick_count) == (1, 1, 0, 0)
        assert engine.ledger.count(ONE) == 10
        assert engine.seed == 2
        assert engine.create_building("Output", 0, 0).id == "building-1"


class TestConcurrency:
    def test_mutation_waits_for_running_tick(self, engine: GameEngine) -> None:
        """A mutation from another thread blocks until the current tick ends."""
        entered = threading.Event()
        release = threading.Event()

        def hold_tick(name: str, data: dict) -> None:
            if not entered.is_set():
                entered.set()
                release.wait(5)

        engine.bus.subscribe(STATE_CHANGED, hold_tick)
        ticker = threading.Thread(target=engine.step)
        ticker.start()
        assert entered.wait(5)

        created = []
        actor = threading.Thread(
            target=lambda: created.append(engine.create_building("Output", 0, 0))
        )
        actor.start()
        actor.join(0.2)
        try:
            assert actor.is_alive()
            assert engine.grid.get_building(0, 0) is None
        finally:
            release.set()
            ticker.join(5)
            actor.join(5)

        assert created[0].id == "building-1"
        assert engine.grid.get_building(0, 0) is created[0]

    @pytest.mark.parametrize(
        "action",
        [
            lambda e: e.create_building("Output", 0, 0),
            lambda e: e.place_building(Output("o", 0, 0)),
            lambda e: e.remove_building(0, 0),
            lambda e: e.rotate_building(0, 0),
            lambda e: e.add_experience(10),
            lambda e: e.advance_tier(),
            lambda e: e.restore(e.snapshot()),
            lambda e: e.reset(),
        ],
    )
    def test_mutation_inside_tick_rejected(self, engine: GameEngine, action) -> None:
        """Mutating from a tick handler raises instead of deadlocking."""
        engine.bus.subscribe(STATE_CHANGED, lambda n, d: action(engine))
        with pytest.raises(RuntimeError, match="inside a tick"):
            engine.step()
        assert engine.grid.all_buildings() == []
        assert engine.experience == 0

    def test_handler_may_mutate_after_mutation(self, engine: GameEngine) -> None:
        """Handlers run after the lock is released, so they can call back in."""
        def follow_up(name: str, data: dict) -> None:
            if data["building"] == "building-1":
                engine.create_building("Output", 1, 1)

        engine.bus.subscribe(BUILDING_PLACED, follow_up)
        engine.create_building("Conveyor", 0, 0)
        assert engine.grid.get_building(1, 1).id == "building-2"

    def test_snapshot_allowed_inside_tick(self, engine: GameEngine) -> None:
        snapshots = []
        engine.bus.subscribe(STATE_CHANGED, lambda n, d: snapshots.append(engine.snapshot()))
        engine.step()
        assert snapshots[0]["tickCount"] == "1"

    def test_signal_listener_gets_batch(self) -> None:
        """on_signal sees every signal of a mutation with state_changed last."""
        seen: list[Signal] = []
        engine = GameEngine(seed=1, on_signal=seen.append)
        engine.add_experience(100)
        assert [s.name for s in seen] == [LEVEL_UP, STATE_CHANGED]
        assert seen[0].data == {"level": 2}
