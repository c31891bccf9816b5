"""tick-factory - Tick-driven simulation core for an incremental grid factory game."""
from __future__ import annotations

from tick_factory.buildings import (
    Building,
    Conveyor,
    Generator,
    Merger,
    Output,
    make_building,
    next_direction,
)
from tick_factory.catalog import RecipeCatalog, source_recipe
from tick_factory.clock import Clock
from tick_factory.config import BuildingTimings, GameConfig, TierDef
from tick_factory.engine import GameContext, GameEngine
from tick_factory.flow import FlowEngine
from tick_factory.grid import Cell, Grid
from tick_factory.icons import IconPool
from tick_factory.ledger import ResourceLedger
from tick_factory.log import configure_logging
from tick_factory.rng import SeededRandom
from tick_factory.saves import JsonFileSaveStore, MemorySaveStore, SaveStore
from tick_factory.scheduler import TickScheduler
from tick_factory.signals import Signal, SignalBus
from tick_factory.tiers import TierRules
from tick_factory.types import (
    CatalogProgress,
    IconData,
    OutOfBoundsError,
    Packet,
    Recipe,
    ResourceIdentity,
    ResourceQuantity,
    SaveRecord,
    SnapshotError,
    TierCheck,
)

__all__ = [
    "Building",
    "BuildingTimings",
    "CatalogProgress",
    "Cell",
    "Clock",
    "Conveyor",
    "FlowEngine",
    "GameConfig",
    "GameContext",
    "GameEngine",
    "Generator",
    "Grid",
    "IconData",
    "IconPool",
    "JsonFileSaveStore",
    "MemorySaveStore",
    "Merger",
    "OutOfBoundsError",
    "Output",
    "Packet",
    "Recipe",
    "RecipeCatalog",
    "ResourceIdentity",
    "ResourceLedger",
    "ResourceQuantity",
    "SaveRecord",
    "SaveStore",
    "SeededRandom",
    "Signal",
    "SignalBus",
    "SnapshotError",
    "TickScheduler",
    "TierCheck",
    "TierDef",
    "TierRules",
    "configure_logging",
    "make_building",
    "next_direction",
    "source_recipe",
]
