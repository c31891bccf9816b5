"""Tests for the seeded icon unlock pool."""
from __future__ import annotations

from structlog.testing import capture_logs

from tick_factory.icons import DEFAULT_ICON_NAMES, IconPool

NAMES = ["Anchor", "Bell", "Cake", "Dice", "Egg", "Flag", "Gem", "Heart", "Key", "Lamp"]


def test_default_catalog_is_unique():
    """The default icon names contain no duplicates."""
    assert len(set(DEFAULT_ICON_NAMES)) == len(DEFAULT_ICON_NAMES)
    assert IconPool(1).total_count == len(DEFAULT_ICON_NAMES)


def test_duplicate_names_collapse():
    pool = IconPool(1, ["A", "B", "A"])
    assert pool.total_count == 2


class TestUnlock:
    def test_same_seed_same_sequence(self) -> None:
        """Equal seeds unlock icons in the same order."""
        a = IconPool(42, NAMES)
        b = IconPool(42, NAMES)
        assert [a.unlock_next(1).name for _ in range(5)] == [
            b.unlock_next(1).name for _ in range(5)
        ]

    def test_draw_order_is_deck_order(self) -> None:
        """Unlocking draws from the head of the deck."""
        pool = IconPool(3, NAMES)
        expected = pool.remaining()
        drawn = [pool.unlock_next(1).name for _ in range(len(NAMES))]
        assert drawn == expected
        assert sorted(drawn) == sorted(NAMES)

    def test_unlock_sets_tier_and_flag(self) -> None:
        pool = IconPool(3, NAMES)
        icon = pool.unlock_next(4)
        assert icon.tier == 4
        assert icon.unlocked
        assert pool.is_unlocked(icon.name)
        assert pool.icons_for_tier(4) == [icon]
        assert pool.unlocked_count == 1
        assert pool.remaining_count == len(NAMES) - 1

    def test_exhaustion_returns_none(self) -> None:
        """An empty deck returns None."""
        pool = IconPool(9, ["Only"])
        assert pool.unlock_next(1).name == "Only"
        assert pool.unlock_next(1) is None
        assert pool.remaining_count == 0


class TestReshuffle:
    def test_unlocked_untouched(self) -> None:
        """Reshuffling only reorders icons still in the deck."""
        pool = IconPool(5, NAMES)
        first = [pool.unlock_next(1).name for _ in range(3)]
        remaining_before = sorted(pool.remaining())
        pool.reshuffle_pool(777)
        assert [i.name for i in pool.unlocked_icons()] == first
        assert sorted(pool.remaining()) == remaining_before


class TestSnapshot:
    def test_restore_continues_same_sequence(self) -> None:
        """A restored pool continues the same draw and reshuffle sequence."""
        source = IconPool(5, NAMES)
        for _ in range(3):
            source.unlock_next(1)
        source.reshuffle_pool()
        source.unlock_next(2)
        source.unlock_next(2)
        source.reshuffle_pool(99)

        restored = IconPool(1, NAMES)
        restored.restore(source.snapshot())

        assert [i.name for i in restored.unlocked_icons()] == [
            i.name for i in source.unlocked_icons()
        ]
        assert restored.remaining() == source.remaining()
        assert restored.seed == source.seed
        assert restored.unlock_next(3).name == source.unlock_next(3).name

        restored.reshuffle_pool()
        source.reshuffle_pool()
        assert restored.remaining() == source.remaining()

    def test_snapshot_layout(self) -> None:
        pool = IconPool(8, NAMES)
        icon = pool.unlock_next(2)
        data = pool.snapshot()
        assert data["unlocked"] == [{"name": icon.name, "tier": 2}]
        assert data["seed"] == 8
        assert data["reshuffles"] == []

    def test_unknown_names_ignored(self) -> None:
        """Unknown icon names in a snapshot are logged and skipped."""
        pool = IconPool(8, NAMES)
        data = pool.snapshot()
        data["unlocked"] = [{"name": "Nonexistent", "tier": 1}]
        with capture_logs() as logs:
            pool.restore(data)
        assert pool.unlocked_count == 0
        assert logs[0]["event"] == "unknown_icon"
