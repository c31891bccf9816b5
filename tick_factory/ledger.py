"""Resource ledger - unlocked resource identities and their counts."""
from __future__ import annotations

from typing import Any

import structlog

from tick_factory.types import (
    CHARACTER,
    ICON,
    ResourceIdentity,
    ResourceQuantity,
    SnapshotError,
)

logger = structlog.get_logger(__name__)


def _check_amount(amount: int) -> None:
    if amount < 0:
        raise ValueError(f"amount must be >= 0, got {amount}")


class ResourceLedger:
    """Maps resource identity to a counted quantity.

    Each identity gets exactly one ``ResourceQuantity`` instance on first
    unlock; produce and consume mutate it in place. Counts are plain ints.
    """

    def __init__(self) -> None:
        self._resources: dict[str, ResourceQuantity] = {}

    def unlock(self, identity: ResourceIdentity, tier: int) -> ResourceQuantity:
        """Register ``identity``. Idempotent: the first tier sticks."""
        existing = self._resources.get(identity.key)
        if existing is not None:
            return existing
        quantity = ResourceQuantity(identity=identity, tier=tier, count=0)
        self._resources[identity.key] = quantity
        return quantity

    def unlock_character(self, character: str, tier: int) -> ResourceQuantity:
        return self.unlock(ResourceIdentity(CHARACTER, character), tier)

    def unlock_icon(self, icon_name: str, tier: int) -> ResourceQuantity:
        return self.unlock(ResourceIdentity(ICON, icon_name), tier)

    def is_unlocked(self, identity: ResourceIdentity) -> bool:
        return identity.key in self._resources

    def produce(self, identity: ResourceIdentity, amount: int = 1) -> bool:
        _check_amount(amount)
        quantity = self._resources.get(identity.key)
        if quantity is None:
            logger.warning("resource_not_found", resource=identity.key)
            return False
        quantity.count += amount
        return True

    def consume(self, identity: ResourceIdentity, amount: int = 1) -> bool:
        """Subtract ``amount`` or nothing at all."""
        _check_amount(amount)
        quantity = self._resources.get(identity.key)
        if quantity is None:
            logger.warning("resource_not_found", resource=identity.key)
            return False
        if quantity.count < amount:
            logger.warning(
                "insufficient_resources",
                resource=identity.key,
                requested=amount,
                available=quantity.count,
            )
            return False
        quantity.count -= amount
        return True

    def has_enough(self, identity: ResourceIdentity, amount: int = 1) -> bool:
        quantity = self._resources.get(identity.key)
        return quantity is not None and quantity.count >= amount

    def get(self, identity: ResourceIdentity) -> ResourceQuantity | None:
        return self._resources.get(identity.key)

    def count(self, identity: ResourceIdentity) -> int:
        quantity = self._resources.get(identity.key)
        return quantity.count if quantity is not None else 0

    def all(self) -> list[ResourceQuantity]:
        return list(self._resources.values())

    def by_kind(self, kind: str) -> list[ResourceQuantity]:
        return [q for q in self._resources.values() if q.identity.kind == kind]

    def by_tier(self, tier: int) -> list[ResourceQuantity]:
        return [q for q in self._resources.values() if q.tier == tier]

    def clear_all(self) -> None:
        """Zero every count. Identities stay unlocked."""
        for quantity in self._resources.values():
            quantity.count = 0

    def __len__(self) -> int:
        return len(self._resources)

    # --- Snapshot / restore ---

    def snapshot(self) -> list[dict[str, Any]]:
        return [
            {
                "type": q.identity.kind,
                "value": q.identity.value,
                "tier": q.tier,
                "count": str(q.count),
            }
            for q in self._resources.values()
        ]

    def restore(self, data: list[dict[str, Any]]) -> None:
        self._resources.clear()
        for entry in data:
            try:
                identity = ResourceIdentity(entry["type"], entry["value"])
                count = int(entry["count"])
            except (KeyError, ValueError) as exc:
                raise SnapshotError(f"Bad ledger entry {entry!r}") from exc
            if count < 0:
                raise SnapshotError(f"Negative count in ledger entry {entry!r}")
            self.unlock(identity, entry["tier"]).count = count
