"""Shared data types and errors for tick-factory."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

ResourceKind = Literal["character", "icon"]

CHARACTER: ResourceKind = "character"
ICON: ResourceKind = "icon"
RESOURCE_KINDS: tuple[str, ...] = (CHARACTER, ICON)


class OutOfBoundsError(IndexError):
    """Raised by the strict cell accessor for a position outside the grid."""

    def __init__(self, x: int, y: int, message: str) -> None:
        self.x = x
        self.y = y
        super().__init__(message)


class SnapshotError(Exception):
    """Raised on restore failures (version mismatch, malformed entries)."""


@dataclass(frozen=True)
class ResourceIdentity:
    """Names a resource type independent of quantity.

    Attributes:
        kind: ``"character"`` or ``"icon"``.
        value: A single base58 glyph, or an icon name.
    """

    kind: str
    value: str

    def __post_init__(self) -> None:
        if self.kind not in RESOURCE_KINDS:
            raise ValueError(f"Unknown resource kind {self.kind!r}")
        if not self.value:
            raise ValueError("ResourceIdentity value must be non-empty")

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.value}"

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.kind, self.value)

    @classmethod
    def parse(cls, token: str) -> ResourceIdentity:
        """Decode a ``kind:value`` token. Only the first colon separates."""
        kind, sep, value = token.partition(":")
        if not sep:
            raise SnapshotError(f"Malformed resource token {token!r}")
        try:
            return cls(kind, value)
        except ValueError as exc:
            raise SnapshotError(f"Malformed resource token {token!r}") from exc

    def __str__(self) -> str:
        return self.key


@dataclass
class ResourceQuantity:
    """Ledger entry. ``tier`` is fixed at unlock; ``count`` never goes negative."""

    identity: ResourceIdentity
    tier: int
    count: int = 0


@dataclass
class Packet:
    """A physical resource unit sitting on a grid cell."""

    identity: ResourceIdentity
    tier: int = 1
    count: int = 1


@dataclass
class Recipe:
    """Generated crafting recipe.

    Attributes:
        id: Sorted input tokens joined with ``+``.
        inputs: Input identities, sorted by ``(kind, value)``.
        output: Output identity, derived from the hash of ``id``.
        tier: Tier at which the recipe was generated.
        discovered: Flips false -> true once, on the first successful craft.
        rarity: Bucketed rarity in ``{0.0, 0.5, 0.8, 1.0}``.
    """

    id: str
    inputs: tuple[ResourceIdentity, ...]
    output: ResourceIdentity
    tier: int
    discovered: bool = False
    rarity: float = 0.0


@dataclass
class IconData:
    name: str
    tier: int = 0
    unlocked: bool = False


@dataclass(frozen=True)
class TierCheck:
    can_advance: bool
    reason: str | None = None


@dataclass(frozen=True)
class CatalogProgress:
    discovered: int
    total: int
    percentage: float


@dataclass
class SaveRecord:
    """One stored snapshot in a save store."""

    id: str
    timestamp: float
    data: dict = field(default_factory=dict)
