"""Stable string hashing, ID formatting and rarity derivation."""
from __future__ import annotations

from typing import Iterable

from tick_factory.types import ResourceIdentity

_INT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def _utf16_units(text: str) -> Iterable[int]:
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def hash_string(text: str) -> int:
    """31-multiplier rolling hash over UTF-16 code units.

    Wraps to a signed 32-bit value after every step and returns the absolute
    value, so the result is in ``[0, 2**31]``.
    """
    h = 0
    for unit in _utf16_units(text):
        h = (h * 31 + unit) & _INT32_MASK
    if h & _INT32_SIGN:
        h -= 1 << 32
    return abs(h)


def resource_id(kind: str, value: str) -> str:
    return f"{kind}:{value}"


def sort_inputs(inputs: Iterable[ResourceIdentity]) -> tuple[ResourceIdentity, ...]:
    return tuple(sorted(inputs, key=lambda ident: ident.sort_key))


def recipe_id(inputs: Iterable[ResourceIdentity]) -> str:
    """Order-independent recipe id: sorted ``kind:value`` tokens joined by ``+``."""
    return "+".join(ident.key for ident in sort_inputs(inputs))


def rarity_from_hash(h: int) -> float:
    """Bucket a hash into common/rare/epic/legendary (70/20/8/2)."""
    normalized = (h % 10000) / 10000
    if normalized < 0.7:
        return 0.0
    if normalized < 0.9:
        return 0.5
    if normalized < 0.98:
        return 0.8
    return 1.0


def hash_recipe(inputs: Iterable[str], output: str) -> int:
    """Hash of ``sorted(inputs)->output`` over plain tokens."""
    return hash_string(f"{','.join(sorted(inputs))}->{output}")


def recipe_rarity_curve(h: int) -> float:
    """Continuous rarity in ``[0, 1)``, skewed towards common."""
    return ((h % 10000) / 10000) ** 2
