"""Base58 glyph helpers. Character resources are drawn from this alphabet."""
from __future__ import annotations

from tick_factory.config import BASE58_CHARS


def base58_char(index: int) -> str:
    if not 0 <= index < len(BASE58_CHARS):
        raise ValueError(f"Invalid base58 index: {index}")
    return BASE58_CHARS[index]


def base58_index(char: str) -> int:
    index = BASE58_CHARS.find(char) if len(char) == 1 else -1
    if index == -1:
        raise ValueError(f"Invalid base58 character: {char!r}")
    return index


def is_valid_base58(char: str) -> bool:
    return len(char) == 1 and char in BASE58_CHARS


def all_base58_chars() -> list[str]:
    return list(BASE58_CHARS)


def base58_chars_for_tier(tier: int) -> list[str]:
    """First ``tier`` glyphs of the alphabet (clamped to its length)."""
    count = max(0, min(tier, len(BASE58_CHARS)))
    return list(BASE58_CHARS[:count])
