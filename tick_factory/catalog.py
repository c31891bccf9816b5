"""Recipe catalog - deterministic recipe generation and discovery tracking."""
from __future__ import annotations

from typing import Any, Iterable, Sequence

import structlog

from tick_factory.config import BASE58_CHARS
from tick_factory.hashing import hash_string, rarity_from_hash, recipe_id, sort_inputs
from tick_factory.icons import DEFAULT_ICON_NAMES
from tick_factory.types import (
    CHARACTER,
    ICON,
    CatalogProgress,
    Recipe,
    ResourceIdentity,
    SnapshotError,
)

logger = structlog.get_logger(__name__)


class RecipeCatalog:
    """Sole owner of generated recipes and their discovered flags.

    Outputs are derived from a hash of the sorted input id, so the same
    inputs always yield the same output, rarity and id, however many times
    ``generate_recipes`` runs.
    """

    def __init__(self, icon_names: Sequence[str] = DEFAULT_ICON_NAMES) -> None:
        if not icon_names:
            raise ValueError("icon_names must be non-empty")
        self._icon_names = tuple(icon_names)
        self._recipes: dict[str, Recipe] = {}

    # --- Generation ---

    def generate_recipes(
        self,
        characters: Sequence[str],
        icons: Sequence[str],
        tier: int,
    ) -> list[Recipe]:
        """Create every valid combination for ``tier``; return only new recipes.

        Single inputs always; from tier 2 also character pairs, icon pairs
        (both including a value with itself) and the character x icon cross
        product. Existing ids are left untouched.
        """
        combos: list[list[ResourceIdentity]] = []
        chars = [ResourceIdentity(CHARACTER, c) for c in characters]
        icns = [ResourceIdentity(ICON, i) for i in icons]

        combos.extend([c] for c in chars)
        combos.extend([i] for i in icns)

        if tier >= 2:
            for group in (chars, icns):
                for a in range(len(group)):
                    for b in range(a, len(group)):
                        combos.append([group[a], group[b]])
            for c in chars:
                for i in icns:
                    combos.append([c, i])

        created: list[Recipe] = []
        for inputs in combos:
            recipe = self.create_recipe(inputs, tier)
            if recipe.id in self._recipes:
                continue
            self._recipes[recipe.id] = recipe
            created.append(recipe)
        if created:
            logger.debug("recipes_generated", tier=tier, count=len(created))
        return created

    def create_recipe(self, inputs: Iterable[ResourceIdentity], tier: int) -> Recipe:
        """Build (but do not register) the recipe for ``inputs``."""
        sorted_inputs = sort_inputs(inputs)
        rid = recipe_id(sorted_inputs)
        h = hash_string(rid)
        if h % 2 == 0:
            output = ResourceIdentity(CHARACTER, BASE58_CHARS[h % len(BASE58_CHARS)])
        else:
            output = ResourceIdentity(ICON, self._icon_names[h % len(self._icon_names)])
        return Recipe(
            id=rid,
            inputs=sorted_inputs,
            output=output,
            tier=tier,
            rarity=rarity_from_hash(h),
        )

    # --- Discovery ---

    def discover(self, rid: str) -> bool:
        """Mark discovered. True only on the false -> true transition."""
        recipe = self._recipes.get(rid)
        if recipe is None or recipe.discovered:
            return False
        recipe.discovered = True
        logger.info("recipe_discovered", recipe=rid)
        return True

    def on_craft(self, inputs: Iterable[ResourceIdentity]) -> Recipe | None:
        rid = recipe_id(inputs)
        recipe = self._recipes.get(rid)
        if recipe is None:
            logger.warning("unknown_recipe", recipe=rid)
            return None
        self.discover(rid)
        return recipe

    # --- Queries ---

    def get(self, rid: str) -> Recipe | None:
        return self._recipes.get(rid)

    def all(self) -> list[Recipe]:
        return list(self._recipes.values())

    def discovered(self) -> list[Recipe]:
        return [r for r in self._recipes.values() if r.discovered]

    def undiscovered(self) -> list[Recipe]:
        return [r for r in self._recipes.values() if not r.discovered]

    def by_tier(self, tier: int) -> list[Recipe]:
        return [r for r in self._recipes.values() if r.tier == tier]

    def progress(self) -> CatalogProgress:
        total = len(self._recipes)
        found = sum(1 for r in self._recipes.values() if r.discovered)
        percentage = (found / total) * 100 if total > 0 else 100.0
        return CatalogProgress(discovered=found, total=total, percentage=percentage)

    def __len__(self) -> int:
        return len(self._recipes)

    def __contains__(self, rid: object) -> bool:
        return rid in self._recipes

    # --- Snapshot / restore ---

    def snapshot(self) -> list[dict[str, Any]]:
        return [encode_recipe(r) for r in self._recipes.values()]

    def restore(self, data: list[dict[str, Any]]) -> None:
        self._recipes.clear()
        for entry in data:
            recipe = decode_recipe(entry)
            self._recipes[recipe.id] = recipe


def source_recipe(identity: ResourceIdentity, tier: int = 1) -> Recipe:
    """Zero-input recipe letting a Generator emit a base resource."""
    return Recipe(
        id=f"gen-{identity.kind}-{identity.value}",
        inputs=(),
        output=identity,
        tier=tier,
        discovered=True,
        rarity=0.0,
    )


def encode_recipe(recipe: Recipe) -> dict[str, Any]:
    return {
        "id": recipe.id,
        "inputs": [ident.key for ident in recipe.inputs],
        "output": recipe.output.key,
        "tier": recipe.tier,
        "rarity": recipe.rarity,
        "discovered": recipe.discovered,
    }


def decode_recipe(data: dict[str, Any], default_tier: int = 1) -> Recipe:
    try:
        inputs = tuple(ResourceIdentity.parse(tok) for tok in data["inputs"])
        output = ResourceIdentity.parse(data["output"])
    except KeyError as exc:
        raise SnapshotError(f"Recipe entry missing field {exc}") from exc
    rid = data.get("id") or recipe_id(inputs)
    return Recipe(
        id=rid,
        inputs=inputs,
        output=output,
        tier=data.get("tier", default_tier),
        discovered=bool(data.get("discovered", False)),
        rarity=float(data.get("rarity", 0.0)),
    )
