"""
Item Selector — pick line items for one order.

Items from the meal period's preferred categories are tripled in the draw
pool and the full catalog is mixed in once. Parties of four or more first
get one item from each preferred category, then the rest is drawn from the
pool.
"""

import random
from collections import defaultdict
from collections.abc import Sequence

from integrations.base import CatalogItem
from simulator.distributions import CATEGORY_PREFERENCES, MealPeriod

PREFERRED_WEIGHT = 3
VARIETY_PARTY_SIZE = 4


def group_by_category(catalog: Sequence[CatalogItem]) -> dict[str, list[CatalogItem]]:
    grouped: dict[str, list[CatalogItem]] = defaultdict(list)
    for item in catalog:
        grouped[item.category].append(item)
    return dict(grouped)


def build_weighted_pool(period: MealPeriod, catalog: Sequence[CatalogItem]) -> list[CatalogItem]:
    by_category = group_by_category(catalog)
    pool: list[CatalogItem] = []
    for category in CATEGORY_PREFERENCES[period]:
        for item in by_category.get(category, ()):
            pool.extend([item] * PREFERRED_WEIGHT)
    pool.extend(catalog)
    return pool


def select_items(
    period: MealPeriod,
    catalog: Sequence[CatalogItem],
    count: int,
    party_size: int,
    rng: random.Random,
) -> list[CatalogItem]:
    """Return exactly `count` items (empty only when the catalog is empty).

    Item ids are unique while distinct items remain; once the catalog is
    exhausted the remainder is drawn with replacement.
    """
    if count <= 0 or not catalog:
        return []

    pool = build_weighted_pool(period, catalog)
    selected: list[CatalogItem] = []
    seen: set[str] = set()

    if party_size >= VARIETY_PARTY_SIZE:
        by_category = group_by_category(catalog)
        for category in CATEGORY_PREFERENCES[period]:
            if len(selected) >= count:
                break
            candidates = [item for item in by_category.get(category, ()) if item.id not in seen]
            if candidates:
                pick = rng.choice(candidates)
                selected.append(pick)
                seen.add(pick.id)

    remaining = [item for item in pool if item.id not in seen]
    while len(selected) < count and remaining:
        pick = rng.choice(remaining)
        selected.append(pick)
        seen.add(pick.id)
        remaining = [item for item in remaining if item.id != pick.id]

    while len(selected) < count:
        selected.append(rng.choice(pool))

    return selected
