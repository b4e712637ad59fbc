"""Daily rotation of the priority brand list.

Rotating the fixed priority list left by ``day_of_year % N`` means each of
the N priority brands leads the run order exactly once every N days.
"""

from datetime import date
from typing import Dict, List, Mapping, Sequence, Tuple, TypeVar

from autopulse.core.logging import get_logger
from autopulse.core.time import day_of_year
from autopulse.generator.brands import OTHER_BRAND

logger = get_logger(__name__)

T = TypeVar("T")


def rotation_seed(day: date, size: int) -> int:
    """Left-rotation offset for ``day``."""
    if size <= 0:
        return 0
    return day_of_year(day) % size


def rotate_priority(priority: Sequence[str], day: date) -> List[str]:
    """Rotate ``priority`` left by the day's seed."""
    items = list(priority)
    if not items:
        return items
    seed = rotation_seed(day, len(items))
    return items[seed:] + items[:seed]


def sort_by_priority(
    groups: Mapping[str, Sequence[T]],
    rotated_priority: Sequence[str]
) -> List[Tuple[str, List[T]]]:
    """
    Order brand groups for a run.

    Rotated priority brands come first in rotated order, then every other
    brand by item count (descending, ties by name), and "Other" always last.

    Returns:
        List of (brand, items) pairs
    """
    ranks: Dict[str, int] = {}
    for index, brand in enumerate(rotated_priority):
        ranks.setdefault(brand, index)

    def sort_key(entry):
        brand, items = entry
        if brand == OTHER_BRAND:
            return (2, 0, 0, brand)
        if brand in ranks:
            return (0, ranks[brand], 0, brand)
        return (1, 0, -len(items), brand)

    ordered = sorted(((brand, list(items)) for brand, items in groups.items()), key=sort_key)

    logger.debug(f"Brand order: {[brand for brand, _ in ordered[:10]]}")
    return ordered
