"""Round-robin collection of clusters across brands.

Each round visits brands in priority order and takes the next cluster from
every brand still under its per-run cap. A brand only gets its second pick
after every brand with work has had its first.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from autopulse.core.logging import get_logger
from autopulse.generator.cluster import BrandClusters, TopicCluster

logger = get_logger(__name__)

DEFAULT_MAX_PER_BRAND = 3


@dataclass
class CollectedItem:
    """One unit of work: a brand's cluster picked in a given round."""
    brand: str
    cluster: TopicCluster
    round_number: int


@dataclass
class CollectionResult:
    """Ordered work list plus diagnostics."""
    collected: List[CollectedItem] = field(default_factory=list)
    rounds_completed: int = 0

    def per_brand(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for item in self.collected:
            counts[item.brand] = counts.get(item.brand, 0) + 1
        return counts


def collect_round_robin(
    brand_clusters: Sequence[BrandClusters],
    target_count: int,
    max_per_brand: int = DEFAULT_MAX_PER_BRAND
) -> CollectionResult:
    """
    Interleave per-brand clusters into one bounded work list.

    Args:
        brand_clusters: Brands in priority order, clusters already ordered
        target_count: Stop once this many clusters are collected
        max_per_brand: Cap on clusters taken from one brand

    Returns:
        CollectionResult; fewer than ``target_count`` items when every brand
        runs out or hits its cap
    """
    result = CollectionResult()
    if target_count <= 0 or max_per_brand <= 0 or not brand_clusters:
        return result

    taken: Dict[str, int] = {bc.brand: 0 for bc in brand_clusters}
    round_number = 0

    while len(result.collected) < target_count:
        round_number += 1
        took_any = False
        finished_round = True

        for bc in brand_clusters:
            if len(result.collected) >= target_count:
                finished_round = False
                break

            index = taken[bc.brand]
            if index >= max_per_brand or index >= len(bc.clusters):
                continue

            result.collected.append(CollectedItem(
                brand=bc.brand,
                cluster=bc.clusters[index],
                round_number=round_number,
            ))
            taken[bc.brand] = index + 1
            took_any = True

        if not took_any:
            logger.debug(f"Round {round_number}: all brands exhausted")
            break
        if finished_round:
            result.rounds_completed += 1

    logger.info(
        f"Round-robin collected {len(result.collected)}/{target_count} clusters "
        f"in {result.rounds_completed} full rounds",
        extra={'per_brand': result.per_brand()}
    )
    return result
