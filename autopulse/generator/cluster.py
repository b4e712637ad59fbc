"""Greedy single-link clustering of raw items into topic clusters.

Each unassigned item seeds a cluster and absorbs every later unassigned item
whose similarity to the seed reaches the threshold. Membership is decided
against the seed only, never against other members. This is O(n^2) per call
and meant for the small per-brand groups of a single run.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as pairwise_cosine

from autopulse.core.logging import get_logger
from autopulse.core.types import RawItem
from autopulse.generator.similarity import cosine_similarity, mean_vector

logger = get_logger(__name__)

# Configuration
DEFAULT_MIN_CLUSTER_SIZE = 2
DEFAULT_SIMILARITY_THRESHOLD = 0.5
DEFAULT_PAIR_THRESHOLD = 0.6
DEFAULT_DIGEST_SIMILARITY = 0.5


@dataclass
class TopicCluster:
    """Near-duplicate raw items describing one topic. Lives for one run."""
    items: List[RawItem]
    centroid: Tuple[float, ...]
    similarity: float
    kind: str = "cluster"  # 'cluster' | 'single' | 'digest'
    brand: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.items)

    @property
    def item_ids(self) -> List[str]:
        return [item.id for item in self.items]

    def describe(self) -> str:
        return f"{self.brand or '?'}:{self.kind}[{self.size}]"


@dataclass
class BrandClusters:
    """Clusters computed for one brand group, largest first."""
    brand: str
    clusters: List[TopicCluster] = field(default_factory=list)


def calculate_centroid(vectors: Sequence[Sequence[float]]) -> Tuple[float, ...]:
    """Mean embedding of the cluster members."""
    return tuple(float(x) for x in mean_vector(vectors))


def calculate_average_similarity(vectors: Sequence[Sequence[float]]) -> float:
    """Mean pairwise cosine similarity; 1.0 for a single member."""
    if len(vectors) < 2:
        return 1.0

    matrix = pairwise_cosine(np.asarray(vectors, dtype=float))
    upper = matrix[np.triu_indices(len(vectors), k=1)]
    return float(upper.mean())


def _embedded(items: Sequence[RawItem]) -> List[RawItem]:
    valid = [item for item in items if item.vector is not None]
    if len(valid) < len(items):
        logger.debug(f"Skipping {len(items) - len(valid)} items without embeddings")
    return valid


def cluster_items(
    items: Sequence[RawItem],
    min_size: int = DEFAULT_MIN_CLUSTER_SIZE,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD
) -> List[TopicCluster]:
    """
    Group items into topic clusters by similarity to a seed item.

    Items are visited in the given order. Items without an embedding are
    ignored. Clusters smaller than ``min_size`` are dropped.

    Args:
        items: Candidate items
        min_size: Minimum members for a cluster to be kept
        threshold: Minimum seed similarity for membership

    Returns:
        Clusters in seed order
    """
    valid = _embedded(items)
    if len(valid) < min_size:
        return []

    clusters: List[TopicCluster] = []
    assigned = set()

    for i, seed in enumerate(valid):
        if seed.id in assigned:
            continue

        members = [seed]
        assigned.add(seed.id)

        for candidate in valid[i + 1:]:
            if candidate.id in assigned:
                continue
            if cosine_similarity(seed.vector, candidate.vector) >= threshold:
                members.append(candidate)
                assigned.add(candidate.id)

        if len(members) < min_size:
            continue

        vectors = [member.vector for member in members]
        clusters.append(TopicCluster(
            items=members,
            centroid=calculate_centroid(vectors),
            similarity=calculate_average_similarity(vectors),
        ))

    return clusters


def single_item_cluster(item: RawItem) -> TopicCluster:
    """Wrap a lone item as a size-1 cluster."""
    return TopicCluster(items=[item], centroid=tuple(item.vector), similarity=1.0, kind="single")


def digest_cluster(items: Sequence[RawItem], similarity: float = DEFAULT_DIGEST_SIMILARITY) -> TopicCluster:
    """One catch-all cluster over a group that produced no real clusters."""
    members = list(items)
    return TopicCluster(
        items=members,
        centroid=calculate_centroid([item.vector for item in members]),
        similarity=similarity,
        kind="digest",
    )


def build_brand_clusters(
    brand: str,
    items: Sequence[RawItem],
    min_size: int = DEFAULT_MIN_CLUSTER_SIZE,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    pair_threshold: float = DEFAULT_PAIR_THRESHOLD,
    digest_similarity: float = DEFAULT_DIGEST_SIMILARITY
) -> BrandClusters:
    """
    Cluster one brand group, applying the small-group policies.

    - one item: a size-1 cluster, regardless of ``min_size``
    - two items: clustered with the stricter ``pair_threshold``
    - otherwise: clustered with ``threshold``
    - two or more items yielding no cluster: one digest cluster of all items

    Returns:
        BrandClusters with clusters sorted largest first
    """
    valid = _embedded(items)

    if not valid:
        clusters = []
    elif len(valid) == 1:
        clusters = [single_item_cluster(valid[0])]
    elif len(valid) == 2:
        clusters = cluster_items(valid, min_size=2, threshold=pair_threshold)
    else:
        clusters = cluster_items(valid, min_size=min_size, threshold=threshold)

    if not clusters and len(valid) >= 2:
        logger.info(f"No clusters for {brand} ({len(valid)} items), using digest cluster")
        clusters = [digest_cluster(valid, similarity=digest_similarity)]

    for cluster in clusters:
        cluster.brand = brand

    # Stable: equal sizes keep seed order
    clusters.sort(key=lambda c: c.size, reverse=True)

    logger.debug(
        f"Brand {brand}: {len(clusters)} clusters from {len(valid)} items",
        extra={'brand': brand, 'sizes': [c.size for c in clusters]}
    )
    return BrandClusters(brand=brand, clusters=clusters)
