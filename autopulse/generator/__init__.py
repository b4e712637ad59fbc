"""Article generator package.

This package contains modules for:
- Vector similarity (similarity.py)
- Topic clustering (cluster.py)
- Brand detection and grouping (brands.py)
- Daily priority rotation (rotation.py)
- Round-robin work collection (round_robin.py)
- Cross-run topic locks (topic_lock.py)
- Duplicate guard (dedup.py)
- Run budget (budget.py)
- Writer and embedding clients (writer.py, embeddings.py)
- Processing pipeline (pipeline.py)
- Main application (app.py)
"""

from .similarity import cosine_similarity

from .cluster import TopicCluster, BrandClusters, cluster_items, build_brand_clusters

from .brands import BrandCatalog, OTHER_BRAND, filter_out_of_domain, group_by_brand

from .rotation import rotate_priority, sort_by_priority

from .round_robin import CollectedItem, CollectionResult, collect_round_robin

from .topic_lock import TopicLockLedger, topic_fingerprint

from .dedup import DuplicateGuard, DuplicateVerdict, extract_keywords, keyword_overlap

from .budget import BudgetSupervisor, RunBudget

from .pipeline import GeneratorPipeline, RunSummary

__all__ = [
    # Similarity and clustering
    'cosine_similarity',
    'TopicCluster',
    'BrandClusters',
    'cluster_items',
    'build_brand_clusters',

    # Brands
    'BrandCatalog',
    'OTHER_BRAND',
    'filter_out_of_domain',
    'group_by_brand',
    'rotate_priority',
    'sort_by_priority',

    # Selection
    'CollectedItem',
    'CollectionResult',
    'collect_round_robin',

    # Guards
    'TopicLockLedger',
    'topic_fingerprint',
    'DuplicateGuard',
    'DuplicateVerdict',
    'extract_keywords',
    'keyword_overlap',
    'BudgetSupervisor',
    'RunBudget',

    # Pipeline
    'GeneratorPipeline',
    'RunSummary',
]
