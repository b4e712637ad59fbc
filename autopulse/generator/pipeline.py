"""Generator run orchestrator.

One run, strictly sequential:

1. Load unexpired raw items (the only fatal step)
2. Drop out-of-domain items
3. Fill in missing embeddings
4. Group by brand, order brands by the rotated priority list
5. Cluster every brand group
6. Round-robin the clusters into a bounded work list
7. For each work item while the budget allows: topic lock check, generate,
   embed the candidate, duplicate guard, commit, then best-effort side effects

Work items commit in exactly the order the collector produced them.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from autopulse.core.db import Database
from autopulse.core.errors import (
    EmbeddingFailure,
    FetchFailure,
    PersistenceFailure,
    SideEffectFailure,
)
from autopulse.core.logging import get_logger
from autopulse.core.repositories import (
    get_unexpired_raw_items,
    insert_generated_article,
    mark_raw_items_consumed,
    update_raw_item_embedding,
)
from autopulse.core.settings import Settings, get_settings
from autopulse.core.time import Clock, normalize_timezone, utc_now, utc_today
from autopulse.core.types import RawItem, to_vector
from autopulse.core.utils import generate_short_id
from autopulse.generator.brands import BrandCatalog, filter_out_of_domain, group_by_brand
from autopulse.generator.budget import BudgetSupervisor, RunBudget
from autopulse.generator.cluster import BrandClusters, TopicCluster, build_brand_clusters
from autopulse.generator.dedup import DuplicateGuard
from autopulse.generator.embeddings import EmbeddingClient
from autopulse.generator.models import GeneratedDraft
from autopulse.generator.quality import PublishDecision, decide_publish
from autopulse.generator.rotation import rotate_priority, sort_by_priority
from autopulse.generator.round_robin import CollectedItem, CollectionResult, collect_round_robin
from autopulse.generator.topic_lock import TopicLockLedger, topic_fingerprint
from autopulse.generator.writer import ArticleWriter

logger = get_logger(__name__)

STOP_WORK_EXHAUSTED = "work_exhausted"
STYLE_VERSION = "v1.0"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class RunSummary:
    """Outcome of one run. Always produced unless loading raw items fails."""
    raw_items: int = 0
    embedded_items: int = 0
    brands: int = 0
    work_items: int = 0
    rounds: int = 0
    generated: int = 0
    committed: int = 0
    published: int = 0
    skipped_locked: int = 0
    duplicates: int = 0
    failed: int = 0
    elapsed_seconds: float = 0.0
    stop_reason: str = STOP_WORK_EXHAUSTED
    limit_hit: bool = False
    articles: List[Dict[str, Any]] = field(default_factory=list)
    stage_timings: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'raw_items': self.raw_items,
            'embedded_items': self.embedded_items,
            'brands': self.brands,
            'work_items': self.work_items,
            'rounds': self.rounds,
            'generated': self.generated,
            'committed': self.committed,
            'published': self.published,
            'skipped_locked': self.skipped_locked,
            'duplicates': self.duplicates,
            'failed': self.failed,
            'elapsed_seconds': round(self.elapsed_seconds, 2),
            'stop_reason': self.stop_reason,
            'limit_hit': self.limit_hit,
            'articles': self.articles,
            'stage_timings': {k: round(v, 3) for k, v in self.stage_timings.items()},
        }


class StageTimer:
    """Context manager for timing pipeline stages."""

    def __init__(self, stage_name: str, timings_dict: Dict[str, float]):
        self.stage_name = stage_name
        self.timings_dict = timings_dict
        self.start_time = None

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.timings_dict[self.stage_name] = time.monotonic() - self.start_time


def _scrape_order(item: RawItem):
    scraped = normalize_timezone(item.scraped_at) if item.scraped_at else _EPOCH
    return (scraped, item.id)


class GeneratorPipeline:
    """Runs selection, generation and guarding for one scheduled invocation."""

    def __init__(
        self,
        database: Database,
        writer: ArticleWriter,
        embedder: Optional[EmbeddingClient] = None,
        settings: Optional[Settings] = None,
        catalog: Optional[BrandCatalog] = None,
        clock: Optional[Clock] = None,
        monotonic: Optional[Callable[[], float]] = None
    ):
        self.database = database
        self.writer = writer
        self.embedder = embedder
        self.settings = settings or get_settings()
        self.catalog = catalog or self._load_catalog()
        self.clock = clock or utc_now
        self.monotonic = monotonic or time.monotonic

    def _load_catalog(self) -> BrandCatalog:
        if self.settings.brand_catalog_path:
            return BrandCatalog.from_yaml(self.settings.brand_catalog_path)
        return BrandCatalog.default()

    @property
    def embeddings_enabled(self) -> bool:
        return self.embedder is not None and self.embedder.enabled

    async def run(self) -> RunSummary:
        """
        Execute one run.

        Returns:
            RunSummary with counts, elapsed time and the stop reason

        Raises:
            FetchFailure: if the raw item pool cannot be read
        """
        supervisor = BudgetSupervisor(RunBudget.from_settings(self.settings), clock=self.monotonic)
        summary = RunSummary()

        logger.info(
            f"Starting generator run: target={self.settings.target_articles}, "
            f"max={self.settings.max_articles_per_run}, per_brand={self.settings.max_articles_per_brand}"
        )

        async with self.database.session() as session:
            items = await self.load_items(session)
            summary.raw_items = len(items)

            collection = await self.select_work(session, items, summary)
            summary.work_items = len(collection.collected)
            summary.rounds = collection.rounds_completed

            ledger = TopicLockLedger(session, self.settings.topic_lock_window_days, clock=self.clock)
            guard = DuplicateGuard(session, self.settings, clock=self.clock)

            with StageTimer("generation", summary.stage_timings):
                for index, work_item in enumerate(collection.collected, start=1):
                    keep_going, reason = supervisor.should_continue()
                    if not keep_going:
                        summary.stop_reason = reason
                        summary.limit_hit = True
                        logger.info(
                            f"Stopping before work item {index}/{summary.work_items}: {reason}"
                        )
                        break

                    try:
                        await self.process_item(session, work_item, ledger, guard, supervisor, summary)
                    except Exception as e:
                        summary.failed += 1
                        logger.error(
                            f"Work item {index} ({work_item.cluster.describe()}) failed: {e}",
                            exc_info=True,
                            extra={
                                'brand': work_item.brand,
                                'cluster_size': work_item.cluster.size,
                                'item_ids': work_item.cluster.item_ids,
                            }
                        )
                        await self._reset_session(session)

        summary.elapsed_seconds = supervisor.elapsed
        logger.info(
            f"Generator run finished in {summary.elapsed_seconds:.1f}s: "
            f"{summary.committed}/{summary.generated} committed, stop={summary.stop_reason}",
            extra={'summary': {k: v for k, v in summary.to_dict().items() if k != 'articles'}}
        )
        return summary

    async def load_items(self, session: AsyncSession) -> List[RawItem]:
        try:
            items = await get_unexpired_raw_items(session, self.clock())
        except Exception as e:
            raise FetchFailure(f"Cannot read raw items: {e}") from e

        logger.info(f"Loaded {len(items)} unexpired raw items")
        return items

    async def select_work(
        self,
        session: AsyncSession,
        items: Sequence[RawItem],
        summary: RunSummary
    ) -> CollectionResult:
        """Filter, embed, group, cluster and collect the run's work list."""
        timings = summary.stage_timings

        with StageTimer("filter", timings):
            items = filter_out_of_domain(items, self.catalog)

        with StageTimer("embeddings", timings):
            items = await self.ensure_embeddings(session, items)

        # Fixed order keeps greedy clustering deterministic across runs
        embedded = sorted((item for item in items if item.vector is not None), key=_scrape_order)
        summary.embedded_items = len(embedded)

        with StageTimer("clustering", timings):
            groups = group_by_brand(embedded, self.catalog)
            rotated = rotate_priority(self.settings.priority_brands, utc_today(self.clock()))
            ordered = sort_by_priority(groups, rotated)
            summary.brands = len(ordered)

            brand_clusters: List[BrandClusters] = []
            for brand, brand_items in ordered:
                try:
                    clustered = build_brand_clusters(
                        brand,
                        brand_items,
                        min_size=self.settings.cluster_min_size,
                        threshold=self.settings.cluster_threshold,
                        pair_threshold=self.settings.pair_cluster_threshold,
                        digest_similarity=self.settings.digest_similarity,
                    )
                except ValueError as e:
                    # Mixed embedding dimensions inside one brand
                    logger.error(f"Clustering failed for {brand}: {e}", extra={'brand': brand})
                    continue
                if clustered.clusters:
                    brand_clusters.append(clustered)

        with StageTimer("collection", timings):
            return collect_round_robin(
                brand_clusters,
                target_count=self.settings.max_articles_per_run,
                max_per_brand=self.settings.max_articles_per_brand,
            )

    async def ensure_embeddings(self, session: AsyncSession, items: Sequence[RawItem]) -> List[RawItem]:
        """
        Compute embeddings for items that lack one and write them back.

        Items whose embedding cannot be computed are returned unchanged.
        """
        items = list(items)
        if not self.embeddings_enabled:
            return items

        missing = [i for i, item in enumerate(items) if item.vector is None]
        if not missing:
            return items

        logger.info(f"Computing embeddings for {len(missing)} raw items")
        computed = 0
        for i in missing:
            item = items[i]
            try:
                values = await self.embedder.embed(item.text)
            except EmbeddingFailure as e:
                logger.warning(f"Embedding failed for raw item {item.id}: {e}")
                continue

            items[i] = item.with_embedding(to_vector(values))
            computed += 1

            try:
                await update_raw_item_embedding(session, item.id, values)
            except Exception as e:
                logger.warning(f"Failed to store embedding for {item.id}: {e}")

        logger.info(f"Computed {computed}/{len(missing)} embeddings")
        return items

    async def embed_candidate(self, draft: GeneratedDraft) -> Optional[List[float]]:
        if not self.embeddings_enabled:
            return None
        try:
            return await self.embedder.embed(draft.embedding_text)
        except EmbeddingFailure as e:
            logger.warning(f"Candidate embedding failed, semantic check skipped: {e}")
            return None

    def build_record(
        self,
        article_id: str,
        brand: str,
        cluster: TopicCluster,
        draft: GeneratedDraft,
        embedding: Optional[List[float]],
        decision: PublishDecision
    ) -> Dict[str, Any]:
        now = self.clock()
        return {
            'id': article_id,
            'title_zh': draft.title,
            'content_zh': draft.content,
            'slug_en': draft.slug,
            'source_urls': [item.url for item in cluster.items if item.url],
            'source_item_ids': cluster.item_ids,
            'confidence': draft.confidence,
            'quality_checks': draft.quality_checks.model_dump(),
            'reasoning': draft.reasoning,
            'style_version': STYLE_VERSION,
            'primary_brand': brand,
            'brands': draft.brands or [brand],
            'car_models': draft.car_models,
            'categories': draft.categories,
            'tags': draft.tags,
            'embedding': embedding,
            'published': decision.should_publish,
            'publish_reason': decision.reason,
            'published_at': now if decision.should_publish else None,
            'created_at': now,
        }

    async def process_item(
        self,
        session: AsyncSession,
        work_item: CollectedItem,
        ledger: TopicLockLedger,
        guard: DuplicateGuard,
        supervisor: BudgetSupervisor,
        summary: RunSummary
    ) -> None:
        """
        Generate, guard and commit one work item.

        Raises:
            GenerationFailure: if the writer fails
            PersistenceFailure: if the commit fails
        """
        brand = work_item.brand
        cluster = work_item.cluster

        fingerprint = topic_fingerprint(cluster.centroid, self.settings.fingerprint_dims)
        if await ledger.check_lock(fingerprint):
            summary.skipped_locked += 1
            return

        draft = await self.writer.generate(cluster, brand)
        summary.generated += 1

        embedding = await self.embed_candidate(draft)

        verdict = await guard.comprehensive_check(draft.title, embedding, brand)
        if verdict.is_duplicate:
            summary.duplicates += 1
            logger.info(
                f"Discarding duplicate for {brand}: {verdict.reason}",
                extra={'brand': brand, 'related_id': verdict.related.id if verdict.related else None}
            )
            return

        decision = decide_publish(draft)
        article_id = generate_short_id()
        record = self.build_record(article_id, brand, cluster, draft, embedding, decision)

        try:
            await insert_generated_article(session, record)
        except Exception as e:
            raise PersistenceFailure(
                f"Failed to commit article for {brand}: {e}",
                {'brand': brand, 'article_id': article_id}
            ) from e

        supervisor.record_processed()
        summary.committed += 1
        if decision.should_publish:
            summary.published += 1
        summary.articles.append({
            'id': article_id,
            'brand': brand,
            'title': draft.title,
            'published': decision.should_publish,
            'reason': decision.reason,
            'sources': cluster.size,
        })

        # Primary commit is final from here on
        await self._mark_consumed(session, cluster, article_id)
        await ledger.create_lock(fingerprint, article_id)

    async def _mark_consumed(self, session: AsyncSession, cluster: TopicCluster, article_id: str) -> None:
        try:
            await mark_raw_items_consumed(session, cluster.item_ids, article_id)
        except Exception as e:
            failure = SideEffectFailure(
                f"Failed to mark raw items consumed: {e}",
                {'article_id': article_id, 'item_ids': cluster.item_ids}
            )
            logger.warning(str(failure), extra=failure.context)

    async def _reset_session(self, session: AsyncSession) -> None:
        """Roll back after a failed item so later statements don't hit an aborted transaction."""
        try:
            await session.rollback()
        except Exception as e:
            logger.warning(f"Session rollback after failed work item failed: {e}")
