"""
External writer interface and implementations.

A writer turns one topic cluster into a structured ``GeneratedDraft``. Every
failure is raised as ``GenerationFailure``; the pipeline skips the item and
does not retry.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from autopulse.core.errors import GenerationFailure
from autopulse.core.logging import get_logger
from autopulse.core.settings import Settings
from autopulse.core.utils import slugify
from autopulse.generator.cluster import TopicCluster
from autopulse.generator.models import TITLE_MAX_CHARS, GeneratedDraft, QualityChecks

logger = get_logger(__name__)

SOURCE_CHARS = 3000

SYSTEM_PROMPT = (
    "You are an automotive news editor. Merge the source articles into one "
    "original article. Answer with a single JSON object with the keys: title, "
    "content, slug, confidence (0-100), quality_checks {has_data, has_sources, "
    "has_banned_words, has_unverified, structure_valid}, reasoning, brands, "
    "car_models, categories, tags."
)


def build_sources(cluster: TopicCluster) -> List[Dict[str, str]]:
    """Source payload for a cluster, bodies truncated."""
    return [
        {'title': item.title, 'url': item.url, 'content': item.content[:SOURCE_CHARS]}
        for item in cluster.items
    ]


class ArticleWriter(ABC):
    """Abstract base class for writers."""

    @abstractmethod
    async def generate(self, cluster: TopicCluster, brand: str) -> GeneratedDraft:
        """
        Write an article for ``cluster``.

        Raises:
            GenerationFailure: if no usable draft was produced
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identification name."""

    async def aclose(self) -> None:
        return None


class DummyWriter(ArticleWriter):
    """
    Offline writer for development and tests.

    Stitches the source titles and bodies together and reports a confident,
    well-formed draft.
    """

    def __init__(self, confidence: float = 85.0):
        self.confidence = confidence
        self.call_count = 0

    @property
    def provider_name(self) -> str:
        return "dummy"

    async def generate(self, cluster: TopicCluster, brand: str) -> GeneratedDraft:
        self.call_count += 1
        if not cluster.items:
            raise GenerationFailure("Cluster has no items", {'brand': brand})

        lead = cluster.items[0]
        paragraphs = [item.content.strip() for item in cluster.items if item.content.strip()]
        title = lead.title.strip()[:TITLE_MAX_CHARS]
        content = "\n\n".join(paragraphs) or lead.title

        return GeneratedDraft(
            title=title,
            content=content,
            slug=slugify(title),
            confidence=self.confidence,
            quality_checks=QualityChecks(
                has_data=True,
                has_sources=True,
                structure_valid=True,
            ),
            reasoning=f"{cluster.size} sources on one {brand} topic",
            brands=[brand],
        )


class HttpLLMWriter(ArticleWriter):
    """Writer backed by an OpenAI-compatible chat completions endpoint."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.model = settings.writer_model
        self.base_url = settings.writer_base_url.rstrip('/')
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.writer_timeout_seconds),
            headers={"Authorization": f"Bearer {settings.writer_api_key}"},
        )

    @property
    def provider_name(self) -> str:
        return f"http:{self.model}"

    async def aclose(self) -> None:
        await self.client.aclose()

    def _build_payload(self, cluster: TopicCluster, brand: str) -> Dict[str, Any]:
        user_message = json.dumps(
            {'brand': brand, 'sources': build_sources(cluster)},
            ensure_ascii=False
        )
        return {
            'model': self.model,
            'response_format': {'type': 'json_object'},
            'messages': [
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {'role': 'user', 'content': user_message},
            ],
        }

    async def generate(self, cluster: TopicCluster, brand: str) -> GeneratedDraft:
        context = {'brand': brand, 'cluster': cluster.describe()}
        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                json=self._build_payload(cluster, brand)
            )
            response.raise_for_status()
            message = response.json()['choices'][0]['message']['content']
            draft = GeneratedDraft.model_validate(json.loads(message))
        except httpx.HTTPError as e:
            raise GenerationFailure(f"Writer request failed: {e}", context) from e
        except (KeyError, IndexError, TypeError, ValueError, ValidationError) as e:
            raise GenerationFailure(f"Writer returned an unusable draft: {e}", context) from e

        if not draft.slug:
            draft.slug = slugify(draft.title)
        return draft


class WriterFactory:
    """Factory for creating writer instances."""

    _writers = {
        "dummy": lambda settings: DummyWriter(),
        "http": HttpLLMWriter,
    }

    @classmethod
    def create_writer(cls, settings: Settings) -> ArticleWriter:
        provider = settings.writer_provider.lower()
        if provider not in cls._writers:
            logger.warning(f"Unknown writer provider: {provider}, falling back to dummy")
            provider = "dummy"
        return cls._writers[provider](settings)

    @classmethod
    def list_providers(cls) -> List[str]:
        return list(cls._writers.keys())
