"""
Client for an OpenAI-compatible embeddings endpoint.

Failures surface as ``EmbeddingFailure`` so callers can treat them per item.
Transient HTTP errors are retried with exponential backoff first.
"""

from typing import List, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from autopulse.core.errors import EmbeddingFailure
from autopulse.core.logging import get_logger
from autopulse.core.settings import Settings

logger = get_logger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class EmbeddingClient:
    """Turns text into a fixed-length vector."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
        self.enabled = settings.embeddings_enabled
        self.model = settings.embedding_model
        self.max_chars = settings.embedding_max_chars
        self.base_url = settings.embedding_base_url.rstrip('/')
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"Authorization": f"Bearer {settings.embedding_api_key}"},
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4.0),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TimeoutException, httpx.NetworkError)),
        reraise=True
    )
    async def _post_with_retry(self, payload: dict) -> httpx.Response:
        response = await self.client.post(f"{self.base_url}/embeddings", json=payload)
        if response.status_code in RETRYABLE_STATUS:
            logger.warning(f"Embedding service returned {response.status_code}, will retry")
            response.raise_for_status()
        return response

    async def embed(self, text: str) -> List[float]:
        """
        Embed ``text``, truncated to the configured character limit.

        Raises:
            EmbeddingFailure: on transport errors, non-2xx responses or a
                malformed payload
        """
        if not text or not text.strip():
            raise EmbeddingFailure("Cannot embed empty text")

        payload = {"model": self.model, "input": text[:self.max_chars]}
        try:
            response = await self._post_with_retry(payload)
            response.raise_for_status()
            data = response.json()
            values = data["data"][0]["embedding"]
        except httpx.HTTPError as e:
            raise EmbeddingFailure(f"Embedding request failed: {e}", {'model': self.model}) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingFailure(f"Malformed embedding response: {e}", {'model': self.model}) from e

        if not values:
            raise EmbeddingFailure("Embedding service returned an empty vector", {'model': self.model})
        return [float(v) for v in values]
