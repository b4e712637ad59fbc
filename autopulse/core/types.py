"""Domain types shared by the generator core.

Embeddings arrive from the store as JSON arrays, JSON text, or nothing at all.
They are resolved exactly once, at the repository boundary, into an
``Embedding`` variant so nothing downstream has to re-parse them.
"""
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple, Union


@dataclass(frozen=True)
class Unresolved:
    """No embedding has been computed for this item yet."""

    @property
    def is_resolved(self) -> bool:
        return False


@dataclass(frozen=True)
class Vector:
    """A computed, fixed-length embedding."""
    data: Tuple[float, ...]

    @property
    def is_resolved(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self.data)

    def as_list(self) -> List[float]:
        return list(self.data)


Embedding = Union[Unresolved, Vector]

UNRESOLVED = Unresolved()


def parse_embedding(raw: Any) -> Embedding:
    """
    Resolve a stored embedding into an ``Embedding`` variant.

    Accepts ``None``, a sequence of numbers, or JSON text such as the
    ``"[0.1, 0.2]"`` form pgvector and PostgREST hand back.

    Raises:
        ValueError: if the value is present but not a flat numeric array
    """
    if raw is None:
        return UNRESOLVED
    if isinstance(raw, Vector):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return UNRESOLVED
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Embedding text is not valid JSON: {e}") from e
    if not isinstance(raw, (list, tuple)):
        raise ValueError(f"Unsupported embedding type: {type(raw).__name__}")
    if not raw:
        return UNRESOLVED
    try:
        return Vector(tuple(float(x) for x in raw))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Embedding contains non-numeric values: {e}") from e


def to_vector(values: Sequence[float]) -> Vector:
    """Wrap freshly computed values as a ``Vector``."""
    return Vector(tuple(float(x) for x in values))


@dataclass
class RawItem:
    """A scraped, short-lived content item awaiting selection."""
    id: str
    title: str
    content: str
    url: str = ""
    embedding: Embedding = UNRESOLVED
    brand_hint: Optional[str] = None
    scraped_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    consumed_by: Optional[str] = None

    @property
    def text(self) -> str:
        """Title and body joined, as sent to the embedding service."""
        return f"{self.title}\n\n{self.content}".strip()

    @property
    def vector(self) -> Optional[Tuple[float, ...]]:
        return self.embedding.data if isinstance(self.embedding, Vector) else None

    def with_embedding(self, embedding: Embedding) -> "RawItem":
        return replace(self, embedding=embedding)


@dataclass
class RecentArticle:
    """A committed article as seen by the duplicate guard."""
    id: str
    title: str
    created_at: Optional[datetime] = None
    embedding: Embedding = field(default=UNRESOLVED)
