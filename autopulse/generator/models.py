"""
Pydantic models exchanged with the external writer.

The writer returns a structured draft: title, body, a 0-100 confidence and
its own quality self-assessment. Everything else the pipeline stores is
derived from the cluster.
"""

from typing import List

from pydantic import BaseModel, Field, field_validator

from autopulse.core.utils import slugify

# Matches generated_articles.title_zh
TITLE_MAX_CHARS = 500


class QualityChecks(BaseModel):
    """Writer's self-assessment of a draft."""
    has_data: bool = Field(default=False, description="Cites concrete figures")
    has_sources: bool = Field(default=False, description="Attributes its sources")
    has_banned_words: bool = Field(default=False, description="Contains banned vocabulary")
    has_unverified: bool = Field(default=False, description="Contains unverified claims")
    structure_valid: bool = Field(default=False, description="Follows the required structure")


class GeneratedDraft(BaseModel):
    """Structured result of one writer call."""
    title: str = Field(..., min_length=1, description="Article headline, cut to TITLE_MAX_CHARS")
    content: str = Field(..., min_length=1, description="Article body")
    slug: str = Field(default="", description="English URL slug, normalised with slugify")
    confidence: float = Field(default=0.0, ge=0, le=100, description="Writer confidence, 0-100")
    quality_checks: QualityChecks = Field(default_factory=QualityChecks)
    reasoning: str = Field(default="", description="Why the sources belong together")
    brands: List[str] = Field(default_factory=list)
    car_models: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    @field_validator('title', 'content')
    @classmethod
    def validate_not_blank(cls, v):
        """Reject whitespace-only text."""
        if not v or v.isspace():
            raise ValueError("Text cannot be empty or whitespace")
        return v.strip()

    @field_validator('title')
    @classmethod
    def truncate_title(cls, v):
        """Fit the headline column instead of discarding a paid-for draft."""
        return v[:TITLE_MAX_CHARS].rstrip()

    @field_validator('slug')
    @classmethod
    def normalize_slug(cls, v):
        return slugify(v) if v and v.strip() else ""

    @property
    def embedding_text(self) -> str:
        """Text the candidate embedding is computed from."""
        return f"{self.title}\n\n{self.content}"
