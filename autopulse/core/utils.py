"""
Utility functions for AutoPulse.

Provides slug and identifier helpers used when committing articles.
"""

import re
import secrets
import string
import unicodedata

BASE62_ALPHABET = string.digits + string.ascii_lowercase + string.ascii_uppercase
SHORT_ID_LENGTH = 7


def slugify(text: str, max_length: int = 80) -> str:
    """
    Convert text to URL-safe slug.

    Args:
        text: Text to convert
        max_length: Maximum slug length

    Returns:
        URL-safe slug
    """
    if not text:
        return ""

    # Normalize unicode and remove accents
    normalized = unicodedata.normalize('NFKD', text)
    ascii_only = normalized.encode('ascii', 'ignore').decode('ascii')

    slug = ascii_only.lower()
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    slug = slug.strip('-')
    slug = re.sub(r'-+', '-', slug)

    if len(slug) > max_length:
        # Try to break at word boundary
        truncated = slug[:max_length]
        last_hyphen = truncated.rfind('-')
        if last_hyphen > max_length * 0.7:
            slug = truncated[:last_hyphen]
        else:
            slug = truncated

    return slug or "article"


def generate_short_id(length: int = SHORT_ID_LENGTH) -> str:
    """Random base62 identifier for generated articles."""
    return ''.join(secrets.choice(BASE62_ALPHABET) for _ in range(length))
