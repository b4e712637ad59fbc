"""Failure taxonomy for generator runs.

Only ``FetchFailure`` aborts a run. The rest are raised and caught per work
item so a single bad cluster never stops the loop.
"""
from typing import Any, Dict, Optional


class GeneratorError(Exception):
    """Base class for generator failures."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class FetchFailure(GeneratorError):
    """The raw item pool could not be read. Fatal."""


class GenerationFailure(GeneratorError):
    """The external writer failed for one work item."""


class PersistenceFailure(GeneratorError):
    """Committing a generated article failed. The generation cost is sunk."""


class SideEffectFailure(GeneratorError):
    """Lock creation or consumed-marking failed after a successful commit."""


class EmbeddingFailure(GeneratorError):
    """The embedding service failed for one text."""
