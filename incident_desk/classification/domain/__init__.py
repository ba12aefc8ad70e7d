"""
Classification Domain Layer
===========================

Contains:
- Text functions: normalization and length-adaptive fuzzy matching
- Value objects: keyword and user directory snapshots
- ClassificationResult

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from incident_desk.classification.domain.text import (
    normalize,
    tokenize,
    similarity,
    adaptive_threshold,
    is_similar,
    contains_term,
    contains_reference,
)
from incident_desk.classification.domain.entities import (
    ClassificationTier,
    Vocabulary,
    TeamKeywords,
    KeywordSnapshot,
    UserRecord,
    UserDirectorySnapshot,
    ClassificationResult,
)

__all__ = [
    # Text
    "normalize",
    "tokenize",
    "similarity",
    "adaptive_threshold",
    "is_similar",
    "contains_term",
    "contains_reference",
    # Value Objects
    "ClassificationTier",
    "Vocabulary",
    "TeamKeywords",
    "KeywordSnapshot",
    "UserRecord",
    "UserDirectorySnapshot",
    "ClassificationResult",
]
