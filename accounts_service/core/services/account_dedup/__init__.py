"""
Account deduplication.

Weighted fuzzy scoring of account pairs and duplicate candidate lookup.
"""

from accounts_service.core.services.account_dedup.similarity import (
    Fields,
    FieldWeights,
    SimilarityScorer,
    levenshtein_distance,
    string_similarity,
    phone_similarity,
    normalize_phone,
)
from accounts_service.core.services.account_dedup.service import (
    DuplicateFinder,
)

__all__ = [
    "Fields",
    "FieldWeights",
    "SimilarityScorer",
    "levenshtein_distance",
    "string_similarity",
    "phone_similarity",
    "normalize_phone",
    "DuplicateFinder",
]
