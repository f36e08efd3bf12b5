"""
Weighted fuzzy similarity between two account field sets.

Only fields present on both sides take part in the score, so a sparse
record is compared on what it has rather than penalized for what it lacks.

Examples:
    >>> levenshtein_distance("kitten", "sitting")
    3
    >>> round(string_similarity("kitten", "sitting"), 3)
    0.571
    >>> SimilarityScorer().score(Fields(name="Acme"), Fields(name="  acme "))
    1.0
"""

import re
from dataclasses import dataclass, fields as dataclass_fields
from typing import Any, Mapping, Optional

NON_DIGIT_PATTERN = re.compile(r'\D')


@dataclass
class Fields:
    """Loose field set for scoring candidates that are not stored accounts."""
    name: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    industry: Optional[str] = None
    account_type: Optional[Any] = None


@dataclass(frozen=True)
class FieldWeights:
    """Relative weight of each compared field."""
    name: float = 3.0
    website: float = 2.0
    phone: float = 2.0
    industry: float = 1.0
    account_type: float = 1.0

    @classmethod
    def from_mapping(cls, overrides: Optional[Mapping[str, float]]) -> "FieldWeights":
        """Defaults with the given fields replaced."""
        known = {f.name for f in dataclass_fields(cls)}
        return cls(**{k: float(v) for k, v in (overrides or {}).items() if k in known})


def levenshtein_distance(a: str, b: str) -> int:
    """
    Classic edit distance (insert, delete, substitute all cost 1).

    Fills the full (len(a)+1) x (len(b)+1) table.
    """
    rows, cols = len(a) + 1, len(b) + 1
    table = [[0] * cols for _ in range(rows)]

    for i in range(rows):
        table[i][0] = i
    for j in range(cols):
        table[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            table[i][j] = min(
                table[i - 1][j] + 1,
                table[i][j - 1] + 1,
                table[i - 1][j - 1] + cost,
            )

    return table[rows - 1][cols - 1]


def string_similarity(a: str, b: str) -> float:
    """1.0 for a case/whitespace-insensitive match, else 1 - distance / longer length."""
    s1 = a.strip().lower()
    s2 = b.strip().lower()

    if s1 == s2:
        return 1.0

    max_len = max(len(s1), len(s2))
    if max_len == 0:
        return 0.0

    return 1.0 - levenshtein_distance(s1, s2) / max_len


def normalize_phone(phone: str) -> str:
    return NON_DIGIT_PATTERN.sub('', phone)


def phone_similarity(a: str, b: str) -> float:
    """Digits-only exact match. No partial credit."""
    return 1.0 if normalize_phone(a) == normalize_phone(b) else 0.0


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


class SimilarityScorer:
    """
    Scores two objects exposing ``name``, ``website``, ``phone``,
    ``industry`` and ``account_type`` attributes. Missing attributes count
    as absent.
    """

    def __init__(self, weights: Optional[FieldWeights] = None):
        self.weights = weights or FieldWeights()

    def score(self, a: Any, b: Any) -> float:
        """Weighted average in [0, 1]; 0.0 when no field is present on both sides."""
        total_score = 0.0
        total_weight = 0.0

        name_a, name_b = getattr(a, "name", None), getattr(b, "name", None)
        if _present(name_a) and _present(name_b):
            total_score += string_similarity(name_a, name_b) * self.weights.name
            total_weight += self.weights.name

        web_a, web_b = getattr(a, "website", None), getattr(b, "website", None)
        if _present(web_a) and _present(web_b):
            total_score += string_similarity(web_a, web_b) * self.weights.website
            total_weight += self.weights.website

        phone_a, phone_b = getattr(a, "phone", None), getattr(b, "phone", None)
        if _present(phone_a) and _present(phone_b):
            total_score += phone_similarity(phone_a, phone_b) * self.weights.phone
            total_weight += self.weights.phone

        ind_a, ind_b = getattr(a, "industry", None), getattr(b, "industry", None)
        if _present(ind_a) and _present(ind_b):
            total_score += (1.0 if ind_a.strip().lower() == ind_b.strip().lower() else 0.0) * self.weights.industry
            total_weight += self.weights.industry

        type_a, type_b = getattr(a, "account_type", None), getattr(b, "account_type", None)
        if type_a is not None and type_b is not None:
            total_score += (1.0 if _enum_value(type_a) == _enum_value(type_b) else 0.0) * self.weights.account_type
            total_weight += self.weights.account_type

        if total_weight == 0:
            return 0.0
        return total_score / total_weight
