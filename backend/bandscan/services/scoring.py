"""Relevance scoring shared by every resolver tier.

Two signals are combined:

- token overlap: +1 for each query token found anywhere in the field
- contiguous boost: len(phrase) ** 2 when the whole phrase appears verbatim

The quadratic boost dominates the flat overlap score once a phrase is more
than a few characters long. Both constants are pinned; ranking tests depend
on the exact arithmetic.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .catalog import CigarRecord


@dataclass(frozen=True)
class ScoredMatch:
    """A catalog record with its relevance score (higher wins)."""
    record: CigarRecord
    score: int


def token_overlap_score(candidate_text: Optional[str], tokens: Iterable[str]) -> int:
    """Count tokens occurring (case-insensitive) as substrings of the text."""
    if not candidate_text:
        return 0
    haystack = candidate_text.lower()
    return sum(1 for token in tokens if token and token.lower() in haystack)


def contiguous_boost(haystack: Optional[str], needle: Optional[str]) -> int:
    """Squared needle length when the needle appears verbatim, else 0."""
    if not haystack or not needle:
        return 0
    if needle.lower() not in haystack.lower():
        return 0
    return len(needle) ** 2


def score_text(text: Optional[str], phrase: str, tokens: Sequence[str]) -> int:
    """Combined score of one field value against a query."""
    return contiguous_boost(text, phrase) + token_overlap_score(text, tokens)


def score_record(
    record: CigarRecord,
    phrase: str,
    tokens: Sequence[str],
    fields: Sequence[str]
) -> int:
    """Best combined score across the given record fields."""
    return max(
        (score_text(record.get(name), phrase, tokens) for name in fields),
        default=0
    )


def best_match(
    records: Iterable[CigarRecord],
    phrase: str,
    tokens: Sequence[str],
    fields: Sequence[str]
) -> Optional[ScoredMatch]:
    """
    Highest-scoring record, or None when nothing scores above zero.
    
    Ties keep the first record found.
    """
    best: Optional[ScoredMatch] = None
    for record in records:
        score = score_record(record, phrase, tokens, fields)
        if score > 0 and (best is None or score > best.score):
            best = ScoredMatch(record=record, score=score)
    return best
