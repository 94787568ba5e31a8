"""Candidate query generation from OCR text."""

from dataclasses import dataclass
from typing import List, Sequence, Tuple
import logging

from .text import normalize

logger = logging.getLogger(__name__)

DEFAULT_MAX_BRAND_TOKENS = 3


@dataclass(frozen=True)
class BrandVariantSplit:
    """A query partitioned into leading brand tokens and trailing variant tokens."""
    brand: Tuple[str, ...]
    variant: Tuple[str, ...]
    
    @property
    def brand_phrase(self) -> str:
        return " ".join(self.brand)
    
    @property
    def variant_phrase(self) -> str:
        return " ".join(self.variant)


def _ocr_lines(raw_ocr_text: str) -> List[str]:
    """Non-empty, trimmed lines in OCR order."""
    if not raw_ocr_text:
        return []
    return [line.strip() for line in raw_ocr_text.splitlines() if line.strip()]


def build_text_candidates(raw_ocr_text: str) -> List[str]:
    """
    Build ordered catalog queries from a raw OCR text block.
    
    Preference order:
    1. All lines joined
    2. First two lines joined
    3. Longest single line
    4. Every line on its own, in OCR order
    
    Each candidate is normalized; duplicates and empty strings are dropped
    keeping the first occurrence.
    """
    lines = _ocr_lines(raw_ocr_text)
    if not lines:
        return []
    
    ordered = [
        " ".join(lines),
        " ".join(lines[:2]),
        max(lines, key=len),  # First longest line wins ties
        *lines,
    ]
    
    candidates = []
    seen = set()
    for text in ordered:
        candidate = normalize(text)
        if candidate and candidate not in seen:
            seen.add(candidate)
            candidates.append(candidate)
    
    logger.debug(f"Built {len(candidates)} candidates from {len(lines)} OCR lines")
    return candidates


def brand_variant_splits(
    tokens: Sequence[str],
    max_brand_tokens: int = DEFAULT_MAX_BRAND_TOKENS
) -> List[BrandVariantSplit]:
    """
    Partition tokens into brand/variant pairs, fewest brand tokens first.
    
    At least one token is always left for the variant, so a single-token
    query produces no splits.
    """
    tokens = tuple(tokens)
    upper = min(max_brand_tokens, len(tokens) - 1)
    return [
        BrandVariantSplit(brand=tokens[:n], variant=tokens[n:])
        for n in range(1, upper + 1)
    ]
