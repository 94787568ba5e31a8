"""Text normalization and tokenization for OCR output.

Band text comes back from the vision service with stray punctuation,
broken lines and inconsistent casing. Everything downstream (candidate
generation, catalog lookups, scoring) works on the two canonical forms
produced here:

- ``normalize``: a title-cased display string comparable to catalog names
- ``tokenize``: upper-cased word tokens used for overlap scoring
"""

import re
from typing import List

# Whitespace runs (including OCR line breaks)
_WHITESPACE = re.compile(r"\s+")

# Anything that is not a letter, digit, space, apostrophe, ampersand or hyphen
_NORMALIZE_STRIP = re.compile(r"[^\w\s'&-]|_")

# Token separators: anything that is not a letter, digit, apostrophe or hyphen
_TOKEN_SPLIT = re.compile(r"[^\w'-]|_")

MIN_TOKEN_LENGTH = 2
SHORT_WORD_LENGTH = 2


def collapse_whitespace(raw: str) -> str:
    """Collapse newlines and whitespace runs to single spaces and trim."""
    if not raw:
        return ""
    return _WHITESPACE.sub(" ", raw).strip()


def _case_word(word: str) -> str:
    # Short words are particles or acronyms ("DE", "OK", "NO")
    if len(word) <= SHORT_WORD_LENGTH:
        return word.upper()
    return word[0].upper() + word[1:].lower()


def _case_compound(word: str) -> str:
    """Case each hyphen-separated part so "war-hawk" becomes "War-Hawk"."""
    return "-".join(_case_word(part) for part in word.split("-"))


def normalize(raw: str) -> str:
    """
    Clean raw OCR text into a brand-like display string.
    
    Collapses whitespace, strips everything except letters, digits,
    spaces, apostrophes, ampersands and hyphens, then cases each word.
    Words longer than two characters are capitalized, shorter words are
    fully upper-cased.
    
    >>> normalize("  henry   CLAY!!  war-hawk  ")
    'Henry Clay War-Hawk'
    """
    collapsed = collapse_whitespace(raw)
    if not collapsed:
        return ""
    # Case mapping can change a word's length ("ß" -> "SS") or add
    # combining marks the strip removes, so repeat until stable
    result = _normalize_once(collapsed)
    while True:
        again = _normalize_once(result)
        if again == result:
            return result
        result = again


def _normalize_once(text: str) -> str:
    stripped = _NORMALIZE_STRIP.sub("", text)
    return " ".join(_case_compound(word) for word in stripped.split())


def tokenize(raw: str) -> List[str]:
    """
    Split raw OCR text into upper-cased tokens, preserving line order.
    
    Characters other than letters, digits, apostrophes and hyphens
    separate tokens. Tokens shorter than two characters are dropped.
    
    >>> tokenize("Henry Clay's WarHawk\\nNo.4")
    ['HENRY', "CLAY'S", 'WARHAWK', 'NO']
    """
    collapsed = collapse_whitespace(raw)
    if not collapsed:
        return []
    pieces = _TOKEN_SPLIT.sub(" ", collapsed).split()
    return [p.upper() for p in pieces if len(p) >= MIN_TOKEN_LENGTH]
