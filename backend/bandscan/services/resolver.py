"""Tiered catalog resolution of candidate text.

Tiers run in strict priority order and short-circuit on the first hit:

1. Exact: ``name`` equals the title-cased text, then ``name_insensitive``
   equals the lowercased text
2. Brand + variant: leading tokens looked up as a ``brand``, remaining
   tokens scored against the brand's cigars
3. Prefix-fuzzy: prefix ranges on ``name``, ``brand`` and
   ``name_insensitive`` for the first few tokens, every unique hit scored

Permission errors from the catalog propagate. Any other lookup failure is
logged and treated as an empty result so the remaining lookups still run.
"""

import logging
from typing import Awaitable, Dict, List, Optional

from .candidates import brand_variant_splits
from .catalog import CatalogPermissionError, CatalogStore, CigarRecord
from .scoring import ScoredMatch, best_match
from .text import collapse_whitespace, normalize, tokenize
from ..config import get_settings

logger = logging.getLogger(__name__)

VARIANT_FIELDS = ("name", "name_insensitive")
FUZZY_FIELDS = ("name", "brand", "name_insensitive")


class CatalogResolver:
    """Resolves candidate text to a single catalog record."""
    
    def __init__(self, store: CatalogStore):
        self.store = store
        self.settings = get_settings()
    
    async def resolve_to_cigar(self, text: str) -> Optional[CigarRecord]:
        """
        Resolve text with the normalized form first, then the raw form.
        
        The raw pass keeps punctuation that normalization strips, which
        changes the lowercase exact lookup and the contiguous phrase.
        
        Raises:
            CatalogPermissionError: The catalog rejected a query
        """
        normalized = normalize(text)
        if normalized:
            record = await self.resolve(normalized)
            if record is not None:
                return record
        
        raw = collapse_whitespace(text)
        if not raw:
            return None
        logger.debug(f"No match for normalized '{normalized}', retrying raw '{raw}'")
        return await self.resolve(raw)
    
    async def resolve(self, text: str) -> Optional[CigarRecord]:
        """Run the tiers for one query string. Returns None on a miss."""
        phrase = collapse_whitespace(text)
        if not phrase:
            return None
        tokens = tokenize(phrase)
        
        record = await self._exact_tier(phrase)
        if record is not None:
            logger.info(f"Resolved '{phrase}' via exact tier -> {record.name}")
            return record
        
        match = await self._brand_variant_tier(tokens)
        if match is not None:
            logger.info(
                f"Resolved '{phrase}' via brand+variant tier -> "
                f"{match.record.name} (score={match.score})"
            )
            return match.record
        
        match = await self._prefix_fuzzy_tier(phrase, tokens)
        if match is not None:
            logger.info(
                f"Resolved '{phrase}' via prefix tier -> "
                f"{match.record.name} (score={match.score})"
            )
            return match.record
        
        logger.info(f"No catalog match for '{phrase}'")
        return None
    
    async def _lookup(self, description: str, query: Awaitable[List[CigarRecord]]) -> List[CigarRecord]:
        """Await a catalog query, absorbing every failure except permission denial."""
        try:
            return await query
        except CatalogPermissionError:
            raise
        except Exception as e:
            logger.warning(f"Catalog lookup failed ({description}): {e}")
            return []
    
    async def _exact_tier(self, phrase: str) -> Optional[CigarRecord]:
        title = normalize(phrase)
        if title:
            hits = await self._lookup(
                f"name == {title!r}",
                self.store.find_equal("name", title, limit=1)
            )
            if hits:
                return hits[0]
        
        lower = phrase.lower()
        hits = await self._lookup(
            f"name_insensitive == {lower!r}",
            self.store.find_equal("name_insensitive", lower, limit=1)
        )
        return hits[0] if hits else None
    
    async def _brand_variant_tier(self, tokens: List[str]) -> Optional[ScoredMatch]:
        for split in brand_variant_splits(tokens, self.settings.max_brand_tokens):
            brand = normalize(split.brand_phrase)
            records = await self._lookup(
                f"brand == {brand!r}",
                self.store.find_equal("brand", brand, limit=self.settings.brand_candidate_limit)
            )
            if not records:
                continue
            
            match = best_match(records, split.variant_phrase, split.variant, VARIANT_FIELDS)
            if match is not None:
                return match
        return None
    
    async def _prefix_fuzzy_tier(self, phrase: str, tokens: List[str]) -> Optional[ScoredMatch]:
        limit = self.settings.prefix_candidate_limit
        unique: Dict[str, CigarRecord] = {}
        
        for token in tokens[:self.settings.prefix_token_count]:
            title = normalize(token)
            lookups = (
                ("name", title),
                ("brand", title),
                ("name_insensitive", token.lower()),
            )
            for field_name, prefix in lookups:
                if not prefix:
                    continue
                hits = await self._lookup(
                    f"{field_name} prefix {prefix!r}",
                    self.store.find_prefix(field_name, prefix, limit=limit)
                )
                for record in hits:
                    unique.setdefault(record.id, record)
        
        if not unique:
            return None
        return best_match(unique.values(), phrase, tokens, FUZZY_FIELDS)
