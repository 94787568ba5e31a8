"""Cigar catalog records and the catalog store contract.

The catalog is a read-only document collection. The resolver only needs
two query shapes from it:

- exact match on a named field
- prefix range on a named field, ordered by that field, with a result cap

``InMemoryCatalog`` implements both over a JSON export of the collection
and is what the service runs against locally and in tests.
"""

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from rapidfuzz import fuzz

logger = logging.getLogger(__name__)

# Upper bound for prefix ranges: [prefix, prefix + sentinel)
HIGH_SENTINEL = "\uf8ff"


class CatalogError(Exception):
    """A catalog query failed."""


class CatalogPermissionError(CatalogError):
    """The catalog rejected a query (access control)."""


@dataclass(frozen=True)
class CigarRecord:
    """A cigar as stored in the catalog."""
    id: str
    name: str
    name_insensitive: str = ""
    brand: Optional[str] = None
    manufacturer: Optional[str] = None
    origin: Optional[str] = None
    wrapper: Optional[str] = None
    strength: Optional[str] = None
    binder: Optional[str] = None
    filler: Optional[str] = None
    vitola: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    
    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "CigarRecord":
        """Build a record from a catalog document; unknown keys go to ``extra``."""
        known = {f.name for f in fields(cls)} - {"id", "extra"}
        values = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known and k != "id"}
        name = str(values.pop("name", "") or "")
        if not values.get("name_insensitive"):
            values["name_insensitive"] = name.lower()
        return cls(id=str(doc_id), name=name, extra=extra, **values)
    
    def get(self, name: str) -> Any:
        """Value of a catalog field by document key."""
        if name in ("id", "extra"):
            return getattr(self, name)
        if hasattr(self, name):
            return getattr(self, name)
        return self.extra.get(name)
    
    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extra"}
        data.update(self.extra)
        return data


class CatalogStore:
    """Read-only query interface to the cigar catalog."""
    
    async def find_equal(
        self,
        field_name: str,
        value: str,
        limit: Optional[int] = None
    ) -> List[CigarRecord]:
        """Records whose field equals ``value`` exactly."""
        raise NotImplementedError
    
    async def find_prefix(
        self,
        field_name: str,
        prefix: str,
        limit: int
    ) -> List[CigarRecord]:
        """Records whose field falls in ``[prefix, prefix + HIGH_SENTINEL)``, ordered by it."""
        raise NotImplementedError


class InMemoryCatalog(CatalogStore):
    """Catalog store backed by records held in memory."""
    
    def __init__(self, records: Optional[List[CigarRecord]] = None):
        self._records: List[CigarRecord] = list(records or [])
    
    def __len__(self) -> int:
        return len(self._records)
    
    @property
    def records(self) -> List[CigarRecord]:
        return list(self._records)
    
    def load(self, path: Union[str, Path]) -> int:
        """
        Replace the catalog contents with a JSON export.
        
        Accepts either a list of documents or ``{"cigars": [...]}``.
        Documents without an ``id`` get their position as id.
        
        Returns:
            Number of records loaded
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"Catalog file not found at {path} - starting with an empty catalog")
            self._records = []
            return 0
        
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        
        documents = data.get("cigars", []) if isinstance(data, dict) else data
        self._records = [
            CigarRecord.from_document(doc.get("id", str(i)), doc)
            for i, doc in enumerate(documents)
        ]
        logger.info(f"Loaded {len(self._records)} cigars from {path}")
        return len(self._records)
    
    async def find_equal(
        self,
        field_name: str,
        value: str,
        limit: Optional[int] = None
    ) -> List[CigarRecord]:
        matches = [r for r in self._records if r.get(field_name) == value]
        return matches[:limit] if limit is not None else matches
    
    async def find_prefix(
        self,
        field_name: str,
        prefix: str,
        limit: int
    ) -> List[CigarRecord]:
        upper = prefix + HIGH_SENTINEL
        matches = [
            r for r in self._records
            if isinstance(r.get(field_name), str) and prefix <= r.get(field_name) < upper
        ]
        matches.sort(key=lambda r: r.get(field_name))
        return matches[:limit]


class CatalogSearch:
    """
    Manual catalog search, the destination of every fallback.
    
    Runs a prefix query on ``name_insensitive`` and ranks the hits by
    fuzzy similarity to what the user typed (or what was pre-filled from
    the scan).
    """
    
    def __init__(self, store: CatalogStore, limit: int = 20):
        self.store = store
        self.limit = limit
    
    async def search(self, query: str) -> List[CigarRecord]:
        text = (query or "").strip()
        if not text:
            return []
        
        records = await self.store.find_prefix("name_insensitive", text.lower(), limit=self.limit)
        ranked = sorted(
            records,
            key=lambda r: fuzz.WRatio(text.lower(), r.name_insensitive),
            reverse=True
        )
        logger.info(f"Manual search '{text}': {len(ranked)} results")
        return ranked
