"""Pydantic schemas for API requests and responses."""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class ScanOutcomeType(str, Enum):
    """Terminal outcome of a scan."""
    RESOLVED = "resolved"
    FALLBACK = "fallback"
    FAILED = "failed"


class CigarOut(BaseModel):
    """A catalog cigar."""
    id: str
    name: str
    name_insensitive: str
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
    extra: Dict[str, Any] = Field(default_factory=dict)
    
    class Config:
        json_schema_extra = {
            "example": {
                "id": "henry-clay-war-hawk",
                "name": "Henry Clay War Hawk",
                "name_insensitive": "henry clay war hawk",
                "brand": "Henry Clay",
                "origin": "Dominican Republic",
                "wrapper": "Connecticut Broadleaf",
                "strength": "Medium",
                "extra": {}
            }
        }


class TextRequest(BaseModel):
    """Free text (OCR output or a typed query)."""
    text: str = Field(..., min_length=1, description="Band text to resolve")


class ResolveResponse(BaseModel):
    """Response for text resolution."""
    success: bool
    query: str
    cigar: Optional[CigarOut] = None
    error: Optional[str] = None


class BrandVariantOut(BaseModel):
    """One brand/variant partition of the query tokens."""
    brand: list[str]
    variant: list[str]


class CandidatesResponse(BaseModel):
    """Preview of how OCR text is turned into catalog queries."""
    normalized: str
    tokens: list[str]
    candidates: list[str]
    splits: list[BrandVariantOut]


class ScanResponse(BaseModel):
    """Response for a band photo scan."""
    success: bool
    outcome: Optional[ScanOutcomeType] = None
    cigar: Optional[CigarOut] = None
    prefill: Optional[str] = None
    ocr_clues: Optional[str] = None
    error_category: Optional[str] = None
    message: Optional[str] = None
    processing_time_ms: int = 0
    
    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "outcome": "fallback",
                "prefill": "Some Unknown Band Text",
                "ocr_clues": "SOME UNKNOWN\nBAND TEXT",
                "message": "No exact match. Search the catalog instead.",
                "processing_time_ms": 1450
            }
        }


class SearchResponse(BaseModel):
    """Manual catalog search results."""
    query: str
    total: int
    results: list[CigarOut]


class BarcodeRequest(BaseModel):
    """A decoded barcode value."""
    value: str = Field(..., min_length=1)


class BarcodeResponse(BaseModel):
    """Manual search pre-fill for a barcode."""
    prefill: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    catalog_size: int
    vision_configured: bool
