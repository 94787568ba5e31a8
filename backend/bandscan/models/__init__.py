"""Pydantic models for request/response schemas."""

from .schemas import (
    ScanOutcomeType,
    CigarOut,
    TextRequest,
    ResolveResponse,
    BrandVariantOut,
    CandidatesResponse,
    ScanResponse,
    SearchResponse,
    BarcodeRequest,
    BarcodeResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "ScanOutcomeType",
    "CigarOut",
    "TextRequest",
    "ResolveResponse",
    "BrandVariantOut",
    "CandidatesResponse",
    "ScanResponse",
    "SearchResponse",
    "BarcodeRequest",
    "BarcodeResponse",
    "ErrorResponse",
    "HealthResponse",
]
