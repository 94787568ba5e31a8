"""Services for text normalization, candidate generation, scoring, catalog resolution and scanning."""

from .text import normalize, tokenize, collapse_whitespace
from .candidates import BrandVariantSplit, build_text_candidates, brand_variant_splits
from .catalog import CigarRecord, CatalogStore, InMemoryCatalog, CatalogSearch, CatalogError, CatalogPermissionError
from .scoring import ScoredMatch, token_overlap_score, contiguous_boost, score_record, best_match
from .resolver import CatalogResolver
from .preprocessing import ImageCompressor, CompressedImage, ImageQuality
from .vision import VisionClient, VisionResult, LogoAnnotation, VisionError, VisionTimeoutError, VisionNetworkError, VisionServiceError
from .pipeline import (
    ScanPipeline,
    ScanState,
    ScanEvent,
    EventType,
    FailureCategory,
    InvalidTransitionError,
    Resolved,
    Fallback,
    Failed,
    ScanOperation,
    OperationTracker,
    ScanListener,
    Camera,
    StaticCamera,
    transition,
)

__all__ = [
    "normalize",
    "tokenize",
    "collapse_whitespace",
    "BrandVariantSplit",
    "build_text_candidates",
    "brand_variant_splits",
    "CigarRecord",
    "CatalogStore",
    "InMemoryCatalog",
    "CatalogSearch",
    "CatalogError",
    "CatalogPermissionError",
    "ScoredMatch",
    "token_overlap_score",
    "contiguous_boost",
    "score_record",
    "best_match",
    "CatalogResolver",
    "ImageCompressor",
    "CompressedImage",
    "ImageQuality",
    "VisionClient",
    "VisionResult",
    "LogoAnnotation",
    "VisionError",
    "VisionTimeoutError",
    "VisionNetworkError",
    "VisionServiceError",
    "ScanPipeline",
    "ScanState",
    "ScanEvent",
    "EventType",
    "FailureCategory",
    "InvalidTransitionError",
    "Resolved",
    "Fallback",
    "Failed",
    "ScanOperation",
    "OperationTracker",
    "ScanListener",
    "Camera",
    "StaticCamera",
    "transition",
]
